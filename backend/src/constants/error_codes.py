"""Error codes dictionary for the processing API.

This is the single source of truth for every error kind the service can
report, the HTTP status it maps to and whether a caller may retry it.
Used by the exception handlers to build machine-readable error responses.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    status_code: int
    retryable: bool


# Error codes dictionary - single source of truth
ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Request errors (caller must fix the request)
    # ==========================================================================
    "VALIDATION_ERROR": {
        "status_code": 400,
        "retryable": False,
    },
    "UNAUTHORIZED": {
        "status_code": 401,
        "retryable": False,
    },
    "NOT_FOUND": {
        "status_code": 404,
        "retryable": False,
    },
    # ==========================================================================
    # Server configuration
    # ==========================================================================
    "CONFIGURATION_ERROR": {
        "status_code": 500,
        "retryable": False,
    },
    # ==========================================================================
    # Network-class errors (retryable by resubmitting)
    # ==========================================================================
    "DOWNLOAD_FAILED": {
        "status_code": 500,
        "retryable": True,
    },
    "UPLOAD_FAILED": {
        "status_code": 500,
        "retryable": True,
    },
    # ==========================================================================
    # Processing errors
    # ==========================================================================
    "METADATA_EXTRACTION_ERROR": {
        "status_code": 500,
        "retryable": False,
    },
    "FFMPEG_PROCESSING_ERROR": {
        "status_code": 500,
        "retryable": False,
    },
    # Never surfaced as a terminal error, cleanup failures are logged only
    "CLEANUP_ERROR": {
        "status_code": 200,
        "retryable": False,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with HTTP status and retryable flag
    """
    return ERROR_CODES.get(code, {"status_code": 500, "retryable": False})


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    return get_error_spec(code).get("retryable", False)


def http_status_for(code: str) -> int:
    """HTTP status an error kind is reported with."""
    return get_error_spec(code).get("status_code", 500)
