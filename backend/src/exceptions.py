"""Custom exceptions for the video processor.

Every failure a request can end with is one of the subclasses below. Each
carries the stage it was raised in and a diagnostic detail, and integrates
with the error code table to produce machine-readable error responses.
"""

from src.constants.error_codes import get_error_spec
from src.constants.stages import ProcessingStage
from src.schemas.process import ErrorInfo


class ProcessingError(Exception):
    """Base exception for all video processing errors."""

    code: str = "FFMPEG_PROCESSING_ERROR"
    stage: ProcessingStage = ProcessingStage.VIDEO_PROCESSING
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        stage: ProcessingStage | None = None,
        detail: str | None = None,
    ):
        self.message = message or self.__class__.message
        if stage is not None:
            self.stage = stage
        self.detail = detail
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return get_error_spec(self.code).get("status_code", 500)

    @property
    def retryable(self) -> bool:
        return get_error_spec(self.code).get("retryable", False)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for API response."""
        return ErrorInfo(
            kind=self.code,
            message=self.message,
            detail=self.detail or "No additional details available",
            stage=self.stage.value,
            retryable=self.retryable,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(stage={self.stage.value!r}, message={self.message!r})"


# =============================================================================
# Request Errors (4xx)
# =============================================================================


class ValidationError(ProcessingError):
    """Malformed or out-of-range request."""

    code = "VALIDATION_ERROR"
    stage = ProcessingStage.VALIDATION
    message = "Request validation failed"


class UnauthorizedError(ProcessingError):
    """Missing or invalid API key."""

    code = "UNAUTHORIZED"
    stage = ProcessingStage.AUTHENTICATION
    message = "API key required"


class NotFoundError(ProcessingError):
    """Unknown endpoint."""

    code = "NOT_FOUND"
    stage = ProcessingStage.ROUTING
    message = "Endpoint not found"


# =============================================================================
# Server Errors (5xx)
# =============================================================================


class ConfigurationError(ProcessingError):
    """Required server-side configuration is missing."""

    code = "CONFIGURATION_ERROR"
    stage = ProcessingStage.VALIDATION
    message = "Server configuration error"


class DownloadFailedError(ProcessingError):
    """An input asset could not be retrieved."""

    code = "DOWNLOAD_FAILED"
    stage = ProcessingStage.ASSET_DOWNLOAD
    message = "Failed to download asset"


class MetadataExtractionError(ProcessingError):
    """Probing a media file failed or returned unparseable data."""

    code = "METADATA_EXTRACTION_ERROR"
    stage = ProcessingStage.METADATA_EXTRACTION
    message = "Failed to extract media metadata"


class FfmpegProcessingError(ProcessingError):
    """Transcode, thumbnail or graph construction failed.

    Also the catch-all kind for unexpected internal failures.
    """

    code = "FFMPEG_PROCESSING_ERROR"
    stage = ProcessingStage.VIDEO_PROCESSING
    message = "FFmpeg video processing failed"


class UploadFailedError(ProcessingError):
    """A remote store rejected the artifact or the asset never became ready."""

    code = "UPLOAD_FAILED"
    stage = ProcessingStage.OUTPUT_UPLOAD
    message = "Failed to upload output"


class CleanupError(ProcessingError):
    """Workspace removal failed. Logged, never returned to the caller."""

    code = "CLEANUP_ERROR"
    stage = ProcessingStage.CLEANUP
    message = "Failed to cleanup temporary directory"


# Closed set matched at the response-mapping boundary
ERROR_KINDS: tuple[type[ProcessingError], ...] = (
    ValidationError,
    UnauthorizedError,
    NotFoundError,
    ConfigurationError,
    DownloadFailedError,
    MetadataExtractionError,
    FfmpegProcessingError,
    UploadFailedError,
    CleanupError,
)
