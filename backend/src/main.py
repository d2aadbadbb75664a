import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api import process
from src.config import get_settings
from src.constants.stages import ProcessingStage
from src.exceptions import (
    FfmpegProcessingError,
    NotFoundError,
    ProcessingError,
    ValidationError,
)
from src.schemas.process import HealthResponse, ProcessVideoErrorResponse

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
)


def _error_response(error: ProcessingError) -> JSONResponse:
    body = ProcessVideoErrorResponse(error=error.to_error_info())
    return JSONResponse(
        status_code=error.status_code,
        content=jsonable_encoder(body.model_dump()),
    )


@app.exception_handler(ProcessingError)
async def processing_exception_handler(request: Request, exc: ProcessingError) -> JSONResponse:
    logger.warning(f"[{exc.code}] {request.method} {request.url.path} ({exc.stage.value}): {exc.message}")
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed JSON or a non-object body is a 400, same shape as field errors."""
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        loc = " -> ".join(str(x) for x in first_error.get("loc", []))
        msg = first_error.get("msg", "Validation error")
        detail = f"{loc}: {msg}" if loc else msg
    else:
        detail = None
    return _error_response(ValidationError("Invalid request body", detail=detail))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return _error_response(
            NotFoundError(detail=f"{request.method} {request.url.path} does not exist")
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# Global exception handler to ensure errors return proper JSON
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    return _error_response(
        FfmpegProcessingError(
            "Internal server error",
            stage=ProcessingStage.VIDEO_PROCESSING,
            detail=str(exc) or type(exc).__name__,
        )
    )


# Routers
app.include_router(process.router, tags=["process"])


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse(
        timestamp=datetime.now(timezone.utc),
        service=settings.service_name,
        version=settings.app_version,
    )
