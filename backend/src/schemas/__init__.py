from src.schemas.process import (
    ErrorInfo,
    HealthResponse,
    ProcessVideoErrorResponse,
    ProcessVideoRequest,
    ProcessVideoResponse,
    SubtitleAsset,
    VideoClip,
)

__all__ = [
    "VideoClip",
    "SubtitleAsset",
    "ProcessVideoRequest",
    "ProcessVideoResponse",
    "ProcessVideoErrorResponse",
    "ErrorInfo",
    "HealthResponse",
]
