"""Pipeline stages reported alongside every processing error."""

from enum import Enum


class ProcessingStage(str, Enum):
    """Stage of the request lifecycle where a failure occurred."""

    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    ASSET_DOWNLOAD = "asset_download"
    METADATA_EXTRACTION = "metadata_extraction"
    FFMPEG_CONSTRUCTION = "ffmpeg_construction"
    VIDEO_PROCESSING = "video_processing"
    OUTPUT_UPLOAD = "output_upload"
    CLEANUP = "cleanup"
    ROUTING = "routing"
