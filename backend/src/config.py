import tempfile
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Application
    app_name: str = "FFmpeg Video Processor"
    app_version: str = "1.0.0"
    service_name: str = "ffmpeg-video-processor"
    log_level: str = "INFO"

    # Shared-secret authentication (X-API-Key header)
    x_api_key: str = ""

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    fonts_dir: str = "fonts"

    # Render settings
    render_fps: int = 30
    thumbnail_time_s: float = 1.0
    thumbnail_long_edge: int = 640

    # Processing policy
    temp_root: str = tempfile.gettempdir()
    default_transition_duration: float = 0.5
    default_compression_tier: Literal["fast", "balanced", "compact"] = "balanced"
    default_audio_bitrate: str = "128k"
    probe_clips: bool = False
    # When False a failed thumbnail only drops the thumbnail from the response
    thumbnail_failure_fatal: bool = False
    # Input clips and subtitles are kept in the object store unless enabled
    delete_input_assets: bool = False

    # Asset download
    download_timeout_s: float = 300.0
    download_user_agent: str = "FFmpeg-Video-Processor/1.0"

    # Object storage
    use_local_storage: bool = True  # Set to False in production
    local_storage_path: str = "/tmp/video-processor-storage"
    local_public_base_url: str = "http://localhost:8000/files"
    gcs_bucket_name: str = "video-processor-outputs"
    gcs_project_id: str = ""

    # Mux video platform
    mux_token_id: str = ""
    mux_token_secret: str = ""
    mux_api_base: str = "https://api.mux.com"
    mux_request_timeout_s: float = 60.0
    mux_upload_poll_interval_s: float = 2.0
    mux_upload_max_polls: int = 10
    mux_asset_poll_interval_s: float = 10.0
    mux_asset_max_polls: int = 30  # 30 * 10s = 5 minutes
    mux_video_quality: str = "basic"
    mux_playback_policy: str = "public"
    mux_normalize_audio: bool = True
    mux_cors_origin: str = "*"


@lru_cache
def get_settings() -> Settings:
    return Settings()
