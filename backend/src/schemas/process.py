from datetime import datetime
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from src.render.timing import find_overlapping_transition

VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".mkv")
AUDIO_EXTENSIONS = (".mp3", ".wav", ".aac", ".m4a")
SUBTITLE_EXTENSIONS = (".ass",)

AspectRatio = Literal["9:16", "16:9"]
CompressionTier = Literal["fast", "balanced", "compact"]


def _check_https_url(value: str, extensions: tuple[str, ...], what: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme != "https" or not parsed.netloc:
        raise ValueError(f"{what} URL must be a valid HTTPS URL")
    if not parsed.path.lower().endswith(extensions):
        raise ValueError(f"{what} URL must point to a {'/'.join(extensions)} file")
    return value


class VideoClip(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    duration: float = Field(
        default=8,
        ge=1,
        le=60,
        description="Declared clip duration in seconds (1-60)",
    )

    @field_validator("url")
    @classmethod
    def _validate_url(cls, v: str) -> str:
        return _check_https_url(v, VIDEO_EXTENSIONS, "Video clip")


class SubtitleAsset(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str

    @field_validator("url")
    @classmethod
    def _validate_url(cls, v: str) -> str:
        return _check_https_url(v, SUBTITLE_EXTENSIONS, "ASS file")


class ProcessVideoRequest(BaseModel):
    """Request to assemble a music video.

    Accepts snake_case input. camelCase aliases are accepted for compatibility.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        extra="ignore",
        json_schema_extra={
            "examples": [
                {
                    "videoClips": [
                        {"url": "https://cdn.example.com/clip1.mp4", "duration": 8},
                        {"url": "https://cdn.example.com/clip2.mp4", "duration": 8},
                    ],
                    "assFile": {"url": "https://cdn.example.com/lyrics.ass"},
                    "songUrl": "https://cdn.example.com/song.mp3",
                    "songId": "song-123",
                    "outputAspectRatio": "9:16",
                }
            ]
        },
    )

    video_clips: list[VideoClip] = Field(
        alias="videoClips",
        min_length=1,
        max_length=50,
        description="Clips in playback order (1-50)",
    )
    ass_file: SubtitleAsset = Field(alias="assFile")
    song_url: str = Field(alias="songUrl")
    song_id: str = Field(
        alias="songId",
        min_length=3,
        max_length=50,
        pattern=r"^[a-zA-Z0-9-]+$",
        description="Caller identifier used to namespace output storage paths",
    )
    song_title: str | None = Field(default=None, alias="songTitle", max_length=200)
    output_aspect_ratio: AspectRatio = Field(alias="outputAspectRatio")
    transition_duration: float = Field(
        default=0.5,
        alias="transitionDuration",
        ge=0.1,
        le=5.0,
        description="Cross-fade duration in seconds (0.1-5.0)",
    )
    compression_tier: CompressionTier | None = Field(default=None, alias="compressionTier")
    audio_bitrate: str | None = Field(
        default=None,
        alias="audioBitrate",
        pattern=r"^\d{2,3}k$",
        description="AAC bitrate, e.g. '128k'",
    )

    @model_validator(mode="before")
    @classmethod
    def _default_transition_from_context(cls, data: Any, info: ValidationInfo) -> Any:
        """Fill a missing transition duration from ``context["default_transition_duration"]``."""
        default = (info.context or {}).get("default_transition_duration")
        if default is None or not isinstance(data, dict):
            return data
        if "transitionDuration" in data or "transition_duration" in data:
            return data
        return {**data, "transitionDuration": default}

    @field_validator("song_url")
    @classmethod
    def _validate_song_url(cls, v: str) -> str:
        return _check_https_url(v, AUDIO_EXTENSIONS, "Song")

    @model_validator(mode="after")
    def _transition_fits_clips(self) -> "ProcessVideoRequest":
        index = find_overlapping_transition(self.clip_durations, self.transition_duration)
        if index is not None:
            raise ValueError(
                f"Transition duration {self.transition_duration}s must be shorter than "
                f"clips {index + 1} and {index + 2}"
            )
        return self

    @property
    def clip_durations(self) -> list[float]:
        return [clip.duration for clip in self.video_clips]


class ProcessVideoResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Literal["completed"] = "completed"
    output_url: str = Field(serialization_alias="outputUrl")
    thumbnail_url: str | None = Field(default=None, serialization_alias="thumbnailUrl")
    mux_asset_id: str = Field(serialization_alias="muxAssetId")
    mux_playback_id: str = Field(serialization_alias="muxPlaybackId")
    playback_url: str = Field(serialization_alias="playbackUrl")
    duration: float
    message: str = "Video processed successfully."
    processing_time_ms: int = Field(serialization_alias="processingTimeMs")


class ErrorInfo(BaseModel):
    kind: str
    message: str
    detail: str
    stage: str
    retryable: bool = False


class ProcessVideoErrorResponse(BaseModel):
    status: Literal["failed"] = "failed"
    error: ErrorInfo


class HealthResponse(BaseModel):
    status: Literal["healthy"] = "healthy"
    timestamp: datetime
    service: str
    version: str
