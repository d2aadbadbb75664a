"""Encoder settings and compression tiers for the final render."""

from dataclasses import dataclass, replace

DEFAULT_AUDIO_BITRATE = "128k"


@dataclass(frozen=True)
class EncodingSettings:
    """Configuration for the x264/AAC encode."""

    preset: str
    crf: int
    audio_bitrate: str = DEFAULT_AUDIO_BITRATE
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    pix_fmt: str = "yuv420p"

    def to_args(self) -> list[str]:
        return [
            "-c:v", self.video_codec,
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-pix_fmt", self.pix_fmt,
            "-c:a", self.audio_codec,
            "-b:a", self.audio_bitrate,
        ]


# Encode speed traded for compression efficiency, fastest first
COMPRESSION_TIERS: dict[str, EncodingSettings] = {
    "fast": EncodingSettings(preset="veryfast", crf=26),
    "balanced": EncodingSettings(preset="medium", crf=23),
    "compact": EncodingSettings(preset="slow", crf=28),
}


def resolve_encoding(tier: str, audio_bitrate: str | None = None) -> EncodingSettings:
    """Look up a compression tier, optionally overriding the audio bitrate.

    Raises:
        ValueError: If the tier is unknown
    """
    try:
        settings = COMPRESSION_TIERS[tier]
    except KeyError:
        raise ValueError(
            f"Unknown compression tier {tier!r}; expected one of {list(COMPRESSION_TIERS)}"
        ) from None
    if audio_bitrate:
        settings = replace(settings, audio_bitrate=audio_bitrate)
    return settings
