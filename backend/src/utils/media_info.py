"""Media file information utilities using FFprobe."""

import json
from dataclasses import dataclass


class ProbeParseError(ValueError):
    """FFprobe output could not be interpreted."""


@dataclass
class MediaInfo:
    """Media file information."""

    duration_s: float | None = None
    width: int | None = None
    height: int | None = None
    fps: float | None = None
    video_codec: str | None = None
    audio_codec: str | None = None
    sample_rate: int | None = None
    channels: int | None = None
    has_video: bool = False
    has_audio: bool = False

    @property
    def duration_ms(self) -> int | None:
        if self.duration_s is None:
            return None
        return int(self.duration_s * 1000)


def build_ffprobe_command(ffprobe_path: str, file_path: str) -> list[str]:
    """FFprobe invocation returning format and stream info as JSON."""
    return [
        ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        file_path,
    ]


def parse_frame_rate(r_frame_rate: str) -> float | None:
    """Parse an FFprobe rational frame rate such as ``30000/1001``."""
    if "/" not in r_frame_rate:
        try:
            return float(r_frame_rate)
        except ValueError:
            return None
    num, den = r_frame_rate.split("/", 1)
    try:
        if int(den) > 0:
            return round(int(num) / int(den), 3)
    except ValueError:
        return None
    return None


def parse_probe_output(stdout: str) -> MediaInfo:
    """
    Parse FFprobe JSON output into MediaInfo.

    Args:
        stdout: Raw FFprobe stdout

    Returns:
        MediaInfo with duration and first video/audio stream details

    Raises:
        ProbeParseError: If the output is not JSON or has no usable structure
    """
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise ProbeParseError(f"Failed to parse ffprobe output: {e}") from e

    if not isinstance(data, dict):
        raise ProbeParseError("Unexpected ffprobe output structure")

    info = MediaInfo()

    # Get format info
    format_info = data.get("format", {})
    if "duration" in format_info:
        try:
            info.duration_s = float(format_info["duration"])
        except (TypeError, ValueError) as e:
            raise ProbeParseError(f"Invalid duration in ffprobe output: {format_info['duration']!r}") from e

    # Get stream info
    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")

        if codec_type == "video" and not info.has_video:
            info.has_video = True
            info.width = stream.get("width")
            info.height = stream.get("height")
            info.video_codec = stream.get("codec_name")
            info.fps = parse_frame_rate(stream.get("r_frame_rate", "0/1"))

        elif codec_type == "audio" and not info.has_audio:
            info.has_audio = True
            info.audio_codec = stream.get("codec_name")
            try:
                info.sample_rate = int(stream.get("sample_rate", 0)) or None
            except (TypeError, ValueError) as e:
                raise ProbeParseError(f"Invalid sample rate in ffprobe output: {stream['sample_rate']!r}") from e
            info.channels = stream.get("channels")

    return info
