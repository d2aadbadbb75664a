"""FFmpeg / FFprobe invocation for the assembly pipeline.

Provides:
- Engine and font directory verification
- Song probing (authoritative output duration)
- The single-pass transcode (scale, cross-fade, subtitle burn-in)
- Thumbnail extraction
- Subtitle-only preview renders
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path

from src.config import Settings, get_settings
from src.constants.stages import ProcessingStage
from src.exceptions import FfmpegProcessingError, MetadataExtractionError
from src.render.encoding import EncodingSettings
from src.render.filter_graph import (
    FilterGraph,
    InputLayout,
    build_stream_mapping,
    escape_filter_value,
    resolve_fonts_dir,
    resolve_resolution,
    thumbnail_size,
)
from src.render.timing import format_seconds
from src.utils.media_info import MediaInfo, ProbeParseError, build_ffprobe_command, parse_probe_output
from src.utils.process_logger import ProcessLogger

logger = logging.getLogger(__name__)

FONT_EXTENSIONS = (".ttf", ".otf")


@dataclass
class CommandResult:
    """Exit status and decoded output of an external process."""

    returncode: int
    stdout: str
    stderr: str


async def run_command(cmd: list[str]) -> CommandResult:
    """Run an external command without blocking the event loop."""
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    return CommandResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


class FFmpegService:
    """Stateless adapter around the FFmpeg binaries, one instance per request."""

    def __init__(self, process_logger: ProcessLogger, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.log = process_logger
        self.ffmpeg_path = self.settings.ffmpeg_path
        self.ffprobe_path = self.settings.ffprobe_path

    @property
    def fonts_dir(self) -> str | None:
        return resolve_fonts_dir(self.settings.fonts_dir)

    # ========================================================================
    # Verification
    # ========================================================================

    async def verify_installation(self) -> str:
        """Check that FFmpeg runs; returns its version line."""
        try:
            result = await run_command([self.ffmpeg_path, "-version"])
        except OSError as e:
            self.log.error(f"FFmpeg not found or not working: {e}")
            raise FfmpegProcessingError(
                "FFmpeg is not installed or not accessible",
                stage=ProcessingStage.VALIDATION,
                detail=str(e),
            ) from e

        if result.returncode != 0:
            self.log.error(f"FFmpeg version check failed: {result.stderr}")
            raise FfmpegProcessingError(
                "FFmpeg is not installed or not accessible",
                stage=ProcessingStage.VALIDATION,
                detail=result.stderr,
            )

        version = result.stdout.splitlines()[0] if result.stdout else "unknown"
        self.log.info(f"FFmpeg version verified: {version}")
        return version

    def verify_fonts_directory(self) -> list[str]:
        """List font files available to the subtitle renderer.

        A missing or empty directory is only a warning, the renderer falls
        back to system fonts.
        """
        fonts_dir = Path(self.settings.fonts_dir).expanduser().resolve()
        if not fonts_dir.is_dir():
            self.log.warning(f"Fonts directory not found or not accessible: {fonts_dir}")
            return []

        font_files = sorted(p.name for p in fonts_dir.iterdir() if p.suffix.lower() in FONT_EXTENSIONS)
        if not font_files:
            self.log.warning(f"No font files found in fonts directory: {fonts_dir}")
        else:
            self.log.info(f"Fonts directory verified: {fonts_dir} ({len(font_files)} fonts)")
        return font_files

    # ========================================================================
    # Probe
    # ========================================================================

    async def probe(self, file_path: str, description: str = "media file") -> MediaInfo:
        """Probe a media file with FFprobe.

        Raises:
            MetadataExtractionError: If FFprobe fails or its output is unparseable
        """
        started = time.perf_counter()
        cmd = build_ffprobe_command(self.ffprobe_path, file_path)

        try:
            result = await run_command(cmd)
        except OSError as e:
            self.log.error(f"Failed to run ffprobe for {description}: {e}")
            raise MetadataExtractionError(
                f"Failed to extract metadata for {description}",
                detail=str(e),
            ) from e

        if result.returncode != 0:
            self.log.error(f"ffprobe failed for {description}: {result.stderr}")
            raise MetadataExtractionError(
                f"Failed to extract metadata for {description}",
                detail=result.stderr or f"ffprobe exited with code {result.returncode}",
            )

        try:
            info = parse_probe_output(result.stdout)
        except ProbeParseError as e:
            self.log.error(f"Unparseable ffprobe output for {description}: {e}")
            raise MetadataExtractionError(
                f"Failed to extract metadata for {description}",
                detail=str(e),
            ) from e

        self.log.timing(f"Metadata extraction for {description}", started, duration=info.duration_s)
        return info

    async def get_song_duration(self, song_path: str) -> float:
        """Probed song duration in seconds, the authoritative output length."""
        info = await self.probe(song_path, "song audio")
        if info.duration_s is None or info.duration_s <= 0:
            raise MetadataExtractionError(
                "Failed to extract metadata for song audio",
                detail=f"No usable duration in ffprobe output (got {info.duration_s!r})",
            )
        return info.duration_s

    async def check_clip(self, clip_path: str, index: int) -> MediaInfo:
        """Sanity-check that a downloaded clip has a video stream."""
        info = await self.probe(clip_path, f"video clip {index + 1}")
        if not info.has_video:
            raise MetadataExtractionError(
                f"Video clip {index + 1} has no video stream",
                detail=clip_path,
            )
        return info

    # ========================================================================
    # Transcode
    # ========================================================================

    def build_transcode_command(
        self,
        layout: InputLayout,
        graph: FilterGraph,
        encoding: EncodingSettings,
        song_duration: float,
        output_path: str,
    ) -> list[str]:
        """Build the FFmpeg command for the final render without executing it.

        Args:
            layout: Ordered inputs (clips, song, subtitle)
            graph: Built filter graph
            encoding: Encoder tier settings
            song_duration: Hard output duration ceiling in seconds
            output_path: Path for the output MP4

        Returns:
            FFmpeg command as list[str]
        """
        return [
            self.ffmpeg_path,
            "-y",
            *layout.input_args(),
            "-filter_complex", graph.description,
            *build_stream_mapping(layout, graph),
            *encoding.to_args(),
            "-movflags", "+faststart",
            "-t", format_seconds(song_duration),
            output_path,
        ]

    async def transcode(
        self,
        layout: InputLayout,
        graph: FilterGraph,
        encoding: EncodingSettings,
        song_duration: float,
        output_path: str,
    ) -> str:
        """Run the single-pass render.

        Raises:
            FfmpegProcessingError: On non-zero exit, with FFmpeg's stderr as detail
        """
        started = time.perf_counter()
        self.log.stage("Video Processing", "start", clips=len(layout.clips), duration=song_duration)

        cmd = self.build_transcode_command(layout, graph, encoding, song_duration, output_path)
        self.log.info(f"FFmpeg command started: {' '.join(cmd)}")

        try:
            result = await run_command(cmd)
        except OSError as e:
            self.log.stage("Video Processing", "error", error=str(e))
            raise FfmpegProcessingError("Failed to start FFmpeg processing", detail=str(e)) from e

        if result.returncode != 0:
            self.log.error(f"FFmpeg processing failed (exit {result.returncode}): {result.stderr}")
            raise FfmpegProcessingError("FFmpeg video processing failed", detail=result.stderr)

        self.log.timing("Video Processing", started, output=output_path, duration=song_duration)
        return output_path

    # ========================================================================
    # Thumbnail
    # ========================================================================

    def build_thumbnail_command(self, video_path: str, output_path: str, aspect_ratio: str) -> list[str]:
        width, height = thumbnail_size(aspect_ratio, self.settings.thumbnail_long_edge)
        return [
            self.ffmpeg_path,
            "-y",
            "-ss", format_seconds(self.settings.thumbnail_time_s),
            "-i", video_path,
            "-frames:v", "1",
            "-vf", f"scale={width}:{height}",
            "-q:v", "2",
            output_path,
        ]

    async def generate_thumbnail(self, video_path: str, output_path: str, aspect_ratio: str) -> str:
        """Extract one preview frame from the finished render."""
        started = time.perf_counter()
        cmd = self.build_thumbnail_command(video_path, output_path, aspect_ratio)

        try:
            result = await run_command(cmd)
        except OSError as e:
            raise FfmpegProcessingError("Thumbnail generation failed", detail=str(e)) from e

        if result.returncode != 0 or not Path(output_path).exists():
            self.log.error(f"Thumbnail generation failed: {result.stderr}")
            raise FfmpegProcessingError("Thumbnail generation failed", detail=result.stderr)

        self.log.timing("Thumbnail", started, output=output_path)
        return output_path

    # ========================================================================
    # Subtitle preview
    # ========================================================================

    def build_subtitle_preview_command(
        self,
        ass_path: str,
        output_path: str,
        aspect_ratio: str,
        duration_s: float,
        encoding: EncodingSettings,
    ) -> list[str]:
        width, height = resolve_resolution(aspect_ratio)
        subtitle_filter = f"ass={escape_filter_value(ass_path)}"
        if self.fonts_dir:
            subtitle_filter += f":fontsdir={escape_filter_value(self.fonts_dir)}"
        duration = format_seconds(duration_s)
        return [
            self.ffmpeg_path,
            "-y",
            "-f", "lavfi",
            "-i", f"color=c=black:s={width}x{height}:r={self.settings.render_fps}:d={duration}",
            "-vf", subtitle_filter,
            "-c:v", encoding.video_codec,
            "-preset", encoding.preset,
            "-crf", str(encoding.crf),
            "-pix_fmt", encoding.pix_fmt,
            "-t", duration,
            output_path,
        ]

    async def render_subtitle_preview(
        self,
        ass_path: str,
        output_path: str,
        aspect_ratio: str,
        duration_s: float,
        encoding: EncodingSettings,
    ) -> str:
        """Render the subtitle track alone over a black canvas."""
        cmd = self.build_subtitle_preview_command(ass_path, output_path, aspect_ratio, duration_s, encoding)
        self.log.info(f"Rendering subtitle preview: {' '.join(cmd)}")
        result = await run_command(cmd)
        if result.returncode != 0:
            raise FfmpegProcessingError("Subtitle preview render failed", detail=result.stderr)
        return output_path
