"""
Request pipeline for music video assembly.

This module orchestrates one request from payload to response:
1. Validate the request
2. Verify FFmpeg, fonts and Mux credentials
3. Create the request workspace
4. Download clips, subtitles and song
5. Probe the song and compute cross-fade offsets
6. Build the filter graph
7. Transcode (scale, cross-fade, burn subtitles, trim to song)
8. Generate the thumbnail
9. Upload video + thumbnail to object storage and the video to Mux, concurrently
10. Clean up the workspace

Failure policy:
- Failures before the render exists delete the workspace
- Failures after the render exists keep it so the upload can be retried by hand
- Cleanup failures are logged and never change the outcome
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from src.config import Settings, get_settings
from src.constants.stages import ProcessingStage
from src.exceptions import (
    CleanupError,
    FfmpegProcessingError,
    ProcessingError,
    ValidationError,
)
from src.render.encoding import resolve_encoding
from src.render.filter_graph import FilterGraph, InputLayout, build_filter_complex, resolve_resolution
from src.render.timing import calculate_transition_offsets, merged_timeline_duration
from src.schemas.process import ProcessVideoRequest, ProcessVideoResponse
from src.services.ffmpeg_service import FFmpegService
from src.services.file_manager import (
    FileManager,
    LocalAssets,
    generate_blob_path,
    generate_file_name,
    generate_thumbnail_blob_path,
)
from src.services.mux_service import MuxService, MuxUploadResult
from src.services.storage_service import StorageService, get_storage_service
from src.utils.process_logger import get_process_logger

logger = logging.getLogger(__name__)


@dataclass
class ProcessingContext:
    """Everything one request accumulates. Owned by the pipeline only."""

    process_id: str
    request: ProcessVideoRequest
    workspace: Path
    started_at: float
    assets: LocalAssets | None = None
    thumbnail_path: Path | None = None
    song_duration: float | None = None
    total_clip_duration: float = 0.0
    transition_offsets: list[float] = field(default_factory=list)
    render_completed: bool = False

    @property
    def output_path(self) -> Path:
        return self.workspace / generate_file_name(self.process_id, "mp4")

    @property
    def thumbnail_target(self) -> Path:
        return self.workspace / "thumbnail.jpg"


def format_validation_errors(error: PydanticValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(p) for p in err["loc"])
        parts.append(f"{location}: {err['msg']}" if location else err["msg"])
    return "; ".join(parts)


class VideoProcessingPipeline:
    """Runs a single process-video request. Create one per request."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        process_id: str | None = None,
        ffmpeg_service: FFmpegService | None = None,
        file_manager: FileManager | None = None,
        storage_service: StorageService | None = None,
        mux_service: MuxService | None = None,
    ):
        self.settings = settings or get_settings()
        self.process_id = process_id or str(uuid.uuid4())
        self.log = get_process_logger(__name__, self.process_id)
        self.ffmpeg = ffmpeg_service or FFmpegService(self.log, self.settings)
        self.files = file_manager or FileManager(self.log, self.settings)
        self.storage = storage_service or get_storage_service(self.settings)
        self.mux = mux_service or MuxService(self.log, self.settings)

    async def process(self, payload: Any) -> ProcessVideoResponse:
        """
        Execute the full pipeline.

        Args:
            payload: Raw request body (dict, snake_case or camelCase keys)

        Returns:
            ProcessVideoResponse on success

        Raises:
            ProcessingError: Exactly one typed error on failure
        """
        started = time.perf_counter()
        context: ProcessingContext | None = None
        self.log.info("Starting video processing")

        try:
            request = self._validate(payload)

            await self.ffmpeg.verify_installation()
            self.ffmpeg.verify_fonts_directory()
            self.mux.validate_credentials()

            context = self._create_context(request, started)
            await self._download_assets(context)
            await self._extract_metadata(context)
            layout, graph = self._build_graph(context)
            await self._render(context, layout, graph)
            await self._generate_thumbnail(context)
            output_url, thumbnail_url, mux_result = await self._upload_outputs(context)
            await self._cleanup(context)

        except Exception as e:
            error = self._to_processing_error(e)
            self.log.error(
                f"Video processing failed at {error.stage.value}: {error.message} "
                f"({int((time.perf_counter() - started) * 1000)}ms)"
            )
            if context is not None:
                self._handle_failed_workspace(context)
            if error is e:
                raise
            raise error from e

        processing_time_ms = int((time.perf_counter() - started) * 1000)
        self.log.info(
            f"Video processing completed successfully in {processing_time_ms}ms "
            f"(asset_id={mux_result.asset_id}, playback_id={mux_result.playback_id}, "
            f"duration={context.song_duration})"
        )
        return ProcessVideoResponse(
            output_url=output_url,
            thumbnail_url=thumbnail_url,
            mux_asset_id=mux_result.asset_id,
            mux_playback_id=mux_result.playback_id,
            playback_url=self.mux.playback_url(mux_result.playback_id),
            duration=context.song_duration,
            processing_time_ms=processing_time_ms,
        )

    # ========================================================================
    # Stages
    # ========================================================================

    def _validate(self, payload: Any) -> ProcessVideoRequest:
        self.log.stage("Validation", "start")
        try:
            request = ProcessVideoRequest.model_validate(
                payload,
                context={"default_transition_duration": self.settings.default_transition_duration},
            )
        except PydanticValidationError as e:
            detail = format_validation_errors(e)
            self.log.stage("Validation", "error", error=detail)
            raise ValidationError("Request validation failed", detail=detail) from e
        self.log.stage(
            "Validation",
            "complete",
            clips=len(request.video_clips),
            song_id=request.song_id,
            aspect_ratio=request.output_aspect_ratio,
        )
        return request

    def _create_context(self, request: ProcessVideoRequest, started: float) -> ProcessingContext:
        workspace = self.files.create_workspace(self.process_id)
        return ProcessingContext(
            process_id=self.process_id,
            request=request,
            workspace=workspace,
            started_at=started,
        )

    async def _download_assets(self, context: ProcessingContext) -> None:
        stage_started = time.perf_counter()
        self.log.stage("Asset Download", "start", clips=len(context.request.video_clips))
        request = context.request
        context.assets = await self.files.download_assets(
            [clip.url for clip in request.video_clips],
            request.ass_file.url,
            request.song_url,
            context.workspace,
        )
        self.log.timing("Asset Download", stage_started, files=len(context.assets.clips) + 2)

    async def _extract_metadata(self, context: ProcessingContext) -> None:
        stage_started = time.perf_counter()
        self.log.stage("Metadata Extraction", "start")
        assert context.assets is not None

        context.song_duration = await self.ffmpeg.get_song_duration(context.assets.song)

        if self.settings.probe_clips:
            for index, clip_path in enumerate(context.assets.clips):
                await self.ffmpeg.check_clip(clip_path, index)

        durations = context.request.clip_durations
        transition = context.request.transition_duration
        context.total_clip_duration = sum(durations)
        context.transition_offsets = calculate_transition_offsets(durations, transition)

        merged = merged_timeline_duration(durations, transition)
        if merged < context.song_duration:
            self.log.warning(
                f"Clips cover {merged}s but the song runs {context.song_duration}s; "
                f"the video will end with the last clip"
            )

        self.log.timing(
            "Metadata Extraction",
            stage_started,
            song_duration=context.song_duration,
            total_clip_duration=context.total_clip_duration,
            transitions=len(context.transition_offsets),
        )

    def _build_graph(self, context: ProcessingContext) -> tuple[InputLayout, FilterGraph]:
        assert context.assets is not None
        request = context.request
        try:
            layout = InputLayout(
                clips=tuple(context.assets.clips),
                song=context.assets.song,
                subtitle=context.assets.subtitle,
            )
            graph = build_filter_complex(
                clip_count=len(layout.clips),
                resolution=resolve_resolution(request.output_aspect_ratio),
                offsets=context.transition_offsets,
                transition_duration=request.transition_duration,
                subtitle_path=layout.subtitle,
                fonts_dir=self.ffmpeg.fonts_dir,
                fps=self.settings.render_fps,
            )
        except ValueError as e:
            raise FfmpegProcessingError(
                "Failed to build FFmpeg filter graph",
                stage=ProcessingStage.FFMPEG_CONSTRUCTION,
                detail=str(e),
            ) from e
        self.log.info(f"Filter graph built with {graph.transition_count} transitions")
        return layout, graph

    async def _render(self, context: ProcessingContext, layout: InputLayout, graph: FilterGraph) -> None:
        request = context.request
        encoding = resolve_encoding(
            request.compression_tier or self.settings.default_compression_tier,
            request.audio_bitrate or self.settings.default_audio_bitrate,
        )
        await self.ffmpeg.transcode(
            layout,
            graph,
            encoding,
            context.song_duration,
            str(context.output_path),
        )
        context.render_completed = True

    async def _generate_thumbnail(self, context: ProcessingContext) -> None:
        try:
            await self.ffmpeg.generate_thumbnail(
                str(context.output_path),
                str(context.thumbnail_target),
                context.request.output_aspect_ratio,
            )
        except ProcessingError as e:
            if self.settings.thumbnail_failure_fatal:
                raise
            self.log.warning(f"Thumbnail generation failed, continuing without thumbnail: {e.detail}")
            return
        context.thumbnail_path = context.thumbnail_target

    async def _upload_video(self, context: ProcessingContext) -> str:
        file_name = generate_file_name(context.process_id, "mp4")
        blob_path = generate_blob_path(context.request.song_id, file_name)
        return await self.storage.upload_file(str(context.output_path), blob_path, "video/mp4")

    async def _upload_thumbnail(self, context: ProcessingContext) -> str | None:
        if context.thumbnail_path is None:
            return None
        file_name = generate_file_name(context.process_id, "jpg")
        blob_path = generate_thumbnail_blob_path(context.request.song_id, file_name)
        return await self.storage.upload_file(str(context.thumbnail_path), blob_path, "image/jpeg")

    async def _upload_to_mux(self, context: ProcessingContext) -> MuxUploadResult:
        return await self.mux.materialize(
            str(context.output_path),
            context.request.song_id,
            context.process_id,
            context.request.song_title,
        )

    async def _upload_outputs(self, context: ProcessingContext) -> tuple[str, str | None, MuxUploadResult]:
        """Run the three uploads concurrently and wait for all of them.

        The first failure in branch order (video, thumbnail, Mux) is raised
        once every branch has settled.
        """
        stage_started = time.perf_counter()
        self.log.stage("Output Upload", "start")
        results = await asyncio.gather(
            self._upload_video(context),
            self._upload_thumbnail(context),
            self._upload_to_mux(context),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

        output_url, thumbnail_url, mux_result = results
        self.log.timing("Output Upload", stage_started, output_url=output_url, asset_id=mux_result.asset_id)
        return output_url, thumbnail_url, mux_result

    async def _cleanup(self, context: ProcessingContext) -> None:
        try:
            self.files.cleanup_directory(context.workspace)
        except CleanupError as e:
            self.log.warning(f"Cleanup failed (ignored): {e.detail}")

        if self.settings.delete_input_assets:
            await self._delete_input_assets(context)

    async def _delete_input_assets(self, context: ProcessingContext) -> None:
        # The song is shared across renders and is never deleted
        urls = [clip.url for clip in context.request.video_clips]
        urls.append(context.request.ass_file.url)
        for url in urls:
            try:
                await self.storage.delete_by_url(url)
            except Exception as e:
                self.log.warning(f"Failed to delete input asset {url}: {e}")

    # ========================================================================
    # Failure handling
    # ========================================================================

    def _to_processing_error(self, error: Exception) -> ProcessingError:
        if isinstance(error, ProcessingError):
            return error
        return FfmpegProcessingError(
            "Unexpected error during video processing",
            stage=ProcessingStage.VIDEO_PROCESSING,
            detail=str(error) or type(error).__name__,
        )

    def _handle_failed_workspace(self, context: ProcessingContext) -> None:
        if context.render_completed:
            self.log.warning(
                f"Preserving rendered video for manual retry: "
                f"output={context.output_path} workspace={context.workspace}"
            )
            return
        try:
            self.files.cleanup_directory(context.workspace)
        except CleanupError as e:
            self.log.warning(f"Cleanup after failure failed (ignored): {e.detail}")
