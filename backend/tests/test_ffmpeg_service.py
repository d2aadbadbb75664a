"""
Tests for the FFmpeg adapter.

Subprocesses are patched; the commands are asserted as argument lists.
A final test runs the real binaries and is skipped when they are missing.
"""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.constants.stages import ProcessingStage
from src.exceptions import FfmpegProcessingError, MetadataExtractionError
from src.render.encoding import resolve_encoding
from src.render.filter_graph import InputLayout, build_filter_complex
from src.render.timing import calculate_transition_offsets
from src.services.ffmpeg_service import CommandResult, FFmpegService, run_command

SONG_PROBE = json.dumps({"streams": [{"codec_type": "audio"}], "format": {"duration": "12.0"}})


def _ok(stdout: str = "") -> CommandResult:
    return CommandResult(returncode=0, stdout=stdout, stderr="")


def _fail(stderr: str) -> CommandResult:
    return CommandResult(returncode=1, stdout="", stderr=stderr)


@pytest.fixture
def service(settings, process_logger) -> FFmpegService:
    return FFmpegService(process_logger, settings)


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_decodes_output(self):
        proc = MagicMock()
        proc.communicate = AsyncMock(return_value=(b"out", b"err"))
        proc.returncode = 0

        with patch(
            "src.services.ffmpeg_service.asyncio.create_subprocess_exec",
            AsyncMock(return_value=proc),
        ) as mock_exec:
            result = await run_command(["ffmpeg", "-version"])

        mock_exec.assert_awaited_once()
        assert mock_exec.await_args.args == ("ffmpeg", "-version")
        assert result == CommandResult(returncode=0, stdout="out", stderr="err")


class TestVerification:
    @pytest.mark.asyncio
    async def test_verify_installation(self, service):
        with patch(
            "src.services.ffmpeg_service.run_command",
            AsyncMock(return_value=_ok("ffmpeg version 6.1\nbuilt with gcc")),
        ):
            assert await service.verify_installation() == "ffmpeg version 6.1"

    @pytest.mark.asyncio
    async def test_missing_binary_is_validation_stage(self, service):
        with patch(
            "src.services.ffmpeg_service.run_command",
            AsyncMock(side_effect=FileNotFoundError("ffmpeg")),
        ):
            with pytest.raises(FfmpegProcessingError) as exc_info:
                await service.verify_installation()
        assert exc_info.value.stage is ProcessingStage.VALIDATION

    def test_fonts_directory_missing_is_only_a_warning(self, service):
        assert service.verify_fonts_directory() == []

    def test_fonts_directory_lists_fonts(self, service, settings):
        fonts = Path(settings.fonts_dir)
        fonts.mkdir(parents=True)
        (fonts / "Noto.ttf").write_bytes(b"x")
        (fonts / "Bold.OTF").write_bytes(b"x")
        (fonts / "README.md").write_text("x")

        assert service.verify_fonts_directory() == ["Bold.OTF", "Noto.ttf"]


class TestProbe:
    @pytest.mark.asyncio
    async def test_song_duration(self, service):
        with patch("src.services.ffmpeg_service.run_command", AsyncMock(return_value=_ok(SONG_PROBE))):
            assert await service.get_song_duration("/tmp/song.mp3") == 12.0

    @pytest.mark.asyncio
    async def test_probe_failure(self, service):
        with patch(
            "src.services.ffmpeg_service.run_command",
            AsyncMock(return_value=_fail("Invalid data found when processing input")),
        ):
            with pytest.raises(MetadataExtractionError) as exc_info:
                await service.get_song_duration("/tmp/song.mp3")

        error = exc_info.value
        assert error.stage is ProcessingStage.METADATA_EXTRACTION
        assert "Invalid data" in error.detail

    @pytest.mark.asyncio
    async def test_unparseable_output(self, service):
        with patch("src.services.ffmpeg_service.run_command", AsyncMock(return_value=_ok("{broken"))):
            with pytest.raises(MetadataExtractionError):
                await service.probe("/tmp/song.mp3")

    @pytest.mark.asyncio
    async def test_bad_sample_rate_is_metadata_error(self, service):
        probe = json.dumps(
            {"streams": [{"codec_type": "audio", "sample_rate": "n/a"}], "format": {"duration": "12.0"}}
        )
        with patch("src.services.ffmpeg_service.run_command", AsyncMock(return_value=_ok(probe))):
            with pytest.raises(MetadataExtractionError) as exc_info:
                await service.get_song_duration("/tmp/song.mp3")

        assert exc_info.value.stage is ProcessingStage.METADATA_EXTRACTION

    @pytest.mark.asyncio
    async def test_zero_duration_is_rejected(self, service):
        probe = json.dumps({"format": {"duration": "0"}})
        with patch("src.services.ffmpeg_service.run_command", AsyncMock(return_value=_ok(probe))):
            with pytest.raises(MetadataExtractionError):
                await service.get_song_duration("/tmp/song.mp3")

    @pytest.mark.asyncio
    async def test_clip_without_video_stream(self, service):
        with patch("src.services.ffmpeg_service.run_command", AsyncMock(return_value=_ok(SONG_PROBE))):
            with pytest.raises(MetadataExtractionError, match="clip 2"):
                await service.check_clip("/tmp/clip_2.mp4", 1)


class TestTranscode:
    def _inputs(self):
        layout = InputLayout(clips=("/w/clip_1.mp4", "/w/clip_2.mp4"), song="/w/song.mp3", subtitle="/w/subtitles.ass")
        graph = build_filter_complex(
            clip_count=2,
            resolution=(1080, 1920),
            offsets=[7.5],
            transition_duration=0.5,
            subtitle_path=layout.subtitle,
        )
        return layout, graph

    def test_command_layout(self, service):
        """Scenario A: output is capped at the 12s song duration."""
        layout, graph = self._inputs()
        cmd = service.build_transcode_command(layout, graph, resolve_encoding("balanced"), 12.0, "/w/out.mp4")

        assert cmd[:2] == ["ffmpeg", "-y"]
        assert cmd[2:10] == [
            "-i", "/w/clip_1.mp4",
            "-i", "/w/clip_2.mp4",
            "-i", "/w/song.mp3",
            "-i", "/w/subtitles.ass",
        ]
        assert cmd[cmd.index("-filter_complex") + 1] == graph.description
        assert cmd[cmd.index("-map") + 1] == "[vout]"
        assert "2:a:0" in cmd
        assert cmd[cmd.index("-preset") + 1] == "medium"
        assert cmd[cmd.index("-crf") + 1] == "23"
        assert cmd[cmd.index("-movflags") + 1] == "+faststart"
        assert cmd[-3:] == ["-t", "12", "/w/out.mp4"]

    @pytest.mark.asyncio
    async def test_transcode_failure_keeps_stderr(self, service):
        layout, graph = self._inputs()
        stderr = "[Parsed_xfade_2] First input link main timebase do not match"
        with patch("src.services.ffmpeg_service.run_command", AsyncMock(return_value=_fail(stderr))):
            with pytest.raises(FfmpegProcessingError) as exc_info:
                await service.transcode(layout, graph, resolve_encoding("fast"), 12.0, "/w/out.mp4")

        assert exc_info.value.detail == stderr
        assert exc_info.value.stage is ProcessingStage.VIDEO_PROCESSING

    @pytest.mark.asyncio
    async def test_transcode_success(self, service):
        layout, graph = self._inputs()
        with patch("src.services.ffmpeg_service.run_command", AsyncMock(return_value=_ok())) as mock_run:
            result = await service.transcode(layout, graph, resolve_encoding("fast"), 20.0, "/w/out.mp4")

        assert result == "/w/out.mp4"
        cmd = mock_run.await_args.args[0]
        assert cmd[-3:] == ["-t", "20", "/w/out.mp4"]


class TestThumbnail:
    @pytest.mark.parametrize("ratio,scale", [("16:9", "scale=640:360"), ("9:16", "scale=360:640")])
    def test_thumbnail_size(self, service, ratio, scale):
        cmd = service.build_thumbnail_command("/w/out.mp4", "/w/thumb.jpg", ratio)

        assert cmd[cmd.index("-ss") + 1] == "1"
        assert cmd[cmd.index("-frames:v") + 1] == "1"
        assert cmd[cmd.index("-vf") + 1] == scale

    def test_thumbnail_size_follows_long_edge_setting(self, settings, process_logger):
        service = FFmpegService(process_logger, settings.model_copy(update={"thumbnail_long_edge": 320}))
        cmd = service.build_thumbnail_command("/w/out.mp4", "/w/thumb.jpg", "9:16")

        assert cmd[cmd.index("-vf") + 1] == "scale=180:320"

    @pytest.mark.asyncio
    async def test_missing_output_is_failure(self, service, temp_output_dir):
        with patch("src.services.ffmpeg_service.run_command", AsyncMock(return_value=_ok())):
            with pytest.raises(FfmpegProcessingError, match="Thumbnail"):
                await service.generate_thumbnail("/w/out.mp4", str(temp_output_dir / "thumb.jpg"), "9:16")


class TestSubtitlePreview:
    def test_black_canvas_command(self, service):
        cmd = service.build_subtitle_preview_command(
            "/w/lyrics.ass", "/w/preview.mp4", "9:16", 9.25, resolve_encoding("fast")
        )

        assert cmd[cmd.index("-f") + 1] == "lavfi"
        assert cmd[cmd.index("-i") + 1] == "color=c=black:s=1080x1920:r=30:d=9.25"
        assert cmd[cmd.index("-vf") + 1] == "ass=/w/lyrics.ass"
        assert cmd[-3:] == ["-t", "9.25", "/w/preview.mp4"]


@pytest.mark.requires_ffmpeg
class TestRealFFmpeg:
    """Renders a tiny video end to end with the installed binaries."""

    @pytest.mark.asyncio
    async def test_subtitle_preview_renders(self, service, sample_ass_file, temp_output_dir):
        output = temp_output_dir / "preview.mp4"
        await service.verify_installation()
        await service.render_subtitle_preview(
            str(sample_ass_file), str(output), "16:9", 2.0, resolve_encoding("fast")
        )

        info = await service.probe(str(output), "preview")
        assert info.has_video
        assert info.duration_s == pytest.approx(2.0, abs=0.2)

    @pytest.mark.asyncio
    async def test_two_clip_render_is_capped_at_song_duration(self, service, settings, sample_ass_file, temp_output_dir):
        clips = []
        for i, pattern in enumerate(("testsrc", "testsrc2")):
            clip = temp_output_dir / f"clip_{i + 1}.mp4"
            result = await run_command([
                settings.ffmpeg_path, "-y",
                "-f", "lavfi", "-i", f"{pattern}=duration=3:size=320x240:rate=30",
                "-c:v", "libx264", "-pix_fmt", "yuv420p",
                str(clip),
            ])
            assert result.returncode == 0, result.stderr
            clips.append(str(clip))

        song = temp_output_dir / "song.m4a"
        result = await run_command([
            settings.ffmpeg_path, "-y",
            "-f", "lavfi", "-i", "sine=frequency=440:duration=4",
            "-c:a", "aac",
            str(song),
        ])
        assert result.returncode == 0, result.stderr

        song_duration = await service.get_song_duration(str(song))
        layout = InputLayout(clips=tuple(clips), song=str(song), subtitle=str(sample_ass_file))
        graph = build_filter_complex(
            clip_count=2,
            resolution=(320, 240),
            offsets=calculate_transition_offsets([3.0, 3.0], 0.5),
            transition_duration=0.5,
            subtitle_path=layout.subtitle,
            fonts_dir=service.fonts_dir,
            fps=settings.render_fps,
        )
        output = temp_output_dir / "final.mp4"

        await service.transcode(layout, graph, resolve_encoding("fast"), song_duration, str(output))

        info = await service.probe(str(output), "final video")
        assert info.has_video and info.has_audio
        assert (info.width, info.height) == (320, 240)
        # Merged timeline is 5.5s, so the song is the ceiling
        assert info.duration_s <= song_duration + 0.1
        assert info.duration_s == pytest.approx(song_duration, abs=0.25)
