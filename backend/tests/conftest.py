"""
Pytest fixtures for the video processor tests.

Most tests run without FFmpeg, network or cloud access: subprocesses are
patched and HTTP goes through httpx.MockTransport.

CI/CD Note:
Tests that execute the real FFmpeg binary are marked with @requires_ffmpeg
and are skipped when ffmpeg/ffprobe are not on PATH.
"""

import logging
import shutil
import tempfile
from pathlib import Path

import pytest

from src.config import Settings
from src.utils.process_logger import ProcessLogger, get_process_logger


def pytest_configure(config):
    """Register custom markers for CI/CD test filtering."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as requiring the ffmpeg binaries (skipped when missing)"
    )


def _ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def pytest_collection_modifyitems(config, items):
    """Skip tests marked requires_ffmpeg when the binaries are missing."""
    if _ffmpeg_available():
        return
    skip_ffmpeg = pytest.mark.skip(reason="ffmpeg/ffprobe not available")
    for item in items:
        if "requires_ffmpeg" in item.keywords:
            item.add_marker(skip_ffmpeg)


SAMPLE_ASS = """[Script Info]
ScriptType: v4.00+
PlayResX: 1080
PlayResY: 1920

[V4+ Styles]
Format: Name, Fontname, Fontsize, PrimaryColour, BackColour, Bold, Italic, Alignment, MarginV
Style: Default,Arial,72,&H00FFFFFF,&H00000000,0,0,2,120

[Events]
Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text
Dialogue: 0,0:00:00.50,0:00:03.00,Default,,0,0,0,,First line
Dialogue: 0,0:00:03.00,0:00:07.25,Default,,0,0,0,,Second line, with a comma
"""


@pytest.fixture
def temp_output_dir():
    """Temporary directory for test outputs."""
    with tempfile.TemporaryDirectory(prefix="video_processor_test_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_output_dir: Path) -> Settings:
    """Settings isolated from the environment and pointed at temp dirs."""
    return Settings(
        _env_file=None,
        x_api_key="test-secret-key",
        temp_root=str(temp_output_dir / "work"),
        local_storage_path=str(temp_output_dir / "storage"),
        local_public_base_url="http://localhost:8000/files",
        fonts_dir=str(temp_output_dir / "fonts"),
        mux_token_id="mux-id",
        mux_token_secret="mux-secret",
        mux_upload_poll_interval_s=0,
        mux_asset_poll_interval_s=0,
    )


@pytest.fixture
def process_logger() -> ProcessLogger:
    return get_process_logger("tests", "test-process")


@pytest.fixture
def sample_ass_file(temp_output_dir: Path) -> Path:
    path = temp_output_dir / "lyrics.ass"
    path.write_text(SAMPLE_ASS, encoding="utf-8")
    return path


@pytest.fixture
def valid_payload() -> dict:
    """A camelCase request body as callers send it."""
    return {
        "videoClips": [
            {"url": "https://cdn.example.com/clips/a.mp4", "duration": 8},
            {"url": "https://cdn.example.com/clips/b.mp4", "duration": 8},
        ],
        "assFile": {"url": "https://cdn.example.com/subs/lyrics.ass"},
        "songUrl": "https://cdn.example.com/audio/song.mp3",
        "songId": "song-123",
        "songTitle": "Test Song",
        "outputAspectRatio": "9:16",
        "transitionDuration": 0.5,
    }


@pytest.fixture(autouse=True)
def _quiet_httpx_logs():
    logging.getLogger("httpx").setLevel(logging.WARNING)
    yield
