"""Per-request workspace and input asset downloads."""

import asyncio
import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import httpx

from src.config import Settings, get_settings
from src.constants.stages import ProcessingStage
from src.exceptions import CleanupError, DownloadFailedError, FfmpegProcessingError
from src.utils.process_logger import ProcessLogger

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 1024 * 1024


@dataclass
class LocalAssets:
    """Local paths of the downloaded inputs, clips in playback order."""

    clips: list[str]
    subtitle: str
    song: str


def extension_from_url(url: str, default: str) -> str:
    """File extension (without dot) of a URL path, lower-cased."""
    suffix = Path(urlparse(url).path).suffix.lower().lstrip(".")
    return suffix or default


def redact_url(url: str) -> str:
    """Host and file name only, for logging."""
    parsed = urlparse(url)
    return f"{parsed.netloc}/.../{Path(parsed.path).name}"


def generate_file_name(process_id: str, extension: str = "mp4") -> str:
    return f"final_video_{process_id}.{extension}"


def generate_blob_path(song_id: str, file_name: str) -> str:
    return f"videos/{song_id}/{file_name}"


def generate_thumbnail_blob_path(song_id: str, file_name: str) -> str:
    return f"thumbnails/{song_id}/{file_name}"


class FileManager:
    def __init__(
        self,
        process_logger: ProcessLogger,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or get_settings()
        self.log = process_logger
        self._http_client = http_client

    def create_workspace(self, process_id: str) -> Path:
        """Create the exclusive temporary directory for one request."""
        workspace = Path(self.settings.temp_root) / process_id
        try:
            workspace.mkdir(parents=True, exist_ok=False)
        except OSError as e:
            self.log.error(f"Failed to create workspace {workspace}: {e}")
            raise FfmpegProcessingError(
                "Failed to create temporary directory",
                stage=ProcessingStage.VALIDATION,
                detail=str(e),
            ) from e
        self.log.info(f"Created workspace: {workspace}")
        return workspace

    async def _stream_to_file(self, client: httpx.AsyncClient, url: str, destination: Path) -> int:
        written = 0
        async with client.stream("GET", url) as response:
            if response.status_code < 200 or response.status_code >= 300:
                raise DownloadFailedError(
                    "Failed to download asset",
                    detail=f"HTTP {response.status_code} for {redact_url(url)}",
                )
            with open(destination, "wb") as f:
                async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                    f.write(chunk)
                    written += len(chunk)
        return written

    async def download_file(self, url: str, destination: Path, description: str) -> Path:
        """
        Download one URL to a local file.

        Raises:
            DownloadFailedError: On non-2xx status, transport error, timeout or an empty body
        """
        started = time.perf_counter()
        self.log.info(f"Downloading {description} from {redact_url(url)}")

        try:
            if self._http_client is not None:
                size = await self._stream_to_file(self._http_client, url, destination)
            else:
                async with httpx.AsyncClient(
                    timeout=self.settings.download_timeout_s,
                    headers={"User-Agent": self.settings.download_user_agent},
                    follow_redirects=True,
                ) as client:
                    size = await self._stream_to_file(client, url, destination)
        except DownloadFailedError as e:
            self.log.error(f"Failed to download {description}: {e.detail}")
            raise DownloadFailedError(f"Failed to download {description}", detail=e.detail) from e
        except httpx.TimeoutException as e:
            self.log.error(f"Timed out downloading {description}: {e}")
            raise DownloadFailedError(
                f"Failed to download {description}",
                detail=f"Timed out after {self.settings.download_timeout_s}s",
            ) from e
        except (httpx.HTTPError, OSError) as e:
            self.log.error(f"Error downloading {description}: {e}")
            raise DownloadFailedError(f"Failed to download {description}", detail=str(e)) from e

        if size == 0:
            raise DownloadFailedError(
                f"Failed to download {description}",
                detail=f"Downloaded file is empty: {redact_url(url)}",
            )

        self.log.timing(f"Download {description}", started, bytes=size)
        return destination

    async def download_assets(
        self,
        clip_urls: list[str],
        subtitle_url: str,
        song_url: str,
        workspace: Path,
    ) -> LocalAssets:
        """Download every input into the workspace.

        Clips are named ``clip_{n}.{ext}`` (1-based) so their order on disk
        matches playback order.
        """
        clip_paths = [
            workspace / f"clip_{i + 1}.{extension_from_url(url, 'mp4')}"
            for i, url in enumerate(clip_urls)
        ]
        subtitle_path = workspace / "subtitles.ass"
        song_path = workspace / f"song.{extension_from_url(song_url, 'mp3')}"

        tasks = [
            self.download_file(url, path, f"video clip {i + 1}")
            for i, (url, path) in enumerate(zip(clip_urls, clip_paths))
        ]
        tasks.append(self.download_file(subtitle_url, subtitle_path, "ASS subtitle file"))
        tasks.append(self.download_file(song_url, song_path, "song audio"))
        # Let every download settle before the caller removes the workspace
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

        return LocalAssets(
            clips=[str(p) for p in clip_paths],
            subtitle=str(subtitle_path),
            song=str(song_path),
        )

    def cleanup_directory(self, path: Path) -> None:
        """Remove a workspace; a missing directory is a no-op."""
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
        except OSError as e:
            raise CleanupError(detail=f"{path}: {e}") from e
        self.log.info(f"Cleaned up workspace: {path}")
