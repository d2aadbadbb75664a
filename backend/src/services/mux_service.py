"""Mux video platform client.

A rendered file becomes a streamable asset in three steps: create a direct
upload, PUT the bytes to the signed URL, then poll until the platform
reports a playback id. The polling is a small state machine:

    UPLOAD_REQUESTED -> INGEST_PENDING -> ASSET_PENDING -> READY
                                |               |
                                +-> TIMED_OUT <-+-> ERRORED

``advance`` is the pure transition function. ``MuxService`` drives it with
real HTTP calls and an injectable ``sleep`` so tests never wait.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any

import httpx

from src.config import Settings, get_settings
from src.constants.stages import ProcessingStage
from src.exceptions import ConfigurationError, UploadFailedError
from src.utils.process_logger import ProcessLogger

logger = logging.getLogger(__name__)

STREAM_BASE_URL = "https://stream.mux.com"

# Terminal statuses of a direct upload that will never produce an asset
FAILED_UPLOAD_STATUSES = frozenset({"errored", "cancelled", "timed_out"})


class MaterializationState(str, Enum):
    UPLOAD_REQUESTED = "upload_requested"
    INGEST_PENDING = "ingest_pending"
    ASSET_PENDING = "asset_pending"
    READY = "ready"
    ERRORED = "errored"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = frozenset(
    {MaterializationState.READY, MaterializationState.ERRORED, MaterializationState.TIMED_OUT}
)


@dataclass(frozen=True)
class RemoteAssetHandle:
    """Where a single upload stands. Only lives for one polling loop."""

    upload_id: str
    asset_id: str | None = None
    playback_id: str | None = None
    state: MaterializationState = MaterializationState.UPLOAD_REQUESTED
    ingest_polls: int = 0
    asset_polls: int = 0
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


@dataclass(frozen=True)
class PollObservation:
    """One poll result. All fields empty means the poll itself failed."""

    asset_id: str | None = None
    status: str | None = None
    playback_ids: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    transient_error: str | None = None


@dataclass(frozen=True)
class PollingBudget:
    upload_interval_s: float = 2.0
    upload_max_polls: int = 10
    asset_interval_s: float = 10.0
    asset_max_polls: int = 30

    @classmethod
    def from_settings(cls, settings: Settings) -> "PollingBudget":
        return cls(
            upload_interval_s=settings.mux_upload_poll_interval_s,
            upload_max_polls=settings.mux_upload_max_polls,
            asset_interval_s=settings.mux_asset_poll_interval_s,
            asset_max_polls=settings.mux_asset_max_polls,
        )


@dataclass(frozen=True)
class MuxUploadResult:
    asset_id: str
    playback_id: str


def start_handle(upload_id: str, asset_id: str | None = None) -> RemoteAssetHandle:
    """Handle for a freshly created upload whose bytes have been sent."""
    state = MaterializationState.ASSET_PENDING if asset_id else MaterializationState.INGEST_PENDING
    return RemoteAssetHandle(upload_id=upload_id, asset_id=asset_id or None, state=state)


def advance(
    handle: RemoteAssetHandle,
    observation: PollObservation,
    budget: PollingBudget,
) -> RemoteAssetHandle:
    """Apply one poll observation to the handle.

    Every observation that does not move the handle forward spends one poll
    of the current phase's budget; exhausting it yields TIMED_OUT. Terminal
    handles are returned unchanged.
    """
    if handle.state is MaterializationState.UPLOAD_REQUESTED:
        return start_handle(handle.upload_id, observation.asset_id)

    if handle.state is MaterializationState.INGEST_PENDING:
        if observation.asset_id:
            return replace(
                handle,
                asset_id=observation.asset_id,
                state=MaterializationState.ASSET_PENDING,
            )
        if observation.status in FAILED_UPLOAD_STATUSES:
            return replace(
                handle,
                state=MaterializationState.ERRORED,
                error=f"Mux upload {observation.status}",
            )
        polls = handle.ingest_polls + 1
        if polls >= budget.upload_max_polls:
            return replace(
                handle,
                ingest_polls=polls,
                state=MaterializationState.TIMED_OUT,
                error="Mux upload did not return an asset ID after checking status",
            )
        return replace(handle, ingest_polls=polls)

    if handle.state is MaterializationState.ASSET_PENDING:
        if observation.status == "errored":
            messages = ", ".join(observation.errors) or "Unknown error"
            return replace(
                handle,
                state=MaterializationState.ERRORED,
                error=f"Mux asset processing failed: {messages}",
            )
        if observation.status == "ready" and observation.playback_ids:
            return replace(
                handle,
                playback_id=observation.playback_ids[0],
                state=MaterializationState.READY,
            )
        polls = handle.asset_polls + 1
        if polls >= budget.asset_max_polls:
            return replace(
                handle,
                asset_polls=polls,
                state=MaterializationState.TIMED_OUT,
                error="Mux asset did not become ready within the timeout period",
            )
        return replace(handle, asset_polls=polls)

    return handle


def observation_from_upload(data: dict[str, Any]) -> PollObservation:
    return PollObservation(asset_id=data.get("asset_id"), status=data.get("status"))


def observation_from_asset(data: dict[str, Any]) -> PollObservation:
    playback_ids = tuple(p["id"] for p in data.get("playback_ids") or [] if p.get("id"))
    errors = tuple((data.get("errors") or {}).get("messages") or [])
    return PollObservation(
        asset_id=data.get("id"),
        status=data.get("status"),
        playback_ids=playback_ids,
        errors=errors,
    )


class MuxService:
    """Materializes rendered videos as Mux assets via the REST API."""

    def __init__(
        self,
        process_logger: ProcessLogger,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.log = process_logger
        self.budget = PollingBudget.from_settings(self.settings)
        self._http_client = http_client
        self._sleep = sleep

    def validate_credentials(self) -> None:
        if not self.settings.mux_token_id or not self.settings.mux_token_secret:
            raise ConfigurationError(
                "Mux credentials are not configured",
                stage=ProcessingStage.VALIDATION,
                detail="MUX_TOKEN_ID and MUX_TOKEN_SECRET environment variables are missing or empty",
            )

    @property
    def _auth(self) -> httpx.BasicAuth:
        return httpx.BasicAuth(self.settings.mux_token_id, self.settings.mux_token_secret)

    def _url(self, path: str) -> str:
        return f"{self.settings.mux_api_base.rstrip('/')}{path}"

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.settings.mux_request_timeout_s) as client:
            yield client

    async def _api(self, client: httpx.AsyncClient, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        response = await client.request(method, self._url(path), auth=self._auth, **kwargs)
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return {}
        body = response.json()
        if not isinstance(body, dict) or not isinstance(body.get("data"), dict):
            raise ValueError(f"Unexpected Mux response for {method} {path}: missing data object")
        return body["data"]

    def playback_url(self, playback_id: str) -> str:
        return f"{STREAM_BASE_URL}/{playback_id}.m3u8"

    # ========================================================================
    # Upload
    # ========================================================================

    async def _create_upload(
        self, client: httpx.AsyncClient, process_id: str, title: str | None
    ) -> dict[str, Any]:
        new_asset_settings: dict[str, Any] = {
            "playback_policy": [self.settings.mux_playback_policy],
            "video_quality": self.settings.mux_video_quality,
            "normalize_audio": self.settings.mux_normalize_audio,
            "passthrough": process_id,
        }
        if title:
            new_asset_settings["meta"] = {"title": title}

        upload = await self._api(
            client,
            "POST",
            "/video/v1/uploads",
            json={
                "new_asset_settings": new_asset_settings,
                "cors_origin": self.settings.mux_cors_origin,
            },
        )
        self.log.info(f"Mux upload created: upload_id={upload.get('id')} asset_id={upload.get('asset_id')}")
        return upload

    async def _put_file(self, client: httpx.AsyncClient, upload_url: str, video_path: str) -> int:
        data = await asyncio.to_thread(Path(video_path).read_bytes)
        response = await client.put(upload_url, content=data, headers={"Content-Type": "video/mp4"})
        if response.status_code < 200 or response.status_code >= 300:
            raise UploadFailedError(
                "Failed to upload video to Mux",
                detail=f"Upload failed with status {response.status_code}: {response.reason_phrase}",
            )
        return len(data)

    async def _observe(self, client: httpx.AsyncClient, handle: RemoteAssetHandle) -> PollObservation:
        try:
            if handle.state is MaterializationState.INGEST_PENDING:
                data = await self._api(client, "GET", f"/video/v1/uploads/{handle.upload_id}")
                return observation_from_upload(data)
            data = await self._api(client, "GET", f"/video/v1/assets/{handle.asset_id}")
            return observation_from_asset(data)
        except (httpx.HTTPError, ValueError) as e:
            self.log.warning(f"Mux poll failed ({handle.state.value}): {e}")
            return PollObservation(transient_error=str(e))

    async def _poll_until_terminal(self, client: httpx.AsyncClient, handle: RemoteAssetHandle) -> RemoteAssetHandle:
        while not handle.is_terminal:
            previous_state = handle.state
            observation = await self._observe(client, handle)
            handle = advance(handle, observation, self.budget)
            self.log.debug(
                f"Mux poll: state={handle.state.value} asset_id={handle.asset_id} "
                f"status={observation.status} ingest_polls={handle.ingest_polls} asset_polls={handle.asset_polls}"
            )
            if handle.is_terminal or handle.state is not previous_state:
                continue
            if handle.state is MaterializationState.INGEST_PENDING:
                await self._sleep(self.budget.upload_interval_s)
            else:
                await self._sleep(self.budget.asset_interval_s)
        return handle

    async def materialize(
        self,
        video_path: str,
        song_id: str,
        process_id: str,
        title: str | None = None,
    ) -> MuxUploadResult:
        """
        Upload a rendered video and wait until Mux can stream it.

        Args:
            video_path: Local path of the rendered MP4
            song_id: Caller identifier, logged for correlation
            process_id: Stored as the asset passthrough
            title: Optional display title (asset meta)

        Returns:
            MuxUploadResult with asset and playback ids

        Raises:
            ConfigurationError: If Mux credentials are missing
            UploadFailedError: If any request fails or the asset never becomes ready
        """
        self.validate_credentials()
        started = time.perf_counter()
        self.log.stage("Mux Upload", "start", song_id=song_id)

        try:
            async with self._client() as client:
                upload = await self._create_upload(client, process_id, title)
                size = await self._put_file(client, upload["url"], video_path)
                handle = advance(
                    RemoteAssetHandle(upload_id=upload["id"]),
                    PollObservation(asset_id=upload.get("asset_id")),
                    self.budget,
                )
                handle = await self._poll_until_terminal(client, handle)
        except UploadFailedError as e:
            self.log.stage("Mux Upload", "error", error=e.detail)
            raise
        except (httpx.HTTPError, OSError, KeyError, ValueError) as e:
            self.log.stage("Mux Upload", "error", error=str(e))
            raise UploadFailedError("Failed to upload video to Mux", detail=str(e)) from e

        if handle.state is not MaterializationState.READY or not handle.asset_id or not handle.playback_id:
            self.log.stage("Mux Upload", "error", state=handle.state.value, error=handle.error)
            raise UploadFailedError("Failed to upload video to Mux", detail=handle.error)

        self.log.timing(
            "Mux Upload",
            started,
            asset_id=handle.asset_id,
            playback_id=handle.playback_id,
            bytes=size,
            polls=handle.ingest_polls + handle.asset_polls,
        )
        return MuxUploadResult(asset_id=handle.asset_id, playback_id=handle.playback_id)

    # ========================================================================
    # Asset management
    # ========================================================================

    async def get_asset(self, asset_id: str) -> dict[str, Any]:
        async with self._client() as client:
            try:
                return await self._api(client, "GET", f"/video/v1/assets/{asset_id}")
            except httpx.HTTPError as e:
                self.log.error(f"Failed to retrieve Mux asset {asset_id}: {e}")
                raise

    async def delete_asset(self, asset_id: str) -> bool:
        """Delete an asset. Failures are logged, never raised."""
        started = time.perf_counter()
        try:
            async with self._client() as client:
                await self._api(client, "DELETE", f"/video/v1/assets/{asset_id}")
        except (httpx.HTTPError, ValueError) as e:
            self.log.warning(f"Failed to delete Mux asset {asset_id}: {e}")
            return False
        self.log.timing("Mux Asset Deletion", started, asset_id=asset_id)
        return True
