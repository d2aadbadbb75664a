"""
Tests for the HTTP surface (FastAPI TestClient).

Test cases:
1. Health check needs no key
2. Auth failures (missing server key, missing header, wrong key)
3. Error body shape and status mapping
4. Success body uses camelCase
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from src.api.process import get_pipeline
from src.config import get_settings
from src.constants.stages import ProcessingStage
from src.exceptions import DownloadFailedError, ValidationError
from src.main import app
from src.schemas.process import ProcessVideoResponse

API_KEY = "test-secret-key"


class StubPipeline:
    process_id = "proc-api"

    def __init__(self, result=None, error=None):
        self.process = AsyncMock(return_value=result, side_effect=error)


def _response() -> ProcessVideoResponse:
    return ProcessVideoResponse(
        output_url="https://storage.example.com/videos/song-123/final_video_proc-api.mp4",
        thumbnail_url="https://storage.example.com/thumbnails/song-123/final_video_proc-api.jpg",
        mux_asset_id="asset-1",
        mux_playback_id="pb-1",
        playback_url="https://stream.mux.com/pb-1.m3u8",
        duration=12.0,
        processing_time_ms=2500,
    )


@pytest.fixture
def client(settings):
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def use_pipeline():
    def install(pipeline: StubPipeline) -> StubPipeline:
        app.dependency_overrides[get_pipeline] = lambda: pipeline
        return pipeline

    return install


class TestHealth:
    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "ffmpeg-video-processor"
        assert "timestamp" in data

    def test_health_check_needs_no_key(self, client, settings):
        app.dependency_overrides[get_settings] = lambda: settings.model_copy(update={"x_api_key": ""})
        assert client.get("/health").status_code == 200


class TestAuth:
    def test_missing_key(self, client, valid_payload, use_pipeline):
        pipeline = use_pipeline(StubPipeline(result=_response()))

        response = client.post("/process-video", json=valid_payload)

        assert response.status_code == 401
        error = response.json()["error"]
        assert error["kind"] == "UNAUTHORIZED"
        assert error["message"] == "API key required"
        assert error["stage"] == "authentication"
        pipeline.process.assert_not_awaited()

    def test_wrong_key(self, client, valid_payload, use_pipeline):
        use_pipeline(StubPipeline(result=_response()))

        response = client.post("/process-video", json=valid_payload, headers={"X-API-Key": "wrong-key"})

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid API key"

    def test_server_key_not_configured(self, client, settings, valid_payload, use_pipeline):
        use_pipeline(StubPipeline(result=_response()))
        app.dependency_overrides[get_settings] = lambda: settings.model_copy(update={"x_api_key": ""})

        response = client.post("/process-video", json=valid_payload, headers={"X-API-Key": API_KEY})

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["kind"] == "CONFIGURATION_ERROR"
        assert error["stage"] == "authentication"


class TestProcessVideo:
    def test_success(self, client, valid_payload, use_pipeline):
        pipeline = use_pipeline(StubPipeline(result=_response()))

        response = client.post(
            "/process-video",
            json=valid_payload,
            headers={"X-API-Key": API_KEY, "X-Request-ID": "req-42"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["muxAssetId"] == "asset-1"
        assert data["muxPlaybackId"] == "pb-1"
        assert data["processingTimeMs"] == 2500
        pipeline.process.assert_awaited_once_with(valid_payload)

    def test_validation_error_is_400(self, client, valid_payload, use_pipeline):
        use_pipeline(
            StubPipeline(error=ValidationError("Request validation failed", detail="outputAspectRatio: bad"))
        )

        response = client.post("/process-video", json=valid_payload, headers={"X-API-Key": API_KEY})

        assert response.status_code == 400
        body = response.json()
        assert body["status"] == "failed"
        assert body["error"] == {
            "kind": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "detail": "outputAspectRatio: bad",
            "stage": "validation",
            "retryable": False,
        }

    def test_download_failure_is_500_and_retryable(self, client, valid_payload, use_pipeline):
        use_pipeline(StubPipeline(error=DownloadFailedError("Failed to download song audio", detail="HTTP 403")))

        response = client.post("/process-video", json=valid_payload, headers={"X-API-Key": API_KEY})

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["kind"] == "DOWNLOAD_FAILED"
        assert error["stage"] == ProcessingStage.ASSET_DOWNLOAD.value
        assert error["retryable"] is True

    def test_malformed_json_is_400(self, client, use_pipeline):
        use_pipeline(StubPipeline(result=_response()))

        response = client.post(
            "/process-video",
            content=b"{not json",
            headers={"X-API-Key": API_KEY, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "VALIDATION_ERROR"

    def test_unexpected_exception_is_structured(self, client, valid_payload, use_pipeline):
        use_pipeline(StubPipeline(error=RuntimeError("disk full")))

        response = client.post("/process-video", json=valid_payload, headers={"X-API-Key": API_KEY})

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["kind"] == "FFMPEG_PROCESSING_ERROR"
        assert error["stage"] == "video_processing"
        assert error["detail"] == "disk full"


class TestNotFound:
    def test_unknown_route(self, client):
        response = client.get("/nope")

        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "NOT_FOUND"
