"""Process-video API endpoint - synchronous, one request is one render."""

import logging
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Body, Depends, Header

from src.api.deps import ApiKey, AppSettings
from src.render.pipeline import VideoProcessingPipeline
from src.schemas.process import ProcessVideoErrorResponse, ProcessVideoResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def get_pipeline(settings: AppSettings) -> VideoProcessingPipeline:
    return VideoProcessingPipeline(settings)


@router.post(
    "/process-video",
    response_model=ProcessVideoResponse,
    responses={
        400: {"model": ProcessVideoErrorResponse},
        401: {"model": ProcessVideoErrorResponse},
        500: {"model": ProcessVideoErrorResponse},
    },
)
async def process_video(
    payload: Annotated[dict[str, Any], Body()],
    _api_key: ApiKey,
    pipeline: Annotated[VideoProcessingPipeline, Depends(get_pipeline)],
    x_request_id: Annotated[Optional[str], Header(alias="X-Request-ID")] = None,
) -> ProcessVideoResponse:
    """
    Assemble clips, song and subtitles into one video.

    Blocks until the render is uploaded and playable on Mux. Failures are
    raised as ProcessingError and mapped to the error body by the app.
    """
    logger.info(
        f"[PROCESS] Request received: process_id={pipeline.process_id} "
        f"request_id={x_request_id or '-'}"
    )
    return await pipeline.process(payload)
