import asyncio
from collections.abc import AsyncIterator
from typing import Any

import orjson
from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from loguru import logger

from app.api.v1.dependency import StreamServiceDep
from app.api.v1.schemas.base import ApiOut
from app.api.v1.schemas.stream import (
    BitrateHistoryIn,
    ProbeIn,
    RestartStreamIn,
    StartStreamIn,
    StopStreamOut,
    StreamRefIn,
    StreamUrlsOut,
)
from app.domain.live.stream.stream_domain import StreamService
from app.domain.live.stream.stream_models import (
    ActiveStreamListResponse,
    BitrateHistoryResponse,
    BitrateResponse,
)

router = APIRouter(prefix="/stream", tags=["Stream"])

SSE_KEEPALIVE_SECONDS = 15.0


def format_sse(event: dict[str, Any]) -> str:
    payload = orjson.dumps(event).decode()
    event_type = event.get("type")
    if event_type:
        return f"event: {event_type}\ndata: {payload}\n\n"
    return f"data: {payload}\n\n"


@router.post("/start_stream")
async def start_stream(params: StartStreamIn, service: StreamServiceDep) -> ApiOut[StreamUrlsOut]:
    """Start transcoding a source, or join it if it is already running."""
    result = await service.start(
        params.source_url,
        display_name=params.display_name,
        resolution=params.resolution,
    )
    return ApiOut[StreamUrlsOut](results=StreamUrlsOut(**result.model_dump()))


@router.post("/stop_stream")
async def stop_stream(params: StreamRefIn, service: StreamServiceDep) -> ApiOut[StopStreamOut]:
    stream_id = await service.stop(stream_id=params.stream_id, source_url=params.source_url)
    return ApiOut[StopStreamOut](results=StopStreamOut(stream_id=stream_id))


@router.post("/restart_stream")
async def restart_stream(params: RestartStreamIn, service: StreamServiceDep) -> ApiOut[StreamUrlsOut]:
    """Kill the current transcoder and spawn a fresh one."""
    result = await service.restart(
        stream_id=params.stream_id,
        source_url=params.source_url,
        display_name=params.display_name,
        resolution=params.resolution,
    )
    return ApiOut[StreamUrlsOut](results=StreamUrlsOut(**result.model_dump()))


@router.post("/get_bitrate")
async def get_bitrate(params: StreamRefIn, service: StreamServiceDep) -> ApiOut[BitrateResponse]:
    result = service.get_bitrate(stream_id=params.stream_id, source_url=params.source_url)
    return ApiOut[BitrateResponse](results=result)


@router.post("/bitrate_history")
async def bitrate_history(params: BitrateHistoryIn, service: StreamServiceDep) -> ApiOut[BitrateHistoryResponse]:
    result = service.bitrate_history(
        stream_id=params.stream_id,
        source_url=params.source_url,
        max_samples=params.max_samples,
    )
    return ApiOut[BitrateHistoryResponse](results=result)


@router.post("/probe")
async def probe(params: ProbeIn, service: StreamServiceDep) -> ApiOut[dict[str, Any]]:
    """Describe a source's container and streams with ffprobe."""
    result = await service.probe(params.source_url)
    return ApiOut[dict[str, Any]](results=result)


@router.get("/list_active")
async def list_active(service: StreamServiceDep) -> ApiOut[ActiveStreamListResponse]:
    return ApiOut[ActiveStreamListResponse](results=service.list_active())


async def event_stream(
    request: Request,
    service: StreamService,
    keepalive: float = SSE_KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """Replay current state, then relay live events until the client leaves."""
    async with service.broadcaster.subscribe() as subscription:
        for event in service.snapshot_events():
            yield format_sse(event)

        try:
            while not await request.is_disconnected():
                event = await subscription.get(timeout=keepalive)
                if event is None:
                    yield ": ping\n\n"
                    continue
                yield format_sse(event)
        except asyncio.CancelledError:
            logger.debug("Event stream cancelled")
            raise

        if subscription.dropped:
            logger.info(f"Event stream closed, {subscription.dropped} events were dropped")


@router.get("/events")
async def events(request: Request, service: StreamServiceDep) -> StreamingResponse:
    """Server-Sent Events push channel for all stream events."""
    return StreamingResponse(
        event_stream(request, service),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
