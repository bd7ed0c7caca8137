"""Media server webhook endpoints for viewer accounting.

Event Types:
- on_play: a viewer started playing a stream
- on_play_done: a viewer stopped; an unwatched stream may be torn down
  right away once it has been idle for the configured timeout

Notifications for unknown streams are accepted and ignored.
"""

from __future__ import annotations

from fastapi import APIRouter
from loguru import logger

from app.api.v1.dependency import StreamServiceDep
from app.api.v1.schemas.base import ApiOut
from app.api.webhooks.schemas.media_server import PlayNotification, ViewerCountOut
from app.domain.live.stream.stream_identity import stream_id_from_path

router = APIRouter(prefix="/webhooks/media", tags=["Webhooks"])


@router.post("/on_play")
async def on_play(event: PlayNotification, service: StreamServiceDep) -> ApiOut[ViewerCountOut]:
    stream_id = stream_id_from_path(event.stream_path)
    viewers = service.on_play(event.stream_path)
    logger.debug(f"on_play stream={stream_id} client={event.client_id} viewers={viewers}")
    return ApiOut[ViewerCountOut](results=ViewerCountOut(stream_id=stream_id, viewers=viewers))


@router.post("/on_play_done")
async def on_play_done(event: PlayNotification, service: StreamServiceDep) -> ApiOut[ViewerCountOut]:
    stream_id = stream_id_from_path(event.stream_path)
    viewers = await service.on_play_done(event.stream_path)
    logger.debug(f"on_play_done stream={stream_id} client={event.client_id} viewers={viewers}")
    return ApiOut[ViewerCountOut](results=ViewerCountOut(stream_id=stream_id, viewers=viewers))
