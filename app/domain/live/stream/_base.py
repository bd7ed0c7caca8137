"""Base service for stream operations."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, NamedTuple

from app.app_config import AppEnvironConfig
from app.schemas import StreamEventType
from app.services.event_broadcaster import EventBroadcaster

from .clock import Clock, system_clock
from .stream_logs import StreamLogWriter
from .stream_registry import StreamRegistry


class HlsUrls(NamedTuple):
    hls_path: str
    hls_abs_url: str


@dataclass
class StreamContext:
    """Collaborators shared by every stream operation class."""

    cfg: AppEnvironConfig
    registry: StreamRegistry
    broadcaster: EventBroadcaster
    logs: StreamLogWriter
    clock: Clock = field(default=system_clock)

    @classmethod
    def from_config(cls, cfg: AppEnvironConfig, clock: Clock = system_clock) -> "StreamContext":
        return cls(
            cfg=cfg,
            registry=StreamRegistry(clock=clock, cleanup_block_seconds=cfg.CLEANUP_BLOCK_SECONDS),
            broadcaster=EventBroadcaster(queue_size=cfg.SUBSCRIBER_QUEUE_SIZE),
            logs=StreamLogWriter(cfg.LOGS_DIR),
            clock=clock,
        )


class BaseService:
    """Base service with shared stream operation helpers."""

    def __init__(self, ctx: StreamContext):
        self.ctx = ctx
        self.cfg = ctx.cfg
        self.registry = ctx.registry
        self.broadcaster = ctx.broadcaster
        self.logs = ctx.logs
        self.clock = ctx.clock

    def hls_urls(self, stream_id: str) -> HlsUrls:
        hls_path = f"/live/{stream_id}/index.m3u8"
        return HlsUrls(hls_path=hls_path, hls_abs_url=f"{self.cfg.HLS_BASE_URL.rstrip('/')}{hls_path}")

    def stream_fields(self, stream_id: str, source_url: str | None) -> dict[str, Any]:
        """Fields identifying a stream in event payloads."""
        urls = self.hls_urls(stream_id)
        return {
            "source_url": source_url,
            "hls_path": urls.hls_path,
            "hls_abs_url": urls.hls_abs_url,
        }

    def publish(self, event_type: StreamEventType, stream_id: str, **fields: Any) -> None:
        self.broadcaster.publish({"type": event_type.value, "stream_id": stream_id, **fields})

    def media_dir(self, stream_id: str) -> Path:
        """Folder the media server writes the stream's HLS output to."""
        return Path(self.cfg.MEDIA_ROOT) / "live" / stream_id
