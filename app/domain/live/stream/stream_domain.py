"""Stream domain service - supervision of ffmpeg transcoders."""

from __future__ import annotations

from typing import Any

from loguru import logger

from app.app_config import AppEnvironConfig
from app.schemas import Resolution, StreamEventType
from app.services.integrations.ffprobe_service import FfprobeService
from app.services.integrations.ytdlp_service import YtDlpService
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ._base import BaseService, StreamContext
from ._control import StreamController, UrlResolver
from ._launcher import ProcessLauncher, Spawner, spawn_subprocess
from ._monitor import BitrateMonitor
from ._sweeps import IdleReaper, StaleSweep
from .clock import Clock, system_clock
from .history_store import HistoryStore
from .hls_segments import estimate_from_segments
from .stream_identity import resolve_stream_id, stream_id_from_path
from .stream_models import (
    ActiveStreamListResponse,
    ActiveStreamResponse,
    BitrateHistoryResponse,
    BitrateResponse,
    BitrateSampleModel,
    StreamUrlsResponse,
)


class StreamService(BaseService):
    """Facade over the stream supervisor components.

    One instance owns all supervisor state for the process; the API layer
    reaches it through `app.state.stream_service`.
    """

    def __init__(
        self,
        ctx: StreamContext,
        *,
        spawner: Spawner = spawn_subprocess,
        resolver: UrlResolver | None = None,
        prober: FfprobeService | None = None,
        history_store: HistoryStore | None = None,
        platform: str | None = None,
    ):
        super().__init__(ctx)
        cfg = ctx.cfg
        self.monitor = BitrateMonitor(ctx)
        self.launcher = ProcessLauncher(ctx, self.monitor, spawner=spawner)
        self.controller = StreamController(
            ctx,
            self.launcher,
            self.monitor,
            resolver or YtDlpService(cfg.YTDLP_PATH, cfg.RESOLVE_TIMEOUT_SECONDS),
            platform=platform,
        )
        self.stale_sweep = StaleSweep(ctx)
        self.idle_reaper = IdleReaper(ctx, self.controller)
        self.prober = prober or FfprobeService(cfg.FFPROBE_PATH, cfg.PROBE_TIMEOUT_SECONDS)
        self.history_store = history_store or HistoryStore(cfg.HISTORY_FILE)

    @classmethod
    def from_config(cls, cfg: AppEnvironConfig, clock: Clock = system_clock, **kwargs: Any) -> "StreamService":
        return cls(StreamContext.from_config(cfg, clock=clock), **kwargs)

    # ==================== IDENTIFICATION ====================

    def _identify(self, stream_id: str | None, source_url: str | None) -> str:
        if source_url:
            derived = resolve_stream_id(source_url)
            if stream_id and stream_id != derived:
                raise AppError(AppErrorCode.E_INVALID_REQUEST, f"stream_id {stream_id} does not match source_url")
            return derived
        if stream_id:
            return stream_id
        raise AppError(AppErrorCode.E_INVALID_REQUEST, "stream_id or source_url is required")

    def _not_found(self, stream_id: str) -> AppError:
        return AppError(
            AppErrorCode.E_STREAM_NOT_FOUND,
            f"Stream {stream_id} not found",
            HttpStatusCode.NOT_FOUND,
        )

    def _urls_response(self, stream_id: str) -> StreamUrlsResponse:
        urls = self.hls_urls(stream_id)
        return StreamUrlsResponse(stream_id=stream_id, hls_path=urls.hls_path, hls_abs_url=urls.hls_abs_url)

    # ==================== LIFECYCLE ====================

    async def start(
        self,
        source_url: str,
        display_name: str | None = None,
        resolution: Resolution | str | None = None,
    ) -> StreamUrlsResponse:
        """Start (or join) the transcoder for `source_url`.

        A stream still in its post-deletion cooldown is not recreated; the
        playback URLs are returned anyway.
        """
        stream_id = resolve_stream_id(source_url)
        await self.controller.start(source_url, display_name=display_name, resolution=resolution)
        return self._urls_response(stream_id)

    async def stop(self, stream_id: str | None = None, source_url: str | None = None) -> str:
        """Stop and forget a stream, returning its id.

        Raises AppError if the stream is unknown.
        """
        stream_id = self._identify(stream_id, source_url)
        await self.controller.stop(stream_id)
        return stream_id

    async def restart(
        self,
        stream_id: str | None = None,
        source_url: str | None = None,
        display_name: str | None = None,
        resolution: Resolution | str | None = None,
    ) -> StreamUrlsResponse:
        session = await self.controller.restart(
            stream_id=stream_id,
            source_url=source_url,
            display_name=display_name,
            resolution=resolution,
        )
        return self._urls_response(session.stream_id)

    # ==================== QUERIES ====================

    def get_bitrate(self, stream_id: str | None = None, source_url: str | None = None) -> BitrateResponse:
        """Current bitrate and full history of one stream.

        Raises AppError if nothing is known about the stream.
        """
        stream_id = self._identify(stream_id, source_url)
        history = self.registry.history(stream_id)
        if history is None:
            raise self._not_found(stream_id)

        session = self.registry.get(stream_id)
        return BitrateResponse(
            bitrate=session.current_bitrate if session else None,
            history=[BitrateSampleModel.from_sample(s) for s in history],
            hls_abs_url=self.hls_urls(stream_id).hls_abs_url,
        )

    def bitrate_history(
        self,
        stream_id: str | None = None,
        source_url: str | None = None,
        max_samples: int = 300,
    ) -> BitrateHistoryResponse:
        """Newest `max_samples` samples, or one estimate from HLS segments."""
        stream_id = self._identify(stream_id, source_url)
        history = self.registry.history(stream_id) or []
        if history:
            recent = history[-max_samples:] if max_samples > 0 else []
            return BitrateHistoryResponse(history=[BitrateSampleModel.from_sample(s) for s in recent])

        estimate = estimate_from_segments(
            self.media_dir(stream_id), self.cfg.HLS_SEGMENT_SECONDS, self.clock.now()
        )
        if estimate is None:
            return BitrateHistoryResponse()
        return BitrateHistoryResponse(history=[BitrateSampleModel.from_sample(estimate)])

    def list_active(self) -> ActiveStreamListResponse:
        streams = []
        for session in self.registry.sessions():
            urls = self.hls_urls(session.stream_id)
            streams.append(
                ActiveStreamResponse(
                    stream_id=session.stream_id,
                    source_url=session.source_url,
                    display_name=session.display_name,
                    resolution=session.resolution,
                    running=session.is_running,
                    pid=session.process.pid if session.is_running and session.process else None,
                    bitrate=session.current_bitrate,
                    viewers=session.viewer_count,
                    signal_lost=session.issue_window is not None,
                    hls_path=urls.hls_path,
                    hls_abs_url=urls.hls_abs_url,
                )
            )
        return ActiveStreamListResponse(streams=streams)

    async def probe(self, source_url: str) -> dict[str, Any]:
        return await self.prober.probe(source_url)

    # ==================== VIEWERS ====================

    def on_play(self, stream_path: str) -> int | None:
        return self.idle_reaper.on_play(stream_id_from_path(stream_path))

    async def on_play_done(self, stream_path: str) -> int | None:
        return await self.idle_reaper.on_play_done(stream_id_from_path(stream_path))

    # ==================== EVENTS ====================

    def snapshot_events(self) -> list[dict[str, Any]]:
        """Events that bring a new subscriber up to date.

        Per known stream: its current bitrate and its recent history.
        """
        limit = self.cfg.SNAPSHOT_HISTORY_SAMPLES
        events: list[dict[str, Any]] = []
        for session in self.registry.sessions():
            fields = self.stream_fields(session.stream_id, session.source_url)
            events.append(
                {
                    "type": StreamEventType.BITRATE.value,
                    "stream_id": session.stream_id,
                    **fields,
                    "bitrate": session.current_bitrate,
                    "estimated": False,
                }
            )
            events.append(
                {
                    "type": StreamEventType.BITRATE_HISTORY.value,
                    "stream_id": session.stream_id,
                    **fields,
                    "history": [s.to_dict() for s in session.recent_history(limit)],
                }
            )
        return events

    # ==================== PERIODIC WORK ====================

    def run_stale_sweep(self) -> list[str]:
        return self.stale_sweep.run_once()

    async def run_idle_sweep(self) -> list[str]:
        return await self.idle_reaper.run_once()

    def load_history(self) -> int:
        histories = self.history_store.load(self.clock.now())
        self.registry.restore_history(histories)
        return len(histories)

    def save_history(self) -> bool:
        return self.history_store.save(self.registry.history_snapshot())

    async def shutdown(self) -> None:
        """Persist history and terminate every transcoder."""
        self.save_history()
        await self.controller.shutdown()
        logger.info("Stream supervisor shut down")


__all__ = ["StreamService"]
