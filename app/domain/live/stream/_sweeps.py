"""Periodic liveness checks over supervised streams."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from app.schemas import StreamEventType

from ._base import BaseService, StreamContext
from .stream_registry import IssueWindow, StreamSession

if TYPE_CHECKING:
    from ._control import StreamController


class StaleSweep(BaseService):
    """Marks streams whose progress stopped as down (bitrate 0).

    Only reports. A stale transcoder is never killed or relaunched here.
    """

    def is_stale(self, session: StreamSession, now: float) -> bool:
        reference = session.last_update_at or session.started_at
        if reference is None:
            return True
        return now - reference > self.cfg.STALE_THRESHOLD_SECONDS

    def run_once(self) -> list[str]:
        """Returns the ids newly marked down by this pass."""
        now = self.clock.now()
        self.registry.prune_deleted(now)
        marked: list[str] = []

        for session in self.registry.sessions():
            if not session.source_url:
                continue
            if not self.is_stale(session, now) or session.current_bitrate == 0:
                continue

            session.current_bitrate = 0
            if session.issue_window is None:
                session.issue_window = IssueWindow(start_time=now)
                self.logs.write_signal_loss_start(session.log_name, now)

            logger.warning(f"No progress from stream {session.stream_id}; marking it down")
            self.publish(
                StreamEventType.BITRATE,
                session.stream_id,
                **self.stream_fields(session.stream_id, session.source_url),
                bitrate=0,
                estimated=False,
            )
            marked.append(session.stream_id)

        return marked


class IdleReaper(BaseService):
    """Tears down streams nobody has watched for the idle timeout."""

    def __init__(self, ctx: StreamContext, controller: StreamController):
        super().__init__(ctx)
        self.controller = controller

    def _set_viewers(self, stream_id: str, delta: int) -> int | None:
        session = self.registry.get(stream_id)
        if session is None:
            logger.debug(f"Viewer notification for unknown stream {stream_id} ignored")
            return None

        session.viewer_count = max(0, session.viewer_count + delta)
        self.publish(StreamEventType.VIEWERS, stream_id, viewers=session.viewer_count)
        return session.viewer_count

    def on_play(self, stream_id: str) -> int | None:
        return self._set_viewers(stream_id, 1)

    async def on_play_done(self, stream_id: str) -> int | None:
        viewers = self._set_viewers(stream_id, -1)
        if viewers == 0:
            await self.check(stream_id)
        return viewers

    def is_idle(self, session: StreamSession, now: float) -> bool:
        if session.viewer_count > 0:
            return False
        reference = max(session.last_update_at or 0, session.started_at or 0)
        if not reference:
            return False
        return now - reference > self.cfg.idle_timeout_seconds

    async def check(self, stream_id: str) -> bool:
        """Tear the stream down if it is idle. Returns True when it was."""
        session = self.registry.get(stream_id)
        if session is None or not self.is_idle(session, self.clock.now()):
            return False

        async with self.controller.locked(stream_id):
            session = self.registry.get(stream_id)
            if session is None or not self.is_idle(session, self.clock.now()):
                return False
            logger.info(f"Idle timeout reached for stream {stream_id} (no viewers), cleaning up")
            return await self.controller.teardown(stream_id, reason="idle")

    async def run_once(self) -> list[str]:
        reaped: list[str] = []
        for stream_id in self.registry.ids():
            try:
                if await self.check(stream_id):
                    reaped.append(stream_id)
            except Exception:
                logger.exception(f"Idle check failed for stream {stream_id}")
        return reaped
