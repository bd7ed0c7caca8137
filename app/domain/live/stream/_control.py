"""Start, stop and restart of supervised streams.

Every lifecycle change of one stream runs under that stream's lock. Spawning
and upstream URL resolution both suspend, so without it two concurrent
requests could each see "no live process" and launch a second transcoder.
"""

from __future__ import annotations

import asyncio
import shutil
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Protocol

from loguru import logger

from app.schemas import Resolution, StreamEventType
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ._base import BaseService, StreamContext
from ._launcher import ProcessLauncher
from ._monitor import BitrateMonitor
from .process_control import is_alive, terminate
from .stream_identity import resolve_stream_id
from .stream_registry import StreamSession


class UrlResolver(Protocol):
    async def resolve(self, url: str) -> str: ...


class _StreamLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class StreamController(BaseService):
    def __init__(
        self,
        ctx: StreamContext,
        launcher: ProcessLauncher,
        monitor: BitrateMonitor,
        resolver: UrlResolver,
        platform: str | None = None,
    ):
        super().__init__(ctx)
        self.launcher = launcher
        self.monitor = monitor
        self.resolver = resolver
        self._platform = platform
        self._locks: dict[str, _StreamLock] = {}

    @property
    def lock_count(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def locked(self, stream_id: str) -> AsyncIterator[None]:
        """Hold the lifecycle lock of one stream.

        The entry lives only while some task holds or waits for it.
        """
        entry = self._locks.get(stream_id)
        if entry is None:
            entry = self._locks[stream_id] = _StreamLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(stream_id) is entry:
                del self._locks[stream_id]

    async def start(
        self,
        source_url: str,
        display_name: str | None = None,
        resolution: Resolution | str | None = None,
    ) -> StreamSession | None:
        """Start supervising `source_url`; idempotent while it runs.

        Returns None when the stream was deleted moments ago and is still in
        its re-creation cooldown.
        """
        stream_id = resolve_stream_id(source_url)

        async with self.locked(stream_id):
            session = self.registry.get(stream_id)
            if session is not None and session.is_running:
                if display_name:
                    session.display_name = display_name
                logger.info(f"Stream {stream_id} already running")
                return session

            if self.registry.is_recently_deleted(stream_id):
                logger.warning(f"Stream {stream_id} was recently deleted, not restarting it")
                return None

            target_url = await self.resolver.resolve(source_url)
            session = self.registry.get_or_create(
                stream_id, target_url, Resolution.parse(resolution) if resolution else None
            )
            if display_name:
                session.display_name = display_name

            await self.launcher.launch(target_url, stream_id, session.resolution)
            return session

    async def stop(self, stream_id: str) -> None:
        if stream_id not in self.registry:
            raise AppError(
                AppErrorCode.E_STREAM_NOT_FOUND,
                f"Stream {stream_id} not found",
                HttpStatusCode.NOT_FOUND,
            )

        async with self.locked(stream_id):
            await self.teardown(stream_id, reason="stop")

    async def teardown(self, stream_id: str, reason: str) -> bool:
        """Kill the transcoder and forget the stream. Caller holds the lock.

        The session is destroyed whatever the termination outcome.
        """
        session = self.registry.get(stream_id)
        if session is None:
            return False

        process = session.process
        if process is not None:
            self.monitor.detach(stream_id, process)
            result = await terminate(
                process,
                self.cfg.STOP_TIMEOUT_SECONDS,
                confirm_timeout=self.cfg.KILL_CONFIRM_SECONDS,
                platform=self._platform,
            )
            if not result.confirmed_dead:
                logger.error(f"ffmpeg for stream {stream_id} (pid={process.pid}) did not exit after kill")
        self.monitor.detach(stream_id)

        self.registry.destroy(stream_id)
        await self._remove_media(stream_id)

        logger.info(f"Stream {stream_id} stopped and cleaned up ({reason})")
        self.publish(
            StreamEventType.CLEANED,
            stream_id,
            **self.stream_fields(stream_id, session.source_url),
            reason=reason,
        )
        return True

    async def _remove_media(self, stream_id: str) -> None:
        path = self.media_dir(stream_id)
        if not path.exists():
            return
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except OSError as e:
            logger.warning(f"Failed to remove media folder {path}: {e}")

    async def restart(
        self,
        stream_id: str | None = None,
        source_url: str | None = None,
        display_name: str | None = None,
        resolution: Resolution | str | None = None,
    ) -> StreamSession:
        """Replace the transcoder of a stream with a fresh one.

        The old process must be confirmed dead before the new one spawns, so
        there is never more than one transcoder per stream.

        Raises:
            AppError: Invalid identification, unknown stream without a URL,
                or a process that survived the forced kill.
        """
        if not stream_id and not source_url:
            raise AppError(AppErrorCode.E_INVALID_REQUEST, "stream_id or source_url is required")

        if source_url:
            derived_id = resolve_stream_id(source_url)
            if stream_id and stream_id != derived_id:
                raise AppError(
                    AppErrorCode.E_INVALID_REQUEST,
                    f"stream_id {stream_id} does not match source_url",
                )
            stream_id = derived_id
        assert stream_id is not None

        async with self.locked(stream_id):
            session = self.registry.get(stream_id)
            if session is None and not source_url:
                raise AppError(
                    AppErrorCode.E_STREAM_URL_NOT_FOUND,
                    f"No source URL known for stream {stream_id}",
                    HttpStatusCode.NOT_FOUND,
                )

            if session is not None and session.process is not None:
                process = session.process
                self.monitor.detach(stream_id, process)
                if is_alive(process):
                    logger.info(f"Restarting stream {stream_id}: stopping pid={process.pid}")
                result = await terminate(
                    process,
                    self.cfg.STOP_TIMEOUT_SECONDS,
                    confirm_timeout=self.cfg.KILL_CONFIRM_SECONDS,
                    platform=self._platform,
                )
                if not result.confirmed_dead:
                    raise AppError(
                        AppErrorCode.E_PROCESS_UNRESPONSIVE,
                        f"ffmpeg for stream {stream_id} (pid={process.pid}) could not be killed",
                        HttpStatusCode.INTERNAL_ERROR,
                    )
                session.process = None

            if session is not None:
                session.attempts = 0
                session.current_bitrate = None
                session.last_update_at = None

            self.registry.clear_deleted(stream_id)

            if source_url:
                target_url = await self.resolver.resolve(source_url)
            else:
                assert session is not None
                target_url = session.source_url

            session = self.registry.get_or_create(
                stream_id, target_url, Resolution.parse(resolution) if resolution else None
            )
            if display_name:
                session.display_name = display_name

            await self.launcher.launch(target_url, stream_id, session.resolution, force=True)
            logger.info(f"Stream {stream_id} restarted")
            return session

    async def shutdown(self) -> None:
        """Terminate every transcoder without forgetting the sessions."""

        async def _stop_one(session: StreamSession) -> None:
            process = session.process
            if process is None:
                return
            self.monitor.detach(session.stream_id, process)
            await terminate(
                process,
                self.cfg.STOP_TIMEOUT_SECONDS,
                confirm_timeout=self.cfg.KILL_CONFIRM_SECONDS,
                platform=self._platform,
            )
            session.process = None

        await asyncio.gather(*(_stop_one(s) for s in self.registry.sessions()), return_exceptions=True)
        await self.launcher.aclose()
