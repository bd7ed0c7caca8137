"""Transcoder process launching."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from loguru import logger

from app.schemas import Resolution, StreamEventType

from ._base import BaseService, StreamContext
from ._monitor import BitrateMonitor
from .ffmpeg_args import build_ffmpeg_args, publish_url_for
from .process_control import ProcessHandle, force_kill

Spawner = Callable[..., Awaitable[ProcessHandle]]


async def spawn_subprocess(program: str, *args: str) -> ProcessHandle:
    return await asyncio.create_subprocess_exec(
        program,
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )


class ProcessLauncher(BaseService):
    """Spawns ffmpeg for a session and wires its output to the monitor.

    A transcoder that exits is never relaunched from here. Restarting is an
    explicit operator action (see `StreamController.restart`).
    """

    def __init__(self, ctx: StreamContext, monitor: BitrateMonitor, spawner: Spawner = spawn_subprocess):
        super().__init__(ctx)
        self.monitor = monitor
        self._spawner = spawner
        self._exit_watchers: set[asyncio.Task] = set()

    async def launch(
        self,
        source_url: str,
        stream_id: str,
        resolution: Resolution | str | None = None,
        force: bool = False,
    ) -> ProcessHandle | None:
        """Start a transcoder for `stream_id`.

        Args:
            source_url: Resolved input URL fed to ffmpeg
            stream_id: Session id; also names the publish endpoint
            resolution: Quality profile, unknown values fall back to 480p
            force: Replace a running process and reset the attempt counter

        Returns:
            The running process handle (new, or the existing one when not
            forced), or None when refused or when the spawn failed.
        """
        if self.registry.is_recently_deleted(stream_id):
            if not force:
                logger.info(f"Refusing to start recently deleted stream {stream_id}")
                return None
            self.registry.clear_deleted(stream_id)

        session = self.registry.get(stream_id)
        previous_attempts = session.attempts if session else 0

        if session is not None and session.is_running:
            if not force:
                return session.process

            old = session.process
            assert old is not None
            logger.warning(f"Force launch for {stream_id}: killing running process {old.pid}")
            self.monitor.detach(stream_id, old)
            await force_kill(old)
            session.process = None

        if resolution is None and session is not None:
            resolution = session.resolution
        resolution = Resolution.parse(resolution)

        args = build_ffmpeg_args(
            source_url, resolution, publish_url_for(self.cfg.RTMP_PUBLISH_BASE, stream_id)
        )

        logger.info(f"Starting ffmpeg for {stream_id} -> {source_url} at {resolution}")
        self.publish(StreamEventType.STARTING, stream_id, source_url=source_url)

        session = self.registry.get_or_create(stream_id, source_url, resolution)

        try:
            process = await self._spawner(self.cfg.FFMPEG_PATH, *args)
        except (OSError, ValueError) as e:
            logger.error(f"ffmpeg spawn failed for {stream_id}: {e}")
            session.process = None
            self.publish(StreamEventType.ERROR, stream_id, source_url=source_url, error=str(e))
            return None

        session.process = process
        session.started_at = self.clock.now()
        session.attempts = 0 if force else previous_attempts
        session.current_bitrate = None
        session.last_update_at = None

        self.monitor.attach(stream_id, process)
        self._watch_exit(stream_id, process, source_url)

        logger.info(f"ffmpeg started for {stream_id} (pid={process.pid})")
        self.publish(StreamEventType.STARTED, stream_id, **self.stream_fields(stream_id, source_url))
        return process

    def _watch_exit(self, stream_id: str, process: ProcessHandle, source_url: str) -> None:
        task = asyncio.create_task(self._wait_exit(stream_id, process, source_url), name=f"exit:{stream_id}")
        self._exit_watchers.add(task)
        task.add_done_callback(self._exit_watchers.discard)

    async def _wait_exit(self, stream_id: str, process: ProcessHandle, source_url: str) -> None:
        returncode = await process.wait()
        logger.info(f"ffmpeg for {stream_id} exited (code={returncode})")

        self.monitor.detach(stream_id, process)
        session = self.registry.get(stream_id)
        if session is not None and session.process is process:
            session.process = None

        self.publish(StreamEventType.STOPPED, stream_id, source_url=source_url, returncode=returncode)

    async def aclose(self) -> None:
        for task in list(self._exit_watchers):
            task.cancel()
        await asyncio.gather(*self._exit_watchers, return_exceptions=True)
