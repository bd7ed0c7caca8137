"""Throughput monitoring of running transcoders."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from loguru import logger

from app.schemas import StreamEventType

from ._base import BaseService
from .process_control import ProcessHandle

_STDERR_CHUNK_SIZE = 4096


def _parse_int(value: str) -> int | None:
    try:
        return int(value.strip())
    except ValueError:
        return None


class ProgressTracker:
    """Turns ffmpeg `-progress` output into bitrate samples.

    ffmpeg writes blocks of `key=value` lines terminated by a `progress=` line.
    Each complete block carrying a cumulative byte count and an output
    timestamp (microseconds) is compared with the previous one; the rate over
    that interval is the sample. Blocks with missing or unparsable values are
    skipped without touching the previous reference point.
    """

    def __init__(self) -> None:
        self._last_size = 0
        self._last_time = 0
        self._total_size: int | None = None
        self._out_time: int | None = None

    def feed_line(self, line: str) -> float | None:
        """Consume one line; return a sample in Mbps when a block completes one."""
        key, sep, value = line.strip().partition("=")
        if not sep:
            return None

        if key == "total_size":
            self._total_size = _parse_int(value)
        elif key in ("out_time_us", "out_time_ms"):
            # Both keys carry microseconds in current ffmpeg builds.
            parsed = _parse_int(value)
            if parsed is not None:
                self._out_time = parsed
        elif key == "progress":
            return self._complete_block()
        return None

    def _complete_block(self) -> float | None:
        total_size, out_time = self._total_size, self._out_time
        self._total_size = None
        self._out_time = None

        if not total_size or not out_time:
            return None

        bitrate = None
        if self._last_size > 0 and self._last_time > 0:
            bytes_delta = total_size - self._last_size
            time_delta = (out_time - self._last_time) / 1e6
            if time_delta > 0 and bytes_delta >= 0:
                bitrate = round(bytes_delta / time_delta * 8 / 1e6, 2)

        self._last_size = total_size
        self._last_time = out_time
        return bitrate


@dataclass
class _Attachment:
    process: ProcessHandle
    tasks: list[asyncio.Task] = field(default_factory=list)


class BitrateMonitor(BaseService):
    """Reads a transcoder's progress and diagnostic pipes for one session each."""

    def __init__(self, ctx):
        super().__init__(ctx)
        self._attachments: dict[str, _Attachment] = {}

    def attach(self, stream_id: str, process: ProcessHandle) -> None:
        self.detach(stream_id)

        attachment = _Attachment(process=process)
        if process.stdout is not None:
            attachment.tasks.append(
                asyncio.create_task(
                    self._read_progress(stream_id, process, ProgressTracker()),
                    name=f"progress:{stream_id}",
                )
            )
        if process.stderr is not None:
            attachment.tasks.append(
                asyncio.create_task(
                    self._relay_diagnostics(stream_id, process),
                    name=f"diagnostics:{stream_id}",
                )
            )
        self._attachments[stream_id] = attachment
        logger.debug(f"Monitor attached to stream {stream_id} (pid={process.pid})")

    def detach(self, stream_id: str, process: ProcessHandle | None = None) -> None:
        """Stop reading a session's pipes.

        When `process` is given, only an attachment to that exact process is
        removed, so a late exit of an old process cannot detach its successor.
        """
        attachment = self._attachments.get(stream_id)
        if attachment is None:
            return
        if process is not None and attachment.process is not process:
            return

        del self._attachments[stream_id]
        for task in attachment.tasks:
            if not task.done():
                task.cancel()
        logger.debug(f"Monitor detached from stream {stream_id}")

    def is_attached(self, stream_id: str) -> bool:
        return stream_id in self._attachments

    def record_sample(self, stream_id: str, process: ProcessHandle, bitrate: float) -> None:
        session = self.registry.get(stream_id)
        if session is None or session.process is not process:
            return

        now = self.clock.now()
        session.append_sample(bitrate, now)
        logger.debug(f"Stream {stream_id} bitrate: {bitrate} Mbps")
        self.logs.write_bitrate(session.log_name, now, bitrate)

        if session.issue_window is not None:
            start_time = session.issue_window.start_time
            session.issue_window = None
            self.logs.write_signal_loss_end(session.log_name, start_time, now)
            logger.info(f"Stream {stream_id} signal recovered after {now - start_time:.1f}s")

        self.publish(
            StreamEventType.BITRATE,
            stream_id,
            **self.stream_fields(stream_id, session.source_url),
            bitrate=bitrate,
            estimated=False,
        )

    async def _read_progress(self, stream_id: str, process: ProcessHandle, tracker: ProgressTracker) -> None:
        assert process.stdout is not None
        try:
            async for raw in process.stdout:
                bitrate = tracker.feed_line(raw.decode("utf-8", errors="replace"))
                if bitrate is not None:
                    self.record_sample(stream_id, process, bitrate)
        except (ValueError, OSError) as e:
            logger.warning(f"Progress reader for stream {stream_id} stopped: {e}")

    async def _relay_diagnostics(self, stream_id: str, process: ProcessHandle) -> None:
        assert process.stderr is not None
        try:
            while chunk := await process.stderr.read(_STDERR_CHUNK_SIZE):
                text = chunk.decode("utf-8", errors="replace").strip()
                session = self.registry.get(stream_id)
                if not text or session is None or session.process is not process:
                    continue
                self.publish(StreamEventType.FFMPEG_LOG, stream_id, log=text)
        except OSError as e:
            logger.warning(f"Diagnostics reader for stream {stream_id} stopped: {e}")
