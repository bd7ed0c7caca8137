"""Registry of live stream sessions.

The registry is the only holder of session state. One `StreamSession`
aggregates everything known about a source: its process handle, throughput
telemetry, viewers and open signal-loss incident. Other components look
sessions up here and never keep their own copy of a process handle.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from app.schemas import Resolution

from .clock import Clock, system_clock, to_ms
from .process_control import ProcessHandle, is_alive

HISTORY_MAX_SAMPLES = 3600
HISTORY_MAX_AGE_SECONDS = 24 * 60 * 60


@dataclass(slots=True)
class BitrateSample:
    time: int  # epoch milliseconds
    bitrate: float  # Mbps
    estimated: bool = False

    def to_dict(self) -> dict:
        return {"time": self.time, "bitrate": self.bitrate, "estimated": self.estimated}


@dataclass(slots=True)
class IssueWindow:
    start_time: float  # epoch seconds


def prune_history(
    samples: list[BitrateSample],
    now: float,
    *,
    max_samples: int = HISTORY_MAX_SAMPLES,
    max_age_seconds: float = HISTORY_MAX_AGE_SECONDS,
) -> list[BitrateSample]:
    """Drop samples older than `max_age_seconds` and keep the newest `max_samples`."""
    oldest_ms = to_ms(now - max_age_seconds)
    kept = [s for s in samples if s.time >= oldest_ms]
    return kept[-max_samples:]


@dataclass(eq=False)
class StreamSession:
    stream_id: str
    source_url: str
    display_name: str | None = None
    resolution: Resolution = Resolution.P480
    process: ProcessHandle | None = None
    attempts: int = 0
    started_at: float | None = None
    current_bitrate: float | None = None
    bitrate_history: list[BitrateSample] = field(default_factory=list)
    last_update_at: float | None = None
    viewer_count: int = 0
    issue_window: IssueWindow | None = None

    @property
    def is_running(self) -> bool:
        return is_alive(self.process)

    @property
    def log_name(self) -> str:
        return self.display_name or self.stream_id

    def append_sample(self, bitrate: float, now: float, *, estimated: bool = False) -> BitrateSample:
        """Record a throughput sample, keeping history time-ordered and bounded."""
        sample_time = to_ms(now)
        if self.bitrate_history and sample_time < self.bitrate_history[-1].time:
            # Wall clock stepped backwards; never break time ordering.
            sample_time = self.bitrate_history[-1].time

        sample = BitrateSample(time=sample_time, bitrate=bitrate, estimated=estimated)
        self.bitrate_history.append(sample)
        if len(self.bitrate_history) > HISTORY_MAX_SAMPLES:
            del self.bitrate_history[: len(self.bitrate_history) - HISTORY_MAX_SAMPLES]

        self.current_bitrate = bitrate
        self.last_update_at = now
        return sample

    def recent_history(self, limit: int) -> list[BitrateSample]:
        if limit <= 0:
            return []
        return self.bitrate_history[-limit:]


class StreamRegistry:
    """Maps stream id to its `StreamSession` and tracks recently deleted ids."""

    def __init__(self, clock: Clock = system_clock, cleanup_block_seconds: float = 5 * 60):
        self._clock = clock
        self._cleanup_block_seconds = cleanup_block_seconds
        self._sessions: dict[str, StreamSession] = {}
        self._deleted_until: dict[str, float] = {}
        # History restored from a snapshot for ids that have no session yet.
        self._restored_history: dict[str, list[BitrateSample]] = {}

    def __contains__(self, stream_id: str) -> bool:
        return stream_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, stream_id: str) -> StreamSession | None:
        return self._sessions.get(stream_id)

    def ids(self) -> list[str]:
        return list(self._sessions)

    def sessions(self) -> list[StreamSession]:
        return list(self._sessions.values())

    def get_or_create(
        self,
        stream_id: str,
        source_url: str,
        resolution: Resolution | None = None,
    ) -> StreamSession:
        """Return the session for `stream_id`, creating it on first sight.

        An existing session keeps its history; its source URL is refreshed
        because upstream resolution may yield a new direct URL for the same id.
        """
        session = self._sessions.get(stream_id)
        if session is None:
            session = StreamSession(
                stream_id=stream_id,
                source_url=source_url,
                resolution=resolution or Resolution.P480,
                bitrate_history=self._restored_history.pop(stream_id, []),
            )
            self._sessions[stream_id] = session
            logger.debug(f"Registered stream session {stream_id}")
        else:
            session.source_url = source_url
            if resolution is not None:
                session.resolution = resolution
        return session

    def destroy(self, stream_id: str) -> StreamSession | None:
        """Remove every trace of a session and start its re-creation cooldown."""
        session = self._sessions.pop(stream_id, None)
        self._restored_history.pop(stream_id, None)
        now = self._clock.now()
        self.prune_deleted(now)
        self._deleted_until[stream_id] = now + self._cleanup_block_seconds
        return session

    # ==================== RECENTLY DELETED ====================

    def is_recently_deleted(self, stream_id: str) -> bool:
        until = self._deleted_until.get(stream_id)
        if until is None:
            return False
        if self._clock.now() >= until:
            del self._deleted_until[stream_id]
            return False
        return True

    def clear_deleted(self, stream_id: str) -> None:
        self._deleted_until.pop(stream_id, None)

    @property
    def deleted_count(self) -> int:
        return len(self._deleted_until)

    def prune_deleted(self, now: float | None = None) -> int:
        """Forget cooldowns that have run out. Returns how many were dropped."""
        now = self._clock.now() if now is None else now
        expired = [sid for sid, until in self._deleted_until.items() if now >= until]
        for stream_id in expired:
            del self._deleted_until[stream_id]
        return len(expired)

    # ==================== HISTORY ====================

    def history(self, stream_id: str) -> list[BitrateSample] | None:
        session = self._sessions.get(stream_id)
        if session is not None:
            return session.bitrate_history
        return self._restored_history.get(stream_id)

    def history_snapshot(self) -> dict[str, list[BitrateSample]]:
        snapshot = {k: list(v) for k, v in self._restored_history.items()}
        for stream_id, session in self._sessions.items():
            snapshot[stream_id] = list(session.bitrate_history)
        return snapshot

    def restore_history(self, histories: dict[str, list[BitrateSample]]) -> None:
        for stream_id, samples in histories.items():
            session = self._sessions.get(stream_id)
            if session is not None:
                session.bitrate_history = samples
            else:
                self._restored_history[stream_id] = samples
