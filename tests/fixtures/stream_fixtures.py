"""Fakes and fixtures for the stream supervisor.

`FakeProcess` stands in for `asyncio.subprocess.Process`: real
`asyncio.StreamReader` pipes the test feeds by hand, and scripted reactions
to terminate/kill. Create it inside a running event loop (async tests or the
`spawner`).
"""

import asyncio
import itertools
from pathlib import Path

import pytest

from app.app_config import AppEnvironConfig
from app.domain.live.stream._base import StreamContext
from app.domain.live.stream.stream_domain import StreamService

_pids = itertools.count(4000)


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.current = start

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> float:
        self.current += seconds
        return self.current


class FakeProcess:
    def __init__(self, *, ignore_terminate: bool = False, ignore_kill: bool = False):
        self.pid = next(_pids)
        self.returncode: int | None = None
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.ignore_terminate = ignore_terminate
        self.ignore_kill = ignore_kill
        self.terminate_calls = 0
        self.kill_calls = 0
        self._exited = asyncio.Event()

    def terminate(self) -> None:
        self.terminate_calls += 1
        if not self.ignore_terminate:
            self.exit(-15)

    def kill(self) -> None:
        self.kill_calls += 1
        if not self.ignore_kill:
            self.exit(-9)

    def exit(self, code: int = 0) -> None:
        if self.returncode is not None:
            return
        self.returncode = code
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    def emit_progress(self, total_size: int, out_time_us: int) -> None:
        self.stdout.feed_data(
            f"total_size={total_size}\nout_time_us={out_time_us}\nprogress=continue\n".encode()
        )

    def emit_stderr(self, text: str) -> None:
        self.stderr.feed_data(text.encode())


class FakeSpawner:
    """Records spawn calls and hands out `FakeProcess` instances."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.processes: list[FakeProcess] = []
        self.error: Exception | None = None
        self.process_options: dict = {}

    async def __call__(self, program: str, *args: str) -> FakeProcess:
        self.calls.append((program, *args))
        if self.error is not None:
            raise self.error
        process = FakeProcess(**self.process_options)
        self.processes.append(process)
        return process

    @property
    def last(self) -> FakeProcess:
        return self.processes[-1]

    def alive(self) -> list[FakeProcess]:
        return [p for p in self.processes if p.returncode is None]


class FakeResolver:
    def __init__(self, mapping: dict[str, str] | None = None):
        self.mapping = mapping or {}
        self.calls: list[str] = []

    async def resolve(self, url: str) -> str:
        self.calls.append(url)
        return self.mapping.get(url, url)


class FakeProber:
    def __init__(self, result: dict | None = None):
        self.result = result or {"format": {"format_name": "flv"}, "streams": []}
        self.calls: list[str] = []

    async def probe(self, source_url: str) -> dict:
        self.calls.append(source_url)
        return self.result


async def settle(rounds: int = 5) -> None:
    """Let background reader and watcher tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cfg(tmp_path: Path) -> AppEnvironConfig:
    return AppEnvironConfig(
        HLS_BASE_URL="http://10.0.0.5:8000",
        RTMP_PUBLISH_BASE="rtmp://127.0.0.1/live",
        MEDIA_ROOT=str(tmp_path / "media"),
        LOGS_DIR=str(tmp_path / "logs"),
        HISTORY_FILE=str(tmp_path / "bitrate_history.json"),
        STOP_TIMEOUT_SECONDS=0.05,
        KILL_CONFIRM_SECONDS=0.05,
        API_IDLE_TIMEOUT_MS=120_000,
        STALE_THRESHOLD_SECONDS=15,
        CLEANUP_BLOCK_SECONDS=300,
        HLS_SEGMENT_SECONDS=6,
    )


@pytest.fixture
def ctx(cfg: AppEnvironConfig, clock: FakeClock) -> StreamContext:
    return StreamContext.from_config(cfg, clock=clock)


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def prober() -> FakeProber:
    return FakeProber()


@pytest.fixture
async def stream_service(ctx: StreamContext, spawner: FakeSpawner, resolver: FakeResolver, prober: FakeProber):
    service = StreamService(ctx, spawner=spawner, resolver=resolver, prober=prober, platform="linux")
    yield service
    await service.controller.shutdown()


__all__ = [
    "FakeClock",
    "FakeProber",
    "FakeProcess",
    "FakeResolver",
    "FakeSpawner",
    "cfg",
    "clock",
    "ctx",
    "prober",
    "resolver",
    "settle",
    "spawner",
    "stream_service",
]
