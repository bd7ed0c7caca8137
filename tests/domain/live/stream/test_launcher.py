"""Tests for transcoder launching."""

import pytest

from app.domain.live.stream._launcher import ProcessLauncher
from app.domain.live.stream._monitor import BitrateMonitor
from app.schemas import Resolution, StreamEventType
from tests.fixtures.stream_fixtures import settle


async def _drain(sub) -> list[dict]:
    events = []
    while (event := await sub.get(timeout=0.01)) is not None:
        events.append(event)
    return events


class TestProcessLauncher:
    @pytest.fixture
    def monitor(self, ctx) -> BitrateMonitor:
        return BitrateMonitor(ctx)

    @pytest.fixture
    async def launcher(self, ctx, monitor, spawner):
        launcher = ProcessLauncher(ctx, monitor, spawner=spawner)
        yield launcher
        await launcher.aclose()

    async def test_launch_spawns_and_registers(self, ctx, launcher, monitor, spawner, clock):
        async with ctx.broadcaster.subscribe() as sub:
            process = await launcher.launch("rtmp://src/live/x", "s1", Resolution.P720)
            events = await _drain(sub)

        session = ctx.registry.get("s1")
        assert process is spawner.last
        assert session.process is process
        assert session.started_at == clock.now()
        assert session.resolution == Resolution.P720
        assert monitor.is_attached("s1")

        program, *args = spawner.calls[0]
        assert program == ctx.cfg.FFMPEG_PATH
        assert args[-1] == "rtmp://127.0.0.1/live/s1"

        types = [e["type"] for e in events]
        assert types == [StreamEventType.STARTING.value, StreamEventType.STARTED.value]
        assert events[1]["hls_abs_url"] == "http://10.0.0.5:8000/live/s1/index.m3u8"

    async def test_idempotent_without_force(self, launcher, spawner):
        first = await launcher.launch("rtmp://src", "s1")
        second = await launcher.launch("rtmp://src", "s1")

        assert first is second
        assert len(spawner.calls) == 1

    async def test_force_replaces_and_resets_attempts(self, ctx, launcher, spawner):
        first = await launcher.launch("rtmp://src", "s1")
        ctx.registry.get("s1").attempts = 3

        second = await launcher.launch("rtmp://src", "s1", force=True)

        assert second is not first
        assert first.kill_calls == 1
        assert spawner.alive() == [second]
        assert ctx.registry.get("s1").attempts == 0

    async def test_spawn_failure_emits_error(self, ctx, launcher, monitor, spawner):
        spawner.error = FileNotFoundError("ffmpeg not found")

        async with ctx.broadcaster.subscribe() as sub:
            process = await launcher.launch("rtmp://src", "s1")
            events = await _drain(sub)

        assert process is None
        assert ctx.registry.get("s1").process is None
        assert not monitor.is_attached("s1")
        assert events[-1]["type"] == StreamEventType.ERROR.value
        assert "ffmpeg not found" in events[-1]["error"]

    async def test_recently_deleted_refused_unless_forced(self, ctx, launcher, spawner):
        ctx.registry.get_or_create("s1", "rtmp://src")
        ctx.registry.destroy("s1")

        assert await launcher.launch("rtmp://src", "s1") is None
        assert spawner.calls == []

        assert await launcher.launch("rtmp://src", "s1", force=True) is not None
        assert ctx.registry.is_recently_deleted("s1") is False

    async def test_exit_publishes_stopped_without_relaunch(self, ctx, launcher, monitor, spawner):
        process = await launcher.launch("rtmp://src", "s1")

        async with ctx.broadcaster.subscribe() as sub:
            process.exit(1)
            await settle()
            events = await _drain(sub)

        session = ctx.registry.get("s1")
        assert session.process is None
        assert not monitor.is_attached("s1")
        assert len(spawner.calls) == 1
        assert events[-1]["type"] == StreamEventType.STOPPED.value
        assert events[-1]["returncode"] == 1

    async def test_late_exit_of_replaced_process_ignored(self, ctx, launcher, monitor):
        old = await launcher.launch("rtmp://src", "s1")
        new = await launcher.launch("rtmp://src", "s1", force=True)
        await settle()

        assert old.returncode is not None
        assert ctx.registry.get("s1").process is new
        assert monitor.is_attached("s1")

    async def test_unknown_resolution_defaults_to_480p(self, ctx, launcher):
        await launcher.launch("rtmp://src", "s1", "4k")
        assert ctx.registry.get("s1").resolution == Resolution.P480
