"""Tests for the in-process event fan-out."""

from app.services.event_broadcaster import EventBroadcaster


class TestEventBroadcaster:
    async def test_every_subscriber_gets_each_event(self):
        broadcaster = EventBroadcaster()

        async with broadcaster.subscribe() as a, broadcaster.subscribe() as b:
            broadcaster.publish({"type": "bitrate", "bitrate": 1.0})

            assert await a.get(timeout=1) == {"type": "bitrate", "bitrate": 1.0}
            assert await b.get(timeout=1) == {"type": "bitrate", "bitrate": 1.0}

    async def test_publish_without_subscribers(self):
        EventBroadcaster().publish({"type": "bitrate"})

    async def test_unsubscribed_on_exit(self):
        broadcaster = EventBroadcaster()

        async with broadcaster.subscribe():
            assert broadcaster.subscriber_count == 1

        assert broadcaster.subscriber_count == 0

    async def test_slow_subscriber_drops_without_blocking_others(self):
        broadcaster = EventBroadcaster(queue_size=2)

        async with broadcaster.subscribe() as slow, broadcaster.subscribe() as fast:
            for i in range(3):
                broadcaster.publish({"n": i})
                assert await fast.get(timeout=1) == {"n": i}

            assert slow.dropped == 1
            assert await slow.get(timeout=1) == {"n": 0}
            assert await slow.get(timeout=1) == {"n": 1}
            assert await slow.get(timeout=0.01) is None

    async def test_get_timeout_returns_none(self):
        broadcaster = EventBroadcaster()

        async with broadcaster.subscribe() as sub:
            assert await sub.get(timeout=0.01) is None

    async def test_async_iteration(self):
        broadcaster = EventBroadcaster()

        async with broadcaster.subscribe() as sub:
            broadcaster.publish({"n": 1})
            async for event in sub:
                assert event == {"n": 1}
                break
