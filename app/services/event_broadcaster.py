"""In-process fan-out of stream events to push-channel observers.

Usage:
    from app.services.event_broadcaster import EventBroadcaster

    broadcaster = EventBroadcaster()

    async with broadcaster.subscribe() as subscription:
        async for event in subscription:
            ...

    broadcaster.publish({"type": "bitrate", "stream_id": "...", "bitrate": 1.2})

Publishing never blocks and never raises: each observer has its own bounded
queue, and an observer that cannot keep up simply misses events.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from loguru import logger

Event = dict[str, Any]


class Subscription:
    """One connected observer."""

    def __init__(self, maxsize: int):
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, event: Event) -> bool:
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    async def get(self, timeout: float | None = None) -> Event | None:
        """Next event, or None if nothing arrived within `timeout` seconds."""
        if timeout is None:
            return await self._queue.get()
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def __aiter__(self) -> AsyncIterator[Event]:
        return self

    async def __anext__(self) -> Event:
        return await self._queue.get()


class EventBroadcaster:
    def __init__(self, queue_size: int = 1000):
        self._queue_size = queue_size
        self._subscribers: set[Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[Subscription]:
        subscription = Subscription(self._queue_size)
        self._subscribers.add(subscription)
        logger.debug(f"Observer connected ({len(self._subscribers)} total)")
        try:
            yield subscription
        finally:
            self._subscribers.discard(subscription)
            logger.debug(f"Observer disconnected ({len(self._subscribers)} total)")

    def publish(self, event: Event) -> None:
        for subscription in list(self._subscribers):
            try:
                if not subscription.offer(event):
                    logger.debug(
                        f"Observer queue full, dropped {event.get('type')} event "
                        f"(dropped so far: {subscription.dropped})"
                    )
            except Exception as e:
                logger.warning(f"Failed to deliver {event.get('type')} event to observer: {e}")
