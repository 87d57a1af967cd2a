# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
In-process publisher with per-subscriber queues.

Every subscriber gets its own bounded asyncio.Queue. When a queue is full
the oldest message is dropped: each published snapshot replaces the previous
one, so a slow subscriber only ever needs the newest messages.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict, deque
from typing import Any

logger = logging.getLogger(__name__)


class Subscription:
    """
    A subscriber's view of one channel.

    Supports ``async for`` iteration and ``async with`` for automatic
    unsubscription.

    Example:
        async with publisher.subscribe("machines") as sub:
            snapshot = await sub.get()
    """

    def __init__(
        self, publisher: InMemoryPublisher, channel: str, max_queue_size: int
    ) -> None:
        self.channel = channel
        self.dropped = 0
        self._publisher = publisher
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=max_queue_size)
        self._closed = False

    def _deliver(self, payload: Any) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(payload)

    async def get(self) -> Any:
        """Wait for the next message."""
        return await self._queue.get()

    def get_nowait(self) -> Any:
        """Return the next message or raise asyncio.QueueEmpty."""
        return self._queue.get_nowait()

    def pending(self) -> int:
        """Number of messages waiting to be read."""
        return self._queue.qsize()

    def close(self) -> None:
        """Stop receiving messages."""
        if not self._closed:
            self._closed = True
            self._publisher._unsubscribe(self)

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> Any:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        return await self._queue.get()

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class InMemoryPublisher:
    """
    Fan-out publisher for subscribers living in the same process.

    The publisher also keeps a short per-channel history, which is what
    tests and late subscribers use to read the latest state.
    """

    def __init__(self, max_queue_size: int = 100, history_size: int = 100) -> None:
        """
        Initialize the publisher.

        Args:
            max_queue_size: Default bound for each subscriber queue
            history_size: Number of recent messages kept per channel
        """
        if max_queue_size < 1:
            raise ValueError("max_queue_size must be at least 1")
        if history_size < 1:
            raise ValueError("history_size must be at least 1")

        self.max_queue_size = max_queue_size
        self.history_size = history_size
        self._subscribers: dict[str, set[Subscription]] = defaultdict(set)
        self._history: dict[str, deque[Any]] = {}
        self.publish_count = 0

    async def publish(self, channel: str, payload: Any) -> None:
        """Deliver ``payload`` to every current subscriber of ``channel``."""
        history = self._history.get(channel)
        if history is None:
            history = self._history[channel] = deque(maxlen=self.history_size)
        history.append(payload)
        self.publish_count += 1

        for subscription in list(self._subscribers.get(channel, ())):
            subscription._deliver(payload)

    def subscribe(self, channel: str, max_queue_size: int | None = None) -> Subscription:
        """Register a new subscriber for ``channel``."""
        subscription = Subscription(
            self, channel, max_queue_size or self.max_queue_size
        )
        self._subscribers[channel].add(subscription)
        logger.debug("New subscriber on channel %s", channel)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.channel)
        if subscribers is not None:
            subscribers.discard(subscription)
            if not subscribers:
                del self._subscribers[subscription.channel]

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, ()))

    def history(self, channel: str) -> list[Any]:
        """Recent messages on ``channel``, oldest first."""
        return list(self._history.get(channel, ()))

    def last(self, channel: str) -> Any | None:
        """The most recent message on ``channel``, or None."""
        history = self._history.get(channel)
        return history[-1] if history else None


__all__ = ["InMemoryPublisher", "Subscription"]
