# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
State broadcaster.

Publishes the full machine/queue snapshot on the machines channel, both on
a fixed period and after every mutation. Publishing failures are logged and
counted here and never reach the operation that triggered the refresh.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..observability.collector import UnifiedMetricsCollector
from ..observability.constants import (
    BROADCASTS_TOTAL,
    MACHINES_IN_USE,
    PUBLISH_ERRORS_TOTAL,
    QUEUE_DEPTH,
)
from ..publishing.base import MACHINES_CHANNEL, PublisherProtocol
from ..types.snapshot import MachineState, snapshot_to_wire

logger = logging.getLogger(__name__)

SnapshotBuilder = Callable[[], Awaitable[list[MachineState]]]


class StateBroadcaster:
    """
    Publishes machine snapshots to subscribers.

    ``build_snapshot`` reads the backend without locking. The broadcaster
    takes ``lock`` itself for periodic ticks; mutation-triggered refreshes
    are called by the scheduler while it already holds the lock, so
    subscribers see refreshes in mutation order.
    """

    def __init__(
        self,
        build_snapshot: SnapshotBuilder,
        publisher: PublisherProtocol,
        lock: asyncio.Lock,
        interval: float = 1.0,
        metrics_collector: UnifiedMetricsCollector | None = None,
    ) -> None:
        self._build_snapshot = build_snapshot
        self._publisher = publisher
        self._lock = lock
        self._interval = interval
        self._metrics_collector = metrics_collector

        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._last_snapshot: list[dict[str, Any]] | None = None

    async def start(self) -> None:
        """Start the periodic broadcast loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._loop(), name="state-broadcaster")
        logger.debug("Broadcast loop started")

    async def stop(self) -> None:
        """Stop the periodic broadcast loop."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.debug("Broadcast loop stopped")

    async def _loop(self) -> None:
        while self._running:
            try:
                async with self._lock:
                    await self.refresh(trigger="tick")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception("Error in broadcast tick: %s", e)
            await asyncio.sleep(self._interval)

    async def refresh(self, trigger: str = "mutation") -> list[dict[str, Any]]:
        """
        Build and publish the current snapshot.

        The caller must hold the scheduler lock.

        Returns:
            The published wire payload
        """
        states = await self._build_snapshot()
        payload = snapshot_to_wire(states)
        self._last_snapshot = payload
        self._update_gauges(states)

        if await self.publish_safely(MACHINES_CHANNEL, payload) and (
            self._metrics_collector
        ):
            self._metrics_collector.inc_counter(
                BROADCASTS_TOTAL, labels={"trigger": trigger}
            )
        return payload

    async def publish_safely(self, channel: str, payload: Any) -> bool:
        """
        Publish ``payload``, logging and counting any failure.

        Returns:
            True if the publisher accepted the payload
        """
        try:
            await self._publisher.publish(channel, payload)
        except Exception as e:
            logger.warning(f"Publish on {channel} failed: {e}")
            if self._metrics_collector:
                self._metrics_collector.inc_counter(
                    PUBLISH_ERRORS_TOTAL, labels={"channel": channel}
                )
            return False
        return True

    def _update_gauges(self, states: list[MachineState]) -> None:
        if not self._metrics_collector:
            return
        self._metrics_collector.set_gauge(
            MACHINES_IN_USE, sum(1 for state in states if state.in_use)
        )
        for state in states:
            self._metrics_collector.set_gauge(
                QUEUE_DEPTH, len(state.queue), labels={"machine_id": str(state.id)}
            )

    @property
    def last_snapshot(self) -> list[dict[str, Any]] | None:
        """The most recently built wire snapshot."""
        return self._last_snapshot

    @property
    def running(self) -> bool:
        return self._running


__all__ = ["SnapshotBuilder", "StateBroadcaster"]
