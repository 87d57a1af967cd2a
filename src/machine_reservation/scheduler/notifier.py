# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Pre-start notifier.

Periodically predicts when each waiting user will get their machine and
publishes a one-shot ``PRE_NOTIFY`` event when that start is near.

For one machine the prediction is sequential: the baseline is the current
occupancy's end time (or now, when the machine is free) and each waiter is
expected to start once every entry ahead of it has used its full duration.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timedelta

from ..observability.collector import UnifiedMetricsCollector
from ..observability.constants import NOTIFIER_ERRORS_TOTAL, PRE_NOTIFICATIONS_TOTAL
from ..publishing.base import NOTIFICATIONS_CHANNEL, PublisherProtocol
from ..types.machine import Machine
from ..types.queue import QueueEntry
from ..types.snapshot import PreNotifyEvent
from .clock import Clock, utcnow
from .config import SchedulerConfig

logger = logging.getLogger(__name__)

StateReader = Callable[[], Awaitable[list[tuple[Machine, list[QueueEntry]]]]]


class Notifier:
    """
    Background loop that warns waiters shortly before their predicted start.

    The notifier owns the set of queue-entry ids that were already warned.
    The scheduler prunes it whenever entries leave their queue, so the set
    stays bounded by the number of waiting entries.

    Each tick reads the state through ``read_state`` and marks the due
    entries while holding ``lock`` (the scheduler lock), then publishes
    without it.
    """

    def __init__(
        self,
        read_state: StateReader,
        publisher: PublisherProtocol,
        config: SchedulerConfig,
        metrics_collector: UnifiedMetricsCollector | None = None,
        clock: Clock = utcnow,
        lock: asyncio.Lock | None = None,
    ) -> None:
        """
        Initialize the notifier.

        Args:
            read_state: Async callable returning every machine with its
                ordered queue; called with ``lock`` held
            publisher: Publisher for the notifications channel
            config: Scheduler configuration (interval, window, durations)
            metrics_collector: Optional metrics collector
            clock: Source of the current UTC instant
            lock: Lock serializing the dedup set with queue mutations
        """
        self._read_state = read_state
        self._lock = lock or asyncio.Lock()
        self._publisher = publisher
        self._config = config
        self._metrics_collector = metrics_collector
        self._clock = clock

        self._notified: set[int] = set()
        self._running = False
        self._task: asyncio.Task[None] | None = None

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def start(self) -> None:
        """Start the periodic notifier loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._loop(), name="pre-start-notifier")
        logger.debug("Notifier loop started")

    async def stop(self) -> None:
        """Stop the periodic notifier loop."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.debug("Notifier loop stopped")

    @property
    def running(self) -> bool:
        return self._running

    async def _loop(self) -> None:
        await asyncio.sleep(self._config.notify_initial_delay)
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._count_error()
                logger.exception("Error in notifier tick: %s", e)
            await asyncio.sleep(self._config.notify_interval)

    # ==========================================================================
    # Dedup set (mutated by the scheduler under its lock)
    # ==========================================================================

    def forget(self, entry_id: int) -> None:
        """Drop the warned mark of an entry that left its queue."""
        self._notified.discard(entry_id)

    def retain(self, live_entry_ids: Iterable[int]) -> None:
        """Keep only the warned marks of entries that are still queued."""
        self._notified.intersection_update(live_entry_ids)

    def clear(self) -> None:
        self._notified.clear()

    def is_notified(self, entry_id: int) -> bool:
        return entry_id in self._notified

    @property
    def notified_count(self) -> int:
        return len(self._notified)

    # ==========================================================================
    # Tick
    # ==========================================================================

    async def run_once(self) -> int:
        """
        Run one notifier tick.

        Due warnings are computed and marked while holding the lock, so a
        mark never outlives its entry; they are published after releasing
        it. A failure for one machine is logged and counted, its unpublished
        marks are dropped so the next tick retries them, and the remaining
        machines are still handled.

        Returns:
            Number of warnings published
        """
        due: list[tuple[Machine, list[PreNotifyEvent]]] = []
        async with self._lock:
            state = await self._read_state()
            now = self._clock()
            for machine, entries in state:
                try:
                    events = self.pending_events(machine, entries, now)
                except Exception:
                    self._count_error()
                    logger.exception("Notifier failed for machine %s", machine.id)
                    continue
                if events:
                    self._notified.update(event.entry_id for event in events)
                    due.append((machine, events))

        published = 0
        for machine, events in due:
            for index, event in enumerate(events):
                try:
                    await self._publisher.publish(
                        NOTIFICATIONS_CHANNEL, event.to_wire()
                    )
                except Exception:
                    self._notified.difference_update(
                        e.entry_id for e in events[index:]
                    )
                    self._count_error()
                    logger.exception("Notifier failed for machine %s", machine.id)
                    break

                published += 1
                if self._metrics_collector:
                    self._metrics_collector.inc_counter(
                        PRE_NOTIFICATIONS_TOTAL,
                        labels={"machine_id": str(machine.id)},
                    )
                logger.info(
                    "Pre-start warning for user %s on %s in %ds",
                    event.user_id,
                    machine.name,
                    event.seconds_until_start,
                )

        return published

    def pending_events(
        self, machine: Machine, entries: list[QueueEntry], now: datetime
    ) -> list[PreNotifyEvent]:
        """
        Compute the warnings due for one machine's queue at ``now``.

        ``entries`` must be in queue order. Entries that were already warned
        are skipped but still push back the predicted start of those behind.
        """
        window = self._config.notify_window_seconds
        baseline = machine.end_time if machine.in_use and machine.end_time else now

        events: list[PreNotifyEvent] = []
        ahead = 0.0
        for entry in entries:
            expected_start = baseline + timedelta(seconds=ahead)
            ahead += self._config.duration_seconds(
                entry.resolved_minutes(self._config.default_minutes)
            )

            delta = (expected_start - now).total_seconds()
            if not 0 < delta <= window or entry.id in self._notified:
                continue

            events.append(
                PreNotifyEvent(
                    machine_id=machine.id,
                    machine_name=machine.name,
                    user_id=entry.user_id,
                    entry_id=entry.id,
                    seconds_until_start=math.ceil(delta),
                    minutes_until_start=round(delta / 60, 2),
                    expected_start_epoch=int(expected_start.timestamp()),
                )
            )
        return events

    def _count_error(self) -> None:
        if self._metrics_collector:
            self._metrics_collector.inc_counter(NOTIFIER_ERRORS_TOTAL)


__all__ = ["Notifier", "StateReader"]
