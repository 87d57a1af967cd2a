# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Reservation scheduler for Machine Reservation.

The scheduler arbitrates a fixed pool of exclusive-use machines. Users either
start a free machine directly or join its FIFO queue; when an occupancy ends
its completion timer frees the machine and promotes the queue head.

Every mutation (join, start, timer fire, reset) runs under one
``asyncio.Lock`` and publishes its snapshot refresh before releasing it.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Any

from typing_extensions import Self

from ..backends.base import BaseBackend, HealthCheckResult
from ..backends.memory import MemoryBackend
from ..exceptions import (
    AlreadyActiveError,
    ConfigurationError,
    InvalidDurationError,
    MachineInUseError,
    MachineNotFoundError,
    MachineReservationError,
    SchedulerNotRunningError,
)
from ..observability.collector import UnifiedMetricsCollector, get_metrics_collector
from ..observability.constants import (
    COMPLETIONS_TOTAL,
    JOINS_TOTAL,
    OPERATION_DURATION_SECONDS,
    PROMOTIONS_TOTAL,
    QUEUE_DEPTH,
    REJECTIONS_TOTAL,
    RESETS_TOTAL,
    STARTS_TOTAL,
    TIMERS_PENDING,
)
from ..publishing.base import WASH_HISTORY_CHANNEL, PublisherProtocol
from ..publishing.memory import InMemoryPublisher
from ..types.machine import Machine
from ..types.queue import QueueEntry
from ..types.results import JoinResult, ResetResult, StartResult
from ..types.snapshot import MachineState, snapshot_to_wire
from .broadcaster import StateBroadcaster
from .clock import Clock, utcnow
from .config import SchedulerConfig
from .notifier import Notifier
from .timers import CompletionTimers

logger = logging.getLogger(__name__)


class ReservationScheduler:
    """
    The reservation and queue scheduling engine.

    The scheduler is responsible for:
    - Creating the fixed machine set and recreating it on reset.
    - Enforcing that a user waits for, or occupies, at most one machine.
    - Arming one completion timer per occupied machine and promoting the
      queue head when it fires.
    - Running the notifier and broadcaster background loops.

    Example:
        async with ReservationScheduler() as scheduler:
            await scheduler.start_machine(machine_id=1, user_id=7, minutes=30)
            result = await scheduler.join(machine_id=1, user_id=8)
            print(result.position)
    """

    def __init__(
        self,
        backend: BaseBackend | None = None,
        publisher: PublisherProtocol | None = None,
        config: SchedulerConfig | None = None,
        metrics_collector: UnifiedMetricsCollector | None = None,
        clock: Clock = utcnow,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            backend: Machine registry and queue store (defaults to MemoryBackend)
            publisher: Subscriber fan-out (defaults to InMemoryPublisher)
            config: Scheduler configuration (defaults to SchedulerConfig())
            metrics_collector: Metrics collector to use instead of the global
                singleton; ignored when metrics are disabled
            clock: Source of the current UTC instant
        """
        self.config = config or SchedulerConfig()
        self.backend = backend or MemoryBackend()
        self.publisher = publisher or InMemoryPublisher()
        self._clock = clock

        self._lock = asyncio.Lock()
        self._shutdown_lock = asyncio.Lock()
        self._running = False
        self._wash_history: set[int] = set()

        self._setup_metrics(metrics_collector)

        self._timers = CompletionTimers(self._on_timer_fire)
        self.notifier = Notifier(
            read_state=self._read_state,
            publisher=self.publisher,
            config=self.config,
            metrics_collector=self.metrics_collector,
            clock=clock,
            lock=self._lock,
        )
        self.broadcaster = StateBroadcaster(
            build_snapshot=self._build_snapshot,
            publisher=self.publisher,
            lock=self._lock,
            interval=self.config.broadcast_interval,
            metrics_collector=self.metrics_collector,
        )

        logger.info(
            f"Initialized {self.__class__.__name__} with "
            f"{self.config.machine_count} machines on {type(self.backend).__name__}"
        )

    def _setup_metrics(self, metrics_collector: UnifiedMetricsCollector | None) -> None:
        """Setup metrics collection if enabled."""
        self.metrics_enabled = self.config.metrics_enabled
        if not self.metrics_enabled:
            self.metrics_collector: UnifiedMetricsCollector | None = None
            return

        collector = metrics_collector or get_metrics_collector(
            enable_prometheus=self.config.prometheus_enabled
        )
        if (
            self.config.prometheus_enabled
            and self.config.start_prometheus_server
            and not collector.server_running
        ):
            collector.start_http_server(
                self.config.prometheus_host, self.config.prometheus_port
            )
        self.metrics_collector = collector

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def start(self) -> None:
        """
        Start the scheduler.

        Creates the machine set when the backend holds none. Occupied
        machines found in the backend get their completion timers re-armed.
        """
        if self._running:
            return

        async with self._lock:
            if await self.backend.count_machines() == 0:
                await self._create_machines()
            else:
                await self._restore_timers()
            self._running = True
            await self.broadcaster.refresh(trigger="startup")

        if self.config.broadcast_enabled:
            await self.broadcaster.start()
        if self.config.notify_enabled:
            await self.notifier.start()

        logger.info(f"{self.__class__.__name__} started")

    async def stop(self) -> None:
        """Stop the background loops and cancel every completion timer."""
        async with self._shutdown_lock:
            if not self._running:
                return

            self._running = False

            await self.notifier.stop()
            await self.broadcaster.stop()

            async with self._lock:
                self._timers.cancel_all()
            await self._timers.shutdown()
            self._update_timer_gauge()

            logger.info(f"{self.__class__.__name__} stopped successfully")

    def is_running(self) -> bool:
        """Check if the scheduler is running."""
        return self._running

    async def __aenter__(self) -> Self:
        """
        Async context manager entry.

        Starts the scheduler and returns self for use in async with blocks.
        """
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Async context manager exit. Stops the scheduler."""
        await self.stop()

    def _ensure_running(self) -> None:
        if not self._running:
            raise SchedulerNotRunningError()

    # ==========================================================================
    # Operations
    # ==========================================================================

    async def join(
        self, machine_id: int, user_id: int, minutes: int | None = None
    ) -> JoinResult:
        """
        Queue ``user_id`` for ``machine_id``.

        Joining the queue a user already waits in returns the existing
        position without creating a second entry.

        Args:
            machine_id: The machine to wait for
            user_id: The waiting user
            minutes: Requested duration, or None for the configured default

        Returns:
            JoinResult with the user's 1-based queue position

        Raises:
            InvalidDurationError: If minutes is not a positive integer
            MachineNotFoundError: If the machine does not exist
            AlreadyActiveError: If the user occupies any machine or waits
                for a different one
            SchedulerNotRunningError: If the scheduler is stopped
        """
        started = time.perf_counter()
        try:
            if minutes is not None:
                self._validate_minutes(minutes)

            async with self._lock:
                self._ensure_running()
                await self._require_machine(machine_id)

                occupied = await self._find_occupied(user_id)
                if occupied is not None:
                    raise AlreadyActiveError(user_id, occupied.id)

                queued = await self._find_queued(user_id)
                if queued is not None:
                    if queued.machine_id != machine_id:
                        raise AlreadyActiveError(user_id, queued.machine_id)
                    queue = await self.backend.get_queue(machine_id)
                    position = [e.id for e in queue].index(queued.id) + 1
                    logger.debug(
                        f"User {user_id} already queued for machine {machine_id} "
                        f"at position {position}"
                    )
                    return JoinResult(machine_id, queued.id, position)

                entry = await self.backend.add_queue_entry(
                    machine_id, user_id, minutes, self._clock()
                )
                position = len(await self.backend.get_queue(machine_id))
                logger.debug(
                    f"User {user_id} joined machine {machine_id} at position {position}"
                )

                if self.metrics_collector:
                    self.metrics_collector.inc_counter(
                        JOINS_TOTAL, labels={"machine_id": str(machine_id)}
                    )
                await self.broadcaster.refresh()
                return JoinResult(machine_id, entry.id, position)
        except MachineReservationError as e:
            self._record_rejection("join", e)
            raise
        finally:
            self._observe_duration("join", started)

    async def start_machine(
        self, machine_id: int, user_id: int, minutes: int
    ) -> StartResult:
        """
        Occupy ``machine_id`` for ``user_id`` starting now.

        A waiting entry of the user on this machine is removed first, even
        if the machine then turns out to be occupied.

        Raises:
            InvalidDurationError: If minutes is not a positive integer
            MachineNotFoundError: If the machine does not exist
            AlreadyActiveError: If the user occupies or waits for a
                different machine
            MachineInUseError: If the machine is occupied, including by
                the same user
            SchedulerNotRunningError: If the scheduler is stopped
        """
        started = time.perf_counter()
        try:
            self._validate_minutes(minutes)

            async with self._lock:
                self._ensure_running()
                machine = await self._require_machine(machine_id)

                occupied = await self._find_occupied(user_id)
                if occupied is not None and occupied.id != machine_id:
                    raise AlreadyActiveError(user_id, occupied.id)

                queued = await self._find_queued(user_id)
                if queued is not None and queued.machine_id != machine_id:
                    raise AlreadyActiveError(user_id, queued.machine_id)

                if queued is not None:
                    await self.backend.delete_queue_entry(queued.id)
                    self.notifier.forget(queued.id)
                    logger.debug(
                        f"Removed queue entry {queued.id} of user {user_id} "
                        f"on machine {machine_id}"
                    )

                if machine.in_use:
                    if queued is not None:
                        await self.broadcaster.refresh()
                    raise MachineInUseError(machine_id, machine.current_user_id)

                end_time = self._end_time(self._clock(), minutes)
                machine.occupy(user_id, end_time)
                await self.backend.save_machine(machine)
                self._arm(machine)

                logger.info(
                    f"User {user_id} started {machine.name} until {end_time.isoformat()}"
                )
                if self.metrics_collector:
                    self.metrics_collector.inc_counter(
                        STARTS_TOTAL, labels={"machine_id": str(machine_id)}
                    )
                await self.broadcaster.refresh()
                return StartResult(machine_id, user_id, end_time)
        except MachineReservationError as e:
            self._record_rejection("start", e)
            raise
        finally:
            self._observe_duration("start", started)

    async def reset(self) -> ResetResult:
        """
        Discard every machine, queue entry and mark, and recreate the machine set.

        All completion timers are cancelled. The recreated machines get fresh
        ids, so a timer that was already running against a discarded machine
        finds nothing to do.
        """
        started = time.perf_counter()
        try:
            async with self._lock:
                self._ensure_running()

                cancelled = self._timers.cancel_all()
                await self.backend.clear()
                self.notifier.clear()
                self._wash_history.clear()
                await self._create_machines()

                logger.info(f"Reset machine set ({cancelled} timers cancelled)")
                if self.metrics_collector:
                    self.metrics_collector.inc_counter(RESETS_TOTAL)
                    self.metrics_collector.clear_gauge(QUEUE_DEPTH)
                self._update_timer_gauge()

                await self.broadcaster.refresh()
                await self._publish_wash_history()
                return ResetResult(machine_count=self.config.machine_count)
        except MachineReservationError as e:
            self._record_rejection("reset", e)
            raise
        finally:
            self._observe_duration("reset", started)

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def list_machines(self) -> list[Machine]:
        """Every machine ordered by id."""
        async with self._lock:
            return await self.backend.list_machines()

    async def get_queue(self, machine_id: int) -> list[QueueEntry]:
        """Queue of ``machine_id`` in service order; empty for unknown ids."""
        async with self._lock:
            return await self.backend.get_queue(machine_id)

    async def get_wash_history(self) -> list[int]:
        """Users whose reservation completed since the last reset, sorted."""
        async with self._lock:
            return sorted(self._wash_history)

    async def snapshot(self) -> list[dict[str, Any]]:
        """The wire snapshot the broadcaster would publish now."""
        async with self._lock:
            return snapshot_to_wire(await self._build_snapshot())

    async def health_check(self) -> HealthCheckResult:
        return await self.backend.health_check()

    def get_metrics(self) -> dict[str, Any]:
        """Get current scheduler state counts and collector metrics."""
        metrics: dict[str, Any] = {
            "running": self._running,
            "timers_pending": self._timers.pending,
            "notified_entries": self.notifier.notified_count,
            "wash_history_size": len(self._wash_history),
        }
        if self.metrics_collector:
            metrics["collector"] = self.metrics_collector.get_metrics()
        return metrics

    # ==========================================================================
    # Completion
    # ==========================================================================

    async def _on_timer_fire(self, machine_id: int, handle: asyncio.Task[Any]) -> None:
        async with self._lock:
            if not self._timers.release(machine_id, handle):
                logger.debug(f"Ignoring superseded timer for machine {machine_id}")
                return
            self._update_timer_gauge()
            await self._complete(machine_id)

    async def _complete(self, machine_id: int) -> None:
        """
        End the occupancy of ``machine_id`` and promote its queue head.

        Must be called with the lock held.
        """
        machine = await self.backend.get_machine(machine_id)
        if machine is None:
            logger.debug(f"Completion for discarded machine {machine_id} ignored")
            return

        finished_user = machine.current_user_id
        machine.release()
        if finished_user is not None:
            self._wash_history.add(finished_user)
            logger.info(f"User {finished_user} finished on {machine.name}")
            if self.metrics_collector:
                self.metrics_collector.inc_counter(
                    COMPLETIONS_TOTAL, labels={"machine_id": str(machine_id)}
                )

        queue = await self.backend.get_queue(machine_id)
        if queue:
            head = queue[0]
            await self.backend.delete_queue_entry(head.id)
            minutes = head.resolved_minutes(self.config.default_minutes)
            machine.occupy(head.user_id, self._end_time(self._clock(), minutes))
            await self.backend.save_machine(machine)
            self._arm(machine)

            logger.info(
                f"Promoted user {head.user_id} to {machine.name} for {minutes} minutes"
            )
            if self.metrics_collector:
                self.metrics_collector.inc_counter(
                    PROMOTIONS_TOTAL, labels={"machine_id": str(machine_id)}
                )
        else:
            await self.backend.save_machine(machine)

        live = {entry.id for entry in await self.backend.list_queue_entries()}
        self.notifier.retain(live)

        await self.broadcaster.refresh()
        if finished_user is not None:
            await self._publish_wash_history()

    # ==========================================================================
    # Helpers (lock held by the caller unless noted)
    # ==========================================================================

    async def _create_machines(self) -> None:
        for index in range(1, self.config.machine_count + 1):
            await self.backend.create_machine(self.config.machine_name(index))
        logger.debug(f"Created {self.config.machine_count} machines")

    async def _restore_timers(self) -> None:
        restored = 0
        for machine in await self.backend.list_machines():
            if machine.in_use:
                self._arm(machine)
                restored += 1
        if restored:
            logger.info(f"Re-armed {restored} completion timers from stored state")

    async def _require_machine(self, machine_id: int) -> Machine:
        machine = await self.backend.get_machine(machine_id)
        if machine is None:
            raise MachineNotFoundError(machine_id)
        return machine

    async def _find_occupied(self, user_id: int) -> Machine | None:
        for machine in await self.backend.list_machines():
            if machine.current_user_id == user_id:
                return machine
        return None

    async def _find_queued(self, user_id: int) -> QueueEntry | None:
        for entry in await self.backend.list_queue_entries():
            if entry.user_id == user_id:
                return entry
        return None

    def _arm(self, machine: Machine) -> None:
        if machine.end_time is None:
            logger.warning(f"Not arming a timer for free machine {machine.id}")
            return
        delay = (machine.end_time - self._clock()).total_seconds()
        self._timers.arm(machine.id, delay)
        self._update_timer_gauge()

    def _end_time(self, now: datetime, minutes: int) -> datetime:
        return now + timedelta(seconds=self.config.duration_seconds(minutes))

    @staticmethod
    def _validate_minutes(minutes: Any) -> None:
        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 1:
            raise InvalidDurationError(minutes)

    async def _read_state(self) -> list[tuple[Machine, list[QueueEntry]]]:
        """Every machine with its queue. The notifier holds the lock."""
        return [
            (machine, await self.backend.get_queue(machine.id))
            for machine in await self.backend.list_machines()
        ]

    async def _build_snapshot(self) -> list[MachineState]:
        return [
            MachineState.from_records(
                machine,
                await self.backend.get_queue(machine.id),
                self.config.default_minutes,
            )
            for machine in await self.backend.list_machines()
        ]

    async def _publish_wash_history(self) -> None:
        await self.broadcaster.publish_safely(
            WASH_HISTORY_CHANNEL, sorted(self._wash_history)
        )

    def _record_rejection(self, operation: str, error: MachineReservationError) -> None:
        logger.debug(f"{operation} rejected: {error}")
        if self.metrics_collector:
            self.metrics_collector.inc_counter(
                REJECTIONS_TOTAL,
                labels={
                    "operation": operation,
                    "reason": error.code or type(error).__name__,
                },
            )

    def _observe_duration(self, operation: str, started: float) -> None:
        if self.metrics_collector:
            self.metrics_collector.observe_histogram(
                OPERATION_DURATION_SECONDS,
                time.perf_counter() - started,
                labels={"operation": operation},
            )

    def _update_timer_gauge(self) -> None:
        if self.metrics_collector:
            self.metrics_collector.set_gauge(TIMERS_PENDING, self._timers.pending)

    @property
    def timers(self) -> CompletionTimers:
        """The completion timer arena."""
        return self._timers


# Factory function for easy creation with dependency injection
def create_scheduler(
    backend: str | BaseBackend | None = None,
    publisher: str | PublisherProtocol | None = None,
    config: SchedulerConfig | None = None,
    redis_url: str | None = None,
    **kwargs: Any,
) -> ReservationScheduler:
    """
    Factory function to create a ReservationScheduler.

    Args:
        backend: A backend instance, or "memory" / "redis" (default "memory")
        publisher: A publisher instance, or "memory" / "redis" (default "memory")
        config: Optional scheduler config (a default one is created otherwise)
        redis_url: Redis URL used when backend or publisher is "redis"
        **kwargs: Additional arguments passed to ReservationScheduler

    Returns:
        Configured ReservationScheduler instance

    Raises:
        ConfigurationError: If a backend or publisher name is unknown
    """
    if backend is None or isinstance(backend, str):
        backend = _backend_from_name(backend or "memory", redis_url)
    if publisher is None or isinstance(publisher, str):
        publisher = _publisher_from_name(publisher or "memory", redis_url)

    return ReservationScheduler(
        backend=backend,
        publisher=publisher,
        config=config or SchedulerConfig(),
        **kwargs,
    )


def _backend_from_name(name: str, redis_url: str | None) -> BaseBackend:
    kind = name.lower()
    if kind == "memory":
        return MemoryBackend()
    if kind == "redis":
        from ..backends.redis import RedisBackend

        return RedisBackend(redis_url=redis_url)
    raise ConfigurationError(f"Unknown backend: {name}")


def _publisher_from_name(name: str, redis_url: str | None) -> PublisherProtocol:
    kind = name.lower()
    if kind == "memory":
        return InMemoryPublisher()
    if kind == "redis":
        from ..publishing.redis import RedisPublisher

        return RedisPublisher(redis_url=redis_url)
    raise ConfigurationError(f"Unknown publisher: {name}")


__all__ = ["ReservationScheduler", "create_scheduler"]
