# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Machine Reservation - FIFO queueing and timed occupancy for shared machines.

This library arbitrates a small fixed pool of exclusive-use machines (for
example the washing machines of a shared laundry room). Users start a free
machine or join its wait queue; occupancies end automatically and the next
waiter is promoted.

Key Features:
    - One lock serializing every mutation, one completion timer per machine
    - FIFO queues with per-entry reservation durations
    - Pre-start notifications shortly before a waiter's predicted turn
    - Snapshot broadcasting on every change and on a fixed period
    - Multiple backend options (memory, Redis)
    - Prometheus metrics

Quick Start:
    >>> from machine_reservation import MachineService, create_scheduler
    >>>
    >>> scheduler = create_scheduler()
    >>> async with scheduler:
    ...     service = MachineService(scheduler)
    ...     await service.start(machine_id=1, user_id=7, minutes=30)
    ...     await service.join(machine_id=1, user_id=8)

Main Exports:
    - ReservationScheduler, create_scheduler: Core scheduling components
    - MachineService: Caller-facing structured results
    - MemoryBackend, RedisBackend: Storage backends
    - InMemoryPublisher, RedisPublisher: Subscriber fan-out
    - SchedulerConfig: Configuration options

Note: RedisBackend and RedisPublisher require the 'redis' extra. Install with:
    pip install machine-reservation[redis]

Version: 1.0.0
"""

__version__ = "1.0.0"

from typing import TYPE_CHECKING

from .backends import (
    BaseBackend,
    HealthCheckResult,
    MemoryBackend,
)
from .exceptions import (
    AlreadyActiveError,
    BackendConnectionError,
    BackendOperationError,
    ConfigurationError,
    InvalidDurationError,
    MachineInUseError,
    MachineNotFoundError,
    MachineReservationError,
    SchedulerNotRunningError,
)
from .publishing import (
    MACHINES_CHANNEL,
    NOTIFICATIONS_CHANNEL,
    WASH_HISTORY_CHANNEL,
    InMemoryPublisher,
    PublisherProtocol,
)
from .scheduler import (
    ReservationScheduler,
    SchedulerConfig,
    create_scheduler,
)
from .service import MachineService
from .types import (
    DEFAULT_RESERVATION_MINUTES,
    JoinResult,
    Machine,
    MachineState,
    PreNotifyEvent,
    QueueEntry,
    ResetResult,
    StartResult,
)

# Lazy import for optional redis components
if TYPE_CHECKING:
    from .backends import RedisBackend
    from .publishing import RedisPublisher

__all__ = [
    "DEFAULT_RESERVATION_MINUTES",
    # Channels
    "MACHINES_CHANNEL",
    "NOTIFICATIONS_CHANNEL",
    "WASH_HISTORY_CHANNEL",
    "AlreadyActiveError",
    "BackendConnectionError",
    "BackendOperationError",
    # Backends
    "BaseBackend",
    "ConfigurationError",
    "HealthCheckResult",
    # Publishing
    "InMemoryPublisher",
    "InvalidDurationError",
    # Types
    "JoinResult",
    "Machine",
    "MachineInUseError",
    "MachineNotFoundError",
    # Exceptions
    "MachineReservationError",
    # Service
    "MachineService",
    "MachineState",
    "MemoryBackend",
    "PreNotifyEvent",
    "PublisherProtocol",
    "QueueEntry",
    "RedisBackend",  # Lazy loaded - requires redis extra
    "RedisPublisher",  # Lazy loaded - requires redis extra
    # Scheduler
    "ReservationScheduler",
    "ResetResult",
    "SchedulerConfig",
    "SchedulerNotRunningError",
    "StartResult",
    "create_scheduler",
]


def __getattr__(name: str) -> type:
    """Lazy import for optional redis components."""
    if name == "RedisBackend":
        from .backends import RedisBackend

        return RedisBackend
    if name == "RedisPublisher":
        from .publishing import RedisPublisher

        return RedisPublisher
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
