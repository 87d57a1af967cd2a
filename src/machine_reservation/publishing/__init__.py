# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Publishing collaborators.

Exports:
    PublisherProtocol: What the scheduler needs from a publisher
    InMemoryPublisher: In-process fan-out publisher (default)
    Subscription: A subscriber's queue on an InMemoryPublisher
    RedisPublisher: Redis pub/sub publisher (requires redis extra)
    MACHINES_CHANNEL, NOTIFICATIONS_CHANNEL, WASH_HISTORY_CHANNEL: Channel names
"""

from typing import TYPE_CHECKING, cast

from .base import (
    CHANNELS,
    MACHINES_CHANNEL,
    NOTIFICATIONS_CHANNEL,
    WASH_HISTORY_CHANNEL,
    PublisherProtocol,
)
from .memory import InMemoryPublisher, Subscription

if TYPE_CHECKING:
    from .redis import RedisPublisher

__all__ = [
    "CHANNELS",
    "MACHINES_CHANNEL",
    "NOTIFICATIONS_CHANNEL",
    "WASH_HISTORY_CHANNEL",
    "InMemoryPublisher",
    "PublisherProtocol",
    "RedisPublisher",  # Lazy loaded - requires redis extra
    "Subscription",
]


def __getattr__(name: str) -> type:
    """Lazy import for the optional redis publisher."""
    if name == "RedisPublisher":
        try:
            from machine_reservation.publishing import redis as redis_module

            return cast(type, redis_module.RedisPublisher)
        except ImportError as e:  # pragma: no cover
            raise ImportError(  # pragma: no cover
                f"'{name}' requires the 'redis' extra. "
                "Install with: pip install machine-reservation[redis]"
            ) from e
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
