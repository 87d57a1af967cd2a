# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Backend implementations for the machine registry and queue store.

This module provides the abstract base class and concrete implementations
for reservation state storage backends.

Available backends:
- BaseBackend: Abstract base class defining the backend interface
- MemoryBackend: In-memory backend for single-process deployments (default)
- RedisBackend: Redis-based backend (requires redis extra)

Supporting types:
- HealthCheckResult: Structured result from backend health checks

Note: RedisBackend is lazily imported to avoid requiring the redis package
when only using MemoryBackend.
"""

from typing import TYPE_CHECKING, cast

from machine_reservation.backends.base import (
    BaseBackend,
    HealthCheckResult,
)
from machine_reservation.backends.memory import MemoryBackend

# Lazy imports for optional redis backend
if TYPE_CHECKING:
    from machine_reservation.backends.redis import RedisBackend

__all__ = [
    # Base classes
    "BaseBackend",
    "HealthCheckResult",
    # Memory backend
    "MemoryBackend",
    # Redis backend (lazy loaded)
    "RedisBackend",
]


def __getattr__(name: str) -> type:
    """Lazy import for optional redis backend components."""
    if name == "RedisBackend":
        try:
            from machine_reservation.backends import redis as redis_module

            return cast(type, getattr(redis_module, name))
        except ImportError as e:  # pragma: no cover
            raise ImportError(  # pragma: no cover
                f"'{name}' requires the 'redis' extra. "
                "Install with: pip install machine-reservation[redis]"
            ) from e
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
