# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Queue entry types for the per-machine wait lists.

This module defines the record stored for each waiting user and the
default reservation duration applied when a user does not ask for one.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

DEFAULT_RESERVATION_MINUTES = 50
"""Duration used when a reservation does not specify one."""


@dataclass
class QueueEntry:
    """
    A waiting user's reservation request for one machine.

    Entries for one machine are served in ``(created_at, id)`` order. The
    ``id`` is allocated from a monotonic sequence, so it breaks ties between
    entries created within the same clock tick in insertion order.

    Attributes:
        id: Backend-assigned entry identifier
        machine_id: The machine this entry waits for
        user_id: The waiting user
        minutes: Requested duration in minutes, or None for the default
        created_at: UTC timestamp when the user joined the queue
    """

    id: int
    machine_id: int
    user_id: int
    minutes: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def sort_key(self) -> tuple[datetime, int]:
        """FIFO ordering key."""
        return (self.created_at, self.id)

    def resolved_minutes(self, default: int = DEFAULT_RESERVATION_MINUTES) -> int:
        """Return the requested minutes, or ``default`` when none were given."""
        return self.minutes if self.minutes is not None else default

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for backend storage."""
        return {
            "id": self.id,
            "machine_id": self.machine_id,
            "user_id": self.user_id,
            "minutes": self.minutes,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueueEntry":
        """Create a QueueEntry from a dict produced by :meth:`to_dict`."""
        return cls(
            id=int(data["id"]),
            machine_id=int(data["machine_id"]),
            user_id=data["user_id"],
            minutes=data.get("minutes"),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


__all__ = ["DEFAULT_RESERVATION_MINUTES", "QueueEntry"]
