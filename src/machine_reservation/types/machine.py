# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Machine record for the machine registry.

A machine is an exclusive-use resource with binary occupancy state. The
fixed set of machines is created once when the scheduler starts and is only
replaced by a full reset.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass
class Machine:
    """
    An exclusive-use resource and its occupancy state.

    Invariant: ``in_use`` is True if and only if both ``current_user_id``
    and ``end_time`` are set. Use :meth:`occupy` and :meth:`release` to
    change occupancy so the invariant is kept.

    Attributes:
        id: Backend-assigned machine identifier
        name: Display name (e.g. "Machine 1")
        in_use: Whether the machine is currently occupied
        current_user_id: The occupying user, if any
        end_time: Absolute UTC instant at which the occupancy ends, if any
    """

    id: int
    name: str
    in_use: bool = False
    current_user_id: int | None = None
    end_time: datetime | None = None

    def __post_init__(self) -> None:
        """Validate the occupancy invariant."""
        occupied = self.current_user_id is not None and self.end_time is not None
        if self.in_use != occupied:
            raise ValueError(
                "in_use must be True exactly when current_user_id and end_time are set"
            )

    def occupy(self, user_id: int, end_time: datetime) -> None:
        """Assign the machine to a user until ``end_time``."""
        self.in_use = True
        self.current_user_id = user_id
        self.end_time = end_time

    def release(self) -> None:
        """Return the machine to the free state."""
        self.in_use = False
        self.current_user_id = None
        self.end_time = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for backend storage."""
        return {
            "id": self.id,
            "name": self.name,
            "in_use": self.in_use,
            "current_user_id": self.current_user_id,
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Machine":
        """Create a Machine from a dict produced by :meth:`to_dict`."""
        return cls(
            id=int(data["id"]),
            name=data["name"],
            in_use=bool(data.get("in_use", False)),
            current_user_id=data.get("current_user_id"),
            end_time=datetime.fromisoformat(data["end_time"])
            if data.get("end_time")
            else None,
        )


__all__ = ["Machine"]
