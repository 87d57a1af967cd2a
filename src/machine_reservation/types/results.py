# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Result types returned by successful scheduler operations."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class JoinResult:
    """
    Outcome of joining a machine's queue.

    Attributes:
        machine_id: The machine whose queue was joined
        entry_id: The queue entry holding the user's place
        position: 1-based position in the machine's queue
        queued: Always True for a successful join
    """

    machine_id: int
    entry_id: int
    position: int
    queued: bool = True


@dataclass(frozen=True)
class StartResult:
    """
    Outcome of starting a machine.

    Attributes:
        machine_id: The machine that was started
        user_id: The new occupant
        end_time: Absolute UTC instant at which the occupancy ends
        started: Always True for a successful start
    """

    machine_id: int
    user_id: int
    end_time: datetime
    started: bool = True


@dataclass(frozen=True)
class ResetResult:
    """Outcome of a full reset."""

    machine_count: int
    reset: bool = True


__all__ = ["JoinResult", "ResetResult", "StartResult"]
