# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Type definitions and constants."""

from .machine import Machine
from .queue import DEFAULT_RESERVATION_MINUTES, QueueEntry
from .results import JoinResult, ResetResult, StartResult
from .snapshot import MachineState, PreNotifyEvent, QueueItemState, snapshot_to_wire

__all__ = [
    "DEFAULT_RESERVATION_MINUTES",
    "JoinResult",
    # Registry and queue records
    "Machine",
    # Wire models
    "MachineState",
    "PreNotifyEvent",
    "QueueEntry",
    "QueueItemState",
    "ResetResult",
    # Operation results
    "StartResult",
    "snapshot_to_wire",
]
