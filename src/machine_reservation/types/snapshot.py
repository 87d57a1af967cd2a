# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Wire models for published state.

These Pydantic models define the payloads pushed to subscribers: the full
machine/queue snapshot on the machine state channel and the one-shot
pre-start warning on the notifications channel. Field names are exposed in
camelCase on the wire.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .machine import Machine
from .queue import DEFAULT_RESERVATION_MINUTES, QueueEntry


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump to a JSON-compatible dict using camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class QueueItemState(_WireModel):
    """One waiting entry as published in a snapshot."""

    id: int
    user_id: int
    minutes: int


class MachineState(_WireModel):
    """
    Published state of one machine, including its ordered queue.

    ``end_time`` serializes as an ISO-8601 instant, or null when the
    machine is free.
    """

    id: int
    name: str
    in_use: bool
    current_user_id: int | None = None
    end_time: datetime | None = None
    queue: tuple[QueueItemState, ...] = ()

    @classmethod
    def from_records(
        cls,
        machine: Machine,
        entries: Iterable[QueueEntry],
        default_minutes: int = DEFAULT_RESERVATION_MINUTES,
    ) -> "MachineState":
        """Build the published state from registry and queue records."""
        return cls(
            id=machine.id,
            name=machine.name,
            in_use=machine.in_use,
            current_user_id=machine.current_user_id,
            end_time=machine.end_time,
            queue=tuple(
                QueueItemState(
                    id=entry.id,
                    user_id=entry.user_id,
                    minutes=entry.resolved_minutes(default_minutes),
                )
                for entry in entries
            ),
        )


class PreNotifyEvent(_WireModel):
    """One-shot warning sent to a waiter shortly before their predicted start."""

    type: Literal["PRE_NOTIFY"] = "PRE_NOTIFY"
    machine_id: int
    machine_name: str
    user_id: int
    entry_id: int
    seconds_until_start: int
    minutes_until_start: float
    expected_start_epoch: int


def snapshot_to_wire(states: Iterable[MachineState]) -> list[dict[str, Any]]:
    """Serialize a full snapshot for publishing."""
    return [state.to_wire() for state in states]


__all__ = [
    "MachineState",
    "PreNotifyEvent",
    "QueueItemState",
    "snapshot_to_wire",
]
