# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
MemoryBackend for Machine Reservation

This module provides an in-memory backend implementation that doesn't require Redis.
Perfect for testing, development, and single-process applications.
"""

import copy
import itertools
import logging
from collections import defaultdict
from datetime import datetime

from ..types.machine import Machine
from ..types.queue import QueueEntry
from .base import BaseBackend, HealthCheckResult

logger = logging.getLogger(__name__)


class MemoryBackend(BaseBackend):
    """
    An in-memory backend implementation for the machine registry and queue store.

    This backend provides a simple, Redis-free implementation suitable for:
    - Testing and development
    - Single-process deployments (the default)

    Key Features:
    - Pure in-memory dict-based storage
    - Per-machine index of queue entry ids
    - Copies on read and write, so callers never alias stored records

    The backend has no lock of its own. The scheduler serializes every call
    under its exclusive lock.
    """

    def __init__(self, namespace: str = "machine_reservation_memory") -> None:
        """
        Initialize the in-memory backend.

        Args:
            namespace: Namespace for key isolation (for compatibility)
        """
        super().__init__(namespace)

        self._machines: dict[int, Machine] = {}
        self._entries: dict[int, QueueEntry] = {}
        # machine_id -> entry ids in insertion order
        self._queue_index: dict[int, list[int]] = defaultdict(list)

        # Monotonic id sequences, never reset
        self._machine_ids = itertools.count(1)
        self._entry_ids = itertools.count(1)

        logger.debug(f"Initialized MemoryBackend with namespace '{namespace}'")

    async def create_machine(self, name: str) -> Machine:
        machine = Machine(id=next(self._machine_ids), name=name)
        self._machines[machine.id] = machine
        logger.debug("Created machine %d (%s)", machine.id, name)
        return copy.copy(machine)

    async def get_machine(self, machine_id: int) -> Machine | None:
        machine = self._machines.get(machine_id)
        return copy.copy(machine) if machine is not None else None

    async def list_machines(self) -> list[Machine]:
        return [copy.copy(self._machines[mid]) for mid in sorted(self._machines)]

    async def save_machine(self, machine: Machine) -> None:
        self._machines[machine.id] = copy.copy(machine)

    async def count_machines(self) -> int:
        return len(self._machines)

    async def add_queue_entry(
        self,
        machine_id: int,
        user_id: int,
        minutes: int | None,
        created_at: datetime,
    ) -> QueueEntry:
        entry = QueueEntry(
            id=next(self._entry_ids),
            machine_id=machine_id,
            user_id=user_id,
            minutes=minutes,
            created_at=created_at,
        )
        self._entries[entry.id] = entry
        self._queue_index[machine_id].append(entry.id)
        return copy.copy(entry)

    async def get_queue(self, machine_id: int) -> list[QueueEntry]:
        entries = [
            copy.copy(self._entries[eid])
            for eid in self._queue_index.get(machine_id, ())
            if eid in self._entries
        ]
        entries.sort(key=lambda e: e.sort_key)
        return entries

    async def list_queue_entries(self) -> list[QueueEntry]:
        return [copy.copy(entry) for entry in self._entries.values()]

    async def delete_queue_entry(self, entry_id: int) -> bool:
        entry = self._entries.pop(entry_id, None)
        if entry is None:
            return False

        ids = self._queue_index.get(entry.machine_id)
        if ids is not None:
            ids.remove(entry_id)
            if not ids:
                del self._queue_index[entry.machine_id]
        return True

    async def clear(self) -> None:
        machines = len(self._machines)
        entries = len(self._entries)
        self._machines.clear()
        self._entries.clear()
        self._queue_index.clear()
        logger.debug(
            "Cleared MemoryBackend: %d machines, %d queue entries", machines, entries
        )

    async def health_check(self) -> HealthCheckResult:
        return HealthCheckResult(
            healthy=True,
            backend_type="memory",
            namespace=self.namespace,
            metadata={
                "machines": len(self._machines),
                "queue_entries": len(self._entries),
            },
        )


__all__ = ["MemoryBackend"]
