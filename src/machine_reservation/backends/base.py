# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Base Backend for Machine Reservation

This module provides the BaseBackend abstract class that defines the
persistence contract the reservation scheduler relies on.

Features:
- Create/read/update for machine records
- Create/read/delete for queue entries, with a per-machine FIFO query
- Full clear for administrative resets
- Health reporting

The scheduler treats every backend as authoritative and keeps no cache of
its own. All calls are made while the scheduler lock is held.
"""

import abc
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..types.machine import Machine
from ..types.queue import QueueEntry

logger = logging.getLogger(__name__)


@dataclass
class HealthCheckResult:
    """
    Structured health check result for backend monitoring.

    Attributes:
        healthy: Whether the backend is operational
        backend_type: Type of backend (e.g., 'redis', 'memory')
        namespace: Backend namespace
        error: Error message if unhealthy
        metadata: Additional backend-specific information
    """

    healthy: bool
    backend_type: str
    namespace: str
    error: str | None = None
    metadata: dict[str, Any] | None = None


class BaseBackend(abc.ABC):
    """
    An abstract base class that defines the common interface for all backend
    implementations of the machine registry and queue store.

    Identifiers for machines and queue entries are allocated from monotonic
    sequences owned by the backend. Sequences survive :meth:`clear`, so a
    record recreated after a reset never reuses the id of a discarded one.

    Subclasses must implement all abstract methods to provide a concrete
    backend implementation.
    """

    def __init__(self, namespace: str = "machine_reservation"):
        """
        Initialize the backend with a namespace for isolation.

        Args:
            namespace: Namespace for isolating data across different instances
        """
        self.namespace = namespace

    # ==========================================================================
    # Machine Registry
    # ==========================================================================

    @abc.abstractmethod
    async def create_machine(self, name: str) -> Machine:
        """
        Create a new free machine.

        Args:
            name: Display name for the machine

        Returns:
            The stored machine with its assigned id
        """
        pass

    @abc.abstractmethod
    async def get_machine(self, machine_id: int) -> Machine | None:
        """
        Get a machine by id.

        Returns:
            A copy of the stored machine, or None if it does not exist
        """
        pass

    @abc.abstractmethod
    async def list_machines(self) -> list[Machine]:
        """Get all machines ordered by id."""
        pass

    @abc.abstractmethod
    async def save_machine(self, machine: Machine) -> None:
        """
        Persist the state of an existing machine.

        Args:
            machine: The machine to store, keyed by its id
        """
        pass

    @abc.abstractmethod
    async def count_machines(self) -> int:
        """Return the number of stored machines."""
        pass

    # ==========================================================================
    # Queue Store
    # ==========================================================================

    @abc.abstractmethod
    async def add_queue_entry(
        self,
        machine_id: int,
        user_id: int,
        minutes: int | None,
        created_at: datetime,
    ) -> QueueEntry:
        """
        Append a queue entry for a machine.

        Args:
            machine_id: The machine to wait for
            user_id: The waiting user
            minutes: Requested duration, or None for the default
            created_at: Timestamp used as the FIFO ordering key

        Returns:
            The stored entry with its assigned id
        """
        pass

    @abc.abstractmethod
    async def get_queue(self, machine_id: int) -> list[QueueEntry]:
        """
        Get the queue entries for a machine ordered by creation time.

        Ties are broken by entry id.
        """
        pass

    @abc.abstractmethod
    async def list_queue_entries(self) -> list[QueueEntry]:
        """Get every queue entry across all machines."""
        pass

    @abc.abstractmethod
    async def delete_queue_entry(self, entry_id: int) -> bool:
        """
        Delete a queue entry.

        Returns:
            True if the entry existed and was removed, False otherwise
        """
        pass

    # ==========================================================================
    # Maintenance
    # ==========================================================================

    @abc.abstractmethod
    async def clear(self) -> None:
        """Delete all machines and queue entries. Id sequences are kept."""
        pass

    @abc.abstractmethod
    async def health_check(self) -> HealthCheckResult:
        """Report whether the backend is operational."""
        pass

    async def close(self) -> None:  # noqa: B027
        """Release any connections held by the backend."""
        pass

    async def __aenter__(self) -> "BaseBackend":
        return self

    async def __aexit__(self, exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()


__all__ = ["BaseBackend", "HealthCheckResult"]
