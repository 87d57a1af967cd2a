# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Caller-facing operations.

MachineService is the seam an HTTP or WebSocket layer calls. It returns plain
JSON-compatible dicts and turns coded scheduler errors into
``{"error": code, "message": ...}`` results instead of raising them.
"""

import logging
from typing import Any

from .exceptions import MachineReservationError
from .scheduler.scheduler import ReservationScheduler
from .types.machine import Machine
from .types.queue import DEFAULT_RESERVATION_MINUTES

logger = logging.getLogger(__name__)


def _error_result(error: MachineReservationError) -> dict[str, Any]:
    return {"error": error.code, "message": str(error)}


class MachineService:
    """
    Structured-result facade over a ReservationScheduler.

    Errors without a code (backend or configuration failures) are not
    caller-facing and propagate unchanged.
    """

    def __init__(self, scheduler: ReservationScheduler) -> None:
        self.scheduler = scheduler

    async def list_machines(self) -> list[dict[str, Any]]:
        """Every machine in wire form, ordered by id."""
        machines = await self.scheduler.list_machines()
        return [self._machine_to_wire(machine) for machine in machines]

    async def join(
        self, machine_id: int, user_id: int, minutes: int | None = None
    ) -> dict[str, Any]:
        """Join a machine's queue. Returns ``{"queued": True, "position": n}``."""
        try:
            result = await self.scheduler.join(machine_id, user_id, minutes)
        except MachineReservationError as e:
            if e.code is None:
                raise
            return _error_result(e)
        return {"queued": result.queued, "position": result.position}

    async def start(
        self,
        machine_id: int,
        user_id: int,
        minutes: int = DEFAULT_RESERVATION_MINUTES,
    ) -> dict[str, Any]:
        """Start a machine. Returns ``{"started": True, "endTime": iso}``."""
        try:
            result = await self.scheduler.start_machine(machine_id, user_id, minutes)
        except MachineReservationError as e:
            if e.code is None:
                raise
            return _error_result(e)
        return {"started": result.started, "endTime": result.end_time.isoformat()}

    async def get_queue(self, machine_id: int) -> list[dict[str, Any]]:
        """Queue of a machine in service order; empty for unknown machines."""
        entries = await self.scheduler.get_queue(machine_id)
        default = self.scheduler.config.default_minutes
        return [
            {"userId": entry.user_id, "minutes": entry.resolved_minutes(default)}
            for entry in entries
        ]

    async def reset(self) -> dict[str, Any]:
        """Administrative reset. Returns ``{"reset": True}``."""
        try:
            result = await self.scheduler.reset()
        except MachineReservationError as e:
            if e.code is None:
                raise
            return _error_result(e)
        logger.info("Machine set reset by caller")
        return {"reset": result.reset}

    async def wash_history(self) -> list[int]:
        """Users whose reservation completed since the last reset."""
        return await self.scheduler.get_wash_history()

    @staticmethod
    def _machine_to_wire(machine: Machine) -> dict[str, Any]:
        return {
            "id": machine.id,
            "name": machine.name,
            "inUse": machine.in_use,
            "currentUserId": machine.current_user_id,
            "endTime": machine.end_time.isoformat() if machine.end_time else None,
        }


__all__ = ["MachineService"]
