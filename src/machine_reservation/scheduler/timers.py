# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Completion timers for occupied machines.

Each occupied machine has at most one armed timer. A timer is an
``asyncio.Task`` that sleeps until the occupancy ends and then hands its
machine id and its own handle to the fire callback. The callback is expected
to take the scheduler lock and call :meth:`CompletionTimers.release` before
acting, so a timer that was superseded while it waited does nothing and a
re-arm from inside the callback never cancels the running task.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, cast

logger = logging.getLogger(__name__)

FireCallback = Callable[[int, "asyncio.Task[Any]"], Awaitable[None]]


class CompletionTimers:
    """
    Arena of completion timer handles keyed by machine id.

    Responsibilities:
    - Cancel-then-schedule arming (at most one armed handle per machine)
    - Track every live task, including ones that already left the arena
      and are running their fire callback
    - Cancel everything on reset and shutdown
    """

    def __init__(self, on_fire: FireCallback) -> None:
        """
        Initialize the timer arena.

        Args:
            on_fire: Async callback invoked with ``(machine_id, handle)`` when
                a timer expires
        """
        self._on_fire = on_fire
        self._handles: dict[int, asyncio.Task[None]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def arm(self, machine_id: int, delay: float) -> asyncio.Task[None]:
        """
        Schedule the completion of ``machine_id`` after ``delay`` seconds.

        Any timer already armed for the machine is cancelled first. Negative
        delays are clamped to zero.

        Returns:
            The new timer handle
        """
        self.cancel(machine_id)

        delay = max(0.0, delay)
        task: asyncio.Task[None] = asyncio.create_task(
            self._run(machine_id, delay), name=f"completion-timer-{machine_id}"
        )
        self._handles[machine_id] = task
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

        logger.debug(f"Armed completion timer for machine {machine_id} in {delay:.2f}s")
        return task

    async def _run(self, machine_id: int, delay: float) -> None:
        await asyncio.sleep(delay)
        # Always set: _run only executes as the task created in arm()
        handle = cast("asyncio.Task[Any]", asyncio.current_task())
        await self._on_fire(machine_id, handle)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Completion timer {task.get_name()} failed: {exc!r}", exc_info=exc
            )

    def release(self, machine_id: int, handle: asyncio.Task[Any]) -> bool:
        """
        Remove ``handle`` from the arena if it is still the machine's armed timer.

        Returns:
            True if the handle was current, False if it was superseded
        """
        if self._handles.get(machine_id) is handle:
            del self._handles[machine_id]
            return True
        return False

    def cancel(self, machine_id: int) -> bool:
        """
        Cancel the armed timer for ``machine_id``.

        Returns:
            True if a timer was armed
        """
        task = self._handles.pop(machine_id, None)
        if task is None:
            return False
        task.cancel()
        logger.debug(f"Cancelled completion timer for machine {machine_id}")
        return True

    def cancel_all(self) -> int:
        """Cancel every armed timer and return how many were cancelled."""
        count = 0
        for machine_id in list(self._handles):
            if self.cancel(machine_id):
                count += 1
        return count

    async def shutdown(self) -> None:
        """Cancel all timers and wait for their tasks to finish."""
        self.cancel_all()
        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def is_armed(self, machine_id: int) -> bool:
        return machine_id in self._handles

    def handle(self, machine_id: int) -> asyncio.Task[None] | None:
        """Return the armed handle for ``machine_id``, if any."""
        return self._handles.get(machine_id)

    @property
    def pending(self) -> int:
        """Number of armed timers."""
        return len(self._handles)


__all__ = ["CompletionTimers", "FireCallback"]
