# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Exception classes for the machine reservation library.

This module defines the exception hierarchy used throughout the library.
All exceptions inherit from MachineReservationError, making it easy to catch
all reservation-related exceptions with a single except clause.

Exceptions that represent an expected, caller-facing outcome carry a stable
``code`` string. The service layer returns that code verbatim in its
structured error results.
"""


class MachineReservationError(Exception):
    """Base exception for all machine reservation errors.

    This is the root exception class for the machine reservation library.
    Catch this exception to handle any error originating from the library.

    Attributes:
        code: Stable error code surfaced to callers, or None for internal
            errors that have no caller-facing representation.

    Example:
        try:
            await scheduler.join(machine_id=1, user_id=7)
        except MachineReservationError as e:
            logger.error(f"Join failed: {e}")
    """

    code: str | None = None


class MachineNotFoundError(MachineReservationError):
    """Raised when an operation names a machine that does not exist.

    Attributes:
        machine_id: The identifier of the machine that was not found.

    Example:
        try:
            await scheduler.start_machine(machine_id=42, user_id=7, minutes=30)
        except MachineNotFoundError as e:
            logger.warning(f"Machine {e.machine_id} does not exist")
    """

    code = "notfound"

    def __init__(self, machine_id: int):
        super().__init__(f"Machine not found: {machine_id}")
        self.machine_id = machine_id


class AlreadyActiveError(MachineReservationError):
    """Raised when a user is already queued for or occupying a machine.

    A user may wait for, or occupy, at most one machine at a time. This
    exception is raised by ``join`` and ``start`` when honouring the request
    would put the same user in two places.

    Attributes:
        user_id: The user that is already active.
        machine_id: The machine the user is already queued for or occupying.
            May be None if the conflicting machine is not known.
    """

    code = "already_active"

    def __init__(self, user_id: int, machine_id: int | None = None):
        super().__init__("You can only join one machine at a time!")
        self.user_id = user_id
        self.machine_id = machine_id


class MachineInUseError(MachineReservationError):
    """Raised when starting a machine that is currently occupied.

    This includes the case where the occupant is the requesting user;
    re-entrant starts are rejected.

    Attributes:
        machine_id: The occupied machine.
        current_user_id: The user currently occupying the machine.
    """

    code = "in_use"

    def __init__(self, machine_id: int, current_user_id: int | None = None):
        super().__init__(f"Machine {machine_id} is in use")
        self.machine_id = machine_id
        self.current_user_id = current_user_id


class InvalidDurationError(MachineReservationError):
    """Raised when a reservation duration is not a positive whole number of minutes.

    Attributes:
        minutes: The rejected value.
    """

    code = "invalid_minutes"

    def __init__(self, minutes: object):
        super().__init__(f"minutes must be a positive integer, got {minutes!r}")
        self.minutes = minutes


class SchedulerNotRunningError(MachineReservationError):
    """Raised when an operation is submitted to a scheduler that is not running."""

    code = "not_running"

    def __init__(self, message: str = "Scheduler is not running"):
        super().__init__(message)


class BackendConnectionError(MachineReservationError):
    """Raised when connection to the storage backend fails.

    This exception is raised when the scheduler cannot establish or
    maintain a connection to its storage backend (e.g., Redis).

    Example:
        try:
            await backend.health_check()
        except BackendConnectionError:
            logger.warning("Redis unavailable, falling back to memory backend")
            backend = MemoryBackend()
    """

    pass


class BackendOperationError(MachineReservationError):
    """Raised when a backend operation fails.

    This exception is raised when a specific operation on the storage
    backend fails after the connection has been established, for example
    because a stored record could not be decoded.
    """

    pass


class ConfigurationError(MachineReservationError):
    """Raised when the scheduler cannot be assembled as requested.

    ``create_scheduler`` raises it for an unknown backend or publisher
    name. Invalid ``SchedulerConfig`` values raise ``ValueError`` instead.
    """

    pass
