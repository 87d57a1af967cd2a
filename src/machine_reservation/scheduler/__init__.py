# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Reservation scheduler, its timers and its background loops."""

from .broadcaster import StateBroadcaster
from .clock import Clock, utcnow
from .config import SchedulerConfig
from .notifier import Notifier
from .scheduler import ReservationScheduler, create_scheduler
from .timers import CompletionTimers

__all__ = [
    "Clock",
    "CompletionTimers",
    "Notifier",
    "ReservationScheduler",
    "SchedulerConfig",
    "StateBroadcaster",
    "create_scheduler",
    "utcnow",
]
