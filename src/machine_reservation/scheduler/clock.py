# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Wall clock used by the scheduler and notifier. Tests inject their own."""

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current timezone-aware UTC instant."""
    return datetime.now(timezone.utc)


__all__ = ["Clock", "utcnow"]
