# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Scheduler Configuration for Machine Reservation

This module provides the configuration class for the reservation scheduler,
covering the machine set, reservation timing, the notifier and broadcaster
loops, and metrics settings.
"""

from dataclasses import dataclass

from ..types.queue import DEFAULT_RESERVATION_MINUTES


@dataclass
class SchedulerConfig:
    """
    Configuration for the reservation scheduler.

    Every interval is expressed in seconds of wall-clock time.
    """

    # === Machine Set ===

    machine_count: int = 5
    """Number of machines created at startup and on reset."""

    machine_name_template: str = "Machine {index}"
    """Display name template; ``{index}`` is the 1-based machine number."""

    # === Reservation Timing ===

    default_minutes: int = DEFAULT_RESERVATION_MINUTES
    """Duration used when a queued reservation does not specify one."""

    minute_seconds: float = 60.0
    """Length of one reservation minute in seconds. Lowered in tests and demos."""

    # === Notifier ===

    notify_enabled: bool = True
    """Run the pre-start notifier loop."""

    notify_interval: float = 30.0
    """Interval between notifier ticks in seconds."""

    notify_initial_delay: float = 5.0
    """Delay before the first notifier tick in seconds."""

    notify_window_seconds: float = 120.0
    """Waiters whose predicted start is this close (or closer) get warned."""

    # === Broadcaster ===

    broadcast_enabled: bool = True
    """Run the periodic snapshot broadcast loop."""

    broadcast_interval: float = 1.0
    """Interval between periodic snapshot broadcasts in seconds."""

    # === Metrics and Monitoring ===

    metrics_enabled: bool = True
    """Enable metrics collection."""

    prometheus_enabled: bool = True
    """Mirror metrics into Prometheus."""

    start_prometheus_server: bool = False
    """Start the Prometheus HTTP exporter when the scheduler is created."""

    prometheus_host: str = "127.0.0.1"
    """Prometheus metrics host."""

    prometheus_port: int = 9090
    """Prometheus metrics port."""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.machine_count < 1:
            raise ValueError("machine_count must be at least 1")
        if "{index}" not in self.machine_name_template:
            raise ValueError("machine_name_template must contain '{index}'")
        if self.default_minutes < 1:
            raise ValueError("default_minutes must be at least 1")
        if self.minute_seconds <= 0:
            raise ValueError("minute_seconds must be positive")
        if self.notify_interval <= 0:
            raise ValueError("notify_interval must be positive")
        if self.notify_initial_delay < 0:
            raise ValueError("notify_initial_delay must be non-negative")
        if self.notify_window_seconds <= 0:
            raise ValueError("notify_window_seconds must be positive")
        if self.broadcast_interval <= 0:
            raise ValueError("broadcast_interval must be positive")
        if not 0 < self.prometheus_port < 65536:
            raise ValueError("prometheus_port must be between 1 and 65535")

    def machine_name(self, index: int) -> str:
        """Display name of the ``index``-th machine (1-based)."""
        return self.machine_name_template.format(index=index)

    def duration_seconds(self, minutes: int) -> float:
        """Convert reservation minutes to seconds."""
        return minutes * self.minute_seconds


__all__ = ["SchedulerConfig"]
