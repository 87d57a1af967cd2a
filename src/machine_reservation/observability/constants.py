# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Metric name constants following Prometheus naming conventions.

All metric names use the `machine_reservation_` prefix.

Naming Conventions:
    - Counter metrics end with `_total`
    - Histogram metrics for time end with `_seconds`
    - Gauges use present-tense descriptive names

Label Best Practices:
    To prevent label cardinality explosion, use only:
    - `machine_id` - Machine identifier (bounded by the fixed machine set)
    - `operation` - Scheduler operation (enum: join, start, reset)
    - `reason` - Rejection reason (the error code)
    - `trigger` - Broadcast trigger (enum: tick, mutation)
    - `channel` - Publish channel name

    NEVER use:
    - `user_id` - Unique per user (unbounded!)
    - `entry_id` - Unique per queue entry (unbounded!)

Usage:
    >>> from machine_reservation.observability.constants import JOINS_TOTAL
    >>> print(JOINS_TOTAL)
    'machine_reservation_joins_total'
"""


# =============================================================================
# Global Prefix
# =============================================================================

METRIC_PREFIX = "machine_reservation"
"""Prefix for all Prometheus metrics in this library."""


# =============================================================================
# Operation Metrics (scheduler/scheduler.py)
# =============================================================================

JOINS_TOTAL = f"{METRIC_PREFIX}_joins_total"
"""Total queue entries created by join."""

STARTS_TOTAL = f"{METRIC_PREFIX}_starts_total"
"""Total machines started directly by a caller."""

REJECTIONS_TOTAL = f"{METRIC_PREFIX}_rejections_total"
"""Total operations rejected with a caller-facing error."""

RESETS_TOTAL = f"{METRIC_PREFIX}_resets_total"
"""Total administrative resets."""

OPERATION_DURATION_SECONDS = f"{METRIC_PREFIX}_operation_duration_seconds"
"""Time spent executing a scheduler operation, lock wait included (histogram)."""


# =============================================================================
# Timer Metrics (scheduler/timers.py, scheduler/scheduler.py)
# =============================================================================

COMPLETIONS_TOTAL = f"{METRIC_PREFIX}_completions_total"
"""Total occupancies ended by their completion timer."""

PROMOTIONS_TOTAL = f"{METRIC_PREFIX}_promotions_total"
"""Total queue heads promoted to occupant on completion."""

TIMERS_PENDING = f"{METRIC_PREFIX}_timers_pending"
"""Number of armed completion timers."""


# =============================================================================
# Notifier Metrics (scheduler/notifier.py)
# =============================================================================

PRE_NOTIFICATIONS_TOTAL = f"{METRIC_PREFIX}_pre_notifications_total"
"""Total pre-start warnings published."""

NOTIFIER_ERRORS_TOTAL = f"{METRIC_PREFIX}_notifier_errors_total"
"""Total notifier failures (per machine or per tick)."""


# =============================================================================
# Broadcast Metrics (scheduler/broadcaster.py)
# =============================================================================

BROADCASTS_TOTAL = f"{METRIC_PREFIX}_broadcasts_total"
"""Total snapshots published."""

PUBLISH_ERRORS_TOTAL = f"{METRIC_PREFIX}_publish_errors_total"
"""Total publish calls that raised."""


# =============================================================================
# State Gauges
# =============================================================================

MACHINES_IN_USE = f"{METRIC_PREFIX}_machines_in_use"
"""Number of machines currently occupied."""

QUEUE_DEPTH = f"{METRIC_PREFIX}_queue_depth"
"""Number of entries waiting for a machine."""


# =============================================================================
# Histogram Buckets
# =============================================================================

LATENCY_BUCKETS: list[float] = [
    0.0005,
    0.001,
    0.0025,
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
]
"""Default latency buckets for operation duration histograms (in seconds)."""


__all__ = [
    "BROADCASTS_TOTAL",
    "COMPLETIONS_TOTAL",
    "JOINS_TOTAL",
    # Buckets
    "LATENCY_BUCKETS",
    "MACHINES_IN_USE",
    # Prefix
    "METRIC_PREFIX",
    "NOTIFIER_ERRORS_TOTAL",
    "OPERATION_DURATION_SECONDS",
    "PRE_NOTIFICATIONS_TOTAL",
    "PROMOTIONS_TOTAL",
    "PUBLISH_ERRORS_TOTAL",
    "QUEUE_DEPTH",
    "REJECTIONS_TOTAL",
    "RESETS_TOTAL",
    "STARTS_TOTAL",
    "TIMERS_PENDING",
]
