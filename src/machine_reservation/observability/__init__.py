# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Observability and metrics for machine reservation.

Classes:
    UnifiedMetricsCollector: Metrics collector with dict snapshot and Prometheus.
    MetricDefinition: Schema of one predefined metric.

Functions:
    get_metrics_collector: Get the global metrics collector singleton.
    reset_metrics_collector: Reset the global metrics collector singleton.

Constants:
    All metric name constants from constants module.
"""

from .collector import (
    METRIC_DEFINITIONS,
    MetricDefinition,
    UnifiedMetricsCollector,
    get_metrics_collector,
    reset_metrics_collector,
)
from .constants import (
    BROADCASTS_TOTAL,
    COMPLETIONS_TOTAL,
    JOINS_TOTAL,
    LATENCY_BUCKETS,
    MACHINES_IN_USE,
    METRIC_PREFIX,
    NOTIFIER_ERRORS_TOTAL,
    OPERATION_DURATION_SECONDS,
    PRE_NOTIFICATIONS_TOTAL,
    PROMOTIONS_TOTAL,
    PUBLISH_ERRORS_TOTAL,
    QUEUE_DEPTH,
    REJECTIONS_TOTAL,
    RESETS_TOTAL,
    STARTS_TOTAL,
    TIMERS_PENDING,
)

__all__ = [
    "BROADCASTS_TOTAL",
    "COMPLETIONS_TOTAL",
    "JOINS_TOTAL",
    "LATENCY_BUCKETS",
    "MACHINES_IN_USE",
    "METRIC_DEFINITIONS",
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
    "MetricDefinition",
    "UnifiedMetricsCollector",
    "get_metrics_collector",
    "reset_metrics_collector",
]
