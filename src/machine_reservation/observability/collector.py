# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Unified metrics collector backed by a dict snapshot and Prometheus.

This module provides the UnifiedMetricsCollector class that serves as the
single source of truth for all metrics in the machine-reservation library.

Features:
    1. Thread-safe counter/gauge/histogram operations
    2. Prometheus metric registration on first use
    3. Dict snapshot for JSON export and tests
    4. Label cardinality protection (max 1000 unique combinations per metric)
    5. Optional HTTP server for Prometheus scraping

Usage:
    >>> from machine_reservation.observability.collector import get_metrics_collector
    >>> collector = get_metrics_collector()
    >>> collector.inc_counter('machine_reservation_rejections_total',
    ...                       labels={'operation': 'join', 'reason': 'in_use'})
    >>> metrics = collector.get_metrics()

Testing:
    Pass a fresh ``prometheus_client.CollectorRegistry`` as ``registry`` so
    that several collectors can live in one process without duplicate
    registration errors.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, ClassVar

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from .constants import (
    BROADCASTS_TOTAL,
    COMPLETIONS_TOTAL,
    JOINS_TOTAL,
    LATENCY_BUCKETS,
    MACHINES_IN_USE,
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

logger = logging.getLogger(__name__)


@dataclass
class MetricDefinition:
    """
    Definition for a metric that can be instantiated.

    This dataclass defines the schema for metrics, including their type,
    description, labels, and histogram buckets.
    """

    name: str
    metric_type: str  # 'counter', 'gauge', 'histogram'
    description: str
    label_names: tuple[str, ...] = ()
    buckets: list[float] | None = None


# Pre-defined metrics for the library
METRIC_DEFINITIONS: dict[str, MetricDefinition] = {
    # === Operation Counters ===
    JOINS_TOTAL: MetricDefinition(
        JOINS_TOTAL, "counter", "Total queue joins", ("machine_id",)
    ),
    STARTS_TOTAL: MetricDefinition(
        STARTS_TOTAL, "counter", "Total direct machine starts", ("machine_id",)
    ),
    REJECTIONS_TOTAL: MetricDefinition(
        REJECTIONS_TOTAL,
        "counter",
        "Total rejected operations",
        ("operation", "reason"),
    ),
    RESETS_TOTAL: MetricDefinition(RESETS_TOTAL, "counter", "Total resets", ()),
    OPERATION_DURATION_SECONDS: MetricDefinition(
        OPERATION_DURATION_SECONDS,
        "histogram",
        "Scheduler operation latency",
        ("operation",),
        buckets=LATENCY_BUCKETS,
    ),
    # === Timer Counters ===
    COMPLETIONS_TOTAL: MetricDefinition(
        COMPLETIONS_TOTAL, "counter", "Total completed occupancies", ("machine_id",)
    ),
    PROMOTIONS_TOTAL: MetricDefinition(
        PROMOTIONS_TOTAL, "counter", "Total queue promotions", ("machine_id",)
    ),
    # === Notifier / Broadcast Counters ===
    PRE_NOTIFICATIONS_TOTAL: MetricDefinition(
        PRE_NOTIFICATIONS_TOTAL,
        "counter",
        "Total pre-start warnings published",
        ("machine_id",),
    ),
    NOTIFIER_ERRORS_TOTAL: MetricDefinition(
        NOTIFIER_ERRORS_TOTAL, "counter", "Total notifier errors", ()
    ),
    BROADCASTS_TOTAL: MetricDefinition(
        BROADCASTS_TOTAL, "counter", "Total snapshots published", ("trigger",)
    ),
    PUBLISH_ERRORS_TOTAL: MetricDefinition(
        PUBLISH_ERRORS_TOTAL, "counter", "Total failed publishes", ("channel",)
    ),
    # === Gauges ===
    MACHINES_IN_USE: MetricDefinition(
        MACHINES_IN_USE, "gauge", "Machines currently occupied", ()
    ),
    QUEUE_DEPTH: MetricDefinition(
        QUEUE_DEPTH, "gauge", "Entries waiting per machine", ("machine_id",)
    ),
    TIMERS_PENDING: MetricDefinition(
        TIMERS_PENDING, "gauge", "Armed completion timers", ()
    ),
}

_PROM_TYPES: dict[str, Any] = {
    "counter": Counter,
    "gauge": Gauge,
    "histogram": Histogram,
}


class UnifiedMetricsCollector:
    """
    Metrics collector keeping a dict snapshot in step with Prometheus.

    Thread Safety:
        All operations use RLock for thread-safe access. The Prometheus
        HTTP exporter reads from a daemon thread.

    Cardinality Protection:
        To prevent unbounded memory growth, a maximum of MAX_LABEL_COMBINATIONS
        unique label combinations are tracked per metric.

    Example:
        >>> collector = UnifiedMetricsCollector(registry=CollectorRegistry())
        >>> collector.inc_counter('machine_reservation_resets_total')
        >>> collector.get_metrics()["counters"]
        {'machine_reservation_resets_total': {'': 1}}
    """

    MAX_LABEL_COMBINATIONS: ClassVar[int] = 1000

    def __init__(
        self,
        enable_prometheus: bool = True,
        registry: CollectorRegistry | None = None,
    ) -> None:
        """
        Initialize the metrics collector.

        Args:
            enable_prometheus: Whether to mirror metrics into Prometheus
            registry: Optional Prometheus CollectorRegistry for testing
        """
        self._enable_prometheus = enable_prometheus
        self._registry = registry if registry is not None else REGISTRY

        self._counters: dict[str, dict[str, int]] = defaultdict(
            lambda: defaultdict(int)
        )
        self._gauges: dict[str, dict[str, float]] = defaultdict(
            lambda: defaultdict(float)
        )
        self._histograms: dict[str, dict[str, list[float]]] = defaultdict(
            lambda: defaultdict(list)
        )

        self._lock = threading.RLock()

        # Prometheus metric instances keyed by name (lazy initialized)
        self._prom_metrics: dict[str, Any] = {}

        self._label_combinations: dict[str, set[str]] = defaultdict(set)

        self._server_running = False

        logger.debug(
            f"UnifiedMetricsCollector initialized "
            f"(prometheus={'enabled' if self._enable_prometheus else 'disabled'})"
        )

    def _labels_to_key(self, labels: dict[str, str] | None) -> str:
        """Convert labels dict to a stable string key."""
        if not labels:
            return ""
        return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))

    def _check_cardinality(self, name: str, label_key: str) -> bool:
        """
        Check if adding this label combination would exceed cardinality limit.

        Returns:
            True if the label combination is allowed, False otherwise
        """
        if label_key in self._label_combinations[name]:
            return True
        if len(self._label_combinations[name]) >= self.MAX_LABEL_COMBINATIONS:
            logger.warning(
                f"Cardinality limit ({self.MAX_LABEL_COMBINATIONS}) reached "
                f"for metric {name}. Dropping label combination: {label_key}"
            )
            return False
        self._label_combinations[name].add(label_key)
        return True

    def _get_or_create_prom(self, name: str, metric_type: str) -> Any | None:
        """Get or create the Prometheus metric backing ``name``."""
        if not self._enable_prometheus:
            return None

        if name not in self._prom_metrics:
            defn = METRIC_DEFINITIONS.get(name)
            if defn is None or defn.metric_type != metric_type:
                defn = MetricDefinition(
                    name, metric_type, f"Dynamic {metric_type}: {name}"
                )

            kwargs: dict[str, Any] = {"registry": self._registry}
            if metric_type == "histogram":
                kwargs["buckets"] = defn.buckets or LATENCY_BUCKETS
            try:
                self._prom_metrics[name] = _PROM_TYPES[metric_type](
                    name, defn.description, list(defn.label_names), **kwargs
                )
            except ValueError as e:
                # Duplicate registration in the target registry
                logger.warning(f"Failed to create Prometheus {metric_type} {name}: {e}")
                return None

        return self._prom_metrics.get(name)

    def _apply_prom(
        self,
        name: str,
        metric_type: str,
        method: str,
        value: float,
        labels: dict[str, str] | None,
    ) -> None:
        metric = self._get_or_create_prom(name, metric_type)
        if metric is None:
            return
        try:
            target = metric.labels(**labels) if labels else metric
            getattr(target, method)(value)
        except ValueError as e:
            logger.debug(f"Prometheus {metric_type} update failed for {name}: {e}")

    # === Counter Operations ===

    def inc_counter(
        self,
        name: str,
        value: int = 1,
        labels: dict[str, str] | None = None,
    ) -> None:
        """
        Increment a counter metric.

        Args:
            name: Metric name (should follow Prometheus naming convention)
            value: Value to increment by (must be positive)
            labels: Optional labels dict

        Raises:
            ValueError: If value is negative
        """
        if value < 0:
            raise ValueError("Counter increment must be non-negative")

        label_key = self._labels_to_key(labels)

        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            self._counters[name][label_key] += value

        self._apply_prom(name, "counter", "inc", value, labels)

    # === Gauge Operations ===

    def set_gauge(
        self,
        name: str,
        value: float,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to a specific value."""
        label_key = self._labels_to_key(labels)

        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            self._gauges[name][label_key] = value

        self._apply_prom(name, "gauge", "set", value, labels)

    def clear_gauge(self, name: str) -> None:
        """Drop every label combination of a gauge (used after a reset)."""
        with self._lock:
            self._gauges.pop(name, None)
            self._label_combinations.pop(name, None)

        defn = METRIC_DEFINITIONS.get(name)
        metric = self._prom_metrics.get(name)
        # Only labelled (parent) metrics support clear()
        if metric is not None and defn is not None and defn.label_names:
            metric.clear()

    # === Histogram Operations ===

    def observe_histogram(
        self,
        name: str,
        value: float,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Record an observation in a histogram."""
        label_key = self._labels_to_key(labels)

        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            observations = self._histograms[name][label_key]
            observations.append(value)
            # Keep only recent observations to prevent memory growth
            if len(observations) > 10000:
                self._histograms[name][label_key] = observations[-5000:]

        self._apply_prom(name, "histogram", "observe", value, labels)

    # === Snapshot Operations ===

    def get_metrics(self) -> dict[str, Any]:
        """
        Get a snapshot of all metrics.

        Returns a dict suitable for JSON serialization with structure:
        {
            "counters": {"metric_name": {"label_key": value, ...}, ...},
            "gauges": {"metric_name": {"label_key": value, ...}, ...},
            "histograms": {"metric_name": {"label_key": {...}, ...}, ...}
        }
        """
        with self._lock:
            counters = {
                name: dict(label_values)
                for name, label_values in self._counters.items()
            }
            gauges = {
                name: dict(label_values) for name, label_values in self._gauges.items()
            }

            histograms: dict[str, dict[str, dict[str, Any]]] = {}
            for name, label_values in self._histograms.items():
                histograms[name] = {}
                for label_key, observations in label_values.items():
                    if observations:
                        histograms[name][label_key] = {
                            "count": len(observations),
                            "sum": sum(observations),
                            "avg": sum(observations) / len(observations),
                            "min": min(observations),
                            "max": max(observations),
                        }

        return {
            "counters": counters,
            "gauges": gauges,
            "histograms": histograms,
        }

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> int:
        """Current value of one counter label combination (0 if never set)."""
        with self._lock:
            return self._counters.get(name, {}).get(self._labels_to_key(labels), 0)

    def get_gauge(self, name: str, labels: dict[str, str] | None = None) -> float:
        """Current value of one gauge label combination (0.0 if never set)."""
        with self._lock:
            return self._gauges.get(name, {}).get(self._labels_to_key(labels), 0.0)

    # === Lifecycle ===

    def reset(self) -> None:
        """Reset all metrics to zero."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()
            self._label_combinations.clear()

        logger.debug("Metrics collector reset")

    # === Prometheus HTTP Server ===

    def start_http_server(self, host: str = "127.0.0.1", port: int = 9090) -> bool:
        """
        Start the Prometheus HTTP server for metrics scraping.

        Args:
            host: Host to bind to (default: 127.0.0.1 for localhost only).
                  Use "0.0.0.0" for external access in containerized environments.
            port: Port to bind to

        Returns:
            True if server started successfully, False otherwise
        """
        if self._server_running:
            logger.warning("Prometheus server already running")
            return True

        try:
            # start_http_server runs in a daemon thread
            start_http_server(port, addr=host, registry=self._registry)
        except OSError as e:
            logger.error(f"Failed to start Prometheus server: {e}")
            return False

        self._server_running = True
        logger.info(f"Prometheus metrics server started on {host}:{port}")
        return True

    @property
    def prometheus_enabled(self) -> bool:
        """Check if Prometheus metrics are enabled."""
        return self._enable_prometheus

    @property
    def server_running(self) -> bool:
        """Check if the Prometheus HTTP server is running."""
        return self._server_running


# =============================================================================
# Singleton Pattern
# =============================================================================

_global_collector: UnifiedMetricsCollector | None = None
_collector_lock = threading.Lock()


def get_metrics_collector(
    enable_prometheus: bool = True,
) -> UnifiedMetricsCollector:
    """
    Get or create the global metrics collector singleton.

    Args:
        enable_prometheus: Whether to enable Prometheus metrics
            (only used on first call)

    Returns:
        The UnifiedMetricsCollector singleton
    """
    global _global_collector

    if _global_collector is None:
        with _collector_lock:
            if _global_collector is None:
                _global_collector = UnifiedMetricsCollector(
                    enable_prometheus=enable_prometheus
                )

    return _global_collector


def reset_metrics_collector() -> None:
    """
    Reset the global metrics collector singleton (mainly for testing).

    Prometheus metrics already registered in the default registry stay
    registered, so a new singleton created afterwards only keeps the dict
    snapshot.
    """
    global _global_collector
    with _collector_lock:
        if _global_collector:
            _global_collector.reset()
        _global_collector = None


__all__ = [
    "METRIC_DEFINITIONS",
    "MetricDefinition",
    "UnifiedMetricsCollector",
    "get_metrics_collector",
    "reset_metrics_collector",
]
