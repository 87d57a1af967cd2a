# SPDX-License-Identifier: Apache-2.0
"""
Unit tests for the observability collector module.

Tests cover:
- UnifiedMetricsCollector: dict snapshot kept in step with Prometheus
- Singleton pattern: get_metrics_collector, reset_metrics_collector
- Label cardinality protection
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from prometheus_client import CollectorRegistry

from machine_reservation.observability.collector import (
    METRIC_DEFINITIONS,
    MetricDefinition,
    UnifiedMetricsCollector,
    get_metrics_collector,
    reset_metrics_collector,
)
from machine_reservation.observability.constants import (
    JOINS_TOTAL,
    MACHINES_IN_USE,
    METRIC_PREFIX,
    OPERATION_DURATION_SECONDS,
    QUEUE_DEPTH,
    REJECTIONS_TOTAL,
)


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def collector(registry: CollectorRegistry) -> UnifiedMetricsCollector:
    return UnifiedMetricsCollector(registry=registry)


class TestMetricDefinitions:
    def test_all_names_use_prefix(self) -> None:
        for name in METRIC_DEFINITIONS:
            assert name.startswith(f"{METRIC_PREFIX}_")

    def test_counters_end_with_total(self) -> None:
        for name, defn in METRIC_DEFINITIONS.items():
            if defn.metric_type == "counter":
                assert name.endswith("_total")

    def test_definition_defaults(self) -> None:
        defn = MetricDefinition("x_total", "counter", "X")
        assert defn.label_names == ()
        assert defn.buckets is None


class TestCounters:
    def test_inc_counter_updates_snapshot_and_prometheus(
        self, collector: UnifiedMetricsCollector, registry: CollectorRegistry
    ) -> None:
        collector.inc_counter(JOINS_TOTAL, labels={"machine_id": "1"})
        collector.inc_counter(JOINS_TOTAL, 2, labels={"machine_id": "1"})

        assert collector.get_counter(JOINS_TOTAL, {"machine_id": "1"}) == 3
        assert registry.get_sample_value(JOINS_TOTAL, {"machine_id": "1"}) == 3.0

    def test_negative_increment_rejected(
        self, collector: UnifiedMetricsCollector
    ) -> None:
        with pytest.raises(ValueError):
            collector.inc_counter(JOINS_TOTAL, -1)

    def test_label_key_is_order_independent(
        self, collector: UnifiedMetricsCollector
    ) -> None:
        collector.inc_counter(
            REJECTIONS_TOTAL, labels={"reason": "in_use", "operation": "start"}
        )
        counters = collector.get_metrics()["counters"]
        assert counters[REJECTIONS_TOTAL] == {"operation=start,reason=in_use": 1}

    def test_unknown_counter_value_is_zero(
        self, collector: UnifiedMetricsCollector
    ) -> None:
        assert collector.get_counter("missing_total") == 0


class TestGauges:
    def test_set_gauge(
        self, collector: UnifiedMetricsCollector, registry: CollectorRegistry
    ) -> None:
        collector.set_gauge(MACHINES_IN_USE, 3)
        assert collector.get_gauge(MACHINES_IN_USE) == 3
        assert registry.get_sample_value(MACHINES_IN_USE) == 3.0

    def test_clear_gauge_drops_label_sets(
        self, collector: UnifiedMetricsCollector, registry: CollectorRegistry
    ) -> None:
        collector.set_gauge(QUEUE_DEPTH, 2, labels={"machine_id": "1"})
        collector.clear_gauge(QUEUE_DEPTH)

        assert QUEUE_DEPTH not in collector.get_metrics()["gauges"]
        assert registry.get_sample_value(QUEUE_DEPTH, {"machine_id": "1"}) is None


class TestHistograms:
    def test_observe_summary(self, collector: UnifiedMetricsCollector) -> None:
        for value in (0.1, 0.3):
            collector.observe_histogram(
                OPERATION_DURATION_SECONDS, value, labels={"operation": "join"}
            )
        summary = collector.get_metrics()["histograms"][OPERATION_DURATION_SECONDS][
            "operation=join"
        ]
        assert summary["count"] == 2
        assert summary["min"] == 0.1
        assert summary["max"] == 0.3
        assert summary["avg"] == pytest.approx(0.2)


class TestCardinality:
    def test_limit_drops_new_combinations(self, registry: CollectorRegistry) -> None:
        collector = UnifiedMetricsCollector(registry=registry)
        with patch.object(UnifiedMetricsCollector, "MAX_LABEL_COMBINATIONS", 2):
            for machine_id in ("1", "2", "3"):
                collector.inc_counter(JOINS_TOTAL, labels={"machine_id": machine_id})

        assert collector.get_counter(JOINS_TOTAL, {"machine_id": "3"}) == 0
        assert len(collector.get_metrics()["counters"][JOINS_TOTAL]) == 2


class TestPrometheusToggle:
    def test_disabled_keeps_dict_snapshot(self, registry: CollectorRegistry) -> None:
        collector = UnifiedMetricsCollector(enable_prometheus=False, registry=registry)
        collector.inc_counter(JOINS_TOTAL, labels={"machine_id": "1"})

        assert collector.prometheus_enabled is False
        assert collector.get_counter(JOINS_TOTAL, {"machine_id": "1"}) == 1
        assert registry.get_sample_value(JOINS_TOTAL, {"machine_id": "1"}) is None

    def test_duplicate_registration_is_tolerated(
        self, registry: CollectorRegistry
    ) -> None:
        first = UnifiedMetricsCollector(registry=registry)
        second = UnifiedMetricsCollector(registry=registry)
        first.inc_counter(JOINS_TOTAL, labels={"machine_id": "1"})
        second.inc_counter(JOINS_TOTAL, labels={"machine_id": "1"})

        assert second.get_counter(JOINS_TOTAL, {"machine_id": "1"}) == 1

    def test_reset(self, collector: UnifiedMetricsCollector) -> None:
        collector.inc_counter(JOINS_TOTAL, labels={"machine_id": "1"})
        collector.reset()
        assert collector.get_metrics() == {
            "counters": {},
            "gauges": {},
            "histograms": {},
        }


class TestHttpServer:
    def test_start_http_server(self, collector: UnifiedMetricsCollector) -> None:
        with patch(
            "machine_reservation.observability.collector.start_http_server"
        ) as mock_start:
            assert collector.start_http_server("127.0.0.1", 9123) is True
            assert collector.start_http_server("127.0.0.1", 9123) is True

        mock_start.assert_called_once()
        assert collector.server_running is True

    def test_start_http_server_failure(
        self, collector: UnifiedMetricsCollector
    ) -> None:
        with patch(
            "machine_reservation.observability.collector.start_http_server",
            side_effect=OSError("address in use"),
        ):
            assert collector.start_http_server() is False
        assert collector.server_running is False


class TestSingleton:
    def test_get_returns_same_instance(self) -> None:
        reset_metrics_collector()
        try:
            with patch(
                "machine_reservation.observability.collector.REGISTRY",
                CollectorRegistry(),
            ):
                first = get_metrics_collector()
                second = get_metrics_collector()
            assert first is second
        finally:
            reset_metrics_collector()

    def test_reset_creates_new_instance(self) -> None:
        reset_metrics_collector()
        try:
            first = get_metrics_collector(enable_prometheus=False)
            reset_metrics_collector()
            second = get_metrics_collector(enable_prometheus=False)
            assert first is not second
        finally:
            reset_metrics_collector()
