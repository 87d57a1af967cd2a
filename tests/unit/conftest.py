# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Shared fixtures for the unit tests."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from prometheus_client import CollectorRegistry

from machine_reservation.backends.memory import MemoryBackend
from machine_reservation.observability.collector import UnifiedMetricsCollector
from machine_reservation.publishing.memory import InMemoryPublisher
from machine_reservation.scheduler.config import SchedulerConfig
from machine_reservation.scheduler.scheduler import ReservationScheduler


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


async def _wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> None:
    """Poll ``predicate`` until it is truthy or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def collector():
    """Collector bound to a private registry so tests never clash."""
    return UnifiedMetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def backend():
    return MemoryBackend(namespace="test")


@pytest.fixture
def publisher():
    return InMemoryPublisher()


@pytest.fixture
def fast_config():
    """One reservation minute lasts 20ms; background loops are off."""
    return SchedulerConfig(
        minute_seconds=0.02,
        notify_enabled=False,
        broadcast_enabled=False,
        prometheus_enabled=False,
    )


@pytest.fixture
def scheduler(backend, publisher, fast_config, collector):
    return ReservationScheduler(
        backend=backend,
        publisher=publisher,
        config=fast_config,
        metrics_collector=collector,
    )
