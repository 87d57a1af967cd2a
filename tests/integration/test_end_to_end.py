# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
End-to-end integration tests for machine reservation.

These tests drive complete reservation flows through the scheduler, the
notifier and the subscriber feeds, on both storage backends.
"""

import json
from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
from prometheus_client import CollectorRegistry

from machine_reservation import (
    MACHINES_CHANNEL,
    NOTIFICATIONS_CHANNEL,
    WASH_HISTORY_CHANNEL,
    InMemoryPublisher,
    MachineService,
    MemoryBackend,
    ReservationScheduler,
    SchedulerConfig,
)
from machine_reservation.backends.redis import RedisBackend
from machine_reservation.observability import UnifiedMetricsCollector
from machine_reservation.publishing.redis import RedisPublisher


class ManualClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 5, 4, 8, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _config() -> SchedulerConfig:
    return SchedulerConfig(
        notify_enabled=False, broadcast_enabled=False, prometheus_enabled=False
    )


def _scheduler(backend, publisher, clock) -> ReservationScheduler:
    return ReservationScheduler(
        backend=backend,
        publisher=publisher,
        config=_config(),
        metrics_collector=UnifiedMetricsCollector(registry=CollectorRegistry()),
        clock=clock,
    )


async def _fire(scheduler, machine_id):
    await scheduler._on_timer_fire(machine_id, scheduler.timers.handle(machine_id))


@pytest.fixture
def fake_redis():
    return fakeredis.FakeAsyncRedis(decode_responses=True)


@pytest.fixture(params=["memory", "redis"])
def store(request, fake_redis):
    if request.param == "memory":
        return MemoryBackend(namespace="e2e")
    return RedisBackend(redis_client=fake_redis, namespace="e2e")


class TestReservationFlow:
    @pytest.mark.asyncio
    async def test_wait_warn_promote_finish(self, store):
        clock = ManualClock()
        publisher = InMemoryPublisher()
        scheduler = _scheduler(store, publisher, clock)
        service = MachineService(scheduler)

        machines_feed = publisher.subscribe(MACHINES_CHANNEL)
        warnings_feed = publisher.subscribe(NOTIFICATIONS_CHANNEL)

        async with scheduler:
            assert (await service.start(1, 7, 10))["started"] is True
            assert await service.join(1, 8, minutes=20) == {
                "queued": True,
                "position": 1,
            }

            # Nine minutes in, user 8 is due within the warning window
            clock.advance(9 * 60)
            assert await scheduler.notifier.run_once() == 1
            assert await scheduler.notifier.run_once() == 0

            warning = warnings_feed.get_nowait()
            assert warning["type"] == "PRE_NOTIFY"
            assert warning["userId"] == 8
            assert warning["secondsUntilStart"] == 60

            clock.advance(60)
            await _fire(scheduler, 1)

            machine = (await service.list_machines())[0]
            assert machine["currentUserId"] == 8
            assert machine["endTime"] == (clock() + timedelta(minutes=20)).isoformat()
            assert await service.wash_history() == [7]

            clock.advance(20 * 60)
            await _fire(scheduler, 1)
            assert (await service.list_machines())[0]["inUse"] is False
            assert await service.wash_history() == [7, 8]

        snapshots = []
        while machines_feed.pending():
            snapshots.append(machines_feed.get_nowait())
        # startup, start, join, promotion, release
        assert len(snapshots) == 5
        assert snapshots[-1][0]["inUse"] is False
        assert publisher.last(WASH_HISTORY_CHANNEL) == [7, 8]

    @pytest.mark.asyncio
    async def test_reset_mid_flight(self, store):
        clock = ManualClock()
        scheduler = _scheduler(store, InMemoryPublisher(), clock)
        service = MachineService(scheduler)

        async with scheduler:
            await service.start(1, 7, 10)
            await service.join(1, 8)
            await service.join(2, 9)
            stale = scheduler.timers.handle(1)

            assert await service.reset() == {"reset": True}
            await scheduler._on_timer_fire(1, stale)

            machines = await service.list_machines()
            assert len(machines) == 5
            assert not any(m["inUse"] for m in machines)
            for machine in machines:
                assert await service.get_queue(machine["id"]) == []
            assert await service.join(machines[0]["id"], 7) == {
                "queued": True,
                "position": 1,
            }

    @pytest.mark.asyncio
    async def test_restart_on_persistent_store(self, fake_redis):
        clock = ManualClock()
        backend = RedisBackend(redis_client=fake_redis, namespace="e2e")

        async with _scheduler(backend, InMemoryPublisher(), clock) as first:
            await first.start_machine(2, 7, 30)
            await first.join(2, 8)

        second = _scheduler(backend, InMemoryPublisher(), clock)
        async with second:
            assert second.timers.is_armed(2)
            assert [e.user_id for e in await second.get_queue(2)] == [8]
            clock.advance(30 * 60)
            await _fire(second, 2)
            assert (await second.list_machines())[1].current_user_id == 8


class TestRedisFeeds:
    @pytest.mark.asyncio
    async def test_snapshots_reach_redis_subscribers(self, fake_redis):
        pubsub = fake_redis.pubsub()
        await pubsub.subscribe("machine_reservation:machines")
        await pubsub.get_message(timeout=1.0)

        scheduler = _scheduler(
            MemoryBackend(), RedisPublisher(redis_client=fake_redis), ManualClock()
        )
        async with scheduler:
            startup = await pubsub.get_message(
                ignore_subscribe_messages=True, timeout=1.0
            )
            await scheduler.join(3, 11)
            joined = await pubsub.get_message(
                ignore_subscribe_messages=True, timeout=1.0
            )

        assert startup is not None and joined is not None
        assert len(json.loads(startup["data"])) == 5
        assert json.loads(joined["data"])[2]["queue"][0]["userId"] == 11
        await pubsub.aclose()
