# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
RedisBackend for Machine Reservation

This module provides a Redis-backed machine registry and queue store so the
reservation state is visible to other processes (dashboards, exporters).
The scheduler remains the single writer.

Key layout (all keys share the namespace prefix):
- ``{ns}:seq:machine`` / ``{ns}:seq:entry``: INCR id sequences
- ``{ns}:machines``: hash of machine id -> JSON record
- ``{ns}:entries``: hash of entry id -> JSON record
- ``{ns}:queue:{machine_id}``: sorted set of entry ids scored by id
"""

import asyncio
import json
import logging
import os
from datetime import datetime
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import (
    ConnectionError,
    RedisError,
    TimeoutError,
)

from ..exceptions import BackendConnectionError, BackendOperationError
from ..types.machine import Machine
from ..types.queue import QueueEntry
from .base import BaseBackend, HealthCheckResult

logger = logging.getLogger(__name__)


class RedisBackend(BaseBackend):
    """
    Redis implementation of the machine registry and queue store.

    Records are stored as JSON strings; id sequences use INCR so they are
    monotonic across resets and restarts.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        redis_client: Any | None = None,
        namespace: str = "machine_reservation",
        max_connections: int = 10,
    ) -> None:
        """
        Initialize the Redis backend.

        Args:
            redis_url: Redis connection URL. If not provided, falls back to REDIS_URL
                environment variable, then to "redis://localhost:6379".
            redis_client: Optional pre-configured Redis client (must use
                decode_responses=True)
            namespace: Namespace prefix for keys
            max_connections: Maximum connections in the pool

        Environment Variables:
            REDIS_URL: Default Redis connection URL when redis_url parameter is not provided.
        """
        super().__init__(namespace)

        self.redis_url = (
            redis_url or os.environ.get("REDIS_URL") or "redis://localhost:6379"
        )
        self.max_connections = max_connections

        # Redis client state
        self._redis: Any | None = redis_client
        self._owned_redis = redis_client is None
        self._connection_lock = asyncio.Lock()

        # Key names
        self.machine_seq_key = f"{namespace}:seq:machine"
        self.entry_seq_key = f"{namespace}:seq:entry"
        self.machines_key = f"{namespace}:machines"
        self.entries_key = f"{namespace}:entries"

    def _queue_key(self, machine_id: int) -> str:
        return f"{self.namespace}:queue:{machine_id}"

    async def _ensure_connected(self) -> Any:
        """Return a Redis client, creating the owned connection on first use."""
        if self._redis is not None:
            return self._redis

        async with self._connection_lock:
            if self._redis is None:
                try:
                    self._redis = Redis.from_url(
                        self.redis_url,
                        decode_responses=True,
                        max_connections=self.max_connections,
                    )
                    await self._redis.ping()
                    logger.info(f"Connected to Redis at {self.redis_url}")
                except (ConnectionError, TimeoutError) as e:
                    self._redis = None
                    raise BackendConnectionError(
                        f"Could not connect to Redis at {self.redis_url}: {e}"
                    ) from e
        return self._redis

    @staticmethod
    def _decode(raw: str, what: str) -> dict[str, Any]:
        try:
            data: dict[str, Any] = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise BackendOperationError(f"Corrupt {what} record: {raw!r}") from e
        return data

    # ==========================================================================
    # Machine Registry
    # ==========================================================================

    async def create_machine(self, name: str) -> Machine:
        try:
            redis_client = await self._ensure_connected()
            machine_id = int(await redis_client.incr(self.machine_seq_key))
            machine = Machine(id=machine_id, name=name)
            await redis_client.hset(
                self.machines_key, str(machine_id), json.dumps(machine.to_dict())
            )
        except RedisError as e:
            logger.error(f"Redis error creating machine {name!r}: {e}")
            raise BackendOperationError(f"Failed to create machine: {e}") from e

        logger.debug("Created machine %d (%s)", machine.id, name)
        return machine

    async def get_machine(self, machine_id: int) -> Machine | None:
        try:
            redis_client = await self._ensure_connected()
            raw = await redis_client.hget(self.machines_key, str(machine_id))
        except RedisError as e:
            logger.error(f"Redis error getting machine {machine_id}: {e}")
            raise BackendOperationError(f"Failed to get machine: {e}") from e

        if raw is None:
            return None
        return Machine.from_dict(self._decode(raw, "machine"))

    async def list_machines(self) -> list[Machine]:
        try:
            redis_client = await self._ensure_connected()
            records = await redis_client.hgetall(self.machines_key)
        except RedisError as e:
            logger.error(f"Redis error listing machines: {e}")
            raise BackendOperationError(f"Failed to list machines: {e}") from e

        machines = [
            Machine.from_dict(self._decode(raw, "machine")) for raw in records.values()
        ]
        machines.sort(key=lambda m: m.id)
        return machines

    async def save_machine(self, machine: Machine) -> None:
        try:
            redis_client = await self._ensure_connected()
            await redis_client.hset(
                self.machines_key, str(machine.id), json.dumps(machine.to_dict())
            )
        except RedisError as e:
            logger.error(f"Redis error saving machine {machine.id}: {e}")
            raise BackendOperationError(f"Failed to save machine: {e}") from e

    async def count_machines(self) -> int:
        try:
            redis_client = await self._ensure_connected()
            return int(await redis_client.hlen(self.machines_key))
        except RedisError as e:
            logger.error(f"Redis error counting machines: {e}")
            raise BackendOperationError(f"Failed to count machines: {e}") from e

    # ==========================================================================
    # Queue Store
    # ==========================================================================

    async def add_queue_entry(
        self,
        machine_id: int,
        user_id: int,
        minutes: int | None,
        created_at: datetime,
    ) -> QueueEntry:
        try:
            redis_client = await self._ensure_connected()
            entry_id = int(await redis_client.incr(self.entry_seq_key))
            entry = QueueEntry(
                id=entry_id,
                machine_id=machine_id,
                user_id=user_id,
                minutes=minutes,
                created_at=created_at,
            )
            async with redis_client.pipeline(transaction=True) as pipe:
                pipe.hset(self.entries_key, str(entry_id), json.dumps(entry.to_dict()))
                pipe.zadd(self._queue_key(machine_id), {str(entry_id): entry_id})
                await pipe.execute()
        except RedisError as e:
            logger.error(f"Redis error adding queue entry for machine {machine_id}: {e}")
            raise BackendOperationError(f"Failed to add queue entry: {e}") from e
        return entry

    async def get_queue(self, machine_id: int) -> list[QueueEntry]:
        try:
            redis_client = await self._ensure_connected()
            ids = await redis_client.zrange(self._queue_key(machine_id), 0, -1)
            if not ids:
                return []
            raws = await redis_client.hmget(self.entries_key, ids)
        except RedisError as e:
            logger.error(f"Redis error reading queue for machine {machine_id}: {e}")
            raise BackendOperationError(f"Failed to read queue: {e}") from e

        entries = [
            QueueEntry.from_dict(self._decode(raw, "queue entry"))
            for raw in raws
            if raw is not None
        ]
        entries.sort(key=lambda e: e.sort_key)
        return entries

    async def list_queue_entries(self) -> list[QueueEntry]:
        try:
            redis_client = await self._ensure_connected()
            records = await redis_client.hgetall(self.entries_key)
        except RedisError as e:
            logger.error(f"Redis error listing queue entries: {e}")
            raise BackendOperationError(f"Failed to list queue entries: {e}") from e

        return [
            QueueEntry.from_dict(self._decode(raw, "queue entry"))
            for raw in records.values()
        ]

    async def delete_queue_entry(self, entry_id: int) -> bool:
        try:
            redis_client = await self._ensure_connected()
            raw = await redis_client.hget(self.entries_key, str(entry_id))
            if raw is None:
                return False
            entry = QueueEntry.from_dict(self._decode(raw, "queue entry"))
            async with redis_client.pipeline(transaction=True) as pipe:
                pipe.hdel(self.entries_key, str(entry_id))
                pipe.zrem(self._queue_key(entry.machine_id), str(entry_id))
                await pipe.execute()
        except RedisError as e:
            logger.error(f"Redis error deleting queue entry {entry_id}: {e}")
            raise BackendOperationError(f"Failed to delete queue entry: {e}") from e
        return True

    # ==========================================================================
    # Maintenance
    # ==========================================================================

    async def clear(self) -> None:
        """Delete all machines and queue entries.

        Uses SCAN instead of KEYS to find the per-machine queue keys without
        blocking Redis. Id sequences are left in place.
        """
        try:
            redis_client = await self._ensure_connected()
            keys_to_delete = [self.machines_key, self.entries_key]
            async for key in redis_client.scan_iter(
                match=f"{self.namespace}:queue:*", count=100
            ):
                keys_to_delete.append(key)
            await redis_client.delete(*keys_to_delete)
        except RedisError as e:
            logger.error(f"Redis error during clear: {e}")
            raise BackendOperationError(f"Failed to clear backend: {e}") from e

        logger.debug("Cleared RedisBackend namespace '%s'", self.namespace)

    async def health_check(self) -> HealthCheckResult:
        """Perform health check on the backend."""
        try:
            redis_client = await self._ensure_connected()
            await redis_client.ping()
            machines = await redis_client.hlen(self.machines_key)
            entries = await redis_client.hlen(self.entries_key)

            return HealthCheckResult(
                healthy=True,
                backend_type="redis",
                namespace=self.namespace,
                metadata={
                    "redis_url": self.redis_url,
                    "machines": machines,
                    "queue_entries": entries,
                },
            )
        except Exception as e:
            return HealthCheckResult(
                healthy=False,
                backend_type="redis",
                namespace=self.namespace,
                error=str(e),
            )

    async def close(self) -> None:
        """Close the connection if this backend created it."""
        if self._redis is not None and self._owned_redis:
            try:
                await self._redis.aclose()
            except Exception as e:
                logger.error(f"Error closing Redis connection: {e}")
            finally:
                self._redis = None


__all__ = ["RedisBackend"]
