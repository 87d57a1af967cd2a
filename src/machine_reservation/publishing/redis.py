# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Redis pub/sub publisher.

Payloads are JSON-encoded and published on ``{prefix}:{channel}`` so that
processes outside the scheduler (web sockets gateways, dashboards) can
subscribe with any Redis client.
"""

import json
import logging
import os
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from ..exceptions import BackendOperationError

logger = logging.getLogger(__name__)


class RedisPublisher:
    """Publish snapshots and notifications through Redis pub/sub."""

    def __init__(
        self,
        redis_url: str | None = None,
        redis_client: Any | None = None,
        prefix: str = "machine_reservation",
    ) -> None:
        """
        Args:
            redis_url: Redis connection URL; falls back to REDIS_URL, then
                "redis://localhost:6379"
            redis_client: Optional pre-configured Redis client
            prefix: Prefix prepended to every channel name
        """
        self.redis_url = (
            redis_url or os.environ.get("REDIS_URL") or "redis://localhost:6379"
        )
        self.prefix = prefix
        self._redis: Any | None = redis_client
        self._owned_redis = redis_client is None

    def channel_name(self, channel: str) -> str:
        return f"{self.prefix}:{channel}"

    def _client(self) -> Any:
        if self._redis is None:
            self._redis = Redis.from_url(self.redis_url, decode_responses=True)
        return self._redis

    async def publish(self, channel: str, payload: Any) -> None:
        """Publish ``payload`` as JSON. Returns once Redis accepted it."""
        try:
            receivers = await self._client().publish(
                self.channel_name(channel), json.dumps(payload)
            )
        except RedisError as e:
            raise BackendOperationError(f"Failed to publish on {channel}: {e}") from e
        logger.debug("Published on %s to %s receivers", channel, receivers)

    async def close(self) -> None:
        if self._redis is not None and self._owned_redis:
            try:
                await self._redis.aclose()
            finally:
                self._redis = None


__all__ = ["RedisPublisher"]
