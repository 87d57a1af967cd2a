import json
from unittest.mock import AsyncMock

import fakeredis
import pytest
from redis.exceptions import RedisError

from machine_reservation.exceptions import BackendOperationError
from machine_reservation.publishing import PublisherProtocol
from machine_reservation.publishing.redis import RedisPublisher


class TestRedisPublisher:
    def test_satisfies_protocol(self):
        assert isinstance(RedisPublisher(redis_client=AsyncMock()), PublisherProtocol)

    def test_channel_name(self):
        publisher = RedisPublisher(redis_client=AsyncMock(), prefix="laundry")
        assert publisher.channel_name("machines") == "laundry:machines"

    @pytest.mark.asyncio
    async def test_publish_json(self):
        mock_redis = AsyncMock()
        mock_redis.publish.return_value = 1
        publisher = RedisPublisher(redis_client=mock_redis)

        await publisher.publish("machines", [{"id": 1, "inUse": False}])

        mock_redis.publish.assert_awaited_once_with(
            "machine_reservation:machines", json.dumps([{"id": 1, "inUse": False}])
        )

    @pytest.mark.asyncio
    async def test_publish_reaches_subscriber(self):
        redis_client = fakeredis.FakeAsyncRedis(decode_responses=True)
        pubsub = redis_client.pubsub()
        await pubsub.subscribe("machine_reservation:notifications")
        # Consume the subscribe confirmation
        await pubsub.get_message(timeout=1.0)

        publisher = RedisPublisher(redis_client=redis_client)
        await publisher.publish("notifications", {"type": "PRE_NOTIFY", "userId": 8})

        message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
        assert message is not None
        assert json.loads(message["data"]) == {"type": "PRE_NOTIFY", "userId": 8}
        await pubsub.aclose()

    @pytest.mark.asyncio
    async def test_publish_error_wrapped(self):
        mock_redis = AsyncMock()
        mock_redis.publish.side_effect = RedisError("down")
        publisher = RedisPublisher(redis_client=mock_redis)

        with pytest.raises(BackendOperationError, match="machines"):
            await publisher.publish("machines", [])

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client(self):
        mock_redis = AsyncMock()
        publisher = RedisPublisher(redis_client=mock_redis)
        await publisher.close()
        mock_redis.aclose.assert_not_awaited()
