import json
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from admin_policy.infrastructure import redis as redis_module
from admin_policy.infrastructure.redis import (
    RedisClient,
    RedisEventPublisher,
    close_redis,
    get_redis,
    init_redis,
)


@pytest.fixture(autouse=True)
def reset_redis_state():
    redis_module._reset_for_testing()
    yield
    redis_module._reset_for_testing()


def make_client(publish_result=1) -> RedisClient:
    client = RedisClient("redis://localhost:6379/0")
    client.publish = AsyncMock(return_value=publish_result)
    return client


@pytest.mark.anyio
async def test_publish_sends_json_envelope():
    client = make_client()
    publisher = RedisEventPublisher("policy.events", client=client)

    await publisher.publish("escalation.notify", {"rule_id": "r-1", "context": {"amount": 600}})

    channel, message = client.publish.await_args.args
    assert channel == "policy.events"
    assert json.loads(message) == {
        "type": "escalation.notify",
        "payload": {"rule_id": "r-1", "context": {"amount": 600}},
    }


@pytest.mark.anyio
async def test_redis_error_is_logged_and_dropped(caplog):
    client = make_client()
    client.publish.side_effect = RedisConnectionError("connection refused")
    publisher = RedisEventPublisher("policy.events", client=client)

    with caplog.at_level("ERROR"):
        await publisher.publish("approval.created", {"request_id": "x"})

    assert "operation=PUBLISH" in caplog.text
    assert "event_type=approval.created" in caplog.text


@pytest.mark.anyio
async def test_event_dropped_when_redis_not_initialized(caplog):
    publisher = RedisEventPublisher("policy.events")

    with caplog.at_level("WARNING"):
        await publisher.publish("escalation.notify", {})

    assert "reason=redis_not_initialized" in caplog.text


@pytest.mark.anyio
async def test_publisher_uses_global_client_once_initialized():
    with patch.object(RedisClient, "connect", new=AsyncMock()):
        client = await init_redis("redis://localhost:6379/0")
    client.publish = AsyncMock(return_value=0)

    await RedisEventPublisher("policy.events").publish("escalation.notify", {})

    client.publish.assert_awaited_once()


@pytest.mark.anyio
async def test_init_and_close_are_idempotent():
    with patch.object(RedisClient, "connect", new=AsyncMock()) as connect, patch.object(
        RedisClient, "disconnect", new=AsyncMock()
    ) as disconnect:
        first = await init_redis("redis://localhost:6379/0")
        second = await init_redis("redis://localhost:6379/0")
        assert first is second
        assert get_redis() is first
        assert connect.await_count == 1

        await close_redis()
        await close_redis()
        assert disconnect.await_count == 1

    with pytest.raises(RuntimeError, match="not initialized"):
        get_redis()
