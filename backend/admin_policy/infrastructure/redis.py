"""Redis client for notification events.

Escalation notifications (`escalation.notify`, `approval.created`) are
published as JSON to a pub/sub channel. Delivery to people is someone else's
job; this module only hands the event to Redis.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum, auto
from typing import Any

from redis.asyncio import Redis as AsyncRedis, from_url as async_from_url
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class _RedisLifecycleState(Enum):
    """Lifecycle states for the Redis singleton.

    State transitions:
    - UNINITIALIZED -> INITIALIZED (via init_redis)
    - INITIALIZED -> CLOSED (via close_redis)
    - CLOSED -> INITIALIZED (via init_redis - allows restart)
    """
    UNINITIALIZED = auto()
    INITIALIZED = auto()
    CLOSED = auto()


class RedisClient:
    """Async Redis client wrapper with an explicit connect/disconnect lifecycle."""

    def __init__(self, redis_url: str) -> None:
        self._redis_url = redis_url
        self._redis: AsyncRedis | None = None

    async def connect(self) -> None:
        if self._redis is None:
            self._redis = async_from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("Redis connection established")

    async def disconnect(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis connection closed")

    async def _ensure_connected(self) -> AsyncRedis:
        if self._redis is None:
            await self.connect()
        assert self._redis is not None
        return self._redis

    async def publish(self, channel: str, message: str) -> int:
        """Publish a message; returns the number of subscribers that got it."""
        redis = await self._ensure_connected()
        return int(await redis.publish(channel, message))


class RedisEventPublisher:
    """Publishes notification events to a Redis pub/sub channel.

    Failures are logged and dropped.
    """

    def __init__(self, channel: str, client: RedisClient | None = None) -> None:
        self._channel = channel
        self._client = client

    def _resolve_client(self) -> RedisClient | None:
        if self._client is not None:
            return self._client
        if _redis_state != _RedisLifecycleState.INITIALIZED or _redis_client is None:
            return None
        return _redis_client

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        client = self._resolve_client()
        if client is None:
            logger.warning(
                "event_dropped reason=redis_not_initialized event_type=%s", event_type
            )
            return
        message = json.dumps({"type": event_type, "payload": payload}, default=str)
        try:
            receivers = await client.publish(self._channel, message)
        except RedisError as exc:
            logger.error(
                "Redis operation failed operation=PUBLISH channel=%s event_type=%s error=%s",
                self._channel,
                event_type,
                exc,
            )
            return
        logger.debug(
            "event_published channel=%s event_type=%s receivers=%d",
            self._channel,
            event_type,
            receivers,
        )


# Global instance (created at startup, not at import)
_redis_client: RedisClient | None = None
_redis_state: _RedisLifecycleState = _RedisLifecycleState.UNINITIALIZED
_redis_lock: asyncio.Lock = asyncio.Lock()


async def init_redis(redis_url: str) -> RedisClient:
    """Initialize the global Redis client.

    Idempotent: calling it while initialized returns the existing client.
    """
    global _redis_client, _redis_state

    async with _redis_lock:
        if _redis_state == _RedisLifecycleState.INITIALIZED:
            assert _redis_client is not None
            logger.debug("Redis already initialized, returning existing client")
            return _redis_client

        logger.info("Initializing Redis client (current state: %s)", _redis_state.name)
        _redis_client = RedisClient(redis_url)
        await _redis_client.connect()
        _redis_state = _RedisLifecycleState.INITIALIZED
        return _redis_client


async def close_redis() -> None:
    """Close the global Redis client. Safe to call in any state."""
    global _redis_client, _redis_state

    async with _redis_lock:
        if _redis_state != _RedisLifecycleState.INITIALIZED:
            logger.debug("Redis not initialized (state: %s), nothing to close", _redis_state.name)
            return

        if _redis_client is not None:
            await _redis_client.disconnect()
            _redis_client = None
        _redis_state = _RedisLifecycleState.CLOSED


def get_redis() -> RedisClient:
    """Get the global Redis client.

    Raises:
        RuntimeError: If init_redis() has not been called
    """
    if _redis_state != _RedisLifecycleState.INITIALIZED or _redis_client is None:
        raise RuntimeError("Redis client not initialized. Call init_redis() first.")
    return _redis_client


def _reset_for_testing() -> None:
    global _redis_client, _redis_state
    _redis_client = None
    _redis_state = _RedisLifecycleState.UNINITIALIZED
