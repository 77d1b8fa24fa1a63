"""
Redis client for the cross-instance reminder lock.

Several API instances may run a reminder dispatcher each. A short-lived
Redis lock makes sure only one of them sweeps per tick.

Fail-open:
  When Redis is disabled or unreachable the lock reports "acquired".
  Each instance still has its own in-process guard, and a duplicate
  reminder is the worst case, which the at-least-once model already allows.
"""

from typing import Optional

import redis.asyncio as redis
from redis.exceptions import LockError, RedisError

from slotboard.core.config import get_settings
from slotboard.core.logging import get_logger
from slotboard.core.metrics import redis_connection_errors

logger = get_logger(__name__)

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client
    settings = get_settings()

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except RedisError as e:
            redis_connection_errors.inc()
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def get_redis_status() -> dict:
    client = await get_redis()
    if not client:
        return {"status": "disabled"}
    try:
        await client.ping()
        return {"status": "connected"}
    except RedisError as e:
        return {"status": "error", "error": str(e)}


class CycleLock:
    """Non-blocking Redis lock held for the duration of one dispatch cycle."""

    def __init__(self, name: str, ttl_seconds: int):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._lock = None

    async def acquire(self) -> bool:
        client = await get_redis()
        if client is None:
            return True

        self._lock = client.lock(self.name, timeout=self.ttl_seconds, blocking=False)
        try:
            acquired = await self._lock.acquire()
        except RedisError as e:
            redis_connection_errors.inc()
            logger.warning("cycle_lock_unavailable", lock=self.name, error=str(e))
            self._lock = None
            return True

        if not acquired:
            self._lock = None
        return acquired

    async def release(self) -> None:
        if self._lock is None:
            return
        try:
            await self._lock.release()
        except LockError:
            # TTL ran out before the cycle finished
            logger.warning("cycle_lock_expired", lock=self.name)
        except RedisError as e:
            redis_connection_errors.inc()
            logger.warning("cycle_lock_release_failed", lock=self.name, error=str(e))
        finally:
            self._lock = None
