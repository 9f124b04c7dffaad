"""
Per-key locks around the waitlist read-send-mark sequence.
Prevents two inventory events for the same instructor/type from mailing the same people.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Protocol

from mentorship.config import MentorshipConfig

logger = logging.getLogger(__name__)


class NotificationLock(Protocol):
    def hold(self, key: str) -> "AsyncIterator[None]":
        ...


class InMemoryNotificationLock:
    """asyncio locks keyed by name; covers a single process"""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            yield


class RedisNotificationLock:
    """Redis-backed lock for deployments running several instances"""

    def __init__(self, client, ttl_seconds: int = 120, blocking_timeout: float = 30.0):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.blocking_timeout = blocking_timeout

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self.client.lock(
            f"waitlist-notify:{key}",
            timeout=self.ttl_seconds,
            blocking_timeout=self.blocking_timeout,
        )
        acquired = await lock.acquire()
        if not acquired:
            raise TimeoutError(f"Could not acquire notification lock for {key}")
        try:
            yield
        finally:
            try:
                await lock.release()
            except Exception as e:
                # Expired locks cannot be released; the TTL already freed them
                logger.warning(f"Failed to release notification lock for {key}: {e}")


def build_notification_lock(config: MentorshipConfig, client=None) -> NotificationLock:
    """Pick the lock backend that matches the rate limit backend"""
    if config.rate_limit_backend == "redis":
        if client is None:
            import redis.asyncio as aioredis

            client = aioredis.from_url(config.redis_url, decode_responses=True)
        logger.info("Using Redis notification lock")
        return RedisNotificationLock(client)

    return InMemoryNotificationLock()
