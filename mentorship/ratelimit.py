"""
Fixed-window rate limiting with a pluggable counter store.

The limiter is built once at startup and passed to whoever needs it.
In-memory storage suits a single instance; Redis shares counters
across instances.
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional, Protocol, Tuple

from mentorship.config import MentorshipConfig
from mentorship.models import RateLimitResult

logger = logging.getLogger(__name__)


class RateLimitStore(Protocol):
    """Counter storage. ttl() follows Redis: -2 missing key, -1 no expiry."""

    def incr(self, key: str) -> int:
        ...

    def ttl(self, key: str) -> int:
        ...

    def expire(self, key: str, seconds: int) -> None:
        ...


class InMemoryRateLimitStore:
    """
    Process-local counters.

    Expired keys are dropped when they are read, and every cleanup_interval
    seconds incr sweeps the whole table so keys that are never touched again
    do not accumulate.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, cleanup_interval: float = 60.0):
        self._clock = clock
        self._entries: Dict[str, Tuple[int, Optional[float]]] = {}  # key -> (count, expires_at)
        self._lock = threading.Lock()
        self._cleanup_interval = cleanup_interval
        self._next_cleanup = clock() + cleanup_interval

    def __len__(self) -> int:
        return len(self._entries)

    def _live_entry(self, key: str) -> Optional[Tuple[int, Optional[float]]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def _purge_locked(self, now: float) -> int:
        stale = [
            key
            for key, (_, expires_at) in self._entries.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def incr(self, key: str) -> int:
        with self._lock:
            now = self._clock()
            if now >= self._next_cleanup:
                purged = self._purge_locked(now)
                self._next_cleanup = now + self._cleanup_interval
                if purged:
                    logger.debug(f"Purged {purged} expired rate limit keys")
            entry = self._live_entry(key)
            count, expires_at = entry if entry else (0, None)
            self._entries[key] = (count + 1, expires_at)
            return count + 1

    def ttl(self, key: str) -> int:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return -2
            _, expires_at = entry
            if expires_at is None:
                return -1
            return max(0, int(round(expires_at - self._clock())))

    def expire(self, key: str, seconds: int) -> None:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return
            self._entries[key] = (entry[0], self._clock() + seconds)

    def purge_expired(self) -> int:
        """Drop every expired key. Returns number of keys removed."""
        with self._lock:
            return self._purge_locked(self._clock())


class RedisRateLimitStore:
    """Counters kept in Redis so every instance sees the same window"""

    def __init__(self, client):
        self.client = client

    def incr(self, key: str) -> int:
        return int(self.client.incr(key))

    def ttl(self, key: str) -> int:
        return int(self.client.ttl(key))

    def expire(self, key: str, seconds: int) -> None:
        self.client.expire(key, seconds)


class RateLimiter:
    """Allow max_requests per key within each window_seconds window"""

    def __init__(
        self,
        store: RateLimitStore,
        max_requests: int = 10,
        window_seconds: int = 60,
        namespace: str = "rl",
    ):
        if max_requests < 1 or window_seconds < 1:
            raise ValueError("max_requests and window_seconds must be positive")
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.namespace = namespace

    def hit(self, key: str) -> RateLimitResult:
        """Count one request for key and report whether it is allowed"""
        storage_key = f"{self.namespace}:{key}"
        count = self.store.incr(storage_key)

        ttl = self.store.ttl(storage_key)
        if count == 1 or ttl == -1:
            # First hit opens the window; a key without expiry would never reset
            self.store.expire(storage_key, self.window_seconds)
            ttl = self.window_seconds

        if count > self.max_requests:
            retry_after = ttl if ttl > 0 else self.window_seconds
            logger.info(f"Rate limit exceeded for {storage_key} ({count}/{self.max_requests})")
            return RateLimitResult(success=False, retry_after_seconds=retry_after)

        return RateLimitResult(success=True)


def build_rate_limit_store(config: MentorshipConfig, client=None) -> RateLimitStore:
    """
    Pick the counter store configured for this deployment.

    A Redis client passed in stays owned by the caller; without one a new
    client is created from redis_url.
    """
    if config.rate_limit_backend == "redis":
        if client is None:
            import redis

            client = redis.Redis.from_url(config.redis_url, decode_responses=True)
        logger.info("Using Redis rate limit store")
        return RedisRateLimitStore(client)

    logger.info("Using in-memory rate limit store")
    return InMemoryRateLimitStore()


def build_rate_limiter(config: MentorshipConfig, namespace: str = "rl", client=None) -> RateLimiter:
    return RateLimiter(
        build_rate_limit_store(config, client=client),
        max_requests=config.rate_limit_max_requests,
        window_seconds=config.rate_limit_window_seconds,
        namespace=namespace,
    )
