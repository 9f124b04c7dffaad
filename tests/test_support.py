"""
Tests for configuration, best-effort tasks, notification locks and wiring
"""

import asyncio
import pytest
from pydantic import ValidationError
from unittest.mock import AsyncMock, MagicMock, patch

from mentorship.bootstrap import build_services, shutdown_services
from mentorship.config import MentorshipConfig
from mentorship.exceptions import ConfigurationError
from mentorship.ratelimit import InMemoryRateLimitStore, RedisRateLimitStore
from mentorship.services.best_effort import run_best_effort
from mentorship.services.notification_lock import (
    InMemoryNotificationLock,
    RedisNotificationLock,
)


class TestConfig:
    """Tests for MentorshipConfig"""

    def test_defaults(self):
        config = MentorshipConfig(_env_file=None)

        assert config.notification_cooldown_days == 7
        assert config.rate_limit_backend == "memory"
        assert config.is_production is False
        assert config.mail_enabled is False

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("NOTIFICATION_COOLDOWN_DAYS", "14")
        monkeypatch.setenv("RATE_LIMIT_BACKEND", " Redis ")

        config = MentorshipConfig(_env_file=None)

        assert config.notification_cooldown_days == 14
        assert config.rate_limit_backend == "redis"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"notification_cooldown_days": 0},
            {"send_concurrency": 0},
            {"rate_limit_backend": "memcached"},
            {"email_from": "not-an-address"},
        ],
    )
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ValidationError):
            MentorshipConfig(_env_file=None, **overrides)

    def test_require_mail_settings(self):
        assert MentorshipConfig(_env_file=None).require_mail_settings() is False

        production = MentorshipConfig(_env_file=None, environment="production", resend_api_key="re_x")
        with pytest.raises(ConfigurationError, match="EMAIL_FROM"):
            production.require_mail_settings()

    def test_build_booking_url(self, config):
        assert config.build_booking_url("/checkout/jane") == "https://app.example.com/checkout/jane"
        assert config.build_booking_url("https://shop.example.com/x") == "https://shop.example.com/x"


class TestBestEffort:
    """Tests for run_best_effort"""

    @pytest.mark.asyncio
    async def test_success(self):
        task = AsyncMock(return_value=None)

        outcome = await run_best_effort("ping", task)

        assert outcome.ok is True
        task.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_is_returned_not_raised(self):
        outcome = await run_best_effort("ping", AsyncMock(side_effect=RuntimeError("nope")))

        assert outcome.ok is False
        assert outcome.error_message == "nope"

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def hang():
            await asyncio.sleep(5)

        outcome = await run_best_effort("ping", hang, timeout=0.05)

        assert outcome.ok is False
        assert outcome.error_message == "timeout"


class TestNotificationLocks:
    """Tests for the per-key notification locks"""

    @pytest.mark.asyncio
    async def test_in_memory_lock_serializes_same_key(self):
        lock = InMemoryNotificationLock()
        order = []

        async def worker(name):
            async with lock.hold("jane:group"):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-start", "a-end", "b-start", "b-end"]

    @pytest.mark.asyncio
    async def test_redis_lock_acquires_and_releases(self):
        redis_lock = MagicMock()
        redis_lock.acquire = AsyncMock(return_value=True)
        redis_lock.release = AsyncMock()
        client = MagicMock()
        client.lock.return_value = redis_lock

        async with RedisNotificationLock(client, ttl_seconds=60).hold("jane:group"):
            pass

        client.lock.assert_called_once_with("waitlist-notify:jane:group", timeout=60, blocking_timeout=30.0)
        redis_lock.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_redis_lock_not_acquired(self):
        redis_lock = MagicMock()
        redis_lock.acquire = AsyncMock(return_value=False)
        client = MagicMock()
        client.lock.return_value = redis_lock

        with pytest.raises(TimeoutError):
            async with RedisNotificationLock(client).hold("jane:group"):
                pass


class TestBootstrap:
    """Tests for service wiring"""

    @pytest.mark.asyncio
    async def test_build_services_without_mail(self):
        config = MentorshipConfig(_env_file=None)

        services = build_services(config, init_db=False)

        assert services.mailer is None
        assert services.discord is None
        assert services.notifier.mailer is None
        assert services.inventory.notifier is services.notifier
        assert isinstance(services.rate_limiter.store, InMemoryRateLimitStore)
        await shutdown_services(services)

    @pytest.mark.asyncio
    async def test_redis_clients_are_shared_and_closed(self):
        """One sync and one asyncio client are created, wired in and closed on shutdown"""
        config = MentorshipConfig(_env_file=None, rate_limit_backend="redis", redis_url="redis://cache:6379/1")
        sync_client = MagicMock()
        async_client = MagicMock()
        async_client.aclose = AsyncMock()

        with patch("redis.Redis.from_url", return_value=sync_client) as sync_from_url, patch(
            "redis.asyncio.from_url", return_value=async_client
        ) as async_from_url:
            services = build_services(config, init_db=False)

        sync_from_url.assert_called_once_with("redis://cache:6379/1", decode_responses=True)
        async_from_url.assert_called_once_with("redis://cache:6379/1", decode_responses=True)
        assert services.redis_client is sync_client
        assert services.async_redis_client is async_client
        assert isinstance(services.rate_limiter.store, RedisRateLimitStore)
        assert services.rate_limiter.store.client is sync_client
        assert isinstance(services.notifier.lock, RedisNotificationLock)
        assert services.notifier.lock.client is async_client

        await shutdown_services(services)

        sync_client.close.assert_called_once_with()
        async_client.aclose.assert_awaited_once_with()
