"""
Booking core - process start-up wiring.
Builds every collaborator once and hands them to the request/job handlers.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from mentorship.config import MentorshipConfig, get_config
from mentorship.database import init_database, close_database
from mentorship.logging_config import configure_logging
from mentorship.ratelimit import RateLimiter, build_rate_limiter
from mentorship.services.discord_service import DiscordWebhookNotifier
from mentorship.services.email_service import ResendMailer, build_mailer
from mentorship.services.inventory_service import InventoryService
from mentorship.services.notification_lock import build_notification_lock
from mentorship.services.waitlist_notifier import WaitlistNotifier
from mentorship.services.waitlist_service import WaitlistService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: MentorshipConfig
    rate_limiter: RateLimiter
    notifier: WaitlistNotifier
    inventory: InventoryService
    waitlist: WaitlistService
    mailer: Optional[ResendMailer] = None
    discord: Optional[DiscordWebhookNotifier] = None
    redis_client: Optional[Any] = None  # sync client behind the rate limiter
    async_redis_client: Optional[Any] = None  # asyncio client behind the notification lock


def build_services(config: Optional[MentorshipConfig] = None, init_db: bool = True) -> Services:
    """Create the service graph for this process"""
    config = config or get_config()
    configure_logging()

    if init_db:
        logger.info("Initializing database...")
        init_database()

    redis_client = None
    async_redis_client = None
    if config.rate_limit_backend == "redis":
        import redis
        import redis.asyncio as aioredis

        logger.info("Connecting Redis clients...")
        redis_client = redis.Redis.from_url(config.redis_url, decode_responses=True)
        async_redis_client = aioredis.from_url(config.redis_url, decode_responses=True)

    mailer = build_mailer(config)
    discord = None
    if config.discord_webhook_url:
        discord = DiscordWebhookNotifier(config.discord_webhook_url, timeout=config.send_timeout_seconds)

    notifier = WaitlistNotifier(
        mailer,
        lock=build_notification_lock(config, client=async_redis_client),
        discord=discord,
        config=config,
    )
    rate_limiter = build_rate_limiter(config, namespace="waitlist", client=redis_client)

    logger.info("Booking core services ready")
    return Services(
        config=config,
        rate_limiter=rate_limiter,
        notifier=notifier,
        inventory=InventoryService(notifier),
        waitlist=WaitlistService(rate_limiter),
        mailer=mailer,
        discord=discord,
        redis_client=redis_client,
        async_redis_client=async_redis_client,
    )


async def shutdown_services(services: Services) -> None:
    """Close HTTP clients, Redis clients and database connections"""
    if services.mailer is not None:
        await services.mailer.close()
    if services.discord is not None:
        await services.discord.close()
    if services.async_redis_client is not None:
        await services.async_redis_client.aclose()
    if services.redis_client is not None:
        services.redis_client.close()
    close_database()
    logger.info("Booking core services stopped")
