"""
Redis Connection for Notification Publishing

The worker uses Redis for one thing: core.notifications.send_notification
publishes each in-app notification as JSON on
``settings.notification_channel``, where the platform's notification service
picks it up.

Redis is optional outside production. Until ``init_redis`` succeeds,
``get_redis`` returns None and the publisher logs notifications instead of
publishing them. A client that fails its startup ping is closed and never
handed out.
"""

import logging

from redis.asyncio import Redis, from_url

from academic_worker.core.config import settings

logger = logging.getLogger(__name__)

# Publisher connection; None while disconnected
redis_client: Redis | None = None


async def init_redis() -> Redis:
    """
    Connect the notification publisher to ``settings.redis_url``.

    Call this on application startup. Raises the connection error if the
    server does not answer a ping; the publisher then stays disconnected.
    """
    global redis_client
    client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise

    redis_client = client
    logger.info(f"Publishing notifications on Redis channel '{settings.notification_channel}'")
    return redis_client


def get_redis() -> Redis | None:
    """The publisher connection, or None when notifications should be logged instead."""
    return redis_client


async def close_redis() -> None:
    """Close the publisher connection; later notifications are logged."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
