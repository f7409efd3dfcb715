"""
In-App Notifications

Notifications are published as JSON on a Redis channel; the platform's
notification service persists and pushes them to the recipient. When Redis
is not connected the notification is logged instead of published.
"""

import enum
import json
import logging
from datetime import UTC, datetime
from uuid import UUID

from academic_worker.core.config import settings
from academic_worker.core.redis import get_redis

logger = logging.getLogger(__name__)


class NotificationSeverity(str, enum.Enum):
    """Display severity of an in-app notification."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


async def send_notification(
    recipient_id: UUID | str,
    title: str,
    message: str,
    severity: NotificationSeverity | str = NotificationSeverity.INFO,
) -> bool:
    """
    Publish an in-app notification.

    Args:
        recipient_id: User id of the recipient
        title: Short headline
        message: Notification body
        severity: info, warning or error

    Returns:
        True if the notification was published (or logged without Redis)
    """
    client = get_redis()
    if client is None:
        logger.warning("Redis not connected - logging notification instead of publishing")
        logger.info(f"NOTIFICATION TO: {recipient_id} | TITLE: {title}")
        return True

    payload = {
        "recipient_id": str(recipient_id),
        "title": title,
        "message": message,
        "type": NotificationSeverity(severity).value,
        "created_at": datetime.now(UTC).isoformat(),
    }

    try:
        await client.publish(settings.notification_channel, json.dumps(payload))
        logger.info(f"Notification published to {recipient_id}: {title}")
        return True
    except Exception as e:
        logger.error(f"Failed to publish notification to {recipient_id}: {e}")
        return False
