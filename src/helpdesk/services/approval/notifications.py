"""Notification sinks for approval workflow events."""

import logging
from typing import Any

from helpdesk.core.config import Settings
from helpdesk.services.approval.interfaces import NotificationSink

logger = logging.getLogger(__name__)


class LoggingNotificationSink:
    """Writes notifications to the application log."""

    async def notify(
        self, event_type: str, recipient_id: int, payload: dict[str, Any]
    ) -> None:
        logger.info(
            f"Notification {event_type} for user {recipient_id}",
            extra={"event": event_type, "recipient_id": recipient_id, "payload": payload},
        )


class CeleryNotificationSink:
    """Queues notifications for delivery by a Celery worker."""

    async def notify(
        self, event_type: str, recipient_id: int, payload: dict[str, Any]
    ) -> None:
        from helpdesk.tasks.notification_tasks import deliver_notification

        deliver_notification.delay(event_type, recipient_id, payload)
        logger.debug(f"Queued {event_type} notification for user {recipient_id}")


def build_notification_sink(settings: Settings) -> NotificationSink:
    """Create the sink selected by ``notification_backend``."""
    if settings.notification_backend == "celery":
        return CeleryNotificationSink()
    return LoggingNotificationSink()
