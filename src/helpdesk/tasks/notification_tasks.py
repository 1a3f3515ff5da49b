"""Delivery of approval workflow notifications.

Events are posted as JSON to the configured webhook. Without a webhook the
event is only logged.
"""

from datetime import datetime, timezone
from typing import Any

import httpx

from helpdesk.core.config import get_settings
from helpdesk.tasks.base import async_task, get_task_logger

logger = get_task_logger("notification_tasks")


def build_webhook_payload(
    event_type: str, recipient_id: int, payload: dict[str, Any]
) -> dict[str, Any]:
    """Wrap a workflow event in the webhook envelope."""
    return {
        "event": event_type,
        "recipient_id": recipient_id,
        "data": payload,
        "sent_at": datetime.now(timezone.utc).isoformat(),
    }


async def post_notification(
    url: str,
    body: dict[str, Any],
    client: httpx.AsyncClient | None = None,
) -> int:
    """POST a notification body to a webhook.

    @param url - Webhook URL
    @param body - JSON body
    @param client - Optional client (a short-lived one is opened otherwise)
    @returns HTTP status code
    """
    if client is not None:
        response = await client.post(url, json=body)
        response.raise_for_status()
        return response.status_code

    async with httpx.AsyncClient(timeout=30.0) as owned:
        response = await owned.post(url, json=body)
        response.raise_for_status()
        return response.status_code


@async_task(queue="high")
async def deliver_notification(
    self,
    event_type: str,
    recipient_id: int,
    payload: dict[str, Any],
) -> dict[str, Any]:
    """Deliver one workflow notification.

    @param event_type - approval_requested, approval_approved, ...
    @param recipient_id - User to notify
    @param payload - Event data
    @returns Delivery result
    """
    settings = get_settings()
    body = build_webhook_payload(event_type, recipient_id, payload)

    if not settings.notification_webhook_url:
        logger.info(
            f"[NOTIFY] {event_type} -> user {recipient_id}",
            extra={"event": event_type, "recipient_id": recipient_id},
        )
        return {"status": "logged", "reason": "webhook not configured"}

    status_code = await post_notification(settings.notification_webhook_url, body)
    logger.info(f"Notification {event_type} delivered to user {recipient_id}")
    return {"status": "sent", "http_status": status_code}
