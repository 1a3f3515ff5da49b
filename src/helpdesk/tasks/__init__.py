"""Celery background tasks."""

from helpdesk.tasks.notification_tasks import deliver_notification

__all__ = ["deliver_notification"]
