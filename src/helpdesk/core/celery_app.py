"""Celery application configuration.

Provides the task queue used for background work:
- Workflow notifications (high priority)
- Everything else (normal priority)
"""

from celery import Celery
from kombu import Exchange, Queue

from helpdesk.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "helpdesk",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "helpdesk.tasks.notification_tasks",
    ],
)

default_exchange = Exchange("default", type="direct")
priority_exchange = Exchange("priority", type="direct")

# Priority: high (5) > normal (0)
celery_app.conf.task_queues = (
    Queue(
        "high",
        exchange=priority_exchange,
        routing_key="high",
        queue_arguments={"x-max-priority": 5},
    ),
    Queue(
        "normal",
        exchange=default_exchange,
        routing_key="normal",
        queue_arguments={"x-max-priority": 0},
    ),
)

celery_app.conf.task_default_queue = "normal"
celery_app.conf.task_default_exchange = "default"
celery_app.conf.task_default_routing_key = "normal"

celery_app.conf.task_routes = {
    "helpdesk.tasks.notification_tasks.*": {"queue": "high"},
}

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=86400,
    worker_prefetch_multiplier=4,
    worker_max_tasks_per_child=1000,
    task_default_retry_delay=60,
    task_max_retries=3,
    worker_hijack_root_logger=False,
    broker_connection_retry_on_startup=True,
)
