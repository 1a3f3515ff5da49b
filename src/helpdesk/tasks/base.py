"""Shared helpers for Celery tasks."""

import asyncio
import functools
import logging
from typing import Any, Callable, TypeVar

from celery import Task

from helpdesk.core.celery_app import celery_app

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryableTask(Task):
    """Task with automatic retry on failure.

    Retries with exponential backoff; delivery errors are usually transient.
    """

    abstract = True
    autoretry_for = (Exception,)
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True
    max_retries = 3

    def on_failure(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        """Log task failure."""
        logger.error(
            "Task %s failed after %d retries",
            self.name,
            self.request.retries,
            exc_info=exc,
            extra={"task_id": task_id, "task_name": self.name},
        )

    def on_retry(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        """Log task retry."""
        logger.warning(
            "Task %s retrying (attempt %d/%d)",
            self.name,
            self.request.retries + 1,
            self.max_retries,
            extra={"task_id": task_id, "exception": str(exc)},
        )


def async_task(
    *args: Any,
    bind: bool = True,
    base: type[Task] = RetryableTask,
    **kwargs: Any,
) -> Callable:
    """Decorator registering a coroutine function as a Celery task.

    The worker runs the coroutine to completion on a fresh event loop.

    @param bind - Bind task instance to first argument
    @param base - Base task class to use
    @returns Decorated task function
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @celery_app.task(*args, bind=bind, base=base, **kwargs)
        @functools.wraps(func)
        def wrapper(*task_args: Any, **task_kwargs: Any) -> T:
            return asyncio.run(func(*task_args, **task_kwargs))

        return wrapper

    return decorator


def get_task_logger(task_name: str) -> logging.Logger:
    """Get logger for a specific task."""
    return logging.getLogger(f"celery.task.{task_name}")
