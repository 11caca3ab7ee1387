"""Celery application configuration."""

from typing import Any

from celery import Celery, signals

from rlly.core.config import settings
from rlly.core.logging_config import setup_logging, task_id_var

# Create Celery app
celery_app = Celery(
    "rlly",
    broker=str(settings.redis_url),
    backend=str(settings.redis_url),
    include=[
        "rlly.workers.tasks.notifications",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task safety limits
    task_time_limit=300,
    task_soft_time_limit=240,
    # Task execution settings (at-least-once: deferred tasks survive worker loss)
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
    # Default queue name (must match worker -Q flag)
    task_default_queue="default",
    task_routes={
        "tasks.notifications.*": {"queue": "notifications"},
    },
    # Beat schedule (for periodic tasks)
    beat_schedule={
        "dispatch-due-emails": {
            "task": "tasks.notifications.dispatch_due_emails",
            "schedule": settings.dispatch_interval_seconds,
        },
    },
)


# Task base class with common error handling
class BaseTask(celery_app.Task):  # type: ignore[misc, name-defined]
    """Base task class with error handling."""

    abstract = True
    autoretry_for = (Exception,)
    retry_backoff = True
    retry_backoff_max = 600  # Max 10 minutes between retries
    retry_jitter = True
    max_retries = 3


class OneShotTask(BaseTask):
    """Runs once. For tasks whose side effects are not safe to repeat."""

    abstract = True
    autoretry_for = ()
    max_retries = 0


# Worker logging: same JSON format as the API, tagged with the running task id
@signals.setup_logging.connect
def _configure_worker_logging(**_kwargs: Any) -> None:
    setup_logging(debug=settings.debug)


@signals.task_prerun.connect
def _bind_task_id(task_id: str | None = None, **_kwargs: Any) -> None:
    task_id_var.set(task_id or "")


@signals.task_postrun.connect
def _unbind_task_id(**_kwargs: Any) -> None:
    task_id_var.set("")
