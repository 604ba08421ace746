from typing import Optional
from celery import Celery
from celery.signals import worker_process_init, worker_process_shutdown
from celery.utils.log import get_logger

from .config import settings
from .runtime import ReminderRuntime, build_runtime

logger = get_logger(__name__)

celery_app = Celery(
    "reminders",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.WORKER_CONCURRENCY,
    include=["smartnotes.reminders.tasks"],
    # Hard stop for a hung tick
    task_time_limit=max(settings.SCHEDULER_SCAN_INTERVAL_SECONDS * 5, settings.CLAIM_TTL_SECONDS * 2),
)

celery_app.conf.beat_schedule = {
    "dispatch-due-reminders": {
        "task": "reminders.dispatch_due",
        "schedule": settings.SCHEDULER_SCAN_INTERVAL_SECONDS,
        "options": {"expires": settings.SCHEDULER_SCAN_INTERVAL_SECONDS},
    },
    "sweep-old-reminders": {
        "task": "reminders.sweep_old",
        "schedule": settings.RETENTION_INTERVAL_SECONDS,
    },
}

_runtime: Optional[ReminderRuntime] = None


def get_runtime() -> ReminderRuntime:
    """Runtime of the current worker process, built on first use."""
    global _runtime
    if _runtime is None:
        _runtime = build_runtime()
    return _runtime


@worker_process_init.connect
def _init_runtime(**kwargs) -> None:
    get_runtime()
    logger.info("[Reminders] Worker runtime initialized")


@worker_process_shutdown.connect
def _close_runtime(**kwargs) -> None:
    global _runtime
    if _runtime is not None:
        _runtime.close()
        _runtime = None
        logger.info("[Reminders] Worker runtime closed")
