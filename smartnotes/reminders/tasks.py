import asyncio
from celery.utils.log import get_logger

from .celery_app import celery_app, get_runtime

logger = get_logger(__name__)


@celery_app.task(name="reminders.dispatch_due", bind=True)
def dispatch_due_reminders_task(self) -> int:
    """Run one dispatch tick. Returns the number of reminders sent."""
    runtime = get_runtime()
    worker_id = f"celery:{self.request.id}" if self.request.id else None
    report = asyncio.run(runtime.scheduler.run_tick(worker_id=worker_id))
    return report.sent


@celery_app.task(name="reminders.sweep_old")
def sweep_old_reminders_task() -> int:
    """Delete reminders past the retention window. Returns the number deleted."""
    return get_runtime().sweeper.sweep()


@celery_app.task(name="reminders.force_send")
def force_send_reminder_task(reminder_id: str) -> dict:
    result = asyncio.run(get_runtime().scheduler.force_send(reminder_id))
    logger.info(f"[Reminders] Force-send {reminder_id} -> {result.outcome.value}")
    return {
        "reminder_id": result.reminder_id,
        "outcome": result.outcome.value,
        "channel": result.channel.value if result.channel else None,
    }
