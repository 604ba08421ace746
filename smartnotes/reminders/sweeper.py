import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from smartnotes.utils.timezone import to_utc_aware, utcnow
from .metrics import reminders_swept_total
from .repository import ReminderStore

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(days=2)
DEFAULT_SWEEP_BATCH_SIZE = 500


class RetentionSweeper:
    """Deletes reminders whose reminder_time is past the retention window, sent or not."""

    def __init__(
        self,
        store: ReminderStore,
        retention: timedelta = DEFAULT_RETENTION,
        batch_size: int = DEFAULT_SWEEP_BATCH_SIZE,
        clock: Callable[[], datetime] = utcnow,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.store = store
        self.retention = retention
        self.batch_size = batch_size
        self.clock = clock

    def sweep(self, now: Optional[datetime] = None) -> int:
        now = to_utc_aware(now) if now else self.clock()
        cutoff = now - self.retention
        deleted = 0
        while True:
            batch = self.store.delete_stale_batch(cutoff, self.batch_size)
            deleted += batch
            if batch < self.batch_size:
                break
        reminders_swept_total.inc(deleted)
        logger.info(f"[Retention] Cleaned up {deleted} old reminders (cutoff={cutoff.isoformat()})")
        return deleted
