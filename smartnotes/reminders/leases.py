"""
Dispatch lease over a single reminder record.

The lease lives on the record itself (``processing_at`` / ``processing_by``).
Taking it is one conditional write, so for a given reminder at most one
concurrent caller wins; the rest see ``False`` and move on.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from .metrics import reminders_claimed_total, reminders_claim_conflicts_total
from .repository import ReminderStore

logger = logging.getLogger(__name__)

DEFAULT_CLAIM_TTL = timedelta(minutes=2)


class LeaseClaimer:
    def __init__(self, store: ReminderStore, ttl: timedelta = DEFAULT_CLAIM_TTL):
        if ttl <= timedelta(0):
            raise ValueError("claim TTL must be positive")
        self.store = store
        self.ttl = ttl

    def try_claim(self, reminder_id: str, now: datetime, worker_id: str, ttl: Optional[timedelta] = None) -> bool:
        claimed = self.store.claim(reminder_id, now, ttl or self.ttl, worker_id)
        if claimed:
            reminders_claimed_total.inc()
        else:
            reminders_claim_conflicts_total.inc()
            logger.debug(f"[Reminders] Claim lost for {reminder_id} (worker={worker_id})")
        return claimed

    def release(self, reminder_id: str) -> None:
        """Drop the lease so the next tick may pick the reminder up immediately."""
        self.store.clear_lease(reminder_id)

    def rearm(self, reminder_id: str, now: datetime, worker_id: str) -> None:
        """Restamp our own lease so a retry only happens once the TTL has elapsed."""
        self.store.refresh_lease(reminder_id, now, worker_id)

    async def try_claim_async(self, reminder_id: str, now: datetime, worker_id: str) -> bool:
        return await asyncio.to_thread(self.try_claim, reminder_id, now, worker_id)

    async def release_async(self, reminder_id: str) -> None:
        await asyncio.to_thread(self.release, reminder_id)

    async def rearm_async(self, reminder_id: str, now: datetime, worker_id: str) -> None:
        await asyncio.to_thread(self.rearm, reminder_id, now, worker_id)
