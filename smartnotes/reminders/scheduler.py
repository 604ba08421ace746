"""
Periodic reminder dispatch.

Each tick picks up due, unsent reminders and drives every one of them
through ``pending -> claimed -> sent | released`` concurrently. Nothing is
raised to the caller: per-reminder failures are logged and counted, and a
reminder that could not be delivered keeps a fresh lease so the next tick
after the TTL retries it.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional

from smartnotes.utils.timezone import to_utc_aware, utcnow
from .leases import LeaseClaimer
from .metrics import (
    reminders_delivered_total,
    reminders_released_total,
    scheduler_due_total,
    scheduler_ticks_total,
)
from .repository import ReminderStore
from .router import DeliveryChannelRouter
from .schemas import DeliveryChannel, ReminderRead

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 200


class DispatchOutcome(str, Enum):
    SENT = "sent"
    NOT_CLAIMED = "not_claimed"
    NOT_FOUND = "not_found"
    RELEASED_TASK_MISSING = "released_task_missing"
    RELEASED_USER_MISSING = "released_user_missing"
    RELEASED_UNDELIVERED = "released_undelivered"
    FAILED = "failed"


@dataclass
class DispatchResult:
    reminder_id: str
    outcome: DispatchOutcome
    channel: Optional[DeliveryChannel] = None


@dataclass
class TickReport:
    now: datetime
    worker_id: str
    due: int = 0
    outcomes: Dict[DispatchOutcome, int] = field(default_factory=dict)

    def count(self, outcome: DispatchOutcome) -> int:
        return self.outcomes.get(outcome, 0)

    @property
    def sent(self) -> int:
        return self.count(DispatchOutcome.SENT)


def default_worker_id(now: datetime) -> str:
    return f"run:{to_utc_aware(now).isoformat()}:{uuid.uuid4().hex[:8]}"


class ReminderDispatchScheduler:
    def __init__(
        self,
        store: ReminderStore,
        claimer: LeaseClaimer,
        router: DeliveryChannelRouter,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.claimer = claimer
        self.router = router
        self.batch_size = batch_size
        self.clock = clock

    async def run_tick(self, now: Optional[datetime] = None, worker_id: Optional[str] = None) -> TickReport:
        now = to_utc_aware(now) if now else self.clock()
        worker_id = worker_id or default_worker_id(now)
        report = TickReport(now=now, worker_id=worker_id)
        scheduler_ticks_total.inc()

        due = await asyncio.to_thread(self.store.query_due_unsent, now, self.batch_size)
        report.due = len(due)
        scheduler_due_total.inc(len(due))
        logger.info(f"[Reminders] Dispatch tick now={now.isoformat()} worker={worker_id} reminders={len(due)}")

        results = await asyncio.gather(*(self._process_safely(r, now, worker_id) for r in due))
        for result in results:
            report.outcomes[result.outcome] = report.outcomes.get(result.outcome, 0) + 1

        logger.info(
            f"[Reminders] Dispatch tick done worker={worker_id} "
            + " ".join(f"{k.value}={v}" for k, v in sorted(report.outcomes.items(), key=lambda kv: kv[0].value))
        )
        return report

    async def force_send(
        self,
        reminder_id: str,
        now: Optional[datetime] = None,
        worker_id: Optional[str] = None,
    ) -> DispatchResult:
        """Dispatch one reminder outside the tick loop, still under a lease."""
        now = to_utc_aware(now) if now else self.clock()
        worker_id = worker_id or f"force:{to_utc_aware(now).isoformat()}:{uuid.uuid4().hex[:8]}"
        reminder = await asyncio.to_thread(self.store.get_reminder, reminder_id)
        if reminder is None:
            return DispatchResult(reminder_id, DispatchOutcome.NOT_FOUND)
        logger.info(f"[Reminders] Force-send requested for {reminder_id} worker={worker_id}")
        return await self._process_safely(reminder, now, worker_id)

    async def _process_safely(self, reminder: ReminderRead, now: datetime, worker_id: str) -> DispatchResult:
        try:
            return await self.process_reminder(reminder, now, worker_id)
        except Exception as e:
            logger.exception(f"❌ [Reminders] Failed processing reminder {reminder.id}: {e!r}")
            return DispatchResult(reminder.id, DispatchOutcome.FAILED)

    async def process_reminder(self, reminder: ReminderRead, now: datetime, worker_id: str) -> DispatchResult:
        if not await self.claimer.try_claim_async(reminder.id, now, worker_id):
            return DispatchResult(reminder.id, DispatchOutcome.NOT_CLAIMED)

        task = await asyncio.to_thread(self.store.get_task, reminder.task_id)
        if task is None:
            logger.info(f"[Reminders] Task {reminder.task_id} not found, releasing reminder {reminder.id}")
            await self.claimer.release_async(reminder.id)
            reminders_released_total.labels(reason="task_missing").inc()
            return DispatchResult(reminder.id, DispatchOutcome.RELEASED_TASK_MISSING)

        profile = await asyncio.to_thread(self.store.get_delivery_profile, reminder.user_id)
        if profile is None:
            logger.info(f"[Reminders] User {reminder.user_id} not found, releasing reminder {reminder.id}")
            await self.claimer.release_async(reminder.id)
            reminders_released_total.labels(reason="user_missing").inc()
            return DispatchResult(reminder.id, DispatchOutcome.RELEASED_USER_MISSING)

        try:
            delivery = await self.router.deliver(reminder, task, profile)
        except Exception:
            # Keep the lease stamped so a retry waits for the TTL
            await self.claimer.rearm_async(reminder.id, now, worker_id)
            raise

        if delivery.delivered:
            marked = await asyncio.to_thread(self.store.mark_sent, reminder.id, delivery.channel)
            if not marked:
                logger.warning(f"⚠️  [Reminders] Reminder {reminder.id} was already marked sent elsewhere (worker={worker_id})")
            reminders_delivered_total.labels(channel=delivery.channel.value).inc()
            logger.info(f"✅ [Reminders] Reminder {reminder.id} sent via {delivery.channel.value} (user={reminder.user_id})")
            return DispatchResult(reminder.id, DispatchOutcome.SENT, delivery.channel)

        await self.claimer.rearm_async(reminder.id, now, worker_id)
        reminders_released_total.labels(reason="undelivered").inc()
        logger.warning(f"[Reminders] Reminder {reminder.id} not delivered; retry after lease TTL")
        return DispatchResult(reminder.id, DispatchOutcome.RELEASED_UNDELIVERED)
