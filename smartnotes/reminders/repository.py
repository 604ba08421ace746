from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional
import logging
import uuid

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from smartnotes.agenda.projector import TaskDocument
from smartnotes.models import DeviceToken, Task, TaskReminder, User
from smartnotes.utils.timezone import to_utc_aware, utcnow
from .schemas import DeliveryChannel, DeliveryProfile, ReminderCreate, ReminderRead, TaskRecord

logger = logging.getLogger(__name__)


def _read(reminder: TaskReminder) -> ReminderRead:
    data = ReminderRead.model_validate(reminder)
    # SQLite hands back naive values; everything is stored as UTC
    data.reminder_time = to_utc_aware(data.reminder_time)
    data.due_date = to_utc_aware(data.due_date)
    data.processing_at = to_utc_aware(data.processing_at)
    return data


# --- Reminder records ---

def create_reminder(db: Session, data: ReminderCreate) -> ReminderRead:
    """Insert a reminder once per ``external_id``.

    The unique constraint on ``external_id`` is the lock: a concurrent or
    repeated ingestion of the same key hits IntegrityError and gets the
    existing row back instead of a duplicate.
    """
    reminder = TaskReminder(
        id=str(uuid.uuid4()),
        user_id=data.user_id,
        task_id=data.task_id,
        due_date=to_utc_aware(data.due_date),
        reminder_time=to_utc_aware(data.reminder_time),
        sent=False,
        external_id=data.external_id,
    )
    db.add(reminder)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        if not data.external_id:
            raise
        existing = db.execute(
            select(TaskReminder).where(TaskReminder.external_id == data.external_id)
        ).scalar_one()
        logger.info(f"[Reminders] Duplicate ingestion for external_id={data.external_id}; keeping {existing.id}")
        return _read(existing)
    db.refresh(reminder)
    return _read(reminder)


def get_reminder(db: Session, reminder_id: str) -> Optional[ReminderRead]:
    reminder = db.get(TaskReminder, reminder_id)
    return _read(reminder) if reminder else None


def get_due_unsent(db: Session, now: datetime, limit: int = 200) -> List[ReminderRead]:
    stmt = (
        select(TaskReminder)
        .where(TaskReminder.sent == False)  # noqa: E712
        .where(TaskReminder.reminder_time <= to_utc_aware(now))
        .order_by(TaskReminder.reminder_time.asc())
        .limit(limit)
    )
    return [_read(r) for r in db.execute(stmt).scalars()]


def claim_lease(db: Session, reminder_id: str, now: datetime, ttl: timedelta, worker_id: str) -> bool:
    """Conditionally take the dispatch lease in a single UPDATE.

    The row is claimable when it exists, is unsent, and either has no lease or
    a lease at least ``ttl`` old. A lease stamped in the future (clock skew)
    still counts as held.
    """
    now = to_utc_aware(now)
    result = db.execute(
        update(TaskReminder)
        .where(TaskReminder.id == reminder_id)
        .where(TaskReminder.sent == False)  # noqa: E712
        .where(
            or_(
                TaskReminder.processing_at.is_(None),
                TaskReminder.processing_at <= now - ttl,
            )
        )
        .values(processing_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def clear_lease(db: Session, reminder_id: str) -> None:
    db.execute(
        update(TaskReminder)
        .where(TaskReminder.id == reminder_id)
        .where(TaskReminder.sent == False)  # noqa: E712
        .values(processing_at=None, processing_by=None, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()


def refresh_lease(db: Session, reminder_id: str, now: datetime, worker_id: str) -> None:
    now = to_utc_aware(now)
    db.execute(
        update(TaskReminder)
        .where(TaskReminder.id == reminder_id)
        .where(TaskReminder.sent == False)  # noqa: E712
        .where(TaskReminder.processing_by == worker_id)
        .values(processing_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def mark_sent(db: Session, reminder_id: str, channel: DeliveryChannel) -> bool:
    result = db.execute(
        update(TaskReminder)
        .where(TaskReminder.id == reminder_id)
        .where(TaskReminder.sent == False)  # noqa: E712
        .values(
            sent=True,
            delivery_channel=channel.value,
            processing_at=None,
            processing_by=None,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def delete_stale_batch(db: Session, cutoff: datetime, batch_size: int) -> int:
    ids = list(
        db.execute(
            select(TaskReminder.id)
            .where(TaskReminder.reminder_time <= to_utc_aware(cutoff))
            .order_by(TaskReminder.reminder_time.asc())
            .limit(batch_size)
        ).scalars()
    )
    if not ids:
        return 0
    db.execute(
        delete(TaskReminder)
        .where(TaskReminder.id.in_(ids))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return len(ids)


def list_reminders(
    db: Session,
    user_id: Optional[str] = None,
    sent: Optional[bool] = None,
    limit: int = 100,
) -> List[ReminderRead]:
    stmt = select(TaskReminder).order_by(TaskReminder.reminder_time.desc()).limit(limit)
    if user_id:
        stmt = stmt.where(TaskReminder.user_id == user_id)
    if sent is not None:
        stmt = stmt.where(TaskReminder.sent == sent)
    return [_read(r) for r in db.execute(stmt).scalars()]


# --- Tasks and users (read side, plus token pruning) ---

def list_tasks_for_user(db: Session, user_id: str) -> List[TaskDocument]:
    tasks = db.execute(select(Task).where(Task.user_id == user_id).order_by(Task.id)).scalars()
    return [TaskDocument.from_model(t) for t in tasks]


def get_task(db: Session, task_id: str) -> Optional[TaskRecord]:
    task = db.get(Task, task_id)
    if task is None:
        return None
    record = TaskRecord.model_validate(task)
    record.due_date = to_utc_aware(record.due_date)
    return record


def get_delivery_profile(db: Session, user_id: str) -> Optional[DeliveryProfile]:
    user = db.get(User, user_id)
    if user is None:
        return None
    tokens = db.execute(
        select(DeviceToken.fcm_token).where(DeviceToken.user_id == user_id)
    ).scalars()
    return DeliveryProfile(
        user_id=user.id,
        push_reminders_enabled=bool(user.push_reminders_enabled),
        tokens=frozenset(t for t in tokens if t),
        email=user.email or None,
        locale=user.locale,
        timezone=user.timezone,
    )


def prune_push_tokens(db: Session, user_id: str, tokens: Iterable[str]) -> int:
    """Drop the given tokens from the user's token set. Removing an absent token is a no-op."""
    doomed = list(set(tokens))
    if not doomed:
        return 0
    result = db.execute(
        delete(DeviceToken)
        .where(DeviceToken.user_id == user_id)
        .where(DeviceToken.fcm_token.in_(doomed))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount


class ReminderStore:
    """Session-per-call handle over the repository functions.

    Each call opens and closes its own session so the handle can be used from
    worker threads concurrently.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _run(self, fn, *args, **kwargs):
        db = self._session_factory()
        try:
            return fn(db, *args, **kwargs)
        finally:
            db.close()

    def create_reminder(self, data: ReminderCreate) -> ReminderRead:
        return self._run(create_reminder, data)

    def get_reminder(self, reminder_id: str) -> Optional[ReminderRead]:
        return self._run(get_reminder, reminder_id)

    def query_due_unsent(self, now: datetime, limit: int) -> List[ReminderRead]:
        return self._run(get_due_unsent, now, limit)

    def claim(self, reminder_id: str, now: datetime, ttl: timedelta, worker_id: str) -> bool:
        return self._run(claim_lease, reminder_id, now, ttl, worker_id)

    def clear_lease(self, reminder_id: str) -> None:
        self._run(clear_lease, reminder_id)

    def refresh_lease(self, reminder_id: str, now: datetime, worker_id: str) -> None:
        self._run(refresh_lease, reminder_id, now, worker_id)

    def mark_sent(self, reminder_id: str, channel: DeliveryChannel) -> bool:
        return self._run(mark_sent, reminder_id, channel)

    def delete_stale_batch(self, cutoff: datetime, batch_size: int) -> int:
        return self._run(delete_stale_batch, cutoff, batch_size)

    def list_reminders(self, **filters) -> List[ReminderRead]:
        return self._run(list_reminders, **filters)

    def list_tasks_for_user(self, user_id: str) -> List[TaskDocument]:
        return self._run(list_tasks_for_user, user_id)

    def get_task(self, task_id: str) -> Optional[TaskRecord]:
        return self._run(get_task, task_id)

    def get_delivery_profile(self, user_id: str) -> Optional[DeliveryProfile]:
        return self._run(get_delivery_profile, user_id)

    def prune_push_tokens(self, user_id: str, tokens: Iterable[str]) -> int:
        return self._run(prune_push_tokens, user_id, list(tokens))
