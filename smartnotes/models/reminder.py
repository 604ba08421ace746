from smartnotes.utils.timezone import utcnow
import uuid
from sqlalchemy import Column, String, DateTime, Boolean, Index

from smartnotes.db.base import Base


class TaskReminder(Base):
    """Pending/sent reminder for a task.

    ``sent`` only ever goes from False to True. ``processing_at`` and
    ``processing_by`` hold the dispatch lease; they are meaningless once the
    reminder is sent.
    """
    __tablename__ = "task_reminders"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    task_id = Column(String, nullable=False, index=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    reminder_time = Column(DateTime(timezone=True), nullable=False)
    sent = Column(Boolean, nullable=False, default=False)
    delivery_channel = Column(String, nullable=True)  # push | email

    # Lease
    processing_at = Column(DateTime(timezone=True), nullable=True)
    processing_by = Column(String, nullable=True)

    external_id = Column(String, nullable=True, unique=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_task_reminders_sent_time", "sent", "reminder_time"),
        Index("ix_task_reminders_time", "reminder_time"),
    )
