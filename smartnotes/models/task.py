from smartnotes.utils.timezone import utcnow
from sqlalchemy import Column, String, DateTime, Boolean, JSON, Index

from smartnotes.db.base import Base


class Task(Base):
    """User-owned task. Read-only to the reminder engine."""
    __tablename__ = "tasks"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    workspace_id = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False, default="")
    start_date = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    all_day = Column(Boolean, nullable=True)
    # {"freq": "daily|weekly|monthly", "interval": 1, "until": iso, "exceptions": ["YYYY-MM-DD"]}
    recurrence = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_tasks_user_due", "user_id", "due_date"),
    )
