from smartnotes.utils.timezone import utcnow
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Index, UniqueConstraint

from smartnotes.db.base import Base


class User(Base):
    """Delivery-relevant slice of the user document."""
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=True)
    push_reminders_enabled = Column(Boolean, nullable=False, default=False)
    locale = Column(String, nullable=True)
    timezone = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class DeviceToken(Base):
    """Push registration token; one row per (user, token)."""
    __tablename__ = "device_tokens"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    fcm_token = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "fcm_token", name="uq_device_tokens_user_token"),
        Index("ix_device_tokens_token", "fcm_token"),
    )
