"""
Schemas exchanged between the reminder store, the router and the scheduler
"""
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional
from pydantic import BaseModel, ConfigDict, Field


class DeliveryChannel(str, Enum):
    PUSH = "push"
    EMAIL = "email"


class ReminderCreate(BaseModel):
    """Schema for ingesting a task reminder"""
    user_id: str
    task_id: str
    reminder_time: datetime
    due_date: Optional[datetime] = None
    external_id: Optional[str] = None


class ReminderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    task_id: str
    due_date: Optional[datetime] = None
    reminder_time: datetime
    sent: bool = False
    delivery_channel: Optional[DeliveryChannel] = None
    processing_at: Optional[datetime] = None
    processing_by: Optional[str] = None
    external_id: Optional[str] = None


class TaskRecord(BaseModel):
    """The fields of a task the dispatcher needs to build a message"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str = ""
    due_date: Optional[datetime] = None


class DeliveryProfile(BaseModel):
    user_id: str
    push_reminders_enabled: bool = False
    tokens: FrozenSet[str] = Field(default_factory=frozenset)
    email: Optional[str] = None
    locale: Optional[str] = None
    timezone: Optional[str] = None

    @property
    def has_any_channel(self) -> bool:
        return bool(self.tokens) or bool(self.email)


class ForceSendResult(BaseModel):
    reminder_id: str
    outcome: str
    channel: Optional[DeliveryChannel] = None
