"""
User-facing reminder content (push notification and email), localized
"""
from dataclasses import dataclass, field
from html import escape
from typing import Dict, Optional
from urllib.parse import quote

from smartnotes.core.config import settings as core_settings
from smartnotes.utils.timezone import get_zoneinfo, isoformat_utc_ms
from .schemas import DeliveryProfile, ReminderRead, TaskRecord


MESSAGES: Dict[str, Dict[str, str]] = {
    "fr": {
        "title": "⏰ Rappel de tâche",
        "fallback_body": "Tu as une tâche à vérifier.",
        "fallback_task_title": "Tâche",
        "subject": "⏰ Rappel de tâche - Smart Notes",
        "reminder_label": "Rappel",
        "open_task": "Ouvrir la tâche",
        "time_format": "%d/%m/%Y %H:%M",
    },
    "en": {
        "title": "⏰ Task reminder",
        "fallback_body": "You have a task to check.",
        "fallback_task_title": "Task",
        "subject": "⏰ Task reminder - Smart Notes",
        "reminder_label": "Reminder",
        "open_task": "Open task",
        "time_format": "%Y-%m-%d %H:%M",
    },
}


@dataclass(frozen=True)
class PushMessage:
    title: str
    body: str
    data: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class EmailMessage:
    subject: str
    html: str


def task_path(task_id: str) -> str:
    return f"/tasks/{quote(task_id, safe='')}"


def resolve_messages(locale: Optional[str]) -> Dict[str, str]:
    if locale:
        lang = locale.replace("_", "-").split("-")[0].lower()
        if lang in MESSAGES:
            return MESSAGES[lang]
    return MESSAGES.get(core_settings.DEFAULT_LOCALE, MESSAGES["fr"])


def build_push_message(reminder: ReminderRead, task: TaskRecord, profile: DeliveryProfile) -> PushMessage:
    messages = resolve_messages(profile.locale)
    due = reminder.due_date or task.due_date
    return PushMessage(
        title=messages["title"],
        body=task.title if task.title else messages["fallback_body"],
        data={
            # FCM data payloads only carry strings
            "taskId": reminder.task_id,
            "dueDate": isoformat_utc_ms(due) if due else "",
            "url": task_path(reminder.task_id),
        },
    )


def build_email_message(
    reminder: ReminderRead,
    task: TaskRecord,
    profile: DeliveryProfile,
    app_base_url: Optional[str] = None,
) -> EmailMessage:
    messages = resolve_messages(profile.locale)
    base_url = (app_base_url or core_settings.APP_BASE_URL or "").rstrip("/")
    task_url = f"{base_url}{task_path(reminder.task_id)}"
    tz = get_zoneinfo(profile.timezone)
    reminder_text = reminder.reminder_time.astimezone(tz).strftime(messages["time_format"])
    title = task.title or messages["fallback_task_title"]

    html = f"""
    <div style="font-family: Arial, sans-serif; line-height: 1.5; color: #111;">
      <h2 style="margin: 0 0 12px;">{escape(messages["title"])}</h2>
      <p style="margin: 0 0 8px;"><strong>{escape(title)}</strong></p>
      <p style="margin: 0 0 16px;">{escape(messages["reminder_label"])} : {escape(reminder_text)}</p>
      <p style="margin: 0 0 16px;">
        <a href="{escape(task_url)}" style="display: inline-block; padding: 10px 14px; background: #111; color: #fff; text-decoration: none; border-radius: 8px;">{escape(messages["open_task"])}</a>
      </p>
      <p style="margin: 0; color: #555; font-size: 12px;">Smart Notes - {escape(base_url)}</p>
    </div>
    """
    return EmailMessage(subject=messages["subject"], html=html)
