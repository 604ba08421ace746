from datetime import timedelta

import pytest

from smartnotes.reminders import tasks
from smartnotes.reminders.celery_app import celery_app
from smartnotes.reminders.runtime import assemble_runtime
from smartnotes.utils.timezone import utcnow


@pytest.fixture
def runtime(store, push, email, monkeypatch):
    runtime = assemble_runtime(store, push, email)
    monkeypatch.setattr(tasks, "get_runtime", lambda: runtime)
    return runtime


def test_beat_schedules_dispatch_and_retention():
    schedule = {entry["task"] for entry in celery_app.conf.beat_schedule.values()}

    assert schedule == {"reminders.dispatch_due", "reminders.sweep_old"}


def test_dispatch_task_returns_sent_count(runtime, seed, store, push):
    seed.user("u1", tokens=["tok-a"])
    seed.task("t1")
    reminder_id = seed.reminder(utcnow() - timedelta(minutes=1))

    sent = tasks.dispatch_due_reminders_task.apply().get()

    assert sent == 1
    assert store.get_reminder(reminder_id).processing_by is None
    assert store.get_reminder(reminder_id).sent is True


def test_sweep_task_returns_deleted_count(runtime, seed, store):
    seed.reminder(utcnow() - timedelta(days=3))
    seed.reminder(utcnow())

    assert tasks.sweep_old_reminders_task.apply().get() == 1
    assert len(store.list_reminders()) == 1


def test_force_send_task_reports_outcome(runtime):
    result = tasks.force_send_reminder_task.apply(args=["missing"]).get()

    assert result == {"reminder_id": "missing", "outcome": "not_found", "channel": None}
