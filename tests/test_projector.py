from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from smartnotes.agenda.projector import (
    MAX_RECURRENCE_ITERATIONS,
    ProjectionReason,
    ProjectionWindow,
    TaskDocument,
    project,
    project_tasks,
)
from tests.fakes import utc

PARIS = ZoneInfo("Europe/Paris")
UTC = ZoneInfo("UTC")


def window(start, end):
    return ProjectionWindow(start, end)


def test_timed_task_without_due_lasts_one_hour():
    task = TaskDocument(id="t1", start_date="2026-02-21T15:30:00Z")

    occurrences, excluded = project(task, window(utc(2026, 2, 21), utc(2026, 2, 22)), UTC)

    assert excluded == []
    assert len(occurrences) == 1
    occ = occurrences[0]
    assert occ.occurrence_id == "t1"
    assert occ.start == utc(2026, 2, 21, 15, 30)
    assert occ.end == utc(2026, 2, 21, 16, 30)
    assert occ.all_day is False
    assert occ.instance_local_date is None


def test_timed_task_uses_due_date_when_after_start():
    task = TaskDocument(id="t1", start_date=utc(2026, 2, 21, 9), due_date=utc(2026, 2, 21, 12))

    occurrences, _ = project(task, window(utc(2026, 2, 21), utc(2026, 2, 22)), UTC)

    assert occurrences[0].end == utc(2026, 2, 21, 12)


def test_due_date_not_after_start_falls_back_to_one_hour():
    task = TaskDocument(id="t1", start_date=utc(2026, 2, 21, 9), due_date=utc(2026, 2, 21, 9))

    occurrences, _ = project(task, window(utc(2026, 2, 21), utc(2026, 2, 22)), UTC)

    assert occurrences[0].end == utc(2026, 2, 21, 10)


def test_due_date_alone_is_the_start():
    task = TaskDocument(id="t1", due_date="2026-02-21T10:00:00.000Z")

    occurrences, _ = project(task, window(utc(2026, 2, 21), utc(2026, 2, 22)), UTC)

    assert occurrences[0].start == utc(2026, 2, 21, 10)
    assert occurrences[0].end == utc(2026, 2, 21, 11)


def test_naive_datetimes_are_read_as_utc():
    task = TaskDocument(id="t1", start_date=datetime(2026, 2, 21, 10))

    occurrences, _ = project(task, window(utc(2026, 2, 21), utc(2026, 2, 22)), PARIS)

    assert occurrences[0].start == utc(2026, 2, 21, 10)


def test_all_day_spans_local_midnight_and_ignores_due():
    task = TaskDocument(
        id="t1",
        start_date="2026-02-21T15:30:00Z",
        due_date="2026-02-21T18:00:00Z",
        all_day=True,
    )

    occurrences, _ = project(task, window(utc(2026, 2, 20), utc(2026, 2, 23)), PARIS)

    occ = occurrences[0]
    assert occ.all_day is True
    # Paris is UTC+1 in February
    assert occ.start == utc(2026, 2, 20, 23)
    assert occ.end == utc(2026, 2, 21, 23)
    assert occ.start.astimezone(PARIS).hour == 0


def test_window_is_half_open():
    task = TaskDocument(id="t1", start_date=utc(2026, 2, 21, 10), due_date=utc(2026, 2, 21, 11))

    ends_at_window_start, _ = project(task, window(utc(2026, 2, 21, 11), utc(2026, 2, 21, 12)), UTC)
    starts_at_window_end, _ = project(task, window(utc(2026, 2, 21, 9), utc(2026, 2, 21, 10)), UTC)
    straddles, _ = project(task, window(utc(2026, 2, 21, 10, 30), utc(2026, 2, 21, 12)), UTC)

    assert ends_at_window_start == []
    assert starts_at_window_end == []
    assert len(straddles) == 1


def test_weekly_exception_suppresses_one_instance():
    task = TaskDocument(
        id="t1",
        start_date="2026-02-02T08:00:00Z",
        due_date="2026-02-02T09:00:00Z",
        recurrence={"freq": "weekly", "exceptions": ["2026-02-09"]},
    )

    occurrences, excluded = project(task, window(utc(2026, 2, 1), utc(2026, 2, 22)), PARIS)

    assert excluded == []
    assert [o.occurrence_id for o in occurrences] == [
        "t1__2026-02-02T08:00:00.000Z",
        "t1__2026-02-16T08:00:00.000Z",
    ]
    assert [o.instance_local_date for o in occurrences] == ["2026-02-02", "2026-02-16"]
    assert all(o.end - o.start == timedelta(hours=1) for o in occurrences)


def test_daily_interval_and_until_is_inclusive():
    task = TaskDocument(
        id="t1",
        start_date=utc(2026, 3, 1, 10),
        recurrence={"freq": "daily", "interval": 2, "until": "2026-03-05T10:00:00Z"},
    )

    occurrences, _ = project(task, window(utc(2026, 3, 1), utc(2026, 3, 31)), UTC)

    assert [o.start for o in occurrences] == [utc(2026, 3, 1, 10), utc(2026, 3, 3, 10), utc(2026, 3, 5, 10)]


def test_unparseable_until_is_ignored():
    task = TaskDocument(
        id="t1",
        start_date=utc(2026, 3, 1, 10),
        recurrence={"freq": "daily", "until": "someday"},
    )

    occurrences, excluded = project(task, window(utc(2026, 3, 1), utc(2026, 3, 4)), UTC)

    assert excluded == []
    assert len(occurrences) == 3


def test_daily_steps_keep_local_wall_clock_across_dst():
    # 09:00 in Paris on both sides of the 2026-03-29 switch to summer time
    task = TaskDocument(id="t1", start_date=utc(2026, 3, 28, 8), recurrence={"freq": "daily"})

    occurrences, _ = project(task, window(utc(2026, 3, 28), utc(2026, 3, 30)), PARIS)

    assert [o.start for o in occurrences] == [utc(2026, 3, 28, 8), utc(2026, 3, 29, 7)]
    assert all(o.start.astimezone(PARIS).hour == 9 for o in occurrences)


def test_monthly_step_overflows_short_months():
    task = TaskDocument(id="t1", start_date=utc(2026, 1, 31, 10), recurrence={"freq": "monthly"})

    occurrences, _ = project(task, window(utc(2026, 1, 1), utc(2026, 5, 1)), UTC)

    assert [o.start for o in occurrences] == [utc(2026, 1, 31, 10), utc(2026, 3, 3, 10), utc(2026, 4, 3, 10)]


def test_expansion_stops_after_iteration_cap():
    task = TaskDocument(id="t1", start_date=utc(2020, 1, 1, 10), recurrence={"freq": "daily"})

    far, excluded = project(task, window(utc(2026, 1, 1), utc(2026, 2, 1)), UTC)
    near, _ = project(task, window(utc(2020, 1, 1), utc(2030, 1, 1)), UTC)

    assert far == [] and excluded == []
    assert len(near) == MAX_RECURRENCE_ITERATIONS


def test_recurrence_without_freq_is_a_single_occurrence():
    task = TaskDocument(id="t1", start_date=utc(2026, 2, 2, 8), recurrence={"interval": 3})

    occurrences, _ = project(task, window(utc(2026, 2, 1), utc(2026, 3, 1)), UTC)

    assert [o.occurrence_id for o in occurrences] == ["t1"]


@pytest.mark.parametrize(
    "task, reason",
    [
        (TaskDocument(id=None, start_date=utc(2026, 2, 2)), ProjectionReason.MISSING_TASK_ID),
        (TaskDocument(id="", start_date=utc(2026, 2, 2)), ProjectionReason.MISSING_TASK_ID),
        (TaskDocument(id="t1"), ProjectionReason.MISSING_DATES),
        (TaskDocument(id="t1", start_date="not a date"), ProjectionReason.INVALID_START),
        (TaskDocument(id="t1", due_date="2026-13-45"), ProjectionReason.INVALID_DUE),
        (TaskDocument(id="t1", start_date=12345), ProjectionReason.INVALID_START),
    ],
)
def test_unprojectable_tasks_are_excluded_with_reason(task, reason):
    occurrences, excluded = project(task, window(utc(2026, 1, 1), utc(2027, 1, 1)), UTC)

    assert occurrences == []
    assert [e.reason for e in excluded] == [reason]


@pytest.mark.parametrize("interval", [0, -1, 1.5, "abc", True, float("inf"), float("nan"), [2]])
def test_invalid_interval_is_excluded(interval):
    task = TaskDocument(
        id="t1",
        start_date=utc(2026, 2, 2, 8),
        recurrence={"freq": "daily", "interval": interval},
    )

    occurrences, excluded = project(task, window(utc(2026, 2, 1), utc(2026, 3, 1)), UTC)

    assert occurrences == []
    assert [(e.task_id, e.reason) for e in excluded] == [("t1", ProjectionReason.INVALID_INTERVAL)]


def test_unknown_frequency_is_excluded():
    task = TaskDocument(id="t1", start_date=utc(2026, 2, 2, 8), recurrence={"freq": "yearly"})

    _, excluded = project(task, window(utc(2026, 2, 1), utc(2026, 3, 1)), UTC)

    assert [e.reason for e in excluded] == [ProjectionReason.INVALID_FREQ]


def test_project_tasks_collects_occurrences_and_exclusions():
    tasks = [
        TaskDocument(id="a", start_date=utc(2026, 2, 2, 8)),
        TaskDocument(id="b"),
        TaskDocument(id="c", start_date=utc(2026, 2, 2, 8), recurrence={"freq": "daily"}),
    ]

    occurrences, excluded = project_tasks(tasks, window(utc(2026, 2, 2), utc(2026, 2, 4)), UTC)

    assert [o.occurrence_id for o in occurrences] == [
        "a",
        "c__2026-02-02T08:00:00.000Z",
        "c__2026-02-03T08:00:00.000Z",
    ]
    assert [(e.task_id, e.reason) for e in excluded] == [("b", ProjectionReason.MISSING_DATES)]


def test_malformed_exception_entries_are_skipped():
    tasks = [
        TaskDocument(id="a", start_date=utc(2026, 2, 2, 12)),
        TaskDocument(
            id="b",
            start_date=utc(2026, 2, 2, 8),
            recurrence={"freq": "weekly", "exceptions": [{"date": "2026-02-09"}, 20260216, "2026-02-09"]},
        ),
    ]

    occurrences, excluded = project_tasks(tasks, window(utc(2026, 2, 1), utc(2026, 2, 22)), UTC)

    assert excluded == []
    assert [o.occurrence_id for o in occurrences] == [
        "b__2026-02-02T08:00:00.000Z",
        "a",
        "b__2026-02-16T08:00:00.000Z",
    ]


def test_overlapping_occurrences_are_flagged_as_conflicts():
    tasks = [
        TaskDocument(id="meeting", start_date=utc(2026, 2, 2, 9), due_date=utc(2026, 2, 2, 11)),
        TaskDocument(id="call", start_date=utc(2026, 2, 2, 10)),
        TaskDocument(id="lunch", start_date=utc(2026, 2, 2, 12), due_date=utc(2026, 2, 2, 13)),
        TaskDocument(id="review", start_date=utc(2026, 2, 2, 13)),
    ]

    occurrences, _ = project_tasks(tasks, window(utc(2026, 2, 2), utc(2026, 2, 3)), UTC)

    assert [(o.occurrence_id, o.conflict) for o in occurrences] == [
        ("meeting", True),
        ("call", True),
        ("lunch", False),
        ("review", False),
    ]
