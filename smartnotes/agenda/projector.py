"""
Projection of stored tasks into concrete calendar occurrences.

Given a query window ``[start, end)`` and the viewer's timezone, every task
becomes zero or more occurrences, or an exclusion carrying the reason it
could not be placed on the calendar. Recurring tasks are expanded by
stepping the first occurrence forward in local calendar units.

Known edge case: monthly stepping uses date overflow, so a task recurring
monthly from Jan 31 lands on Mar 3 (Mar 2 in leap years) and keeps that
day afterwards. This matches the calendar surface that renders these
occurrences and is intentionally left as is.
"""
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

from smartnotes.utils.timezone import get_zoneinfo, isoformat_utc_ms, local_date_str, parse_instant

MAX_RECURRENCE_ITERATIONS = 400
TIMED_FALLBACK_DURATION = timedelta(hours=1)
ALL_DAY_DURATION = timedelta(hours=24)


class ProjectionReason(str, Enum):
    MISSING_TASK_ID = "missing_task_id"
    MISSING_DATES = "missing_dates"
    INVALID_START = "invalid_start"
    INVALID_DUE = "invalid_due"
    INVALID_INTERVAL = "invalid_interval"
    INVALID_FREQ = "invalid_freq"


class RecurrenceFreq(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class ProjectionWindow:
    start: datetime
    end: datetime


@dataclass
class TaskDocument:
    """Loosely validated task as stored; dates may be missing or malformed."""
    id: Optional[str]
    title: str = ""
    start_date: Any = None
    due_date: Any = None
    all_day: Optional[bool] = None
    recurrence: Optional[Mapping[str, Any]] = None
    user_id: Optional[str] = None
    workspace_id: Optional[str] = None

    @classmethod
    def from_model(cls, task) -> "TaskDocument":
        return cls(
            id=task.id,
            title=task.title or "",
            start_date=task.start_date,
            due_date=task.due_date,
            all_day=task.all_day,
            recurrence=task.recurrence,
            user_id=task.user_id,
            workspace_id=task.workspace_id,
        )


@dataclass(frozen=True)
class ProjectedOccurrence:
    occurrence_id: str
    task_id: str
    start: datetime
    end: datetime
    all_day: bool
    instance_local_date: Optional[str] = None
    conflict: bool = False
    recurrence: Optional[Mapping[str, Any]] = field(default=None, compare=False)
    task: Optional[TaskDocument] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ProjectionExclusion:
    task_id: Optional[str]
    reason: ProjectionReason


@dataclass(frozen=True)
class _Span:
    start: datetime
    end: datetime
    all_day: bool


def _overlaps(start: datetime, end: datetime, window: ProjectionWindow) -> bool:
    return end.timestamp() > window.start.timestamp() and start.timestamp() < window.end.timestamp()


def _add_months(wall: datetime, months: int) -> datetime:
    # Day overflow rolls into the following month (Jan 31 + 1 month -> Mar 3).
    total = wall.month - 1 + months
    first = wall.replace(year=wall.year + total // 12, month=total % 12 + 1, day=1)
    return first + timedelta(days=wall.day - 1)


def _step(dt: datetime, freq: RecurrenceFreq, interval: int, tz: ZoneInfo) -> datetime:
    wall = dt.astimezone(tz).replace(tzinfo=None)
    if freq is RecurrenceFreq.DAILY:
        wall = wall + timedelta(days=interval)
    elif freq is RecurrenceFreq.WEEKLY:
        wall = wall + timedelta(days=7 * interval)
    else:
        wall = _add_months(wall, interval)
    return wall.replace(tzinfo=tz)


def _coerce_interval(raw: Any) -> Optional[int]:
    if raw is None:
        return 1
    if isinstance(raw, bool):
        return None
    if isinstance(raw, str):
        try:
            raw = float(raw)
        except ValueError:
            return None
    if not isinstance(raw, (int, float)):
        return None
    if not math.isfinite(raw) or raw < 1 or raw != int(raw):
        return None
    return int(raw)


def _parse_until(raw: Any) -> Optional[datetime]:
    try:
        return parse_instant(raw)
    except ValueError:
        return None


def project_task_span(task: TaskDocument, tz: ZoneInfo) -> Tuple[Optional[_Span], Optional[ProjectionReason]]:
    """Resolve the first occurrence of a task, or the reason it has none."""
    try:
        start_raw = parse_instant(task.start_date)
    except ValueError:
        return None, ProjectionReason.INVALID_START
    try:
        due_raw = parse_instant(task.due_date)
    except ValueError:
        return None, ProjectionReason.INVALID_DUE

    start = start_raw or due_raw
    if start is None:
        return None, ProjectionReason.MISSING_DATES

    if task.all_day is True:
        local = start.astimezone(tz)
        day_start = datetime(local.year, local.month, local.day, tzinfo=tz)
        day_end = (day_start.astimezone(ZoneInfo("UTC")) + ALL_DAY_DURATION).astimezone(tz)
        return _Span(day_start, day_end, True), None

    if due_raw is not None and due_raw.timestamp() > start.timestamp():
        end = due_raw
    else:
        end = start + TIMED_FALLBACK_DURATION
    return _Span(start.astimezone(tz), end.astimezone(tz), False), None


def project(
    task: TaskDocument,
    window: ProjectionWindow,
    tz: Optional[ZoneInfo] = None,
) -> Tuple[List[ProjectedOccurrence], List[ProjectionExclusion]]:
    """Project one task onto ``window``.

    Returns the occurrences overlapping the window and, when the task cannot
    be projected at all, a single exclusion explaining why.
    """
    tz = tz or get_zoneinfo()
    task_id = task.id if isinstance(task.id, str) and task.id else None
    if task_id is None:
        return [], [ProjectionExclusion(None, ProjectionReason.MISSING_TASK_ID)]

    span, reason = project_task_span(task, tz)
    if span is None:
        return [], [ProjectionExclusion(task_id, reason or ProjectionReason.MISSING_DATES)]

    recurrence = task.recurrence if isinstance(task.recurrence, Mapping) else None
    if not recurrence or not recurrence.get("freq"):
        if _overlaps(span.start, span.end, window):
            return [ProjectedOccurrence(task_id, task_id, span.start, span.end, span.all_day, task=task)], []
        return [], []

    try:
        freq = RecurrenceFreq(str(recurrence.get("freq")).lower())
    except ValueError:
        return [], [ProjectionExclusion(task_id, ProjectionReason.INVALID_FREQ)]

    interval = _coerce_interval(recurrence.get("interval"))
    if interval is None:
        return [], [ProjectionExclusion(task_id, ProjectionReason.INVALID_INTERVAL)]

    until = _parse_until(recurrence.get("until"))
    raw_exceptions = recurrence.get("exceptions")
    if isinstance(raw_exceptions, (list, tuple, set, frozenset)):
        exceptions = {e for e in raw_exceptions if isinstance(e, str)}
    else:
        exceptions = set()

    occurrences: List[ProjectedOccurrence] = []
    cursor_start, cursor_end = span.start, span.end
    for _ in range(MAX_RECURRENCE_ITERATIONS):
        if until is not None and cursor_start.timestamp() > until.timestamp():
            break
        if cursor_start.timestamp() > window.end.timestamp():
            break

        instance_date = local_date_str(cursor_start, tz)
        if instance_date not in exceptions and _overlaps(cursor_start, cursor_end, window):
            occurrences.append(
                ProjectedOccurrence(
                    occurrence_id=f"{task_id}__{isoformat_utc_ms(cursor_start)}",
                    task_id=task_id,
                    start=cursor_start,
                    end=cursor_end,
                    all_day=span.all_day,
                    instance_local_date=instance_date,
                    recurrence=recurrence,
                    task=task,
                )
            )

        try:
            cursor_start = _step(cursor_start, freq, interval, tz)
            cursor_end = _step(cursor_end, freq, interval, tz)
        except (OverflowError, ValueError):
            # Stepped past the representable calendar
            break

    return occurrences, []


def mark_conflicts(occurrences: Iterable[ProjectedOccurrence]) -> List[ProjectedOccurrence]:
    """Sort by start and flag every occurrence that overlaps another one."""
    ordered = sorted(occurrences, key=lambda o: (o.start.timestamp(), o.occurrence_id))
    conflicting = set()
    for i, left in enumerate(ordered):
        for j in range(i + 1, len(ordered)):
            if ordered[j].start.timestamp() >= left.end.timestamp():
                break
            conflicting.update((i, j))
    return [replace(o, conflict=True) if i in conflicting else o for i, o in enumerate(ordered)]


def project_tasks(
    tasks: Iterable[TaskDocument],
    window: ProjectionWindow,
    tz: Optional[ZoneInfo] = None,
) -> Tuple[List[ProjectedOccurrence], List[ProjectionExclusion]]:
    tz = tz or get_zoneinfo()
    occurrences: List[ProjectedOccurrence] = []
    exclusions: List[ProjectionExclusion] = []
    for task in tasks:
        found, excluded = project(task, window, tz)
        occurrences.extend(found)
        exclusions.extend(excluded)
    return mark_conflicts(occurrences), exclusions
