from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from smartnotes.reminders.api import get_reminder_runtime, verify_service_key
from smartnotes.reminders.runtime import ReminderRuntime
from smartnotes.utils.timezone import get_zoneinfo, to_utc_aware
from .projector import ProjectionWindow, project_tasks


class OccurrenceRead(BaseModel):
    occurrence_id: str
    task_id: str
    title: str
    start: datetime
    end: datetime
    all_day: bool
    instance_local_date: Optional[str] = None
    conflict: bool = False


class ExclusionRead(BaseModel):
    task_id: Optional[str] = None
    reason: str


class AgendaRead(BaseModel):
    occurrences: List[OccurrenceRead]
    excluded: List[ExclusionRead]


router = APIRouter(dependencies=[Depends(verify_service_key)])


@router.get("/{user_id}", response_model=AgendaRead)
def project_agenda_endpoint(
    user_id: str,
    start: datetime = Query(...),
    end: datetime = Query(...),
    tz: Optional[str] = None,
    runtime: ReminderRuntime = Depends(get_reminder_runtime),
):
    """Occurrences of a user's tasks overlapping ``[start, end)``."""
    window = ProjectionWindow(to_utc_aware(start), to_utc_aware(end))
    if window.end <= window.start:
        raise HTTPException(status_code=400, detail="end must be after start")

    tasks = runtime.store.list_tasks_for_user(user_id)
    occurrences, excluded = project_tasks(tasks, window, get_zoneinfo(tz))
    return AgendaRead(
        occurrences=[
            OccurrenceRead(
                occurrence_id=o.occurrence_id,
                task_id=o.task_id,
                title=o.task.title if o.task else "",
                start=o.start,
                end=o.end,
                all_day=o.all_day,
                instance_local_date=o.instance_local_date,
                conflict=o.conflict,
            )
            for o in occurrences
        ],
        excluded=[ExclusionRead(task_id=e.task_id, reason=e.reason.value) for e in excluded],
    )
