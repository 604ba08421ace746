import hmac
from typing import List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from .config import settings
from .runtime import ReminderRuntime
from .scheduler import DispatchOutcome
from .schemas import ForceSendResult, ReminderCreate, ReminderRead


def get_reminder_runtime(request: Request) -> ReminderRuntime:
    return request.app.state.runtime


def verify_service_key(x_api_key: Optional[str] = Header(None)) -> bool:
    """Service-to-service key check; open when REMINDER_SERVICE_API_KEY is unset."""
    if not settings.SERVICE_API_KEY:
        return True
    if not x_api_key or not hmac.compare_digest(x_api_key, settings.SERVICE_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return True


router = APIRouter()


@router.post("/", response_model=ReminderRead, dependencies=[Depends(verify_service_key)])
def create_reminder_endpoint(payload: ReminderCreate, runtime: ReminderRuntime = Depends(get_reminder_runtime)):
    """Ingest a reminder; repeated posts with the same external_id return the first record."""
    return runtime.store.create_reminder(payload)


@router.get("/", response_model=List[ReminderRead], dependencies=[Depends(verify_service_key)])
def list_reminders_endpoint(
    user_id: Optional[str] = None,
    sent: Optional[bool] = None,
    limit: int = 100,
    runtime: ReminderRuntime = Depends(get_reminder_runtime),
):
    return runtime.store.list_reminders(user_id=user_id, sent=sent, limit=min(max(limit, 1), 500))


@router.post("/{reminder_id}/force-send", response_model=ForceSendResult)
async def force_send_endpoint(
    reminder_id: str,
    x_reminder_test_secret: Optional[str] = Header(None),
    runtime: ReminderRuntime = Depends(get_reminder_runtime),
):
    """Operational debugging: deliver one reminder now, through the normal lease and router."""
    secret = settings.FORCE_SEND_SECRET
    if not secret:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Force-send secret is not configured.")
    provided = (x_reminder_test_secret or "").strip()
    if not provided or not hmac.compare_digest(provided, secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized.")

    result = await runtime.scheduler.force_send(reminder_id)
    if result.outcome is DispatchOutcome.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reminder not found.")
    return ForceSendResult(reminder_id=result.reminder_id, outcome=result.outcome.value, channel=result.channel)
