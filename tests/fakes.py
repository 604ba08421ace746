from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from smartnotes.reminders.transports import EmailDeliveryError, PushDeliveryError, PushErrorKind


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def not_registered(code: str = "messaging/registration-token-not-registered") -> PushDeliveryError:
    return PushDeliveryError(PushErrorKind.INVALID_TOKEN, "not registered", code=code)


def unavailable(code: str = "messaging/server-unavailable") -> PushDeliveryError:
    return PushDeliveryError(PushErrorKind.TRANSIENT, "unavailable", code=code)


class FakePushTransport:
    """Records every send; raises the configured error for a token, if any."""

    def __init__(self, errors: Optional[Dict[str, Exception]] = None):
        self.errors = dict(errors or {})
        self.attempts: List[Tuple[str, object]] = []

    async def send(self, token, message):
        self.attempts.append((token, message))
        error = self.errors.get(token)
        if error is not None:
            raise error

    @property
    def delivered(self) -> List[str]:
        return [token for token, _ in self.attempts if token not in self.errors]


class FakeEmailTransport:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Tuple[str, str, str]] = []

    async def send(self, to, subject, html):
        if self.fail:
            raise EmailDeliveryError("smtp down")
        self.sent.append((to, subject, html))
