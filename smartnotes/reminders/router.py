"""
Channel selection and fan-out for a single reminder.

Push goes first, to every registered token at once. Email is only tried when
push could not deliver at all, so a user never gets both for one reminder.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, FrozenSet, Iterable, Optional

from .content import PushMessage, build_email_message, build_push_message
from .metrics import email_sends_total, push_sends_total, push_tokens_pruned_total
from .schemas import DeliveryChannel, DeliveryProfile, ReminderRead, TaskRecord
from .transports import EmailDeliveryError, EmailTransport, PushDeliveryError, PushErrorKind, PushTransport

logger = logging.getLogger(__name__)

DEFAULT_PUSH_TIMEOUT_SECONDS = 10.0


class TokenOutcome(str, Enum):
    SENT = "sent"
    INVALID = "invalid"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class DeliveryResult:
    delivered: bool
    channel: Optional[DeliveryChannel] = None
    pruned_tokens: FrozenSet[str] = field(default_factory=frozenset)
    email_attempted: bool = False


class DeliveryChannelRouter:
    def __init__(
        self,
        push: Optional[PushTransport],
        email: Optional[EmailTransport],
        prune_tokens: Callable[[str, Iterable[str]], object],
        push_timeout: float = DEFAULT_PUSH_TIMEOUT_SECONDS,
        app_base_url: Optional[str] = None,
    ):
        self.push = push
        self.email = email
        self.prune_tokens = prune_tokens
        self.push_timeout = push_timeout
        self.app_base_url = app_base_url

    async def deliver(self, reminder: ReminderRead, task: TaskRecord, profile: DeliveryProfile) -> DeliveryResult:
        pruned: FrozenSet[str] = frozenset()

        if self.push is not None and profile.push_reminders_enabled and profile.tokens:
            message = build_push_message(reminder, task, profile)
            tokens = sorted(profile.tokens)
            outcomes = await asyncio.gather(
                *(self._send_to_token(reminder, profile, token, message) for token in tokens)
            )
            invalid = frozenset(t for t, o in zip(tokens, outcomes) if o is TokenOutcome.INVALID)
            if invalid:
                pruned = await self._prune(profile.user_id, invalid)
            if any(o is TokenOutcome.SENT for o in outcomes):
                return DeliveryResult(True, DeliveryChannel.PUSH, pruned_tokens=pruned)
        elif profile.push_reminders_enabled and profile.tokens:
            logger.warning(f"⚠️  [Reminders] Push transport unavailable; skipping push for reminder {reminder.id}")

        if not profile.email:
            if not profile.has_any_channel:
                logger.info(f"[Reminders] User {profile.user_id} has no delivery channel for reminder {reminder.id}")
            else:
                logger.warning(f"[Reminders] No email available for user {profile.user_id}; cannot fall back for reminder {reminder.id}")
            return DeliveryResult(False, pruned_tokens=pruned)

        if self.email is None:
            logger.warning(f"⚠️  [Reminders] Email transport unavailable; reminder {reminder.id} not delivered")
            return DeliveryResult(False, pruned_tokens=pruned)

        email_message = build_email_message(reminder, task, profile, self.app_base_url)
        try:
            await self.email.send(profile.email, email_message.subject, email_message.html)
        except Exception as e:
            email_sends_total.labels(result="failed").inc()
            if isinstance(e, EmailDeliveryError):
                logger.error(f"❌ [Reminders] Email reminder failed for {reminder.id} (user={profile.user_id}): {e!r}")
            else:
                logger.exception(f"❌ [Reminders] Unexpected email error for {reminder.id} (user={profile.user_id}): {e!r}")
            return DeliveryResult(False, pruned_tokens=pruned, email_attempted=True)
        email_sends_total.labels(result="sent").inc()
        return DeliveryResult(True, DeliveryChannel.EMAIL, pruned_tokens=pruned, email_attempted=True)

    async def _send_to_token(
        self,
        reminder: ReminderRead,
        profile: DeliveryProfile,
        token: str,
        message: PushMessage,
    ) -> TokenOutcome:
        try:
            await asyncio.wait_for(self.push.send(token, message), timeout=self.push_timeout)
        except PushDeliveryError as e:
            outcome = TokenOutcome.INVALID if e.kind is PushErrorKind.INVALID_TOKEN else TokenOutcome.TRANSIENT
            logger.warning(
                f"[FCM] Failed sending reminder {reminder.id} to token (user={profile.user_id}) "
                f"code={e.code} kind={e.kind.value}"
            )
        except asyncio.TimeoutError:
            outcome = TokenOutcome.TRANSIENT
            logger.warning(f"[FCM] Timed out sending reminder {reminder.id} to token (user={profile.user_id})")
        except Exception as e:
            # One misbehaving token must not take the others down
            outcome = TokenOutcome.TRANSIENT
            logger.exception(f"[FCM] Unexpected error sending reminder {reminder.id} (user={profile.user_id}): {e!r}")
        else:
            outcome = TokenOutcome.SENT
        push_sends_total.labels(result=outcome.value).inc()
        return outcome

    async def _prune(self, user_id: str, invalid: FrozenSet[str]) -> FrozenSet[str]:
        try:
            await asyncio.to_thread(self.prune_tokens, user_id, list(invalid))
        except Exception as e:
            logger.warning(f"[Reminders] Failed cleaning invalid tokens for user {user_id}: {e!r}")
            return frozenset()
        push_tokens_pruned_total.inc(len(invalid))
        logger.info(f"[Reminders] Pruned {len(invalid)} invalid push token(s) for user {user_id}")
        return invalid

