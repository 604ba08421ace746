"""
Push (FCM) and email (SMTP) transports used by the delivery router.

Both are async at the boundary; the underlying SDKs are blocking and run in
worker threads. Every failure surfaces as a typed exception so the router
can tell a dead push token apart from a transient outage.
"""
import asyncio
import json
import logging
import os
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from enum import Enum
from typing import Optional, Protocol

import firebase_admin
from firebase_admin import credentials, exceptions as firebase_exceptions, messaging

from smartnotes.core.config import Settings
from .config import ReminderSettings
from .content import PushMessage

logger = logging.getLogger(__name__)


class PushErrorKind(str, Enum):
    INVALID_TOKEN = "invalid_token"
    TRANSIENT = "transient"


class PushDeliveryError(Exception):
    def __init__(self, kind: PushErrorKind, message: str = "", code: Optional[str] = None):
        super().__init__(message or kind.value)
        self.kind = kind
        self.code = code


class EmailDeliveryError(Exception):
    pass


class EmailConfigurationError(ValueError):
    pass


class PushTransport(Protocol):
    async def send(self, token: str, message: PushMessage) -> None:
        ...


class EmailTransport(Protocol):
    async def send(self, to: str, subject: str, html: str) -> None:
        ...


def is_dead_token_error(error: Exception) -> bool:
    """Whether FCM rejected the registration token itself, as opposed to the message."""
    if isinstance(error, (messaging.UnregisteredError, messaging.SenderIdMismatchError)):
        return True
    if isinstance(error, firebase_exceptions.InvalidArgumentError):
        return "registration token" in str(error).lower()
    return False


class FcmPushTransport:
    """Firebase Cloud Messaging bound to an explicitly initialized app."""

    def __init__(self, app: firebase_admin.App):
        self.app = app

    @classmethod
    def from_settings(cls, reminder_settings: ReminderSettings, name: str = "reminders") -> Optional["FcmPushTransport"]:
        proj = reminder_settings.FCM_PROJECT_ID
        creds_json = (
            reminder_settings.FCM_CREDENTIALS_JSON
            or os.getenv("GOOGLE_APPLICATION_CREDENTIALS_JSON")
            or os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        )
        if not creds_json or not creds_json.strip():
            logger.warning("⚠️  [FCM] No credentials provided - push reminders disabled")
            return None

        options = {"httpTimeout": reminder_settings.PUSH_SEND_TIMEOUT_SECONDS}
        if proj:
            options["projectId"] = proj

        try:
            if creds_json.strip().startswith("{"):
                cred = credentials.Certificate(json.loads(creds_json))
            else:
                cred = credentials.Certificate(creds_json)
            app = firebase_admin.initialize_app(cred, options=options, name=name)
        except (ValueError, OSError) as e:
            logger.error(f"❌ [FCM] Failed to initialize Firebase app: {e!r}")
            return None
        logger.info(f"✅ [FCM] Firebase app '{name}' initialized | project_id={proj}")
        return cls(app)

    async def send(self, token: str, message: PushMessage) -> None:
        fcm_message = messaging.Message(
            token=token,
            notification=messaging.Notification(title=message.title, body=message.body),
            data=dict(message.data),
        )
        try:
            await asyncio.to_thread(messaging.send, fcm_message, False, self.app)
        except firebase_exceptions.FirebaseError as e:
            kind = PushErrorKind.INVALID_TOKEN if is_dead_token_error(e) else PushErrorKind.TRANSIENT
            raise PushDeliveryError(kind, str(e), code=getattr(e, "code", None)) from e

    def close(self) -> None:
        firebase_admin.delete_app(self.app)


class SmtpEmailTransport:
    def __init__(
        self,
        smtp_server: str,
        smtp_port: int,
        smtp_username: str,
        smtp_password: str,
        from_email: str,
        timeout: float = 30.0,
    ):
        self.smtp_server = smtp_server
        self.smtp_port = int(smtp_port)
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.from_email = from_email
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpEmailTransport":
        # Validate required email configuration
        if not settings.SMTP_SERVER:
            raise EmailConfigurationError("SMTP_SERVER is required but not configured")
        if not settings.SMTP_PORT:
            raise EmailConfigurationError("SMTP_PORT is required but not configured")
        if not settings.SMTP_USERNAME:
            raise EmailConfigurationError("SMTP_USERNAME is required but not configured")
        if not settings.SMTP_PASSWORD:
            raise EmailConfigurationError("SMTP_PASSWORD is required but not configured")
        if not settings.FROM_EMAIL:
            raise EmailConfigurationError("FROM_EMAIL is required but not configured")
        if not settings.APP_BASE_URL:
            raise EmailConfigurationError("APP_BASE_URL is required but not configured")
        return cls(
            smtp_server=settings.SMTP_SERVER,
            smtp_port=settings.SMTP_PORT,
            smtp_username=settings.SMTP_USERNAME,
            smtp_password=settings.SMTP_PASSWORD,
            from_email=settings.FROM_EMAIL,
        )

    def build_message(self, to: str, subject: str, html: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to
        msg["Reply-To"] = self.from_email
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def _send_sync(self, msg: MIMEMultipart) -> None:
        context = ssl.create_default_context()
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        # 465 is implicit TLS, anything else negotiates STARTTLS
        if self.smtp_port == 465:
            with smtplib.SMTP_SSL(self.smtp_server, self.smtp_port, context=context, timeout=self.timeout) as server:
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout) as server:
                server.starttls(context=context)
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)

    async def send(self, to: str, subject: str, html: str) -> None:
        msg = self.build_message(to, subject, html)
        try:
            await asyncio.to_thread(self._send_sync, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"❌ [SMTP] sendmail failed via {self.smtp_server}:{self.smtp_port} to={to}: {e!r}")
            raise EmailDeliveryError(str(e)) from e
        logger.info(f"✅ [SMTP] Reminder email sent to={to}")
