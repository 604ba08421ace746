"""
Process-level wiring for the reminder engine.

The database engine, Firebase app and SMTP transport are built once when a
process starts and handed to the components explicitly; ``close`` releases
them at shutdown.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.engine import Engine

from smartnotes.core.config import Settings, settings as core_settings
from smartnotes.db.session import create_db_engine, init_db, make_session_factory
from .config import ReminderSettings, settings as reminder_settings
from .leases import LeaseClaimer
from .repository import ReminderStore
from .router import DeliveryChannelRouter
from .scheduler import ReminderDispatchScheduler
from .sweeper import RetentionSweeper
from .transports import (
    EmailConfigurationError,
    EmailTransport,
    FcmPushTransport,
    PushTransport,
    SmtpEmailTransport,
)

logger = logging.getLogger(__name__)


@dataclass
class ReminderRuntime:
    engine: Optional[Engine]
    store: ReminderStore
    claimer: LeaseClaimer
    router: DeliveryChannelRouter
    scheduler: ReminderDispatchScheduler
    sweeper: RetentionSweeper
    push: Optional[PushTransport] = None
    email: Optional[EmailTransport] = None

    def close(self) -> None:
        if isinstance(self.push, FcmPushTransport):
            self.push.close()
        if self.engine is not None:
            self.engine.dispose()


def assemble_runtime(
    store: ReminderStore,
    push: Optional[PushTransport],
    email: Optional[EmailTransport],
    reminder_cfg: ReminderSettings = reminder_settings,
    core_cfg: Settings = core_settings,
    engine: Optional[Engine] = None,
) -> ReminderRuntime:
    claimer = LeaseClaimer(store, ttl=timedelta(seconds=reminder_cfg.CLAIM_TTL_SECONDS))
    router = DeliveryChannelRouter(
        push=push,
        email=email,
        prune_tokens=store.prune_push_tokens,
        push_timeout=reminder_cfg.PUSH_SEND_TIMEOUT_SECONDS,
        app_base_url=core_cfg.APP_BASE_URL,
    )
    scheduler = ReminderDispatchScheduler(
        store,
        claimer,
        router,
        batch_size=reminder_cfg.SCHEDULER_BATCH_SIZE,
    )
    sweeper = RetentionSweeper(
        store,
        retention=timedelta(days=reminder_cfg.RETENTION_DAYS),
        batch_size=reminder_cfg.RETENTION_BATCH_SIZE,
    )
    return ReminderRuntime(
        engine=engine,
        store=store,
        claimer=claimer,
        router=router,
        scheduler=scheduler,
        sweeper=sweeper,
        push=push,
        email=email,
    )


def build_runtime(
    reminder_cfg: ReminderSettings = reminder_settings,
    core_cfg: Settings = core_settings,
) -> ReminderRuntime:
    engine = create_db_engine(core_cfg.SQLALCHEMY_DATABASE_URI)
    init_db(engine)
    store = ReminderStore(make_session_factory(engine))

    push = FcmPushTransport.from_settings(reminder_cfg)
    try:
        email: Optional[EmailTransport] = SmtpEmailTransport.from_settings(core_cfg)
    except EmailConfigurationError as e:
        logger.warning(f"⚠️  [SMTP] Email reminders disabled: {e}")
        email = None

    return assemble_runtime(store, push, email, reminder_cfg, core_cfg, engine=engine)
