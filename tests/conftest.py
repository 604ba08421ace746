import uuid
from datetime import datetime
from typing import Iterable, List, Optional

import pytest
from sqlalchemy import event

from smartnotes.db.session import create_db_engine, init_db, make_session_factory
from smartnotes.models import DeviceToken, Task, User
from smartnotes.reminders.repository import ReminderStore
from smartnotes.reminders.schemas import ReminderCreate
from tests.fakes import FakeEmailTransport, FakePushTransport


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'reminders.db'}")

    # pysqlite: take the write lock at BEGIN so concurrent writers queue up
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return ReminderStore(session_factory)


@pytest.fixture
def seed(session_factory, store):
    return Seeder(session_factory, store)


class Seeder:
    def __init__(self, session_factory, store: ReminderStore):
        self.session_factory = session_factory
        self.store = store

    def user(
        self,
        user_id: str = "u1",
        email: Optional[str] = "user@example.com",
        push: bool = True,
        tokens: Iterable[str] = (),
        locale: Optional[str] = None,
        timezone_name: Optional[str] = None,
    ) -> str:
        with self.session_factory() as db:
            db.add(User(
                id=user_id,
                email=email,
                push_reminders_enabled=push,
                locale=locale,
                timezone=timezone_name,
            ))
            db.flush()
            for token in tokens:
                db.add(DeviceToken(id=str(uuid.uuid4()), user_id=user_id, fcm_token=token))
            db.commit()
        return user_id

    def task(self, task_id: str = "t1", user_id: str = "u1", title: str = "Buy milk", **fields) -> str:
        with self.session_factory() as db:
            db.add(Task(id=task_id, user_id=user_id, title=title, **fields))
            db.commit()
        return task_id

    def reminder(
        self,
        reminder_time: datetime,
        task_id: str = "t1",
        user_id: str = "u1",
        external_id: Optional[str] = None,
    ) -> str:
        return self.store.create_reminder(ReminderCreate(
            user_id=user_id,
            task_id=task_id,
            reminder_time=reminder_time,
            external_id=external_id,
        )).id

    def tokens(self, user_id: str = "u1") -> List[str]:
        profile = self.store.get_delivery_profile(user_id)
        return sorted(profile.tokens) if profile else []


@pytest.fixture
def push():
    return FakePushTransport()


@pytest.fixture
def email():
    return FakeEmailTransport()
