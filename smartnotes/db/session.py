from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


def create_db_engine(database_uri: str, echo: bool = False) -> Engine:
    """Build an engine for the reminder store.

    The engine is created once per process by the runtime and passed to the
    components that need it; nothing in this package opens one at import time.
    """
    if database_uri.startswith("sqlite"):
        return create_engine(
            database_uri,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=echo,
        )
    return create_engine(
        database_uri,
        pool_size=20,
        max_overflow=30,
        pool_recycle=300,      # Recycle connections every 5 minutes
        pool_pre_ping=True,    # Validate connections before use
        pool_timeout=45,
        echo=echo,
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create the reminder engine tables (idempotent)."""
    from smartnotes import models  # noqa: F401  register mappers
    from smartnotes.db.base import Base

    Base.metadata.create_all(bind=engine)
