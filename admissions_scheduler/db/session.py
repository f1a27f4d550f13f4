"""
SQLAlchemy engine/session bootstrap.
- Builds the engine lazily from settings.DATABASE_URL (PostgreSQL, or SQLite when DB_HOST=sqlite).
- Exposes: get_engine(), get_session_factory(), get_db() for FastAPI, init_db(), commit_or_rollback().
"""

from functools import lru_cache
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from admissions_scheduler.base.config import settings
from admissions_scheduler.db.models import Base


def build_engine(database_url: str, echo: bool = False) -> Engine:
    if database_url.startswith("sqlite"):
        sqlite_engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

        # The driver opens its transaction at the first INSERT/UPDATE/DELETE, so
        # plain reads never hold a lock and SAVEPOINTs issued after a flush nest
        # inside that transaction.
        @event.listens_for(sqlite_engine, "connect")
        def _on_connect(dbapi_connection, _):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return sqlite_engine

    # Statement timeout bounds how long a single query can hold a breaker slot
    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        connect_args={"options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"},
    )


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, class_=Session, autoflush=False, expire_on_commit=False)


@lru_cache()
def get_engine() -> Engine:
    return build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)


@lru_cache()
def get_session_factory() -> sessionmaker:
    return build_session_factory(get_engine())


def init_db(bind: Optional[Engine] = None) -> None:
    Base.metadata.create_all(bind=bind or get_engine())


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one session per request, rolled back if left uncommitted."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def commit_or_rollback(db: Session) -> None:
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
