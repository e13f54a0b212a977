"""SQLite engine and session factories for the local store."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from focus_coach.core.settings import DB_PATH
# Ensure SQLModel metadata is populated
from focus_coach.models.id_mapping import IdMapping
from focus_coach.models.kv import KeyValue
from focus_coach.models.sync_op import SyncQueueEntry
from focus_coach.storage import migrations


LOCAL_TABLES = [KeyValue.__table__, SyncQueueEntry.__table__, IdMapping.__table__]

SessionFactory = Callable[[], Session]

_engine: Optional[Engine] = None


def create_db_engine(path: str | Path | None = None) -> Engine:
    target = Path(path or DB_PATH)
    target.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(f"sqlite:///{target.as_posix()}", echo=False)


def init_db(engine: Optional[Engine] = None) -> Engine:
    actual = engine or get_engine()
    SQLModel.metadata.create_all(actual, tables=LOCAL_TABLES)
    migrations.run_all(actual)
    return actual


def make_session_factory(engine: Engine) -> SessionFactory:
    def factory() -> Session:
        return Session(engine)

    return factory


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def get_session() -> Session:
    return Session(get_engine())


__all__ = [
    "LOCAL_TABLES",
    "SessionFactory",
    "create_db_engine",
    "get_engine",
    "get_session",
    "init_db",
    "make_session_factory",
]
