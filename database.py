"""Engine and sessions for the budgeting tables.

Reports only read, so request sessions are rolled back instead of committed.
"""

from typing import Any, Callable, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings

SQLITE_PRAGMAS = ("PRAGMA journal_mode=WAL;", "PRAGMA foreign_keys=ON;")


def build_engine(database_url: str) -> Engine:
    is_sqlite = database_url.startswith("sqlite")
    connect_args: dict[str, Any] = {"check_same_thread": False} if is_sqlite else {}
    budget_engine = create_engine(database_url, connect_args=connect_args)
    if is_sqlite:
        event.listen(budget_engine, "connect", _apply_sqlite_pragmas)
    return budget_engine


def _apply_sqlite_pragmas(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    for pragma in SQLITE_PRAGMAS:
        cursor.execute(pragma)
    cursor.close()


engine = build_engine(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def read_session(
    factory: Callable[[], Session] = SessionLocal,
) -> Iterator[Session]:
    session = factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def init_db(bind: Engine = engine) -> None:
    # Tables are owned by the budgeting CRUD side; create them if missing.
    import models  # noqa: F401

    Base.metadata.create_all(bind=bind)
