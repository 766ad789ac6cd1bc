"""SQLAlchemy base, JSON column type, and SQLite pragmas."""

from __future__ import annotations

import json
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import Text, TypeDecorator

DEFAULT_BUSY_TIMEOUT_MS = 5000


class JSONText(TypeDecorator[Any]):
    """Store JSON-serializable values as TEXT in SQLite.

    Keys are written sorted so identical payloads give identical rows.
    """

    impl = Text
    cache_ok = True

    def process_bind_param(
        self,
        value: Any,
        dialect: Any,
    ) -> str | None:
        if value is None:
            return None
        return json.dumps(value, sort_keys=True)

    def process_result_value(
        self,
        value: str | None,
        dialect: Any,
    ) -> Any:
        if value is None:
            return None
        return json.loads(value)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def set_sqlite_pragmas(
    dbapi_connection: Any,
    connection_record: Any,
) -> None:
    """Set SQLite pragmas on every new connection.

    SQLite pragmas are per-connection, not per-database, so they must be
    set every time.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={DEFAULT_BUSY_TIMEOUT_MS}")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def register_engine_events(engine: Engine) -> None:
    """Register SQLite pragma listener on an engine."""
    event.listen(engine, "connect", set_sqlite_pragmas)
