from __future__ import annotations

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

# Applied once per physical connection; bounds query latency and keeps the
# service from writing or idling inside a transaction.
SESSION_SETTINGS = (
    "SET TIME ZONE 'UTC'",
    "SET default_transaction_read_only = on",
    "SET statement_timeout = '2000ms'",
    "SET lock_timeout = '1000ms'",
    "SET idle_in_transaction_session_timeout = '5000ms'",
)


def _apply_session_settings(dbapi_connection: Any, application_name: str) -> None:
    existing_autocommit = dbapi_connection.autocommit
    dbapi_connection.autocommit = True
    cursor = dbapi_connection.cursor()
    try:
        for statement in SESSION_SETTINGS:
            cursor.execute(statement)
        cursor.execute("SELECT set_config('application_name', %s, false)", (application_name,))
    finally:
        cursor.close()
        dbapi_connection.autocommit = existing_autocommit


def create_engine(database_url: str, *, application_name: str = "vinops.api", **kwargs: Any) -> AsyncEngine:
    engine = create_async_engine(database_url, echo=False, pool_pre_ping=True, **kwargs)

    if engine.dialect.name == "postgresql":
        @event.listens_for(engine.sync_engine, "connect")
        def _on_connect(dbapi_connection, connection_record):  # pragma: no cover - needs postgres
            _apply_session_settings(dbapi_connection, application_name)

    return engine
