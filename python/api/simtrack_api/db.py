from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from .settings import settings

logger = logging.getLogger("simtrack.api.db")


def _resolve_db_url() -> str:
    db_url = settings.db_url
    if not db_url.startswith("sqlite"):
        return db_url

    # Ensure SQLite parent dir exists; fall back to /tmp if configured path is not writable.
    sqlite_path = db_url.replace("sqlite:///", "", 1)
    if sqlite_path and sqlite_path != ":memory:" and not sqlite_path.startswith("file:") and db_url != "sqlite://":
        db_file = Path(sqlite_path)
        try:
            db_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            fallback = Path("/tmp/simtrack.sqlite")
            fallback_url = f"sqlite:///{fallback.as_posix()}"
            logger.warning(
                "SQLite path not writable; falling back to /tmp/simtrack.sqlite",
                extra={
                    "event": "db.sqlite.fallback_tmp",
                    "configured_db_url": db_url,
                    "fallback_db_url": fallback_url,
                },
            )
            return fallback_url

    return db_url


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def _configure_sqlite_connection(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
    # Built-in lower() only folds ASCII; search must fold "Ü" the way str.lower() does.
    dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)


def make_engine(db_url: str, **kwargs) -> Engine:
    connect_args = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    new_engine = create_engine(db_url, connect_args=connect_args, pool_pre_ping=True, **kwargs)
    if db_url.startswith("sqlite"):
        event.listen(new_engine, "connect", _configure_sqlite_connection)
    return new_engine


EFFECTIVE_DB_URL = _resolve_db_url()

engine = make_engine(EFFECTIVE_DB_URL)


def init_db(bind: Engine = engine) -> None:
    """Create any missing tables."""
    from . import models  # noqa: F401  (registers tables on SQLModel.metadata)

    SQLModel.metadata.create_all(bind)
    logger.info("Database schema ready", extra={"event": "db.create_all"})


def get_session():
    with Session(engine) as session:
        yield session
