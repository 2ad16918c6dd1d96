"""Engine, session factory and declarative base shared by the billing engine."""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

DEFAULT_SQLITE_PATH = Path(__file__).resolve().parent.parent / "billing.db"

# Pool tuning for server databases, read once at import time.
POOL_SETTINGS = {
    "pool_size": ("DATABASE_POOL_SIZE", 5),
    "max_overflow": ("DATABASE_MAX_OVERFLOW", 10),
    "pool_timeout": ("DATABASE_POOL_TIMEOUT", 30),
    "pool_recycle": ("DATABASE_POOL_RECYCLE", 1800),
}
CONNECT_TIMEOUT_ENV = "DATABASE_CONNECT_TIMEOUT"


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


def _env_non_negative_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must be non-negative")
    return value


def is_sqlite_url(url: str) -> bool:
    return make_url(url).drivername.startswith("sqlite")


def resolve_database_url(raw_url: Optional[str] = None) -> str:
    """Return the configured database URL, falling back to a local SQLite file.

    ``REQUIRE_POSTGRES=1`` turns the fallback (and any SQLite URL) into an error
    so production deployments cannot silently bill against a scratch file.
    """

    require_server_db = _env_flag("REQUIRE_POSTGRES")
    if not raw_url:
        if require_server_db:
            raise RuntimeError("DATABASE_URL must point to PostgreSQL when REQUIRE_POSTGRES=1")
        DEFAULT_SQLITE_PATH.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{DEFAULT_SQLITE_PATH.as_posix()}"

    url = make_url(raw_url)
    if url.drivername.startswith("sqlite"):
        if require_server_db:
            raise RuntimeError("SQLite is not permitted when REQUIRE_POSTGRES=1")
        if url.database not in (None, "", ":memory:"):
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return url.render_as_string(hide_password=False)


def engine_options(url: str) -> Dict[str, Any]:
    if is_sqlite_url(url):
        return {"connect_args": {"check_same_thread": False}}

    options: Dict[str, Any] = {"pool_pre_ping": True}
    for option, (env_name, default) in POOL_SETTINGS.items():
        options[option] = _env_non_negative_int(env_name, default)
    options["connect_args"] = {"connect_timeout": _env_non_negative_int(CONNECT_TIMEOUT_ENV, 10)}
    return options


def enable_sqlite_savepoints(target_engine: Engine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT works with pysqlite."""

    @event.listens_for(target_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target_engine, "begin")
    def _emit_begin(connection):
        connection.exec_driver_sql("BEGIN")


def build_engine(url: str) -> Engine:
    """Create an engine for ``url`` with pooling and SQLite transaction fixes applied."""

    built = create_engine(url, **engine_options(url))
    if is_sqlite_url(url):
        # Settings creation and invoice numbering rely on nested transactions.
        enable_sqlite_savepoints(built)
    return built


SQLALCHEMY_DATABASE_URL = resolve_database_url(os.getenv("DATABASE_URL"))
engine = build_engine(SQLALCHEMY_DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a request-scoped session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Commit on success and roll back on error; used by the batch jobs."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
