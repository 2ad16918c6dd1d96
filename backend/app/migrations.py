"""Apply Alembic migrations before the API starts serving requests."""

from __future__ import annotations

import errno
import logging
import os
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from .database import SQLALCHEMY_DATABASE_URL, engine_options

LOGGER = logging.getLogger(__name__)

LOCK_FILENAME = ".alembic-migration.lock"
LOCK_RETRY_DELAY = 0.25
LOCK_TIMEOUT_ENV = "ALEMBIC_MIGRATION_LOCK_TIMEOUT"
DEFAULT_LOCK_TIMEOUT = 30.0

# Tables created by the initial revision; if all exist without an
# alembic_version row the schema came from ``Base.metadata.create_all``.
BASELINE_TABLES = frozenset({"companies", "billing_settings", "contracts", "invoices"})

if os.name == "posix":  # pragma: no cover - platform specific
    import fcntl
else:  # pragma: no cover - platform specific
    import msvcrt


def _read_lock_timeout() -> float:
    raw = os.getenv(LOCK_TIMEOUT_ENV)
    if not raw:
        return DEFAULT_LOCK_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        LOGGER.warning("Invalid %s=%s; using %.1f seconds", LOCK_TIMEOUT_ENV, raw, DEFAULT_LOCK_TIMEOUT)
        return DEFAULT_LOCK_TIMEOUT
    return value if value > 0 else DEFAULT_LOCK_TIMEOUT


def _try_lock(handle) -> None:
    if os.name == "posix":  # pragma: no cover - platform specific
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    else:  # pragma: no cover - platform specific
        msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)


def _unlock(handle) -> None:
    if os.name == "posix":  # pragma: no cover - platform specific
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    else:  # pragma: no cover - platform specific
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)


@contextmanager
def _migration_lock(path: Path, *, timeout: float) -> Iterator[None]:
    """Serialize migrations between processes sharing the same checkout."""

    path.parent.mkdir(parents=True, exist_ok=True)
    deadline = time.monotonic() + timeout
    with path.open("a+") as handle:
        while True:
            try:
                _try_lock(handle)
                break
            except OSError as error:
                if error.errno not in {errno.EACCES, errno.EAGAIN, errno.EBUSY}:
                    raise
                if time.monotonic() >= deadline:
                    raise TimeoutError("Timed out waiting for Alembic migration lock") from error
                time.sleep(LOCK_RETRY_DELAY)
        try:
            yield
        finally:
            _unlock(handle)


def _inspect_schema(database_url: str) -> tuple[bool, set[str]]:
    inspected = create_engine(database_url, **engine_options(database_url))
    try:
        inspector = inspect(inspected)
        return inspector.has_table("alembic_version"), set(inspector.get_table_names())
    finally:
        inspected.dispose()


def build_alembic_config(database_url: str | None = None) -> Config:
    base_dir = Path(__file__).resolve().parent.parent
    config = Config(str(base_dir / "alembic.ini"))
    config.set_main_option("script_location", str(base_dir / "alembic"))
    config.set_main_option("sqlalchemy.url", database_url or SQLALCHEMY_DATABASE_URL)
    return config


def run_database_migrations() -> None:
    """Upgrade the schema to the latest revision, stamping schemas built without Alembic."""

    base_dir = Path(__file__).resolve().parent.parent
    if str(base_dir) not in sys.path:
        sys.path.insert(0, str(base_dir))

    config = build_alembic_config(os.getenv("DATABASE_URL", SQLALCHEMY_DATABASE_URL))
    final_url = config.get_main_option("sqlalchemy.url")
    LOGGER.info("Running database migrations at %s", final_url)

    with _migration_lock(base_dir / LOCK_FILENAME, timeout=_read_lock_timeout()):
        has_version_table, existing_tables = _inspect_schema(final_url)
        if not has_version_table and BASELINE_TABLES <= existing_tables:
            LOGGER.info("Existing billing schema found without Alembic metadata; stamping head")
            command.stamp(config, "head")
            return

        command.upgrade(config, "head")
