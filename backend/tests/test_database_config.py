from __future__ import annotations

import pytest

from backend.app import database


def test_missing_url_falls_back_to_local_sqlite(monkeypatch) -> None:
    monkeypatch.delenv("REQUIRE_POSTGRES", raising=False)

    url = database.resolve_database_url(None)

    assert url.startswith("sqlite:///")
    assert url.endswith("billing.db")


def test_require_postgres_rejects_sqlite(monkeypatch) -> None:
    monkeypatch.setenv("REQUIRE_POSTGRES", "1")

    with pytest.raises(RuntimeError):
        database.resolve_database_url(None)
    with pytest.raises(RuntimeError):
        database.resolve_database_url("sqlite:///:memory:")


def test_server_database_options_read_pool_environment(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_POOL_SIZE", "12")
    monkeypatch.delenv("DATABASE_MAX_OVERFLOW", raising=False)

    options = database.engine_options("postgresql+psycopg://billing@db/billing")

    assert options["pool_size"] == 12
    assert options["max_overflow"] == 10
    assert options["pool_pre_ping"] is True
    assert options["connect_args"] == {"connect_timeout": 10}


def test_invalid_pool_setting_is_reported(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_POOL_TIMEOUT", "soon")

    with pytest.raises(ValueError, match="DATABASE_POOL_TIMEOUT"):
        database.engine_options("postgresql+psycopg://billing@db/billing")


def test_sqlite_engine_supports_savepoints(tmp_path) -> None:
    built = database.build_engine(f"sqlite:///{tmp_path / 'nested.db'}")
    try:
        with built.connect() as connection:
            with connection.begin():
                connection.exec_driver_sql("CREATE TABLE probe (id INTEGER)")
                nested = connection.begin_nested()
                connection.exec_driver_sql("INSERT INTO probe VALUES (1)")
                nested.rollback()
                assert connection.exec_driver_sql("SELECT COUNT(*) FROM probe").scalar() == 0
    finally:
        built.dispose()
