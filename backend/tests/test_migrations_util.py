from __future__ import annotations

from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect, text

from backend.app.database import Base
from backend.app.migrations import run_database_migrations

BACKEND_DIR = Path(__file__).resolve().parents[1]


def _configure_alembic_script() -> ScriptDirectory:
    config = Config(str(BACKEND_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    return ScriptDirectory.from_config(config)


def _current_version(engine) -> str:
    with engine.connect() as connection:
        return connection.scalar(text("SELECT version_num FROM alembic_version"))


def test_run_database_migrations_builds_empty_database(tmp_path, monkeypatch) -> None:
    url = f"sqlite:///{tmp_path / 'fresh.db'}"
    monkeypatch.setenv("DATABASE_URL", url)

    run_database_migrations()

    engine = create_engine(url, connect_args={"check_same_thread": False})
    try:
        inspector = inspect(engine)
        tables = set(inspector.get_table_names())
        assert set(Base.metadata.tables) <= tables
        index_names = {index["name"] for index in inspector.get_indexes("invoices")}
        assert "invoices_contract_period_active_key" in index_names
        assert _current_version(engine) == _configure_alembic_script().get_current_head()
    finally:
        engine.dispose()


def test_run_database_migrations_stamps_head_for_current_schema(tmp_path, monkeypatch) -> None:
    url = f"sqlite:///{tmp_path / 'current.db'}"

    engine = create_engine(url, connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    engine.dispose()

    monkeypatch.setenv("DATABASE_URL", url)
    run_database_migrations()

    engine = create_engine(url, connect_args={"check_same_thread": False})
    try:
        assert inspect(engine).has_table("alembic_version")
        assert _current_version(engine) == _configure_alembic_script().get_current_head()
    finally:
        engine.dispose()


def test_migration_is_a_single_linear_history() -> None:
    script = _configure_alembic_script()

    assert len(script.get_heads()) == 1
    assert [revision.revision for revision in script.walk_revisions()] == ["20260101_0001"]
