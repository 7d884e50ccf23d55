from __future__ import annotations

import types
from pathlib import Path

import pytest
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from nexuslearn.config import get_settings
from scripts import run_migrations as runner


def _config_with_placeholder(monkeypatch, url: str) -> Config:
    monkeypatch.setenv("NEXUSLEARN_DATABASE_URL", url)
    config = runner.get_alembic_config(str(runner.BACKEND_ROOT / "alembic.ini"))
    config.set_main_option("sqlalchemy.url", "%%(NEXUSLEARN_DATABASE_URL)s")
    return config


def test_resolve_database_url_prefers_env(monkeypatch) -> None:
    config = _config_with_placeholder(monkeypatch, "sqlite://")
    assert runner.resolve_database_url(config) == "sqlite://"
    assert config.get_main_option("sqlalchemy.url") == "sqlite://"


def test_resolve_database_url_requires_env(monkeypatch) -> None:
    config = _config_with_placeholder(monkeypatch, "sqlite://")
    monkeypatch.delenv("NEXUSLEARN_DATABASE_URL")
    with pytest.raises(RuntimeError):
        runner.resolve_database_url(config)


def test_wait_for_database_succeeds_with_sqlite(tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'ready.sqlite'}"
    runner.wait_for_database(url, timeout=2, poll_interval=0.1)


def test_wait_for_database_times_out(monkeypatch) -> None:
    class DummyEngine:
        def connect(self) -> types.SimpleNamespace:
            raise runner.OperationalError("SELECT 1", {}, Exception("boom"))

        def dispose(self) -> None:
            pass

    monkeypatch.setattr(runner, "create_engine", lambda *_, **__: DummyEngine())
    with pytest.raises(RuntimeError):
        runner.wait_for_database("postgresql://example", timeout=0, poll_interval=0)


def test_check_only_skips_upgrade(monkeypatch) -> None:
    config = _config_with_placeholder(monkeypatch, "sqlite://")
    calls: list[str] = []
    monkeypatch.setattr(runner, "wait_for_database", lambda url, **_: calls.append(url))
    monkeypatch.setattr(runner.command, "upgrade", lambda *_: pytest.fail("upgrade should not run"))

    runner.run_migrations("head", timeout=1, poll_interval=0.1, config=config, check_only=True)

    assert calls == ["sqlite://"]


def test_upgrade_creates_record_store_tables(monkeypatch, tmp_path: Path) -> None:
    url = f"sqlite:///{tmp_path / 'migrated.sqlite'}"
    config = _config_with_placeholder(monkeypatch, url)

    runner.run_migrations("head", timeout=2, poll_interval=0.1, config=config)

    engine = create_engine(url)
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert {"user_progress", "user_profiles", "persistence_audit_events"} <= tables


def test_main_reports_failure(monkeypatch) -> None:
    monkeypatch.delenv("NEXUSLEARN_DATABASE_URL", raising=False)
    monkeypatch.setenv("NEXUSLEARN_PERSISTENCE_MODE", "database")
    get_settings.cache_clear()
    assert runner.main(["--check-only"]) == 1


def test_main_is_noop_in_firestore_mode(monkeypatch) -> None:
    monkeypatch.setenv("NEXUSLEARN_PERSISTENCE_MODE", "firestore")
    monkeypatch.delenv("NEXUSLEARN_DATABASE_URL", raising=False)
    get_settings.cache_clear()
    try:
        assert runner.main([]) == 0
    finally:
        get_settings.cache_clear()


def test_status_reports_pending_then_current(monkeypatch, tmp_path: Path) -> None:
    url = f"sqlite:///{tmp_path / 'status.sqlite'}"
    monkeypatch.setenv("NEXUSLEARN_DATABASE_URL", url)
    monkeypatch.setenv("NEXUSLEARN_PERSISTENCE_MODE", "database")
    get_settings.cache_clear()
    try:
        assert runner.main(["--status"]) == 2
        assert runner.main(["--timeout", "2", "--poll-interval", "0.1"]) == 0
        assert runner.main(["--status"]) == 0
    finally:
        get_settings.cache_clear()
