from __future__ import annotations

from fastapi.testclient import TestClient

from nexuslearn.config import get_settings
from nexuslearn.db.session import dispose_engine
from nexuslearn.main import app


def test_healthz() -> None:
    client = TestClient(app)
    assert client.get("/healthz").json() == {"status": "ok"}


def test_database_health_endpoint_success(database) -> None:
    client = TestClient(app)
    response = client.get("/healthz/database")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert "pool" in payload
    assert payload["persistence_mode"] == "database"


def test_database_health_endpoint_failure(monkeypatch) -> None:
    client = TestClient(app)

    def raise_runtime_error():
        raise RuntimeError("missing database url")

    monkeypatch.setattr("nexuslearn.main.get_engine", raise_runtime_error)
    response = client.get("/healthz/database")
    assert response.status_code == 503
    assert response.json()["detail"] == "missing database url"


def test_info_reports_ai_configuration(database, monkeypatch) -> None:
    client = TestClient(app)
    assert client.get("/info").json()["ai_configured"] is False

    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    get_settings.cache_clear()
    assert client.get("/info").json()["ai_configured"] is True


def test_database_health_reports_unreachable_database(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("NEXUSLEARN_DATABASE_URL", f"sqlite:///{tmp_path / 'missing' / 'nexuslearn.db'}")
    get_settings.cache_clear()
    dispose_engine()
    try:
        response = TestClient(app).get("/healthz/database")
        assert response.status_code == 503
        assert response.json()["detail"].startswith("Database is not reachable")
    finally:
        dispose_engine()
        get_settings.cache_clear()
