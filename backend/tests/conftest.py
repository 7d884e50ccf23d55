from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Any, Iterator, Optional

import pytest

from nexuslearn import agent_runtime
from nexuslearn.config import Settings, get_settings
from nexuslearn.db import models  # noqa: F401
from nexuslearn.db.base import Base
from nexuslearn.db.session import dispose_engine, get_engine
from nexuslearn.telemetry import TelemetryEvent, clear_listeners, register_listener


@pytest.fixture
def database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    db_path = tmp_path / "nexuslearn.db"
    monkeypatch.setenv("NEXUSLEARN_DATABASE_URL", f"sqlite:///{db_path}")
    monkeypatch.setenv("NEXUSLEARN_PERSISTENCE_MODE", "database")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    get_settings.cache_clear()
    dispose_engine()
    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield
    dispose_engine()
    get_settings.cache_clear()


@pytest.fixture
def telemetry_events() -> Iterator[list[TelemetryEvent]]:
    events: list[TelemetryEvent] = []
    register_listener(events.append)
    yield events
    clear_listeners()


class StubRunner:
    """Stands in for ``agents.Runner``; returns ``output`` or raises ``error``."""

    def __init__(self) -> None:
        self.output: Any = None
        self.error: Optional[Exception] = None
        self.calls: list[dict[str, Any]] = []

    async def run(self, agent: Any, input: Any, **kwargs: Any) -> SimpleNamespace:
        self.calls.append({"agent": agent, "input": input, **kwargs})
        if self.error is not None:
            raise self.error
        return SimpleNamespace(final_output=self.output)


@pytest.fixture
def stub_runner(monkeypatch: pytest.MonkeyPatch) -> StubRunner:
    runner = StubRunner()
    monkeypatch.setattr(agent_runtime, "Runner", runner)
    return runner


@pytest.fixture
def ai_settings() -> Settings:
    return Settings(OPENAI_API_KEY="sk-test")
