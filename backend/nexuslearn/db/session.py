"""Engine and session helpers for the SQL-backed record store."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..config import Settings, get_settings
from .monitoring import instrument_engine

logger = logging.getLogger(__name__)

SQLITE_BUSY_TIMEOUT_SECONDS = 15

_engine: Optional[Engine] = None
_engine_url: Optional[str] = None
_session_factory: Optional[sessionmaker[Session]] = None


def _engine_options(database_url: str, settings: Settings) -> dict[str, object]:
    options: dict[str, object] = {"echo": settings.database_echo, "pool_pre_ping": True}
    if make_url(database_url).get_backend_name() == "sqlite":
        # Concurrent writers wait on the file lock instead of failing at once.
        options["connect_args"] = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS}
    else:
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow
    return options


def get_engine() -> Engine:
    """Return the shared engine, rebuilding it when ``NEXUSLEARN_DATABASE_URL`` changed."""
    global _engine, _engine_url, _session_factory
    settings = get_settings()
    database_url = settings.database_url
    if not database_url:
        raise RuntimeError("NEXUSLEARN_DATABASE_URL must be configured before using the database.")
    if _engine is not None and _engine_url != database_url:
        logger.info("Database URL changed; rebuilding the record store engine")
        dispose_engine()
    if _engine is None:
        _engine = create_engine(database_url, **_engine_options(database_url, settings))
        _engine_url = database_url
        instrument_engine(_engine)
        _session_factory = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
        logger.debug("Created %s engine", _engine.dialect.name)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        get_engine()
    assert _session_factory is not None
    return _session_factory


@contextmanager
def session_scope(*, commit: bool = True) -> Generator[Session, None, None]:
    """One transaction; committed on success when ``commit`` is set, rolled back on any error."""
    session = get_session_factory()()
    try:
        yield session
        if commit:
            session.commit()
    except Exception as exc:  # noqa: BLE001
        logger.debug("Rolling back session after %s", type(exc).__name__)
        session.rollback()
        raise
    finally:
        session.close()


def check_connection(engine: Engine) -> None:
    """Run a trivial query; raises ``RuntimeError`` when the database does not answer."""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise RuntimeError(f"Database is not reachable: {exc.__class__.__name__}") from exc


def dispose_engine() -> None:
    global _engine, _engine_url, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _engine_url = None
    _session_factory = None


__all__ = [
    "check_connection",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
    "session_scope",
]
