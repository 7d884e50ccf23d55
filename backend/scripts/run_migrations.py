"""Apply the record-store schema with Alembic once the database answers.

Run before starting the API (``python -m scripts.run_migrations``) so the
``user_progress``, ``user_profiles`` and audit tables exist. Only the SQL
persistence mode needs it; in Firestore mode the run is a no-op.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from nexuslearn.config import get_settings
from nexuslearn.logging_config import configure_logging

LOGGER = logging.getLogger("nexuslearn.migrations")
URL_PLACEHOLDER = "%(NEXUSLEARN_DATABASE_URL)s"
DEFAULT_TIMEOUT = int(os.getenv("NEXUSLEARN_DB_MIGRATION_TIMEOUT", "60"))
DEFAULT_POLL_INTERVAL = float(os.getenv("NEXUSLEARN_DB_MIGRATION_POLL_INTERVAL", "3"))
BACKEND_ROOT = Path(__file__).resolve().parent.parent


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Upgrade the NexusLearn record-store schema.")
    parser.add_argument("--revision", default=os.getenv("NEXUSLEARN_DB_MIGRATION_REVISION", "head"))
    parser.add_argument(
        "--timeout",
        type=int,
        default=DEFAULT_TIMEOUT,
        help=f"Seconds to wait for the database to accept connections (default: {DEFAULT_TIMEOUT}).",
    )
    parser.add_argument("--poll-interval", type=float, default=DEFAULT_POLL_INTERVAL)
    parser.add_argument("--config", default=str(BACKEND_ROOT / "alembic.ini"))
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--check-only", action="store_true", help="Only wait for the database.")
    mode.add_argument("--status", action="store_true", help="Report whether the schema is at head.")
    return parser.parse_args(argv)


def get_alembic_config(config_path: str) -> Config:
    config = Config(config_path)
    config.set_main_option("script_location", str(BACKEND_ROOT / "alembic"))
    return config


def resolve_database_url(config: Config) -> str:
    url = config.get_main_option("sqlalchemy.url")
    if url and url != URL_PLACEHOLDER:
        return url
    env_url = os.getenv("NEXUSLEARN_DATABASE_URL")
    if not env_url:
        raise RuntimeError("NEXUSLEARN_DATABASE_URL must be set before running migrations.")
    config.set_main_option("sqlalchemy.url", env_url)
    return env_url


def wait_for_database(database_url: str, *, timeout: int, poll_interval: float) -> int:
    """Retry ``SELECT 1`` until it succeeds; returns the number of attempts made."""
    deadline = time.time() + timeout
    engine = create_engine(database_url, pool_pre_ping=True)
    attempts = 0
    last_error: Optional[Exception] = None
    try:
        while attempts == 0 or time.time() < deadline:
            attempts += 1
            try:
                with engine.connect() as connection:
                    connection.execute(text("SELECT 1"))
                LOGGER.info("Database reachable after %d attempt(s).", attempts)
                return attempts
            except OperationalError as exc:
                last_error = exc
                LOGGER.warning("Database not reachable yet (attempt %d): %s", attempts, exc)
            except SQLAlchemyError as exc:
                last_error = exc
                LOGGER.error("Readiness probe failed: %s", exc)
                break
            if time.time() + poll_interval >= deadline:
                break
            time.sleep(poll_interval)
    finally:
        engine.dispose()
    raise RuntimeError(f"Database did not become reachable after {attempts} attempt(s).") from last_error


def schema_status(config: Config) -> tuple[Optional[str], Optional[str]]:
    """Return ``(current, head)`` revisions for the configured database."""
    head = ScriptDirectory.from_config(config).get_current_head()
    engine = create_engine(resolve_database_url(config))
    try:
        with engine.connect() as connection:
            current = MigrationContext.configure(connection).get_current_revision()
    finally:
        engine.dispose()
    return current, head


def run_migrations(
    revision: str,
    *,
    timeout: int,
    poll_interval: float,
    config: Optional[Config] = None,
    check_only: bool = False,
) -> None:
    config = config or get_alembic_config(str(BACKEND_ROOT / "alembic.ini"))
    database_url = resolve_database_url(config)
    wait_for_database(database_url, timeout=timeout, poll_interval=poll_interval)
    if check_only:
        LOGGER.info("Readiness check passed; skipping upgrade.")
        return
    current, head = schema_status(config)
    if revision == "head" and current == head:
        LOGGER.info("Record-store schema already at %s.", head)
        return
    LOGGER.info("Upgrading record-store schema from %s to %s", current or "empty", revision)
    command.upgrade(config, revision)


def main(argv: Optional[list[str]] = None) -> int:
    configure_logging()
    args = parse_args(argv)
    if get_settings().persistence_mode != "database":
        LOGGER.info("Persistence mode is %s; no SQL schema to migrate.", get_settings().persistence_mode)
        return 0
    try:
        config = get_alembic_config(args.config)
        if args.status:
            current, head = schema_status(config)
            LOGGER.info("Schema revision %s (head %s)", current or "none", head)
            return 0 if current == head else 2
        run_migrations(
            args.revision,
            timeout=args.timeout,
            poll_interval=args.poll_interval,
            config=config,
            check_only=args.check_only,
        )
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Migration run failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
