"""Connection pool observability for the record store engine."""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from weakref import WeakKeyDictionary

from sqlalchemy import event
from sqlalchemy.engine import Engine

from ..telemetry import emit_event

logger = logging.getLogger(__name__)

_TELEMETRY_INTERVAL = float(os.getenv("NEXUSLEARN_DB_TELEMETRY_INTERVAL", "30"))


@dataclass
class PoolUsage:
    connects: int = 0
    checkouts: int = 0
    checkins: int = 0
    peak_in_use: int = 0
    last_emit: float = 0.0

    @property
    def in_use(self) -> int:
        return max(self.checkouts - self.checkins, 0)


_USAGE: "WeakKeyDictionary[Engine, PoolUsage]" = WeakKeyDictionary()


def _pool_capacity(engine: Engine) -> Optional[int]:
    size = getattr(engine.pool, "size", None)
    if not callable(size):
        return None
    overflow = getattr(engine.pool, "_max_overflow", 0) or 0
    return size() + max(overflow, 0)


def instrument_engine(engine: Engine) -> None:
    """Count connection usage and emit throttled ``db_pool_status`` events.

    An event is always emitted, regardless of the throttle, when every pooled
    connection is checked out, since record store writes then start queueing.
    """
    if engine in _USAGE:
        return
    usage = PoolUsage()
    _USAGE[engine] = usage
    capacity = _pool_capacity(engine)

    def report(trigger: str) -> None:
        saturated = capacity is not None and usage.in_use >= capacity
        now = time.time()
        if not saturated and _TELEMETRY_INTERVAL > 0 and (now - usage.last_emit) < _TELEMETRY_INTERVAL:
            return
        usage.last_emit = now
        if saturated:
            logger.warning("Record store pool saturated: %d of %d connections in use", usage.in_use, capacity)
        emit_event("db_pool_status", trigger="saturated" if saturated else trigger, **_usage_fields(engine, usage))

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        usage.connects += 1
        report("connect")

    @event.listens_for(engine, "checkout")
    def _on_checkout(dbapi_connection, connection_record, connection_proxy) -> None:  # type: ignore[no-untyped-def]
        usage.checkouts += 1
        usage.peak_in_use = max(usage.peak_in_use, usage.in_use)
        report("checkout")

    @event.listens_for(engine, "checkin")
    def _on_checkin(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        usage.checkins += 1
        report("checkin")


def _usage_fields(engine: Engine, usage: PoolUsage) -> Dict[str, Any]:
    return {
        "status": _safe_pool_status(engine),
        "connects": usage.connects,
        "checkouts": usage.checkouts,
        "checkins": usage.checkins,
        "in_use": usage.in_use,
        "peak_in_use": usage.peak_in_use,
        "capacity": _pool_capacity(engine),
    }


def get_pool_snapshot(engine: Engine) -> Dict[str, Any]:
    return _usage_fields(engine, _USAGE.get(engine) or PoolUsage())


def _safe_pool_status(engine: Engine) -> str:
    try:
        return engine.pool.status()  # type: ignore[no-untyped-call]
    except Exception as exc:  # pragma: no cover - pool implementations without status()
        return f"unavailable: {exc}"


__all__ = [
    "PoolUsage",
    "get_pool_snapshot",
    "instrument_engine",
]
