"""Structured telemetry events for store writes, rollbacks and AI flow failures."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, List

from pydantic import BaseModel

logger = logging.getLogger("nexuslearn.telemetry")

MAX_FIELD_LENGTH = 500
_WARNING_SUFFIXES = ("_failed", "_rollback", "_conflict")

Listener = Callable[["TelemetryEvent"], None]


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_failure(self) -> bool:
        return self.name.endswith(_WARNING_SUFFIXES)


_listeners: List[Listener] = []
_lock = RLock()


def register_listener(listener: Listener) -> Callable[[], None]:
    """Register an in-process listener; returns a function that removes it."""
    with _lock:
        _listeners.append(listener)

    def unregister() -> None:
        with _lock:
            if listener in _listeners:
                _listeners.remove(listener)

    return unregister


def clear_listeners() -> None:
    with _lock:
        _listeners.clear()


def emit_event(name: str, **fields: Any) -> TelemetryEvent:
    """Emit a structured event, fan it out to listeners and log it as one JSON line."""
    event = TelemetryEvent(name=name, payload={key: _sanitize(value) for key, value in fields.items()})

    with _lock:
        listeners = list(_listeners)
    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    structured = {"event": name, "at": event.emitted_at.isoformat(), **event.payload}
    logger.log(
        logging.WARNING if event.is_failure else logging.INFO,
        "TELEMETRY %s",
        json.dumps(structured, default=str, sort_keys=True),
    )
    return event


def _sanitize(value: Any) -> Any:
    # Error strings can echo whole model answers or data URIs.
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, str) and len(value) > MAX_FIELD_LENGTH:
        return f"{value[:MAX_FIELD_LENGTH]}..."
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _sanitize(item) for key, item in value.items()}
    return value


__all__ = [
    "MAX_FIELD_LENGTH",
    "TelemetryEvent",
    "clear_listeners",
    "emit_event",
    "register_listener",
]
