"""Process-wide logging for the API, the migration script and the AI flows."""

import logging
import os
from logging.config import dictConfig
from typing import Dict

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Chatty client libraries stay at WARNING unless debugging is switched on for them.
_QUIET_LOGGERS = ("google.auth", "urllib3", "openai", "openai.agents", "httpcore", "grpc")


def _flag(name: str) -> bool:
    return os.getenv(name, "0").strip().lower() in {"1", "true", "yes"}


def configure_logging() -> None:
    """Configure logging from NEXUSLEARN_LOG_LEVEL and the NEXUSLEARN_DEBUG_* flags."""
    level = os.getenv("NEXUSLEARN_LOG_LEVEL", "INFO").upper()
    debug_http = _flag("NEXUSLEARN_DEBUG_HTTP")

    loggers: Dict[str, Dict[str, object]] = {
        "nexuslearn": {"level": level},
        "nexuslearn.telemetry": {"level": "WARNING" if _flag("NEXUSLEARN_QUIET_TELEMETRY") else level},
        "sqlalchemy.engine": {"level": "INFO" if _flag("NEXUSLEARN_DEBUG_SQL") else "WARNING"},
        "httpx": {"level": "DEBUG" if debug_http else "WARNING"},
        "uvicorn.access": {"level": "DEBUG" if debug_http else "INFO"},
    }
    for name in _QUIET_LOGGERS:
        loggers.setdefault(name, {"level": "DEBUG" if debug_http else "WARNING"})

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"format": DEFAULT_LOG_FORMAT}},
            "handlers": {"default": {"class": "logging.StreamHandler", "formatter": "default"}},
            "loggers": loggers,
            "root": {"handlers": ["default"], "level": level},
        }
    )
    logging.getLogger(__name__).debug("Logging configured at %s", level)
