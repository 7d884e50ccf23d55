"""SQL persistence for the record store."""

from .session import check_connection, dispose_engine, get_engine, get_session_factory, session_scope

__all__ = [
    "check_connection",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
    "session_scope",
]
