"""Caller identity for the HTTP surface.

Requests name their caller in the ``X-NexusLearn-User`` header. The header is
trusted as-is; the record stores compare it against the record owner.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header

from .errors import PermissionDeniedError, to_http_exception

USER_HEADER = "X-NexusLearn-User"


def caller_id(x_nexuslearn_user: Optional[str] = Header(default=None, alias=USER_HEADER)) -> str:
    value = (x_nexuslearn_user or "").strip()
    if not value:
        raise to_http_exception(PermissionDeniedError(f"Requests must identify the caller with the {USER_HEADER} header."))
    return value


__all__ = ["USER_HEADER", "caller_id"]
