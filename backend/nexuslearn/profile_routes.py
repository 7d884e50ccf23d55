"""Profile endpoints: first-login creation, reads and field updates."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, status
from pydantic import Field

from .errors import NexusLearnError, ProfileNotFoundError, to_http_exception
from .identity import caller_id
from .mutations import UpdateProfile
from .progress import DocumentModel
from .record_store import profile_store

router = APIRouter(prefix="/api/profile", tags=["profile"])
logger = logging.getLogger(__name__)


class EnsureProfileRequest(DocumentModel):
    email: str = Field(..., min_length=3)
    name: Optional[str] = None
    photo_url: Optional[str] = None


@router.get("/{owner_id}", status_code=status.HTTP_200_OK)
def get_profile(owner_id: str, caller: str = Depends(caller_id)) -> Dict[str, Any]:
    try:
        profile = profile_store.get(owner_id, actor_id=caller)
        if profile is None:
            raise ProfileNotFoundError(f"No profile exists for '{owner_id}'.")
    except NexusLearnError as exc:
        raise to_http_exception(exc) from exc
    return profile.to_document()


@router.post("/{owner_id}", status_code=status.HTTP_200_OK)
def ensure_profile(
    owner_id: str,
    payload: EnsureProfileRequest,
    caller: str = Depends(caller_id),
) -> Dict[str, Any]:
    """Create the profile on first login; later calls only refresh ``lastLogin``."""
    try:
        profile = profile_store.ensure_profile(
            owner_id,
            email=payload.email.strip(),
            name=payload.name,
            photo_url=payload.photo_url,
            actor_id=caller,
        )
    except NexusLearnError as exc:
        raise to_http_exception(exc) from exc
    logger.info("Profile ensured for %s", owner_id)
    return profile.to_document()


@router.patch("/{owner_id}", status_code=status.HTTP_200_OK)
def update_profile(
    owner_id: str,
    changes: Dict[str, Any] = Body(...),
    caller: str = Depends(caller_id),
) -> Dict[str, Any]:
    try:
        profile = profile_store.apply(owner_id, UpdateProfile(changes=changes), actor_id=caller)
    except NexusLearnError as exc:
        raise to_http_exception(exc) from exc
    return profile.to_document()


__all__ = ["router"]
