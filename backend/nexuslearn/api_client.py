"""Async HTTP client for the NexusLearn API and the optimistic gateways built on it."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .errors import NexusLearnError, StoreUnavailableError, error_from_detail
from .identity import USER_HEADER
from .mutations import MutationModel, UpdateProfile
from .progress import UserProfile, UserProgressRecord

logger = logging.getLogger(__name__)


class NexusLearnClient:
    """Thin wrapper over ``httpx.AsyncClient``; every failure surfaces as a ``NexusLearnError``."""

    def __init__(
        self,
        base_url: str,
        user_id: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._user_id = user_id
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"))
        self._owns_client = client is None

    @property
    def user_id(self) -> str:
        return self._user_id

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "NexusLearnClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers={USER_HEADER: self._user_id}
            )
        except httpx.TransportError as exc:
            raise StoreUnavailableError(f"Could not reach the NexusLearn API: {exc}") from exc
        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            detail = body.get("detail") if isinstance(body, dict) else body
            error = error_from_detail(detail, response.status_code)
            logger.debug("%s %s failed with %s (%s)", method, path, response.status_code, error.code)
            raise error
        return response.json()

    async def get_progress(self, owner_id: str) -> UserProgressRecord:
        data = await self._request("GET", f"/api/progress/{owner_id}")
        return UserProgressRecord.model_validate(data)

    async def apply_progress_mutation(self, owner_id: str, mutation: MutationModel) -> UserProgressRecord:
        data = await self._request("POST", f"/api/progress/{owner_id}/mutations", json=mutation.to_payload())
        return UserProgressRecord.model_validate(data)

    async def get_performance(self, owner_id: str, subject_id: Optional[str] = None) -> Dict[str, Any]:
        params = {"subject": subject_id} if subject_id else None
        return await self._request("GET", f"/api/progress/{owner_id}/performance", params=params)

    async def get_profile(self, owner_id: str) -> UserProfile:
        data = await self._request("GET", f"/api/profile/{owner_id}")
        return UserProfile.model_validate(data)

    async def ensure_profile(
        self,
        owner_id: str,
        *,
        email: str,
        name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> UserProfile:
        payload = {"email": email, "name": name, "photoUrl": photo_url}
        data = await self._request("POST", f"/api/profile/{owner_id}", json=payload)
        return UserProfile.model_validate(data)

    async def update_profile(self, owner_id: str, changes: Dict[str, Any]) -> UserProfile:
        data = await self._request("PATCH", f"/api/profile/{owner_id}", json=changes)
        return UserProfile.model_validate(data)


class ApiProgressGateway:
    """``RecordGateway`` committing progress mutations over HTTP."""

    def __init__(self, client: NexusLearnClient) -> None:
        self._client = client

    async def load(self, owner_id: str) -> UserProgressRecord:
        return await self._client.get_progress(owner_id)

    async def commit(self, owner_id: str, mutation: MutationModel) -> UserProgressRecord:
        return await self._client.apply_progress_mutation(owner_id, mutation)


class ApiProfileGateway:
    """``RecordGateway`` committing profile changes over HTTP."""

    def __init__(self, client: NexusLearnClient) -> None:
        self._client = client

    async def load(self, owner_id: str) -> UserProfile:
        return await self._client.get_profile(owner_id)

    async def commit(self, owner_id: str, mutation: UpdateProfile) -> UserProfile:
        return await self._client.update_profile(owner_id, mutation.changes)


__all__ = [
    "ApiProfileGateway",
    "ApiProgressGateway",
    "NexusLearnClient",
    "NexusLearnError",
    "USER_HEADER",
]
