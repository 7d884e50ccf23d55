"""Firestore-backed repositories for the progress record and profile documents."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Callable, Dict, Generic, Optional, Type, TypeVar

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions

from ..config import Settings, get_settings
from ..errors import NexusLearnError, PermissionDeniedError, RecordConflictError, StoreUnavailableError
from ..progress import UserProfile, UserProgressRecord, normalize_timestamp

logger = logging.getLogger(__name__)

DocumentT = TypeVar("DocumentT", UserProgressRecord, UserProfile)

_client: Optional[Any] = None


def _load_credentials(settings: Settings) -> credentials.Base:
    raw = settings.firebase_credentials
    if not raw:
        return credentials.ApplicationDefault()
    if os.path.exists(raw):
        return credentials.Certificate(raw)
    return credentials.Certificate(json.loads(raw))


def get_firestore_client() -> Any:
    global _client
    if _client is None:
        if not firebase_admin._apps:
            firebase_admin.initialize_app(_load_credentials(get_settings()))
        _client = firestore.client()
    return _client


def reset_firestore_client() -> None:
    global _client
    _client = None


def is_commit_failure(exc: ValueError) -> bool:
    """True for the error a single-attempt transaction raises after its commit was aborted."""
    return str(exc).startswith("Failed to commit transaction")


def translate_firestore_error(exc: Exception) -> NexusLearnError:
    """Map Firestore client failures onto the record store error taxonomy."""
    if isinstance(exc, google_exceptions.PermissionDenied):
        return PermissionDeniedError()
    if isinstance(exc, (google_exceptions.Aborted, google_exceptions.Conflict)):
        return RecordConflictError()
    if isinstance(exc, ValueError) and is_commit_failure(exc):
        return RecordConflictError()
    if isinstance(
        exc,
        (
            google_exceptions.ServiceUnavailable,
            google_exceptions.DeadlineExceeded,
            google_exceptions.RetryError,
            google_exceptions.InternalServerError,
        ),
    ):
        return StoreUnavailableError()
    return StoreUnavailableError(f"The record store failed: {exc}")


class FirestoreDocumentRepository(Generic[DocumentT]):
    """One document per owner in ``collection``, keyed by owner id.

    Updates run inside a single-attempt ``@firestore.transactional`` call, so a
    concurrent commit aborts the update instead of silently retrying it.
    """

    def __init__(
        self,
        collection: str,
        document_model: Type[DocumentT],
        *,
        client_factory: Callable[[], Any] = get_firestore_client,
    ) -> None:
        self._collection = collection
        self._document_model = document_model
        self._client_factory = client_factory

    def _ref(self, owner_id: str) -> Any:
        return self._client_factory().collection(self._collection).document(owner_id)

    def get(self, owner_id: str) -> Optional[DocumentT]:
        snapshot = self._ref(owner_id).get()
        if not snapshot.exists:
            return None
        return self.to_domain(owner_id, snapshot.to_dict())

    def update(
        self,
        owner_id: str,
        fn: Callable[[DocumentT], DocumentT],
        default_factory: Callable[[str], DocumentT],
    ) -> DocumentT:
        client = self._client_factory()
        ref = client.collection(self._collection).document(owner_id)
        transaction = client.transaction(max_attempts=1)

        @firestore.transactional
        def _apply(transaction, doc_ref):  # type: ignore[no-untyped-def]
            snapshot = doc_ref.get(transaction=transaction)
            current = (
                self.to_domain(owner_id, snapshot.to_dict()) if snapshot.exists else default_factory(owner_id)
            )
            updated = fn(current)
            payload = updated.to_document()
            payload["lastUpdated"] = firestore.SERVER_TIMESTAMP
            transaction.set(doc_ref, payload)
            return updated

        updated = _apply(transaction, ref)
        logger.debug("Committed %s/%s", self._collection, owner_id)
        return updated.model_copy(update={"last_updated": self._read_server_stamp(ref, owner_id)})

    def _read_server_stamp(self, ref: Any, owner_id: str) -> Optional[Any]:
        # The write is already committed; a failed follow-up read must not turn it into an error.
        try:
            stamped = ref.get(field_paths=["lastUpdated"]).to_dict() or {}
        except google_exceptions.GoogleAPIError as exc:
            logger.warning(
                "Committed %s/%s but could not read its server timestamp: %s", self._collection, owner_id, exc
            )
            return None
        return normalize_timestamp(stamped.get("lastUpdated"))

    def to_domain(self, owner_id: str, data: Optional[Dict[str, Any]]) -> DocumentT:
        payload = dict(data or {})
        payload.setdefault("uid", owner_id)
        return self._document_model.model_validate(payload)


def progress_repository(settings: Optional[Settings] = None) -> FirestoreDocumentRepository[UserProgressRecord]:
    settings = settings or get_settings()
    return FirestoreDocumentRepository(settings.firestore_progress_collection, UserProgressRecord)


def profile_repository(settings: Optional[Settings] = None) -> FirestoreDocumentRepository[UserProfile]:
    settings = settings or get_settings()
    return FirestoreDocumentRepository(settings.firestore_profile_collection, UserProfile)


__all__ = [
    "FirestoreDocumentRepository",
    "get_firestore_client",
    "is_commit_failure",
    "profile_repository",
    "progress_repository",
    "reset_firestore_client",
    "translate_firestore_error",
]
