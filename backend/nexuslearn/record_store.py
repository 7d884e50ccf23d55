"""Record store adapter: all-or-nothing reads and updates of per-owner documents.

``ProgressRecordStore`` and ``ProfileStore`` delegate to the SQL or the Firestore
backend depending on ``NEXUSLEARN_PERSISTENCE_MODE``. Every update reads the
current document inside one transaction, hands it to a caller-supplied function
and writes the result; if the function raises a ``MutationError`` or the backend
detects a conflicting write, nothing is written. Nothing is retried.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from google.api_core import exceptions as google_exceptions
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from .config import get_settings
from .db.session import session_scope
from .errors import (
    NexusLearnError,
    PermissionDeniedError,
    ProfileNotFoundError,
    RecordConflictError,
    StoreUnavailableError,
)
from .mutations import ProfileMutation, ProgressMutation
from .progress import UserProfile, UserProgressRecord, utc_now
from .repositories import firestore_documents
from .repositories.progress_records import VersionedDocumentRepository, profile_records, progress_records
from .telemetry import emit_event

logger = logging.getLogger(__name__)

DocumentT = TypeVar("DocumentT", UserProgressRecord, UserProfile)
UpdateFn = Callable[[DocumentT], DocumentT]


class _DatabaseDocumentStore(Generic[DocumentT]):
    """SQLAlchemy-backed persistence; translates driver failures into store errors."""

    def __init__(self, repository: VersionedDocumentRepository[DocumentT]) -> None:
        self._repository = repository

    def get(self, owner_id: str) -> Optional[DocumentT]:
        try:
            with session_scope(commit=False) as session:
                document = self._repository.get(session, owner_id)
                return document.model_copy(deep=True) if document else None
        except (OperationalError, DBAPIError) as exc:
            raise StoreUnavailableError() from exc

    def update(
        self,
        owner_id: str,
        fn: UpdateFn,
        default_factory: Callable[[str], DocumentT],
        *,
        mutation_name: str,
        audit_payload: Dict[str, Any],
        actor: Optional[str],
    ) -> DocumentT:
        try:
            with session_scope() as session:
                stored = self._repository.update(
                    session,
                    owner_id,
                    fn,
                    default_factory,
                    mutation_name=mutation_name,
                    audit_payload=audit_payload,
                    actor=actor,
                )
            return stored.model_copy(deep=True)
        except (StaleDataError, IntegrityError) as exc:
            raise RecordConflictError() from exc
        except (OperationalError, DBAPIError) as exc:
            raise StoreUnavailableError() from exc


class _FirestoreDocumentStore(Generic[DocumentT]):
    """Firestore-backed persistence; translates Google API failures into store errors."""

    def __init__(self, repository: firestore_documents.FirestoreDocumentRepository[DocumentT]) -> None:
        self._repository = repository

    def get(self, owner_id: str) -> Optional[DocumentT]:
        try:
            return self._repository.get(owner_id)
        except google_exceptions.GoogleAPIError as exc:
            raise firestore_documents.translate_firestore_error(exc) from exc

    def update(
        self,
        owner_id: str,
        fn: UpdateFn,
        default_factory: Callable[[str], DocumentT],
        *,
        mutation_name: str,
        audit_payload: Dict[str, Any],
        actor: Optional[str],
    ) -> DocumentT:
        try:
            return self._repository.update(owner_id, fn, default_factory)
        except google_exceptions.GoogleAPIError as exc:
            raise firestore_documents.translate_firestore_error(exc) from exc
        except ValueError as exc:
            if not firestore_documents.is_commit_failure(exc):
                raise
            raise RecordConflictError() from exc


class _DocumentStore(Generic[DocumentT]):
    """Facade shared by the progress and profile stores."""

    event_prefix = "document"

    def __init__(self, *, mode: Optional[str] = None) -> None:
        self._mode_override = mode
        self._backends: Dict[str, Any] = {}

    @property
    def mode(self) -> str:
        return self._mode_override or get_settings().persistence_mode

    def _backend(self) -> Any:
        mode = self.mode
        backend = self._backends.get(mode)
        if backend is None:
            backend = self._build_backend(mode)
            self._backends[mode] = backend
        return backend

    def _build_backend(self, mode: str) -> Any:  # pragma: no cover - overridden
        raise NotImplementedError

    def default_document(self, owner_id: str) -> DocumentT:  # pragma: no cover - overridden
        raise NotImplementedError

    @staticmethod
    def _check_access(owner_id: str, actor_id: Optional[str]) -> None:
        if actor_id is not None and actor_id != owner_id:
            raise PermissionDeniedError(
                "Access denied: records can only be read or written by their owner. "
                "Check the store access rules for this collection."
            )

    def get(self, owner_id: str, *, actor_id: Optional[str] = None) -> Optional[DocumentT]:
        self._check_access(owner_id, actor_id)
        return self._backend().get(owner_id)

    def atomic_update(
        self,
        owner_id: str,
        fn: UpdateFn,
        *,
        actor_id: Optional[str] = None,
        mutation_name: str = "atomic_update",
        audit_payload: Optional[Dict[str, Any]] = None,
        default_factory: Optional[Callable[[str], DocumentT]] = None,
    ) -> DocumentT:
        self._check_access(owner_id, actor_id)
        return self._backend().update(
            owner_id,
            fn,
            default_factory or self.default_document,
            mutation_name=mutation_name,
            audit_payload=audit_payload or {},
            actor=actor_id,
        )

    def _apply(self, owner_id: str, mutation: Any, *, actor_id: Optional[str]) -> DocumentT:
        try:
            stored = self.atomic_update(
                owner_id,
                lambda current: mutation.apply(current).unwrap(),
                actor_id=actor_id,
                mutation_name=mutation.kind,
                audit_payload=mutation.audit_payload(),
            )
        except NexusLearnError as exc:
            logger.info("Rejected %s for %s: %s", mutation.kind, owner_id, exc.code)
            emit_event(
                f"{self.event_prefix}_mutation_rejected",
                owner_id=owner_id,
                kind=mutation.kind,
                code=exc.code,
                category=exc.category,
            )
            raise
        emit_event(
            f"{self.event_prefix}_mutation_committed",
            owner_id=owner_id,
            kind=mutation.kind,
            mode=self.mode,
        )
        return stored


class ProgressRecordStore(_DocumentStore[UserProgressRecord]):
    event_prefix = "progress"

    def _build_backend(self, mode: str) -> Any:
        if mode == "firestore":
            return _FirestoreDocumentStore(firestore_documents.progress_repository())
        return _DatabaseDocumentStore(progress_records)

    def default_document(self, owner_id: str) -> UserProgressRecord:
        return UserProgressRecord.empty(owner_id)

    def get_or_default(self, owner_id: str, *, actor_id: Optional[str] = None) -> UserProgressRecord:
        return self.get(owner_id, actor_id=actor_id) or UserProgressRecord.empty(owner_id)

    def apply(
        self,
        owner_id: str,
        mutation: ProgressMutation,
        *,
        actor_id: Optional[str] = None,
    ) -> UserProgressRecord:
        return self._apply(owner_id, mutation, actor_id=actor_id)


class ProfileStore(_DocumentStore[UserProfile]):
    event_prefix = "profile"

    def _build_backend(self, mode: str) -> Any:
        if mode == "firestore":
            return _FirestoreDocumentStore(firestore_documents.profile_repository())
        return _DatabaseDocumentStore(profile_records)

    def default_document(self, owner_id: str) -> UserProfile:
        raise ProfileNotFoundError(f"No profile exists for '{owner_id}'.")

    def ensure_profile(
        self,
        owner_id: str,
        *,
        email: str,
        name: Optional[str] = None,
        photo_url: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> UserProfile:
        """Create the profile on first login, otherwise stamp ``last_login``."""
        now = utc_now()
        return self.atomic_update(
            owner_id,
            lambda profile: profile.model_copy(update={"last_login": now}),
            actor_id=actor_id,
            mutation_name="ensure_profile",
            audit_payload={"email": email},
            default_factory=lambda oid: UserProfile.default_for(oid, email, name, photo_url),
        )

    def apply(
        self,
        owner_id: str,
        mutation: ProfileMutation,
        *,
        actor_id: Optional[str] = None,
    ) -> UserProfile:
        return self._apply(owner_id, mutation, actor_id=actor_id)


progress_store = ProgressRecordStore()
profile_store = ProfileStore()

__all__ = [
    "ProfileStore",
    "ProgressRecordStore",
    "profile_store",
    "progress_store",
]
