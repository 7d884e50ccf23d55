"""Database-backed repositories for the progress record and the user profile documents."""

from __future__ import annotations

from typing import Any, Callable, Dict, Generic, Optional, Type, TypeVar, Union

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..db.models import PersistenceAuditEventModel, ProgressRecordModel, UserProfileModel
from ..progress import UserProfile, UserProgressRecord

DocumentT = TypeVar("DocumentT", UserProgressRecord, UserProfile)
RowModel = Union[ProgressRecordModel, UserProfileModel]


def _normalize_owner_id(owner_id: str) -> str:
    normalized = owner_id.strip()
    if not normalized:
        raise ValueError("Owner id cannot be empty.")
    return normalized


class VersionedDocumentRepository(Generic[DocumentT]):
    """Stores one document per owner in a version-checked row.

    ``update`` must run inside the caller's session transaction: it locks the row,
    lets ``fn`` compute the next document and writes it back. A concurrent writer
    that committed in between surfaces as ``StaleDataError`` on flush; a
    concurrent first insert surfaces as ``IntegrityError``.
    """

    def __init__(self, row_model: Type[RowModel], document_model: Type[DocumentT], event_prefix: str) -> None:
        self._row_model = row_model
        self._document_model = document_model
        self._event_prefix = event_prefix

    def get(self, session: Session, owner_id: str) -> Optional[DocumentT]:
        model = session.get(self._row_model, _normalize_owner_id(owner_id))
        if model is None:
            return None
        return self._to_domain(model)

    def update(
        self,
        session: Session,
        owner_id: str,
        fn: Callable[[DocumentT], DocumentT],
        default_factory: Callable[[str], DocumentT],
        *,
        mutation_name: str,
        audit_payload: Optional[Dict[str, Any]] = None,
        actor: Optional[str] = None,
    ) -> DocumentT:
        normalized = _normalize_owner_id(owner_id)
        model = self._lock(session, normalized)
        current = self._to_domain(model) if model is not None else default_factory(normalized)
        updated = fn(current)

        if model is None:
            model = self._row_model(owner_id=normalized)
            session.add(model)
        model.document = self._to_row_document(updated)
        model.last_updated = func.now()
        session.flush()

        self._record_audit(
            session,
            normalized,
            f"{self._event_prefix}_{mutation_name}",
            {**(audit_payload or {}), "version": model.version},
            actor=actor,
        )
        session.refresh(model)
        return self._to_domain(model)

    def _lock(self, session: Session, owner_id: str) -> Optional[RowModel]:
        stmt = select(self._row_model).where(self._row_model.owner_id == owner_id).with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    def _to_row_document(self, document: DocumentT) -> Dict[str, Any]:
        payload = document.to_document()
        payload.pop("lastUpdated", None)
        return payload

    def _to_domain(self, model: RowModel) -> DocumentT:
        payload = dict(model.document or {})
        payload.setdefault("uid", model.owner_id)
        payload["lastUpdated"] = model.last_updated
        return self._document_model.model_validate(payload)

    def _record_audit(
        self,
        session: Session,
        owner_id: str,
        event_type: str,
        payload: Dict[str, Any],
        *,
        actor: Optional[str] = None,
    ) -> None:
        event = PersistenceAuditEventModel(
            owner_id=owner_id,
            event_type=event_type,
            payload=payload,
            actor=actor or "system",
        )
        session.add(event)


progress_records: VersionedDocumentRepository[UserProgressRecord] = VersionedDocumentRepository(
    ProgressRecordModel, UserProgressRecord, "progress"
)
profile_records: VersionedDocumentRepository[UserProfile] = VersionedDocumentRepository(
    UserProfileModel, UserProfile, "profile"
)

__all__ = ["VersionedDocumentRepository", "profile_records", "progress_records"]
