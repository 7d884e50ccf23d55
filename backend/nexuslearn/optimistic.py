"""Optimistic state container for a single owner's progress record or profile.

``OptimisticRecordState`` is the only place client-side document state changes.
``dispatch`` applies a mutation to the local copy first, then commits it through a
gateway; a failed commit restores the exact pre-mutation object and fires the
error callback once. While a mutation is pending, further dispatches are rejected.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, List, Optional, Protocol, TypeVar

from .errors import MutationInProgressError, NexusLearnError, StoreUnavailableError
from .mutators import MutationOutcome
from .progress import UserProfile, UserProgressRecord
from .telemetry import emit_event

logger = logging.getLogger(__name__)

DocumentT = TypeVar("DocumentT", UserProgressRecord, UserProfile)


class MutationStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class OptimisticSnapshot(Generic[DocumentT]):
    data: DocumentT
    status: MutationStatus
    pending_mutation: Optional[Any] = None
    last_error: Optional[NexusLearnError] = None

    @property
    def is_saving(self) -> bool:
        return self.status is MutationStatus.PENDING


class RecordGateway(Protocol[DocumentT]):
    async def load(self, owner_id: str) -> DocumentT:  # pragma: no cover - protocol definition
        ...

    async def commit(self, owner_id: str, mutation: Any) -> DocumentT:  # pragma: no cover - protocol definition
        ...


class StoreGateway(Generic[DocumentT]):
    """Commits through an in-process record store, off the event loop."""

    def __init__(self, store: Any, *, actor_id: Optional[str] = None) -> None:
        self._store = store
        self._actor_id = actor_id

    async def load(self, owner_id: str) -> DocumentT:
        document = await asyncio.to_thread(self._store.get, owner_id, actor_id=self._actor_id)
        if document is None:
            return self._store.default_document(owner_id)
        return document

    async def commit(self, owner_id: str, mutation: Any) -> DocumentT:
        return await asyncio.to_thread(self._store.apply, owner_id, mutation, actor_id=self._actor_id)


class OptimisticRecordState(Generic[DocumentT]):
    def __init__(
        self,
        owner_id: str,
        gateway: RecordGateway[DocumentT],
        initial: DocumentT,
        *,
        on_error: Optional[Callable[[NexusLearnError], None]] = None,
    ) -> None:
        self._owner_id = owner_id
        self._gateway = gateway
        self._on_error = on_error
        self._listeners: List[Callable[[OptimisticSnapshot[DocumentT]], None]] = []
        self._snapshot: OptimisticSnapshot[DocumentT] = OptimisticSnapshot(data=initial, status=MutationStatus.IDLE)

    @classmethod
    async def open(
        cls,
        owner_id: str,
        gateway: RecordGateway[DocumentT],
        *,
        on_error: Optional[Callable[[NexusLearnError], None]] = None,
    ) -> "OptimisticRecordState[DocumentT]":
        initial = await gateway.load(owner_id)
        return cls(owner_id, gateway, initial, on_error=on_error)

    @property
    def owner_id(self) -> str:
        return self._owner_id

    @property
    def snapshot(self) -> OptimisticSnapshot[DocumentT]:
        return self._snapshot

    @property
    def data(self) -> DocumentT:
        return self._snapshot.data

    @property
    def status(self) -> MutationStatus:
        return self._snapshot.status

    @property
    def is_saving(self) -> bool:
        return self._snapshot.is_saving

    @property
    def last_error(self) -> Optional[NexusLearnError]:
        return self._snapshot.last_error

    @property
    def pending_mutation(self) -> Optional[Any]:
        return self._snapshot.pending_mutation

    def subscribe(self, listener: Callable[[OptimisticSnapshot[DocumentT]], None]) -> Callable[[], None]:
        """Register a render callback; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def dispatch(self, mutation: Any) -> MutationOutcome[DocumentT]:
        if self.is_saving:
            return MutationOutcome.failure(MutationInProgressError())

        previous = self._snapshot.data
        outcome = mutation.apply(previous)
        if not outcome.ok:
            assert outcome.error is not None
            self._transition(previous, self._snapshot.status, last_error=outcome.error)
            self._notify(outcome.error)
            return outcome

        self._transition(outcome.record, MutationStatus.PENDING, pending_mutation=mutation)
        try:
            stored = await self._gateway.commit(self._owner_id, mutation)
        except NexusLearnError as exc:
            self._roll_back(previous, mutation, exc)
            return MutationOutcome.failure(exc)
        except Exception as exc:
            self._roll_back(previous, mutation, StoreUnavailableError(f"Saving failed: {exc}"))
            raise

        committed = outcome.record.model_copy(update={"last_updated": stored.last_updated})
        self._transition(committed, MutationStatus.COMMITTED)
        return MutationOutcome.success(committed)

    async def reload(self) -> DocumentT:
        """Replace local data with a fresh read; rejected while a mutation is pending."""
        if self.is_saving:
            raise MutationInProgressError()
        fresh = await self._gateway.load(self._owner_id)
        self._transition(fresh, MutationStatus.IDLE)
        return fresh

    def _roll_back(self, previous: DocumentT, mutation: Any, error: NexusLearnError) -> None:
        logger.warning("Rolling back %s for %s: %s", mutation.kind, self._owner_id, error.code)
        self._transition(previous, MutationStatus.ROLLED_BACK, last_error=error)
        emit_event(
            "optimistic_rollback",
            owner_id=self._owner_id,
            kind=mutation.kind,
            code=error.code,
            category=error.category,
        )
        self._notify(error)

    def _transition(
        self,
        data: DocumentT,
        status: MutationStatus,
        *,
        pending_mutation: Optional[Any] = None,
        last_error: Optional[NexusLearnError] = None,
    ) -> None:
        self._snapshot = OptimisticSnapshot(
            data=data,
            status=status,
            pending_mutation=pending_mutation,
            last_error=last_error,
        )
        for listener in list(self._listeners):
            listener(self._snapshot)

    def _notify(self, error: NexusLearnError) -> None:
        if self._on_error is not None:
            self._on_error(error)


__all__ = [
    "MutationStatus",
    "OptimisticRecordState",
    "OptimisticSnapshot",
    "RecordGateway",
    "StoreGateway",
]
