"""Pure entry mutators for the progress record and the user profile.

Every mutator takes the current document plus a change and returns a
``MutationOutcome``. Mutators never raise and never modify their input: the
record store re-runs them on a fresh snapshot inside its transaction, and the
optimistic state container runs them against its local copy.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Any, Generic, Iterable, List, Mapping, Optional, TypeVar

from pydantic import Field, ValidationError, field_validator, model_validator

from .errors import (
    DuplicateSubmissionError,
    ImmutableFieldError,
    InvalidEntryError,
    NexusLearnError,
    TaskNotFoundError,
)
from .progress import (
    CalendarDay,
    ClockTime,
    DocumentModel,
    QuizResult,
    StudyPlannerEntry,
    SubjectMastery,
    UserProfile,
    UserProgressRecord,
    UtcDateTime,
    blank_to_none,
    new_task_id,
    utc_now,
)

DocumentT = TypeVar("DocumentT", UserProgressRecord, UserProfile)

IMMUTABLE_PROFILE_FIELDS = frozenset({"uid", "email", "join_date"})
_PROFILE_ALIASES = {
    field.alias: name
    for name, field in UserProfile.model_fields.items()
    if field.alias and field.alias != name
}
MUTABLE_PROFILE_FIELDS = frozenset({"name", "avatar_url", "school_board", "grade", "last_login"})


@dataclass(frozen=True)
class MutationOutcome(Generic[DocumentT]):
    record: Optional[DocumentT] = None
    error: Optional[NexusLearnError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> DocumentT:
        if self.error is not None:
            raise self.error
        assert self.record is not None
        return self.record

    @classmethod
    def success(cls, record: DocumentT) -> "MutationOutcome[DocumentT]":
        return cls(record=record)

    @classmethod
    def failure(cls, error: NexusLearnError) -> "MutationOutcome[DocumentT]":
        return cls(error=error)


class StudyTaskDraft(DocumentModel):
    """A planner entry before it is stored; the id is fixed when the draft is built."""

    id: str = Field(default_factory=new_task_id)
    date: CalendarDay
    task: str = Field(..., min_length=1)
    subject_id: Optional[str] = None
    subject_name: Optional[str] = None
    start_time: Optional[ClockTime] = None
    end_time: Optional[ClockTime] = None
    notes: Optional[str] = None

    @field_validator("start_time", "end_time", "notes", "subject_id", "subject_name", mode="before")
    @classmethod
    def _strip_blank_strings(cls, value: Any) -> Any:
        return blank_to_none(value)


class StudyTaskChanges(DocumentModel):
    """Partial planner update; only fields the caller explicitly set are applied."""

    date: Optional[CalendarDay] = None
    task: Optional[str] = None
    subject_id: Optional[str] = None
    subject_name: Optional[str] = None
    start_time: Optional[ClockTime] = None
    end_time: Optional[ClockTime] = None
    notes: Optional[str] = None

    @field_validator("start_time", "end_time", "notes", "subject_id", "subject_name", mode="before")
    @classmethod
    def _strip_blank_strings(cls, value: Any) -> Any:
        return blank_to_none(value)

    @model_validator(mode="after")
    def _reject_cleared_required_fields(self) -> "StudyTaskChanges":
        for required in ("date", "task"):
            if required in self.model_fields_set and getattr(self, required) is None:
                raise ValueError(f"{required} cannot be cleared.")
        return self


class MasteryUpdate(DocumentModel):
    """A mastery change; the timestamp is fixed when the change is built, like a draft id."""

    subject_id: str = Field(..., min_length=1)
    subject_name: str
    progress: float
    updated_at: UtcDateTime = Field(default_factory=utc_now)


def planner_sort_key(entry: StudyPlannerEntry) -> tuple[date, bool, time]:
    return (entry.date, entry.start_time is None, entry.start_time or time.min)


def sort_planner(entries: Iterable[StudyPlannerEntry]) -> List[StudyPlannerEntry]:
    return sorted(entries, key=planner_sort_key)


def append_quiz_result(
    record: UserProgressRecord,
    result: QuizResult,
    mastery: Optional[MasteryUpdate] = None,
) -> MutationOutcome[UserProgressRecord]:
    if any(existing.quiz_id == result.quiz_id for existing in record.quiz_history):
        return MutationOutcome.failure(
            DuplicateSubmissionError(f"Quiz '{result.quiz_id}' has already been submitted.")
        )
    updated = record.model_copy(deep=True)
    updated.quiz_history = [*updated.quiz_history, result.model_copy(deep=True)]
    if mastery is not None:
        updated.subject_mastery = _upsert_mastery(updated.subject_mastery, mastery)
    return MutationOutcome.success(updated)


def add_study_task(record: UserProgressRecord, draft: StudyTaskDraft) -> MutationOutcome[UserProgressRecord]:
    if any(entry.id == draft.id for entry in record.study_planner):
        return MutationOutcome.failure(InvalidEntryError(f"Study task '{draft.id}' already exists."))
    try:
        entry = StudyPlannerEntry.model_validate({**draft.model_dump(), "completed": False})
    except ValidationError as exc:
        return MutationOutcome.failure(InvalidEntryError(first_error_message(exc)))
    updated = record.model_copy(deep=True)
    updated.study_planner = sort_planner([*updated.study_planner, entry])
    return MutationOutcome.success(updated)


def update_study_task(
    record: UserProgressRecord,
    task_id: str,
    changes: StudyTaskChanges,
) -> MutationOutcome[UserProgressRecord]:
    index = _find_task(record, task_id)
    if index is None:
        return MutationOutcome.failure(TaskNotFoundError(f"Study task '{task_id}' no longer exists."))
    current = record.study_planner[index]
    supplied = {name: getattr(changes, name) for name in changes.model_fields_set}
    try:
        replacement = StudyPlannerEntry.model_validate(
            {**current.model_dump(), **supplied, "id": current.id, "completed": current.completed}
        )
    except ValidationError as exc:
        return MutationOutcome.failure(InvalidEntryError(first_error_message(exc)))
    updated = record.model_copy(deep=True)
    entries = list(updated.study_planner)
    entries[index] = replacement
    updated.study_planner = sort_planner(entries)
    return MutationOutcome.success(updated)


def delete_study_task(record: UserProgressRecord, task_id: str) -> MutationOutcome[UserProgressRecord]:
    updated = record.model_copy(deep=True)
    updated.study_planner = [entry for entry in updated.study_planner if entry.id != task_id]
    return MutationOutcome.success(updated)


def toggle_study_task(record: UserProgressRecord, task_id: str) -> MutationOutcome[UserProgressRecord]:
    index = _find_task(record, task_id)
    if index is None:
        return MutationOutcome.failure(TaskNotFoundError(f"Study task '{task_id}' no longer exists."))
    updated = record.model_copy(deep=True)
    entry = updated.study_planner[index]
    entries = list(updated.study_planner)
    entries[index] = entry.model_copy(update={"completed": not entry.completed})
    updated.study_planner = entries
    return MutationOutcome.success(updated)


def update_subject_mastery(
    record: UserProgressRecord,
    update: MasteryUpdate,
) -> MutationOutcome[UserProgressRecord]:
    updated = record.model_copy(deep=True)
    updated.subject_mastery = _upsert_mastery(updated.subject_mastery, update)
    return MutationOutcome.success(updated)


def update_profile_fields(profile: UserProfile, changes: Mapping[str, Any]) -> MutationOutcome[UserProfile]:
    normalized: dict[str, Any] = {}
    for key, value in changes.items():
        name = _PROFILE_ALIASES.get(key, key)
        if name in IMMUTABLE_PROFILE_FIELDS:
            return MutationOutcome.failure(ImmutableFieldError(f"'{key}' cannot be changed after the profile is created."))
        if name not in MUTABLE_PROFILE_FIELDS:
            return MutationOutcome.failure(InvalidEntryError(f"'{key}' is not a profile field."))
        normalized[name] = value
    if "name" in normalized and not str(normalized["name"] or "").strip():
        return MutationOutcome.failure(InvalidEntryError("name cannot be empty."))
    try:
        merged = UserProfile.model_validate({**profile.model_dump(), **normalized})
    except ValidationError as exc:
        return MutationOutcome.failure(InvalidEntryError(first_error_message(exc)))
    return MutationOutcome.success(merged)


def _upsert_mastery(entries: List[SubjectMastery], update: MasteryUpdate) -> List[SubjectMastery]:
    clamped = min(100.0, max(0.0, float(update.progress)))
    refreshed = SubjectMastery(
        subject_id=update.subject_id,
        subject_name=update.subject_name,
        progress=clamped,
        last_updated=update.updated_at,
    )
    result: List[SubjectMastery] = []
    replaced = False
    for entry in entries:
        if entry.subject_id == update.subject_id:
            result.append(refreshed)
            replaced = True
        else:
            result.append(entry)
    if not replaced:
        result.append(refreshed)
    return result


def _find_task(record: UserProgressRecord, task_id: str) -> Optional[int]:
    for index, entry in enumerate(record.study_planner):
        if entry.id == task_id:
            return index
    return None


def first_error_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


__all__ = [
    "IMMUTABLE_PROFILE_FIELDS",
    "MasteryUpdate",
    "MutationOutcome",
    "StudyTaskChanges",
    "StudyTaskDraft",
    "add_study_task",
    "append_quiz_result",
    "delete_study_task",
    "first_error_message",
    "planner_sort_key",
    "sort_planner",
    "toggle_study_task",
    "update_profile_fields",
    "update_study_task",
    "update_subject_mastery",
]
