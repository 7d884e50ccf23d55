"""Serialisable change objects wrapping the entry mutators.

The same mutation object is applied to the local copy by the optimistic state
container and posted to ``POST /api/progress/{owner}/mutations``, where the
record store re-applies it to a fresh snapshot.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import Field, TypeAdapter

from .mutators import (
    MasteryUpdate,
    MutationOutcome,
    StudyTaskChanges,
    StudyTaskDraft,
    add_study_task,
    append_quiz_result,
    delete_study_task,
    toggle_study_task,
    update_profile_fields,
    update_study_task,
    update_subject_mastery,
)
from .progress import DocumentModel, QuizResult, UserProfile, UserProgressRecord


class MutationModel(DocumentModel):
    kind: str

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class AppendQuizResult(MutationModel):
    kind: Literal["append_quiz_result"] = "append_quiz_result"
    result: QuizResult
    mastery: Optional[MasteryUpdate] = None

    def apply(self, record: UserProgressRecord) -> MutationOutcome[UserProgressRecord]:
        return append_quiz_result(record, self.result, self.mastery)

    def audit_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"quiz_id": self.result.quiz_id, "score": self.result.score}
        if self.mastery is not None:
            payload["subject_id"] = self.mastery.subject_id
        return payload


class AddStudyTask(MutationModel):
    kind: Literal["add_study_task"] = "add_study_task"
    draft: StudyTaskDraft

    def apply(self, record: UserProgressRecord) -> MutationOutcome[UserProgressRecord]:
        return add_study_task(record, self.draft)

    def audit_payload(self) -> Dict[str, Any]:
        return {"task_id": self.draft.id}


class UpdateStudyTask(MutationModel):
    kind: Literal["update_study_task"] = "update_study_task"
    task_id: str
    changes: StudyTaskChanges

    def apply(self, record: UserProgressRecord) -> MutationOutcome[UserProgressRecord]:
        return update_study_task(record, self.task_id, self.changes)

    def audit_payload(self) -> Dict[str, Any]:
        return {"task_id": self.task_id, "fields": sorted(self.changes.model_fields_set)}

    def to_payload(self) -> Dict[str, Any]:
        # Unset change fields stay absent; the receiver replaces only supplied fields.
        return {
            "kind": self.kind,
            "taskId": self.task_id,
            "changes": self.changes.model_dump(by_alias=True, mode="json", exclude_unset=True),
        }


class DeleteStudyTask(MutationModel):
    kind: Literal["delete_study_task"] = "delete_study_task"
    task_id: str

    def apply(self, record: UserProgressRecord) -> MutationOutcome[UserProgressRecord]:
        return delete_study_task(record, self.task_id)

    def audit_payload(self) -> Dict[str, Any]:
        return {"task_id": self.task_id}


class ToggleStudyTask(MutationModel):
    kind: Literal["toggle_study_task"] = "toggle_study_task"
    task_id: str

    def apply(self, record: UserProgressRecord) -> MutationOutcome[UserProgressRecord]:
        return toggle_study_task(record, self.task_id)

    def audit_payload(self) -> Dict[str, Any]:
        return {"task_id": self.task_id}


class UpdateSubjectMastery(MutationModel):
    kind: Literal["update_subject_mastery"] = "update_subject_mastery"
    mastery: MasteryUpdate

    def apply(self, record: UserProgressRecord) -> MutationOutcome[UserProgressRecord]:
        return update_subject_mastery(record, self.mastery)

    def audit_payload(self) -> Dict[str, Any]:
        return {"subject_id": self.mastery.subject_id}


class UpdateProfile(MutationModel):
    kind: Literal["update_profile"] = "update_profile"
    changes: Dict[str, Any] = Field(default_factory=dict)

    def apply(self, profile: UserProfile) -> MutationOutcome[UserProfile]:
        return update_profile_fields(profile, self.changes)

    def audit_payload(self) -> Dict[str, Any]:
        return {"fields": sorted(self.changes)}


ProgressMutation = Annotated[
    Union[
        AppendQuizResult,
        AddStudyTask,
        UpdateStudyTask,
        DeleteStudyTask,
        ToggleStudyTask,
        UpdateSubjectMastery,
    ],
    Field(discriminator="kind"),
]
ProfileMutation = UpdateProfile

progress_mutation_adapter: TypeAdapter[ProgressMutation] = TypeAdapter(ProgressMutation)


def parse_progress_mutation(payload: Dict[str, Any]) -> ProgressMutation:
    return progress_mutation_adapter.validate_python(payload)


__all__ = [
    "AddStudyTask",
    "AppendQuizResult",
    "DeleteStudyTask",
    "MutationModel",
    "ProfileMutation",
    "ProgressMutation",
    "ToggleStudyTask",
    "UpdateProfile",
    "UpdateStudyTask",
    "UpdateSubjectMastery",
    "parse_progress_mutation",
    "progress_mutation_adapter",
]
