"""REST endpoints for the per-owner progress record."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import Field, ValidationError

from .errors import NexusLearnError, ValidationFailure, to_http_exception
from .identity import caller_id
from .mutations import (
    AddStudyTask,
    AppendQuizResult,
    DeleteStudyTask,
    ToggleStudyTask,
    UpdateStudyTask,
    UpdateSubjectMastery,
    parse_progress_mutation,
)
from .mutators import MasteryUpdate, StudyTaskChanges, StudyTaskDraft, first_error_message
from .performance import summarize_performance
from .progress import Difficulty, DocumentModel, QuizQuestion, UserProgressRecord
from .record_store import progress_store
from .scoring import build_quiz_result

router = APIRouter(prefix="/api/progress", tags=["progress"])
logger = logging.getLogger(__name__)


class QuizSubmissionRequest(DocumentModel):
    questions: List[QuizQuestion] = Field(..., min_length=1)
    user_answers: List[Optional[str]] = Field(default_factory=list)
    source_content: str = ""
    difficulty: Difficulty = "medium"
    grade: Optional[str] = None
    subject_id: Optional[str] = None
    quiz_id: Optional[str] = None
    mastery: Optional[MasteryUpdate] = None


def _commit(owner_id: str, mutation: Any, caller: str) -> UserProgressRecord:
    try:
        return progress_store.apply(owner_id, mutation, actor_id=caller)
    except NexusLearnError as exc:
        raise to_http_exception(exc) from exc


@router.get("/{owner_id}", status_code=status.HTTP_200_OK)
def get_progress(owner_id: str, caller: str = Depends(caller_id)) -> Dict[str, Any]:
    try:
        record = progress_store.get_or_default(owner_id, actor_id=caller)
    except NexusLearnError as exc:
        raise to_http_exception(exc) from exc
    return record.to_document()


@router.post("/{owner_id}/quizzes", status_code=status.HTTP_201_CREATED)
def submit_quiz(
    owner_id: str,
    payload: QuizSubmissionRequest,
    caller: str = Depends(caller_id),
) -> Dict[str, Any]:
    """Score a finished quiz and append it, with an optional mastery update, in one write."""
    try:
        result = build_quiz_result(
            payload.questions,
            payload.user_answers,
            payload.source_content,
            difficulty=payload.difficulty,
            grade=payload.grade,
            subject_id=payload.subject_id,
            quiz_id=payload.quiz_id,
        )
    except ValidationError as exc:
        raise to_http_exception(ValidationFailure(first_error_message(exc))) from exc
    record = _commit(owner_id, AppendQuizResult(result=result, mastery=payload.mastery), caller)
    return {"result": result.to_document(), "progress": record.to_document()}


@router.post("/{owner_id}/planner", status_code=status.HTTP_201_CREATED)
def add_planner_task(owner_id: str, draft: StudyTaskDraft, caller: str = Depends(caller_id)) -> Dict[str, Any]:
    return _commit(owner_id, AddStudyTask(draft=draft), caller).to_document()


@router.patch("/{owner_id}/planner/{task_id}", status_code=status.HTTP_200_OK)
def update_planner_task(
    owner_id: str,
    task_id: str,
    changes: StudyTaskChanges,
    caller: str = Depends(caller_id),
) -> Dict[str, Any]:
    return _commit(owner_id, UpdateStudyTask(task_id=task_id, changes=changes), caller).to_document()


@router.delete("/{owner_id}/planner/{task_id}", status_code=status.HTTP_200_OK)
def delete_planner_task(owner_id: str, task_id: str, caller: str = Depends(caller_id)) -> Dict[str, Any]:
    return _commit(owner_id, DeleteStudyTask(task_id=task_id), caller).to_document()


@router.post("/{owner_id}/planner/{task_id}/toggle", status_code=status.HTTP_200_OK)
def toggle_planner_task(owner_id: str, task_id: str, caller: str = Depends(caller_id)) -> Dict[str, Any]:
    return _commit(owner_id, ToggleStudyTask(task_id=task_id), caller).to_document()


@router.put("/{owner_id}/mastery", status_code=status.HTTP_200_OK)
def put_subject_mastery(owner_id: str, update: MasteryUpdate, caller: str = Depends(caller_id)) -> Dict[str, Any]:
    return _commit(owner_id, UpdateSubjectMastery(mastery=update), caller).to_document()


@router.post("/{owner_id}/mutations", status_code=status.HTTP_200_OK)
def apply_mutation(
    owner_id: str,
    payload: Dict[str, Any] = Body(...),
    caller: str = Depends(caller_id),
) -> Dict[str, Any]:
    """Apply a serialised mutation produced by an optimistic client."""
    try:
        mutation = parse_progress_mutation(payload)
    except ValidationError as exc:
        raise to_http_exception(ValidationFailure(first_error_message(exc))) from exc
    return _commit(owner_id, mutation, caller).to_document()


@router.get("/{owner_id}/performance", status_code=status.HTTP_200_OK)
def get_performance(
    owner_id: str,
    subject: Optional[str] = Query(default=None, description="Restrict mastery and homework to one subject id."),
    caller: str = Depends(caller_id),
) -> Dict[str, Any]:
    try:
        record = progress_store.get_or_default(owner_id, actor_id=caller)
    except NexusLearnError as exc:
        raise to_http_exception(exc) from exc
    return summarize_performance(record, subject_id=subject or None).to_payload()


__all__ = ["router"]
