"""Personalised feedback on a completed quiz."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import Field, model_validator

from .agent_runtime import run_structured
from .config import Settings
from .progress import Difficulty, DocumentModel, QuizQuestion
from .scoring import is_correct

REFLECTION_INSTRUCTIONS = """You are an AI study assistant analyzing a student's quiz performance.
Analyze ONLY the questions the student answered incorrectly. For each incorrect answer:
1. Briefly explain the correct concept or answer.
2. Suggest why the student might have made the mistake. Be empathetic.
3. Offer specific, actionable study advice to avoid similar errors.
If all answers were correct, provide ONLY a brief, encouraging congratulatory message.
Structure the feedback clearly for each incorrect question."""


class QuizReflectionRequest(DocumentModel):
    questions: List[QuizQuestion] = Field(..., min_length=1)
    user_answers: List[Optional[str]]
    score: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=1)
    difficulty: Optional[Difficulty] = None
    grade: Optional[str] = None

    @model_validator(mode="after")
    def _check_counts(self) -> "QuizReflectionRequest":
        if not (len(self.questions) == len(self.user_answers) == self.total_questions):
            raise ValueError("questions, userAnswers and totalQuestions must describe the same number of questions.")
        if self.score > self.total_questions:
            raise ValueError("score cannot exceed totalQuestions.")
        return self


class QuizReflection(DocumentModel):
    feedback: str = Field(..., min_length=1)


def reflection_context(request: QuizReflectionRequest) -> Dict[str, Any]:
    items: List[Dict[str, Any]] = []
    for index, (question, answer) in enumerate(zip(request.questions, request.user_answers), start=1):
        item: Dict[str, Any] = {
            "number": index,
            "question": question.question,
            "type": question.type,
            "your_answer": answer,
        }
        if is_correct(answer, question.correct_answer):
            item["status"] = "correct"
        else:
            item["status"] = "incorrect"
            item["correct_answer"] = question.correct_answer
            if question.answers:
                item["options"] = question.answers
        items.append(item)
    context: Dict[str, Any] = {
        "score": request.score,
        "total_questions": request.total_questions,
        "questions": items,
    }
    if request.difficulty:
        context["difficulty"] = request.difficulty
    if request.grade:
        context["grade"] = request.grade
    return context


async def generate_quiz_reflection(
    request: QuizReflectionRequest,
    *,
    settings: Optional[Settings] = None,
) -> QuizReflection:
    return await run_structured(
        "quiz_reflection",
        REFLECTION_INSTRUCTIONS,
        reflection_context(request),
        QuizReflection,
        settings=settings,
    )


__all__ = [
    "QuizReflection",
    "QuizReflectionRequest",
    "generate_quiz_reflection",
    "reflection_context",
]
