"""Quiz scoring and construction of the stored quiz result."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from .progress import Difficulty, QuizQuestion, QuizResult, new_quiz_id, utc_now

SOURCE_EXCERPT_LENGTH = 500


def normalize_answer(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def is_correct(user_answer: Optional[str], correct_answer: str) -> bool:
    """Answers match case-insensitively after trimming; unanswered questions are wrong."""
    if user_answer is None or not user_answer.strip():
        return False
    return normalize_answer(user_answer) == normalize_answer(correct_answer)


def score_answers(questions: Sequence[QuizQuestion], user_answers: Sequence[Optional[str]]) -> int:
    return sum(
        1
        for index, question in enumerate(questions)
        if index < len(user_answers) and is_correct(user_answers[index], question.correct_answer)
    )


def source_excerpt(content: str) -> str:
    if len(content) <= SOURCE_EXCERPT_LENGTH:
        return content
    return f"{content[:SOURCE_EXCERPT_LENGTH]}..."


def build_quiz_result(
    questions: Sequence[QuizQuestion],
    user_answers: Sequence[Optional[str]],
    source_content: str,
    *,
    difficulty: Difficulty = "medium",
    grade: Optional[str] = None,
    subject_id: Optional[str] = None,
    quiz_id: Optional[str] = None,
    generated_date: Optional[datetime] = None,
) -> QuizResult:
    """Score a submitted quiz; missing trailing answers are padded as unanswered."""
    answers: List[Optional[str]] = list(user_answers[: len(questions)])
    answers.extend([None] * (len(questions) - len(answers)))
    return QuizResult(
        quiz_id=quiz_id or new_quiz_id(),
        generated_date=generated_date or utc_now(),
        source_content=source_excerpt(source_content),
        questions=[question.model_copy(deep=True) for question in questions],
        user_answers=answers,
        score=score_answers(questions, answers),
        total_questions=len(questions),
        difficulty=difficulty,
        grade=grade or None,
        subject_id=subject_id or None,
    )


def percentage(score: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return score / total * 100.0


__all__ = [
    "SOURCE_EXCERPT_LENGTH",
    "build_quiz_result",
    "is_correct",
    "normalize_answer",
    "percentage",
    "score_answers",
    "source_excerpt",
]
