"""Quiz generation from pasted textbook content."""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import Field

from .agent_runtime import run_structured
from .config import Settings
from .errors import MalformedOutputError
from .progress import Difficulty, DocumentModel, QuizQuestion

logger = logging.getLogger(__name__)

MIN_CONTENT_LENGTH = 50
MAX_QUESTION_COUNT = 20

QUIZ_INSTRUCTIONS = """You are an AI quiz generator that creates quizzes from textbook content.
Vary the question types (multiple-choice, fill-in-the-blanks, true/false, short-answer).
Ensure the answers are correct and match the requested difficulty level:
- easy: basic definitions, simple recall and straightforward facts.
- medium: application of concepts, interpretation and slightly more complex recall.
- hard: analysis, synthesis, evaluation or multi-step problems based on the content.
For multiple-choice questions provide an `answers` array of distinct options, one of which must be the
`correctAnswer`. For other question types `answers` is optional.
Use only the supplied textbook content."""


class QuizGenerationRequest(DocumentModel):
    textbook_content: str = Field(..., min_length=MIN_CONTENT_LENGTH)
    question_count: int = Field(default=5, ge=1, le=MAX_QUESTION_COUNT)
    difficulty: Difficulty = "medium"
    grade: Optional[str] = None


class GeneratedQuiz(DocumentModel):
    quiz: List[QuizQuestion] = Field(..., min_length=1)


def check_generated_quiz(generated: GeneratedQuiz) -> GeneratedQuiz:
    """Reject multiple-choice questions whose options do not contain the correct answer."""
    for index, question in enumerate(generated.quiz, start=1):
        if question.type != "multiple-choice":
            continue
        options = [option.strip() for option in question.answers or []]
        if len(options) < 2:
            raise MalformedOutputError(f"Question {index} is multiple-choice but has fewer than two options.")
        if question.correct_answer.strip() not in options:
            raise MalformedOutputError(f"Question {index} lists a correct answer that is not one of its options.")
    return generated


async def generate_quiz(request: QuizGenerationRequest, *, settings: Optional[Settings] = None) -> GeneratedQuiz:
    grade_line = (
        f"The quiz should be appropriate for Grade {request.grade}."
        if request.grade
        else "The quiz should be appropriate for a general high school level."
    )
    context = {
        "question_count": request.question_count,
        "difficulty": request.difficulty,
        "audience": grade_line,
        "textbook_content": request.textbook_content,
    }
    generated = await run_structured("quiz_generation", QUIZ_INSTRUCTIONS, context, GeneratedQuiz, settings=settings)
    if len(generated.quiz) != request.question_count:
        logger.info("Quiz generation returned %d of %d questions", len(generated.quiz), request.question_count)
    return check_generated_quiz(generated)


__all__ = [
    "GeneratedQuiz",
    "QuizGenerationRequest",
    "check_generated_quiz",
    "generate_quiz",
]
