"""Tests for the AI study-tool flows and their HTTP endpoints."""

from __future__ import annotations

import asyncio
import base64
import json

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from nexuslearn.config import get_settings
from nexuslearn.errors import MalformedOutputError, ValidationFailure
from nexuslearn.identity import USER_HEADER
from nexuslearn.main import app
from nexuslearn.progress import QuizQuestion
from nexuslearn.quickfind import QuickFindRequest, find_in_document
from nexuslearn.quiz_generation import QuizGenerationRequest, generate_quiz
from nexuslearn.quiz_reflection import QuizReflectionRequest, generate_quiz_reflection
from nexuslearn.textbook_summary import (
    TextbookExplainRequest,
    TextbookSummaryRequest,
    explain_textbook,
    summarize_textbook,
)
from nexuslearn.tutor import DEFAULT_OPENING_MESSAGE, ChatMessage, TutorRequest, tutor_reply

CONTENT = "Photosynthesis converts light energy into chemical energy stored in glucose molecules."
PDF_URI = "data:application/pdf;base64," + base64.b64encode(b"%PDF-1.4 textbook").decode()
HEADERS = {USER_HEADER: "student-1"}


def _context(stub_runner) -> dict:
    prompt = stub_runner.calls[-1]["input"]
    if isinstance(prompt, list):
        prompt = prompt[0]["content"][0]["text"]
    return json.loads(prompt.split("CONTEXT:\n", 1)[1])


def test_generate_quiz_returns_validated_questions(stub_runner, ai_settings) -> None:
    stub_runner.output = {
        "quiz": [
            {
                "question": "What does photosynthesis produce?",
                "type": "multiple-choice",
                "answers": ["Glucose", "Salt"],
                "correctAnswer": "Glucose",
            },
            {"question": "Plants need light.", "type": "true/false", "correctAnswer": "True"},
        ]
    }
    request = QuizGenerationRequest(textbook_content=CONTENT, question_count=2, difficulty="hard", grade="8")
    quiz = asyncio.run(generate_quiz(request, settings=ai_settings))
    assert [question.type for question in quiz.quiz] == ["multiple-choice", "true/false"]
    context = _context(stub_runner)
    assert context["question_count"] == 2
    assert context["difficulty"] == "hard"
    assert "Grade 8" in context["audience"]


def test_generate_quiz_rejects_inconsistent_multiple_choice(stub_runner, ai_settings) -> None:
    stub_runner.output = {
        "quiz": [
            {"question": "Pick one", "type": "multiple-choice", "answers": ["A", "B"], "correctAnswer": "C"},
        ]
    }
    with pytest.raises(MalformedOutputError):
        asyncio.run(generate_quiz(QuizGenerationRequest(textbook_content=CONTENT), settings=ai_settings))


def test_generate_quiz_rejects_empty_quiz(stub_runner, ai_settings) -> None:
    stub_runner.output = {"quiz": []}
    with pytest.raises(MalformedOutputError):
        asyncio.run(generate_quiz(QuizGenerationRequest(textbook_content=CONTENT), settings=ai_settings))


def test_quiz_request_bounds() -> None:
    with pytest.raises(ValidationError):
        QuizGenerationRequest(textbook_content="too short")
    with pytest.raises(ValidationError):
        QuizGenerationRequest(textbook_content=CONTENT, question_count=21)
    assert QuizGenerationRequest(textbook_content=CONTENT).question_count == 5


def test_quiz_reflection_marks_incorrect_answers(stub_runner, ai_settings) -> None:
    stub_runner.output = {"feedback": "Review the light-dependent reactions."}
    request = QuizReflectionRequest(
        questions=[
            QuizQuestion(question="Q1", type="short-answer", correct_answer="glucose"),
            QuizQuestion(question="Q2", type="multiple-choice", answers=["A", "B"], correct_answer="B"),
        ],
        user_answers=["Glucose", "A"],
        score=1,
        total_questions=2,
    )
    reflection = asyncio.run(generate_quiz_reflection(request, settings=ai_settings))
    assert reflection.feedback.startswith("Review")
    items = _context(stub_runner)["questions"]
    assert [item["status"] for item in items] == ["correct", "incorrect"]
    assert items[1]["correct_answer"] == "B"
    assert "correct_answer" not in items[0]


def test_quiz_reflection_requires_matching_counts() -> None:
    with pytest.raises(ValidationError):
        QuizReflectionRequest(
            questions=[QuizQuestion(question="Q1", type="short-answer", correct_answer="x")],
            user_answers=[],
            score=0,
            total_questions=1,
        )


def test_quiz_reflection_requires_feedback(stub_runner, ai_settings) -> None:
    stub_runner.output = {"feedback": ""}
    request = QuizReflectionRequest(
        questions=[QuizQuestion(question="Q1", type="short-answer", correct_answer="x")],
        user_answers=["x"],
        score=1,
        total_questions=1,
    )
    with pytest.raises(MalformedOutputError):
        asyncio.run(generate_quiz_reflection(request, settings=ai_settings))


def test_tutor_uses_default_opening_for_empty_history(stub_runner, ai_settings) -> None:
    stub_runner.output = {"response": "Happy to help! Which topic?"}
    reply = asyncio.run(tutor_reply(TutorRequest(), settings=ai_settings))
    assert reply.response.startswith("Happy")
    assert _context(stub_runner)["conversation"] == [f"User: {DEFAULT_OPENING_MESSAGE}"]


def test_tutor_keeps_history_order(stub_runner, ai_settings) -> None:
    stub_runner.output = {"response": "Think about what plants need."}
    history = [
        ChatMessage(role="user", content="What is photosynthesis?"),
        ChatMessage(role="assistant", content="What do you already know?"),
        ChatMessage(role="user", content="Something about light?"),
    ]
    asyncio.run(tutor_reply(TutorRequest(history=history), settings=ai_settings))
    conversation = _context(stub_runner)["conversation"]
    assert conversation[1] == "Tutor: What do you already know?"
    assert len(conversation) == 3
    assert "NexusLearn AI" in stub_runner.calls[-1]["agent"].instructions


def test_summarize_textbook_sends_image_with_image_instructions(stub_runner, ai_settings) -> None:
    stub_runner.output = {"textSummary": "Cells.", "audioSummary": "Today, cells.", "mindMap": "- Cells\n  - Nucleus"}
    request = TextbookSummaryRequest(file_data_uri="data:image/png;base64,iVBORw0KGgo=", file_type="image/png")
    summary = asyncio.run(summarize_textbook(request, settings=ai_settings))
    assert summary.mind_map.startswith("- Cells")
    call = stub_runner.calls[-1]
    assert call["input"][0]["content"][1]["type"] == "input_image"
    assert "images of pages" in call["agent"].instructions


def test_summarize_textbook_validates_type_before_calling(stub_runner, ai_settings) -> None:
    with pytest.raises(ValidationFailure):
        asyncio.run(
            summarize_textbook(
                TextbookSummaryRequest(file_data_uri=PDF_URI, file_type="application/zip"), settings=ai_settings
            )
        )
    with pytest.raises(ValidationFailure):
        asyncio.run(
            summarize_textbook(TextbookSummaryRequest(file_data_uri=PDF_URI, file_type="text/plain"), settings=ai_settings)
        )
    assert stub_runner.calls == []


def test_explain_textbook_accepts_pdf_only(stub_runner, ai_settings) -> None:
    stub_runner.output = {
        "textExplanation": "## Energy",
        "audioExplanationScript": "Let's talk about energy.",
        "mindMapExplanation": "- Energy",
    }
    explanation = asyncio.run(explain_textbook(TextbookExplainRequest(file_data_uri=PDF_URI), settings=ai_settings))
    assert explanation.text_explanation == "## Energy"
    assert stub_runner.calls[-1]["input"][0]["content"][1]["type"] == "input_file"

    with pytest.raises(ValidationFailure):
        asyncio.run(
            explain_textbook(
                TextbookExplainRequest(file_data_uri="data:text/plain;base64,aGVsbG8="), settings=ai_settings
            )
        )


def test_quickfind_orders_results_by_relevance(stub_runner, ai_settings) -> None:
    stub_runner.output = {
        "status": "success",
        "results": [
            {"snippet": "Chlorophyll absorbs light.", "pageNumber": 4, "relevanceScore": 0.4},
            {"snippet": "Photosynthesis happens in chloroplasts.", "pageNumber": 2, "relevanceScore": 0.9},
        ],
    }
    found = asyncio.run(
        find_in_document(QuickFindRequest(file_data_uri=PDF_URI, question="Where does it happen?"), settings=ai_settings)
    )
    assert found.status == "success"
    assert [result.page_number for result in found.results] == [2, 4]
    assert _context(stub_runner) == {"question": "Where does it happen?"}


def test_quickfind_not_found_and_bad_scores(stub_runner, ai_settings) -> None:
    request = QuickFindRequest(file_data_uri=PDF_URI, question="Who wrote it?")
    stub_runner.output = {"status": "not_found", "results": []}
    assert asyncio.run(find_in_document(request, settings=ai_settings)).results == []

    stub_runner.output = {"status": "success", "results": [{"snippet": "x", "relevanceScore": 1.5}]}
    with pytest.raises(MalformedOutputError):
        asyncio.run(find_in_document(request, settings=ai_settings))


def test_quickfind_question_minimum_length() -> None:
    with pytest.raises(ValidationError):
        QuickFindRequest(file_data_uri=PDF_URI, question="Why")


def test_ai_routes_report_missing_configuration(database) -> None:
    client = TestClient(app)
    response = client.post("/api/ai/tutor", json={"history": []}, headers=HEADERS)
    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "ai_not_configured"


def test_ai_routes_return_flow_output(database, stub_runner, monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    get_settings.cache_clear()
    client = TestClient(app)

    stub_runner.output = {"response": "Let's start with the basics."}
    response = client.post(
        "/api/ai/tutor",
        json={"history": [{"role": "user", "content": "Explain gravity"}]},
        headers=HEADERS,
    )
    assert response.status_code == 200
    assert response.json() == {"response": "Let's start with the basics."}

    stub_runner.output = "not json at all"
    failed = client.post("/api/ai/quiz", json={"textbookContent": CONTENT}, headers=HEADERS)
    assert failed.status_code == 502
    assert failed.json()["detail"]["category"] == "external_model"

    rejected = client.post(
        "/api/ai/quickfind",
        json={"fileDataUri": "data:image/png;base64,iVBORw0KGgo=", "question": "What is shown?"},
        headers=HEADERS,
    )
    assert rejected.status_code == 422
    assert rejected.json()["detail"]["code"] == "invalid_input"
