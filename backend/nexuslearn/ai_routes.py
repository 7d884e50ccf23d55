"""AI study-tool endpoints; each one is a single schema-validated model call."""

from __future__ import annotations

import logging
from time import perf_counter
from typing import Any, Awaitable, Dict

from fastapi import APIRouter, Depends, status

from .errors import NexusLearnError, to_http_exception
from .identity import caller_id
from .quickfind import QuickFindRequest, find_in_document
from .quiz_generation import QuizGenerationRequest, generate_quiz
from .quiz_reflection import QuizReflectionRequest, generate_quiz_reflection
from .telemetry import emit_event
from .textbook_summary import TextbookExplainRequest, TextbookSummaryRequest, explain_textbook, summarize_textbook
from .tutor import TutorRequest, tutor_reply

router = APIRouter(prefix="/api/ai", tags=["ai"])
logger = logging.getLogger(__name__)


async def _run_flow(flow: str, caller: str, call: Awaitable[Any]) -> Dict[str, Any]:
    started = perf_counter()
    try:
        output = await call
    except NexusLearnError as exc:
        logger.info("AI flow %s failed for %s: %s", flow, caller, exc.code)
        raise to_http_exception(exc) from exc
    emit_event(
        "ai_flow_completed",
        flow=flow,
        user_id=caller,
        latency_ms=round((perf_counter() - started) * 1000.0, 2),
    )
    return output.to_document()


@router.post("/quiz", status_code=status.HTTP_200_OK)
async def create_quiz(payload: QuizGenerationRequest, caller: str = Depends(caller_id)) -> Dict[str, Any]:
    return await _run_flow("quiz_generation", caller, generate_quiz(payload))


@router.post("/quiz/reflection", status_code=status.HTTP_200_OK)
async def reflect_on_quiz(payload: QuizReflectionRequest, caller: str = Depends(caller_id)) -> Dict[str, Any]:
    return await _run_flow("quiz_reflection", caller, generate_quiz_reflection(payload))


@router.post("/tutor", status_code=status.HTTP_200_OK)
async def ask_tutor(payload: TutorRequest, caller: str = Depends(caller_id)) -> Dict[str, Any]:
    return await _run_flow("tutor", caller, tutor_reply(payload))


@router.post("/summary", status_code=status.HTTP_200_OK)
async def summarize(payload: TextbookSummaryRequest, caller: str = Depends(caller_id)) -> Dict[str, Any]:
    return await _run_flow("textbook_summary", caller, summarize_textbook(payload))


@router.post("/explain", status_code=status.HTTP_200_OK)
async def explain(payload: TextbookExplainRequest, caller: str = Depends(caller_id)) -> Dict[str, Any]:
    return await _run_flow("textbook_explainer", caller, explain_textbook(payload))


@router.post("/quickfind", status_code=status.HTTP_200_OK)
async def quickfind(payload: QuickFindRequest, caller: str = Depends(caller_id)) -> Dict[str, Any]:
    return await _run_flow("quickfind", caller, find_in_document(payload))


__all__ = ["router"]
