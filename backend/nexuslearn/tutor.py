"""Conversational AI tutor."""

from __future__ import annotations

import logging
from typing import List, Literal, Optional

from pydantic import Field

from .agent_runtime import run_structured
from .config import Settings
from .progress import DocumentModel

logger = logging.getLogger(__name__)

DEFAULT_OPENING_MESSAGE = "Hi, I need help with a topic."

TUTOR_INSTRUCTIONS = """You are NexusLearn AI, a friendly, encouraging, and highly knowledgeable AI Tutor.
Help students understand academic concepts across K-12 and undergraduate subjects, answering with clarity.
If a question is completely unrelated to education or seeks inappropriate content, politely decline and
offer to help with academic subjects instead. If a question is unclear, ask for clarification first.
Use the conversation history to keep context. Prefer examples, analogies and step-by-step breakdowns.
Do not hand out direct answers to homework or test questions; guide the student to the answer instead.
Keep a supportive, motivational tone."""


class ChatMessage(DocumentModel):
    role: Literal["user", "assistant"]
    content: str


class TutorRequest(DocumentModel):
    history: List[ChatMessage] = Field(default_factory=list)


class TutorReply(DocumentModel):
    response: str = Field(..., min_length=1)


def conversation_transcript(history: List[ChatMessage]) -> List[str]:
    if not history:
        history = [ChatMessage(role="user", content=DEFAULT_OPENING_MESSAGE)]
    return [
        f"{'User' if message.role == 'user' else 'Tutor'}: {message.content}"
        for message in history
    ]


async def tutor_reply(request: TutorRequest, *, settings: Optional[Settings] = None) -> TutorReply:
    logger.debug("Tutor request with %d history messages", len(request.history))
    context = {"conversation": conversation_transcript(request.history)}
    return await run_structured("tutor", TUTOR_INSTRUCTIONS, context, TutorReply, settings=settings)


__all__ = [
    "ChatMessage",
    "DEFAULT_OPENING_MESSAGE",
    "TutorReply",
    "TutorRequest",
    "conversation_transcript",
    "tutor_reply",
]
