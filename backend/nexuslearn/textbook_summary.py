"""Textbook summaries and explanations generated from uploaded files."""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import Field

from .agent_runtime import run_structured
from .config import Settings
from .data_uri import DOCUMENT_MIME_TYPES, PDF_MIME, parse_data_uri
from .errors import ValidationFailure
from .progress import DocumentModel

logger = logging.getLogger(__name__)

_SUMMARY_OUTPUTS = """Generate the following outputs:
1. textSummary: a concise text summary of the key points.
2. audioSummary: a script suitable for text-to-speech that summarizes the content conversationally.
3. mindMap: a hierarchical mind map of the content as a Markdown list, using indentation for levels
   (e.g. "- Main Topic\\n  - Subtopic A\\n    - Detail A.1")."""

IMAGE_SUMMARY_INSTRUCTIONS = f"""You are an AI assistant that helps students understand textbooks better by analyzing
images of pages.
{_SUMMARY_OUTPUTS}
Base the outputs only on the content visible in the image."""

DOCUMENT_SUMMARY_INSTRUCTIONS = f"""You are an AI assistant that helps students understand text content better.
The attached file contains textbook material.
{_SUMMARY_OUTPUTS}
Base the outputs only on the content of the file."""

EXPLAINER_INSTRUCTIONS = """You are an expert AI tutor specializing in explaining complex textbook content clearly
and concisely. Analyze the attached PDF and, based only on its content, generate:
1. textExplanation: a detailed explanation of the main concepts, theories, definitions and examples, breaking
   complex ideas into simpler terms with headings, bullet points and bold text.
2. audioExplanationScript: a script for text-to-speech structured like a short, accurate mini-lecture.
3. mindMapExplanation: a hierarchical Markdown list mind map of the core ideas and their relationships."""


class TextbookSummaryRequest(DocumentModel):
    file_data_uri: str = Field(..., min_length=1)
    file_type: str = Field(..., min_length=1)


class TextbookSummary(DocumentModel):
    text_summary: str = Field(..., min_length=1)
    audio_summary: str = Field(..., min_length=1)
    mind_map: str = Field(..., min_length=1)


class TextbookExplainRequest(DocumentModel):
    file_data_uri: str = Field(..., min_length=1)


class TextbookExplanation(DocumentModel):
    text_explanation: str = Field(..., min_length=1)
    audio_explanation_script: str = Field(..., min_length=1)
    mind_map_explanation: str = Field(..., min_length=1)


async def summarize_textbook(
    request: TextbookSummaryRequest,
    *,
    settings: Optional[Settings] = None,
) -> TextbookSummary:
    file_type = request.file_type.strip().lower()
    if not (file_type.startswith("image/") or file_type in DOCUMENT_MIME_TYPES):
        raise ValidationFailure(f"File type '{request.file_type}' is not supported for summarization.")
    upload = parse_data_uri(request.file_data_uri, allowed_types=DOCUMENT_MIME_TYPES, allow_images=True)
    if upload.mime_type != file_type:
        raise ValidationFailure(
            f"The declared file type '{request.file_type}' does not match the uploaded data ({upload.mime_type})."
        )
    instructions = IMAGE_SUMMARY_INSTRUCTIONS if upload.is_image else DOCUMENT_SUMMARY_INSTRUCTIONS
    logger.debug("Summarizing %s upload (%d bytes)", upload.mime_type, upload.size_bytes)
    return await run_structured(
        "textbook_summary",
        instructions,
        {"file_type": upload.mime_type},
        TextbookSummary,
        files=[upload],
        settings=settings,
    )


async def explain_textbook(
    request: TextbookExplainRequest,
    *,
    settings: Optional[Settings] = None,
) -> TextbookExplanation:
    upload = parse_data_uri(request.file_data_uri, allowed_types={PDF_MIME})
    return await run_structured(
        "textbook_explainer",
        EXPLAINER_INSTRUCTIONS,
        {"file_type": upload.mime_type},
        TextbookExplanation,
        files=[upload],
        settings=settings,
    )


__all__ = [
    "TextbookExplainRequest",
    "TextbookExplanation",
    "TextbookSummary",
    "TextbookSummaryRequest",
    "explain_textbook",
    "summarize_textbook",
]
