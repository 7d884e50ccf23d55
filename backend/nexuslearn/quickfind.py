"""QuickFind: answer a question with snippets located in an uploaded PDF."""

from __future__ import annotations

import logging
from typing import List, Literal, Optional

from pydantic import Field, model_validator

from .agent_runtime import run_structured
from .config import Settings
from .data_uri import PDF_MIME, parse_data_uri
from .progress import DocumentModel

logger = logging.getLogger(__name__)

MIN_QUESTION_LENGTH = 5

QUICKFIND_INSTRUCTIONS = """You are an AI assistant specialized in finding answers within PDF documents.
Read the question, scan the entire attached PDF and identify the sections that directly answer it.
Extract concise snippets with enough context to be understandable. When possible include the page number
of each snippet and a relevanceScore between 0.0 and 1.0 (1.0 = answers the question directly).
If you find relevant answers set status to "success" and fill results.
If nothing in the document answers the question set status to "not_found" and return an empty results array.
If the document or the question cannot be processed set status to "error" with a brief errorMessage.
Answer based only on the content of the PDF."""


class QuickFindRequest(DocumentModel):
    file_data_uri: str = Field(..., min_length=1)
    question: str = Field(..., min_length=MIN_QUESTION_LENGTH)


class SearchResult(DocumentModel):
    snippet: str = Field(..., min_length=1)
    page_number: Optional[int] = Field(default=None, ge=1)
    relevance_score: Optional[float] = Field(default=None, ge=0, le=1)


class QuickFindResult(DocumentModel):
    status: Literal["success", "not_found", "error"]
    error_message: Optional[str] = None
    results: List[SearchResult] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_status(self) -> "QuickFindResult":
        if self.status == "success" and not self.results:
            raise ValueError("a successful search must include at least one result.")
        if self.status != "success" and self.results:
            self.results = []
        return self


async def find_in_document(request: QuickFindRequest, *, settings: Optional[Settings] = None) -> QuickFindResult:
    question = request.question.strip()
    upload = parse_data_uri(request.file_data_uri, allowed_types={PDF_MIME})
    found = await run_structured(
        "quickfind",
        QUICKFIND_INSTRUCTIONS,
        {"question": question},
        QuickFindResult,
        files=[upload],
        settings=settings,
    )
    if found.status == "error":
        logger.warning("QuickFind reported an error: %s", found.error_message or "unknown error")
    found.results.sort(key=lambda result: result.relevance_score or 0.0, reverse=True)
    return found


__all__ = [
    "QuickFindRequest",
    "QuickFindResult",
    "SearchResult",
    "find_in_document",
]
