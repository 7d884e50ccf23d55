"""Error taxonomy shared by the mutators, the record store, the AI flows and the routes."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class NexusLearnError(RuntimeError):
    """Base class; every subclass carries a user-facing category, a stable code and an HTTP status."""

    category = "internal"
    code = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "The request could not be completed."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_detail(self) -> Dict[str, Any]:
        return {"category": self.category, "code": self.code, "message": self.message}


class MutationError(NexusLearnError):
    """Failure reported by an entry mutator; raising it aborts the surrounding atomic update."""


# Validation


class ValidationFailure(NexusLearnError):
    category = "validation"
    code = "invalid_input"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "The request input is invalid."


class InvalidEntryError(MutationError):
    category = "validation"
    code = "invalid_entry"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "The entry is invalid."


class ImmutableFieldError(MutationError):
    category = "validation"
    code = "immutable_field"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "This field cannot be changed after the profile is created."


# Authorization


class PermissionDeniedError(NexusLearnError):
    category = "authorization"
    code = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = (
        "The record store rejected this request. Check the store access rules for this record owner."
    )


# Transport


class StoreUnavailableError(NexusLearnError):
    category = "transport"
    code = "store_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "The record store is unreachable. Please try again."


class RecordConflictError(NexusLearnError):
    category = "transport"
    code = "record_conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "The record changed while this update was being applied. Please try again."


# External model


class ExternalModelError(NexusLearnError):
    category = "external_model"
    default_message = "The AI could not complete this request."


class BlockedContentError(ExternalModelError):
    code = "blocked_content"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "The AI declined this request. Try rephrasing the input."


class MalformedOutputError(ExternalModelError):
    code = "malformed_output"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "The AI returned a response in an unexpected format."


class EmptyOutputError(ExternalModelError):
    code = "empty_output"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "The AI returned an empty response."


class AIUnavailableError(ExternalModelError):
    code = "ai_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "The AI provider is unreachable. Please try again."


class AINotConfiguredError(ExternalModelError):
    code = "ai_not_configured"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "AI features are unavailable because OPENAI_API_KEY is not configured."


# Races


class DuplicateSubmissionError(MutationError):
    category = "conflict"
    code = "duplicate_submission"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This quiz result has already been submitted."


class TaskNotFoundError(MutationError):
    category = "not_found"
    code = "task_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "The study task no longer exists."


class ProfileNotFoundError(MutationError):
    category = "not_found"
    code = "profile_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "No profile exists for this user yet."


class MutationInProgressError(NexusLearnError):
    category = "conflict"
    code = "mutation_in_progress"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Another change to this record is still being saved."


def error_from_detail(detail: Any, status_code: int) -> NexusLearnError:
    """Rebuild a typed error from an HTTP error body produced by ``to_http_exception``."""
    if isinstance(detail, dict):
        code = detail.get("code")
        message = detail.get("message")
        for error_cls in _all_error_classes():
            if error_cls.code == code:
                return error_cls(message)
    if status_code == status.HTTP_403_FORBIDDEN:
        return PermissionDeniedError()
    if status_code == status.HTTP_409_CONFLICT:
        return RecordConflictError()
    if status_code == status.HTTP_422_UNPROCESSABLE_ENTITY:
        return ValidationFailure(str(detail))
    return StoreUnavailableError(f"Unexpected response ({status_code}): {detail}")


def _all_error_classes() -> list[type[NexusLearnError]]:
    pending: list[type[NexusLearnError]] = [NexusLearnError]
    found: list[type[NexusLearnError]] = []
    while pending:
        current = pending.pop()
        found.append(current)
        pending.extend(current.__subclasses__())
    return found


def to_http_exception(error: NexusLearnError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.to_detail())


__all__ = [
    "AINotConfiguredError",
    "AIUnavailableError",
    "BlockedContentError",
    "DuplicateSubmissionError",
    "EmptyOutputError",
    "ExternalModelError",
    "ImmutableFieldError",
    "InvalidEntryError",
    "MalformedOutputError",
    "MutationError",
    "MutationInProgressError",
    "NexusLearnError",
    "PermissionDeniedError",
    "ProfileNotFoundError",
    "RecordConflictError",
    "StoreUnavailableError",
    "TaskNotFoundError",
    "ValidationFailure",
    "error_from_detail",
    "to_http_exception",
]
