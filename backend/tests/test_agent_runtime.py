"""Tests for model output validation and the shared flow runner."""

from __future__ import annotations

import asyncio

import httpx
import pytest
from agents.exceptions import ModelBehaviorError
from openai import APIConnectionError, AuthenticationError, BadRequestError
from pydantic import Field

from nexuslearn.agent_runtime import build_input, build_prompt, run_structured, validate_model_output
from nexuslearn.config import Settings
from nexuslearn.data_uri import parse_data_uri
from nexuslearn.errors import (
    AINotConfiguredError,
    AIUnavailableError,
    BlockedContentError,
    EmptyOutputError,
    MalformedOutputError,
)
from nexuslearn.progress import DocumentModel

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/responses")


class Answer(DocumentModel):
    short_answer: str = Field(..., min_length=1)


def _run(settings: Settings, context: dict | None = None) -> Answer:
    return asyncio.run(run_structured("test_flow", "Answer briefly.", context or {"q": "?"}, Answer, settings=settings))


def test_validate_model_output_accepts_json_with_code_fence() -> None:
    output = validate_model_output('```json\n{"shortAnswer": "42"}\n```', Answer)
    assert output.ok
    assert output.unwrap().short_answer == "42"


def test_validate_model_output_tags_failures() -> None:
    assert validate_model_output(None, Answer).status == "empty"
    assert validate_model_output("   ", Answer).status == "empty"
    assert validate_model_output({}, Answer).status == "empty"
    assert validate_model_output("not json", Answer).status == "schema_error"
    assert validate_model_output({"shortAnswer": ""}, Answer).status == "schema_error"

    blocked = validate_model_output({"blocked": True, "reason": "unsafe"}, Answer)
    assert blocked.status == "blocked"
    with pytest.raises(BlockedContentError):
        blocked.unwrap()
    with pytest.raises(EmptyOutputError):
        validate_model_output(None, Answer).unwrap()
    with pytest.raises(MalformedOutputError):
        validate_model_output("not json", Answer).unwrap()


def test_build_prompt_describes_schema_with_wire_names() -> None:
    prompt = build_prompt(Answer, {"question": "Why?"})
    assert prompt.startswith("Respond strictly with JSON. Schema:")
    assert "shortAnswer" in prompt
    assert '"question": "Why?"' in prompt


def test_build_input_attaches_files() -> None:
    image = parse_data_uri("data:image/png;base64,iVBORw0KGgo=", allowed_types=(), allow_images=True, max_bytes=1024)
    pdf = parse_data_uri("data:application/pdf;base64,JVBERi0xLjQ=", max_bytes=1024)
    assert build_input("plain") == "plain"
    content = build_input("prompt", [image, pdf])[0]["content"]
    assert [item["type"] for item in content] == ["input_text", "input_image", "input_file"]
    assert content[2]["filename"].endswith(".pdf")


def test_run_structured_requires_api_key(stub_runner) -> None:
    with pytest.raises(AINotConfiguredError):
        _run(Settings(OPENAI_API_KEY=None))
    assert stub_runner.calls == []


def test_run_structured_returns_validated_output(stub_runner, ai_settings) -> None:
    stub_runner.output = '{"shortAnswer": "Mitochondria"}'
    assert _run(ai_settings).short_answer == "Mitochondria"
    call = stub_runner.calls[0]
    assert "Respond strictly with JSON" in call["input"]
    assert call["run_config"] is not None
    assert '"blocked": true' in call["agent"].instructions


def test_run_structured_maps_malformed_and_blocked_output(stub_runner, ai_settings, telemetry_events) -> None:
    stub_runner.output = {"unexpected": 1}
    with pytest.raises(MalformedOutputError):
        _run(ai_settings)

    stub_runner.output = '{"blocked": true, "reason": "violence"}'
    with pytest.raises(BlockedContentError) as excinfo:
        _run(ai_settings)
    assert "violence" in str(excinfo.value)

    failures = [event for event in telemetry_events if event.name == "ai_flow_failed"]
    assert [event.payload["code"] for event in failures] == ["schema_error", "blocked"]


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (APIConnectionError(request=_REQUEST), AIUnavailableError),
        (
            AuthenticationError(
                "invalid key", response=httpx.Response(401, request=_REQUEST), body={"code": "invalid_api_key"}
            ),
            AIUnavailableError,
        ),
        (
            BadRequestError(
                "flagged", response=httpx.Response(400, request=_REQUEST), body={"code": "content_filter"}
            ),
            BlockedContentError,
        ),
        (ModelBehaviorError("invalid JSON"), MalformedOutputError),
    ],
)
def test_run_structured_translates_provider_errors(stub_runner, ai_settings, error, expected) -> None:
    stub_runner.error = error
    with pytest.raises(expected):
        _run(ai_settings)
