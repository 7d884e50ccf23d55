"""Shared runtime for the schema-validated AI flows."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, Generic, List, Literal, Optional, Sequence, Type, TypeVar, Union, cast

from agents import Agent, ModelSettings, RunConfig, Runner
from agents.exceptions import (
    AgentsException,
    InputGuardrailTripwireTriggered,
    ModelBehaviorError,
    OutputGuardrailTripwireTriggered,
)
from openai import (
    APIConnectionError,
    AuthenticationError,
    BadRequestError,
    InternalServerError,
    OpenAIError,
    RateLimitError,
)
from openai.types.shared.reasoning import Reasoning
from openai.types.shared.reasoning_effort import ReasoningEffort
from pydantic import BaseModel, ValidationError

from .config import Settings, get_settings
from .data_uri import DataUri
from .errors import (
    AINotConfiguredError,
    AIUnavailableError,
    BlockedContentError,
    EmptyOutputError,
    ExternalModelError,
    MalformedOutputError,
)
from .telemetry import emit_event

logger = logging.getLogger(__name__)

OutputT = TypeVar("OutputT", bound=BaseModel)
OutputStatus = Literal["ok", "schema_error", "blocked", "empty"]

REFUSAL_CONTRACT = (
    'If you cannot help because the request or the material is unsafe or against policy, respond only with '
    '{"blocked": true, "reason": "<short explanation>"} instead of the schema.'
)

_CONTENT_POLICY_MARKERS = ("content_policy", "content_filter", "safety", "flagged")


@dataclass(frozen=True)
class ModelOutput(Generic[OutputT]):
    """Tagged result of validating a model response; downstream code only sees ``unwrap()``."""

    status: OutputStatus
    value: Optional[OutputT] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def unwrap(self) -> OutputT:
        if self.status == "ok":
            assert self.value is not None
            return self.value
        if self.status == "blocked":
            raise BlockedContentError(
                f"The AI declined this request: {self.detail}" if self.detail else None
            )
        if self.status == "empty":
            raise EmptyOutputError()
        raise MalformedOutputError(
            f"The AI returned a response in an unexpected format: {self.detail}" if self.detail else None
        )


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


def validate_model_output(raw: Any, schema: Type[OutputT]) -> ModelOutput[OutputT]:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return ModelOutput(status="empty")
    if isinstance(raw, schema):
        return ModelOutput(status="ok", value=raw)
    if isinstance(raw, BaseModel):
        raw = raw.model_dump(mode="json")
    if isinstance(raw, str):
        try:
            raw = json.loads(_strip_code_fence(raw))
        except json.JSONDecodeError as exc:
            return ModelOutput(status="schema_error", detail=f"invalid JSON ({exc.msg})")
    if isinstance(raw, dict) and raw.get("blocked") is True:
        reason = raw.get("reason")
        return ModelOutput(status="blocked", detail=str(reason) if reason else None)
    if raw in ({}, []):
        return ModelOutput(status="empty")
    try:
        return ModelOutput(status="ok", value=schema.model_validate(raw))
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        return ModelOutput(status="schema_error", detail=f"{location}: {first.get('msg', 'invalid value')}")


def _reasoning_effort(value: str) -> ReasoningEffort:
    allowed = {"minimal", "low", "medium", "high"}
    effort = value if value in allowed else "low"
    return cast(ReasoningEffort, effort)


_AGENT_CACHE: dict[tuple[str, str], Agent] = {}


def flow_agent(flow: str, instructions: str, model: str) -> Agent:
    key = (flow, model)
    if key not in _AGENT_CACHE:
        _AGENT_CACHE[key] = Agent(
            name=f"NexusLearn {flow.replace('_', ' ').title()}",
            instructions=f"{instructions}\n\n{REFUSAL_CONTRACT}",
            model=model,
            tools=[],
            model_settings=ModelSettings(store=False),
        )
    return _AGENT_CACHE[key]


def build_prompt(schema: Type[BaseModel], context: Dict[str, Any]) -> str:
    return (
        "Respond strictly with JSON. Schema:\n"
        f"{json.dumps(schema.model_json_schema(by_alias=True), ensure_ascii=False, indent=2)}\n\n"
        "CONTEXT:\n"
        f"{json.dumps(context, ensure_ascii=False, indent=2)}"
    )


def build_input(prompt: str, files: Sequence[DataUri] = ()) -> Union[str, List[Dict[str, Any]]]:
    if not files:
        return prompt
    content: List[Dict[str, Any]] = [{"type": "input_text", "text": prompt}]
    for index, file in enumerate(files):
        if file.is_image:
            content.append({"type": "input_image", "image_url": file.uri, "detail": "auto"})
        else:
            extension = file.mime_type.rsplit("/", 1)[-1]
            content.append(
                {"type": "input_file", "file_data": file.uri, "filename": f"upload-{index + 1}.{extension}"}
            )
    return [{"role": "user", "content": content}]


def _is_content_policy_error(exc: BadRequestError) -> bool:
    text = f"{getattr(exc, 'code', '') or ''} {exc}".lower()
    return any(marker in text for marker in _CONTENT_POLICY_MARKERS)


def _translate_run_error(exc: Exception) -> ExternalModelError:
    if isinstance(exc, (InputGuardrailTripwireTriggered, OutputGuardrailTripwireTriggered)):
        return BlockedContentError()
    if isinstance(exc, ModelBehaviorError):
        return MalformedOutputError(f"The AI returned a response in an unexpected format: {exc}")
    if isinstance(exc, AuthenticationError):
        return AIUnavailableError("The AI provider rejected the configured OPENAI_API_KEY. Update it and try again.")
    if isinstance(exc, BadRequestError):
        if _is_content_policy_error(exc):
            return BlockedContentError()
        return AIUnavailableError(f"The AI provider rejected the request: {exc}")
    if isinstance(exc, (APIConnectionError, RateLimitError, InternalServerError)):
        return AIUnavailableError()
    return AIUnavailableError(f"The AI request failed: {exc}")


async def run_structured(
    flow: str,
    instructions: str,
    context: Dict[str, Any],
    schema: Type[OutputT],
    *,
    files: Sequence[DataUri] = (),
    settings: Optional[Settings] = None,
) -> OutputT:
    """Run one flow against the configured model and return its validated output.

    Raises ``AINotConfiguredError`` when no API key is set, and one of the
    external-model errors when the call fails or the answer does not match
    ``schema``. Nothing is retried.
    """
    resolved_settings = settings or get_settings()
    if not resolved_settings.ai_configured:
        raise AINotConfiguredError()

    agent = flow_agent(flow, instructions, resolved_settings.agent_model)
    prompt = build_input(build_prompt(schema, context), files)

    started = perf_counter()
    try:
        result = await Runner.run(
            agent,
            prompt,
            run_config=RunConfig(
                model_settings=ModelSettings(
                    reasoning=Reasoning(effort=_reasoning_effort(resolved_settings.agent_reasoning)),
                )
            ),
        )
    except (AgentsException, OpenAIError) as exc:
        error = _translate_run_error(exc)
        logger.error("AI flow %s failed: %s", flow, exc)
        emit_event("ai_flow_failed", flow=flow, code=error.code, error=str(exc))
        raise error from exc

    latency_ms = round((perf_counter() - started) * 1000.0, 2)
    output = validate_model_output(result.final_output, schema)
    if not output.ok:
        logger.warning("AI flow %s returned %s output: %s", flow, output.status, output.detail)
        emit_event("ai_flow_failed", flow=flow, code=output.status, error=output.detail, latency_ms=latency_ms)
    else:
        logger.debug("AI flow %s completed in %sms", flow, latency_ms)
    return output.unwrap()


__all__ = [
    "ModelOutput",
    "REFUSAL_CONTRACT",
    "build_input",
    "build_prompt",
    "flow_agent",
    "run_structured",
    "validate_model_output",
]
