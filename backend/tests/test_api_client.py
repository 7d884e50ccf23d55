"""Tests for the HTTP client and the optimistic gateways built on it."""

from __future__ import annotations

import asyncio
from datetime import date

import httpx
import pytest

from nexuslearn.api_client import ApiProfileGateway, ApiProgressGateway, NexusLearnClient
from nexuslearn.errors import (
    DuplicateSubmissionError,
    PermissionDeniedError,
    RecordConflictError,
    StoreUnavailableError,
    TaskNotFoundError,
    ValidationFailure,
    error_from_detail,
)
from nexuslearn.identity import USER_HEADER
from nexuslearn.main import app
from nexuslearn.mutations import AddStudyTask, DeleteStudyTask, ToggleStudyTask, UpdateProfile
from nexuslearn.mutators import StudyTaskDraft
from nexuslearn.optimistic import MutationStatus, OptimisticRecordState

OWNER = "student-9"


def _asgi_client(user_id: str = OWNER) -> NexusLearnClient:
    transport = httpx.ASGITransport(app=app)
    return NexusLearnClient(
        "http://testserver",
        user_id,
        client=httpx.AsyncClient(transport=transport, base_url="http://testserver"),
    )


def test_error_from_detail_rebuilds_typed_errors() -> None:
    detail = {"category": "conflict", "code": "duplicate_submission", "message": "Quiz 'q1' was already saved."}
    error = error_from_detail(detail, 409)
    assert isinstance(error, DuplicateSubmissionError)
    assert error.message == "Quiz 'q1' was already saved."

    assert isinstance(error_from_detail("Forbidden", 403), PermissionDeniedError)
    assert isinstance(error_from_detail(None, 409), RecordConflictError)
    assert isinstance(error_from_detail([{"msg": "field required"}], 422), ValidationFailure)
    assert isinstance(error_from_detail("boom", 500), StoreUnavailableError)


def test_client_sends_identity_and_maps_error_bodies() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            404,
            json={"detail": {"category": "not_found", "code": "task_not_found", "message": "gone"}},
        )

    async def scenario() -> None:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api")
        async with NexusLearnClient("http://api", OWNER, client=http) as client:
            with pytest.raises(TaskNotFoundError):
                await client.apply_progress_mutation(OWNER, ToggleStudyTask(task_id="t1"))
        await http.aclose()

    asyncio.run(scenario())
    assert seen[0].headers[USER_HEADER] == OWNER
    assert seen[0].url.path == f"/api/progress/{OWNER}/mutations"


def test_client_translates_transport_failures() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario() -> None:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api")
        client = NexusLearnClient("http://api", OWNER, client=http)
        with pytest.raises(StoreUnavailableError):
            await client.get_progress(OWNER)
        await http.aclose()

    asyncio.run(scenario())


def test_optimistic_state_over_http_commits_and_rolls_back(database) -> None:
    async def scenario() -> None:
        async with _asgi_client() as client, _asgi_client() as other_tab:
            state = await OptimisticRecordState.open(OWNER, ApiProgressGateway(client))
            draft = StudyTaskDraft(id="task-1", date=date(2024, 5, 3), task="Revise algebra")
            added = await state.dispatch(AddStudyTask(draft=draft))
            assert added.ok
            assert state.status is MutationStatus.COMMITTED
            assert state.data.last_updated is not None

            await other_tab.apply_progress_mutation(OWNER, DeleteStudyTask(task_id="task-1"))

            before = state.data
            toggled = await state.dispatch(ToggleStudyTask(task_id="task-1"))
            assert not toggled.ok
            assert isinstance(toggled.error, TaskNotFoundError)
            assert state.status is MutationStatus.ROLLED_BACK
            assert state.data is before

            fresh = await state.reload()
            assert fresh.study_planner == []

    asyncio.run(scenario())


def test_profile_gateway_over_http(database) -> None:
    async def scenario() -> None:
        async with _asgi_client() as client:
            await client.ensure_profile(OWNER, email="ana@example.com", name="Ana")
            state = await OptimisticRecordState.open(OWNER, ApiProfileGateway(client))
            assert state.data.name == "Ana"

            saved = await state.dispatch(UpdateProfile(changes={"grade": "10"}))
            assert saved.ok
            assert (await client.get_profile(OWNER)).grade == "10"

        async with _asgi_client("intruder") as intruder:
            with pytest.raises(PermissionDeniedError):
                await intruder.get_profile(OWNER)

    asyncio.run(scenario())


def test_performance_subject_is_sent_as_encoded_query_parameter() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"totalQuizzes": 0})

    async def scenario() -> None:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api")
        async with NexusLearnClient("http://api", OWNER, client=http) as client:
            await client.get_performance(OWNER, "math&physics #1")
            await client.get_performance(OWNER)
        await http.aclose()

    asyncio.run(scenario())
    assert seen[0].url.path == f"/api/progress/{OWNER}/performance"
    assert seen[0].url.params["subject"] == "math&physics #1"
    assert list(seen[0].url.params.keys()) == ["subject"]
    assert "subject" not in seen[1].url.params


def test_non_object_json_error_body_maps_to_typed_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json=[{"msg": "field required"}])

    async def scenario() -> None:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api")
        client = NexusLearnClient("http://api", OWNER, client=http)
        with pytest.raises(ValidationFailure):
            await client.get_progress(OWNER)
        await http.aclose()

    asyncio.run(scenario())
