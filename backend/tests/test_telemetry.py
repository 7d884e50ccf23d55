from __future__ import annotations

import logging
from datetime import date

from nexuslearn.optimistic import MutationStatus
from nexuslearn.progress import SubjectMastery
from nexuslearn.telemetry import MAX_FIELD_LENGTH, emit_event, register_listener


def test_payload_is_json_friendly(telemetry_events) -> None:
    mastery = SubjectMastery(subject_id="math", subject_name="Maths", progress=40)
    emit_event(
        "progress_committed",
        owner_id="u1",
        day=date(2024, 5, 1),
        status=MutationStatus.COMMITTED,
        mastery=mastery,
        error="x" * (MAX_FIELD_LENGTH + 20),
    )
    payload = telemetry_events[-1].payload
    assert payload["day"] == "2024-05-01"
    assert payload["status"] == "committed"
    assert payload["mastery"]["subjectId"] == "math"
    assert payload["error"] == "x" * MAX_FIELD_LENGTH + "..."


def test_unregister_and_failing_listeners(telemetry_events, caplog) -> None:
    received: list[str] = []
    unregister = register_listener(lambda event: received.append(event.name))

    def broken(_event) -> None:
        raise RuntimeError("listener bug")

    register_listener(broken)
    with caplog.at_level(logging.INFO, logger="nexuslearn.telemetry"):
        emit_event("ai_flow_failed", flow="tutor", code="empty")
    unregister()
    emit_event("ai_flow_completed", flow="tutor")

    assert received == ["ai_flow_failed"]
    assert [event.name for event in telemetry_events] == ["ai_flow_failed", "ai_flow_completed"]
    failure_lines = [record for record in caplog.records if "TELEMETRY" in record.getMessage()]
    assert failure_lines[0].levelno == logging.WARNING
    assert any("Telemetry listener failed" in record.getMessage() for record in caplog.records)
