from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

import pytest
from pydantic import ValidationError

from reasoning_session.contracts import (
    DecisionAction,
    DecisionNotAccepted,
    EvidenceRef,
    InterventionRecord,
    InvalidSelection,
    InvalidTransition,
    Recommendation,
    Session,
    SessionEvent,
    SessionEventKind,
    Step,
    StepStatus,
    is_error,
)


def test_evidence_ref_normalizes_strings_mappings_and_refs() -> None:
    refs = EvidenceRef.parse_many(
        [
            "Dataset manifest",
            {"id": "ev-1", "type": "metadata", "title": "Patient ID distribution"},
            {"kind": "jsonl", "ref": "halts.jsonl@3"},
            EvidenceRef(kind="scope", ref="scope:test"),
        ]
    )

    assert [(r.kind, r.ref) for r in refs] == [
        ("label", "Dataset manifest"),
        ("metadata", "Patient ID distribution"),
        ("jsonl", "halts.jsonl@3"),
        ("scope", "scope:test"),
    ]


def test_evidence_ref_rejects_unsupported_payloads() -> None:
    with pytest.raises(ValueError):
        EvidenceRef.from_raw(42)


def test_step_defaults_to_pending_and_normalizes_evidence(make_step: Callable[..., Step]) -> None:
    step = Step(id="s", title="T", evidence=["a", {"kind": "k", "ref": "r"}])

    assert step.status is StepStatus.PENDING
    assert step.evidence == (EvidenceRef(kind="label", ref="a"), EvidenceRef(kind="k", ref="r"))
    assert step.recommended_value is None
    assert make_step(value="patient").recommended_value == "patient"


def test_step_resolved_value_requires_complete_status() -> None:
    with pytest.raises(ValidationError):
        Step(id="s", title="T", status=StepStatus.PROCESSING, resolved_value="x")

    done = Step(id="s", title="T", status=StepStatus.COMPLETE, resolved_value="x")
    assert done.pending().status is StepStatus.PENDING
    assert done.pending().resolved_value is None


def test_step_confidence_is_bounded() -> None:
    with pytest.raises(ValidationError):
        Step(id="s", title="T", confidence=101)


def test_recommendation_alternative_ids_must_be_unique() -> None:
    with pytest.raises(ValidationError):
        Recommendation.model_validate(
            {"value": "patient", "alternatives": [{"id": "random"}, {"id": "random"}]}
        )

    rec = Recommendation.model_validate({"value": "patient", "alternatives": [{"id": "random", "label": "Random"}]})
    found = rec.find_alternative("random")
    assert found is not None and found.value == "random"
    assert rec.find_alternative("missing") is None


def test_contracts_are_frozen(make_step: Callable[..., Step]) -> None:
    step = make_step()
    with pytest.raises(ValidationError):
        step.status = StepStatus.COMPLETE  # type: ignore[misc]


def test_session_rejects_empty_and_duplicate_catalogs(make_step: Callable[..., Step]) -> None:
    with pytest.raises(ValidationError):
        Session(id="s", steps=())
    with pytest.raises(ValidationError):
        Session(id="s", steps=(make_step("a"), make_step("a")))
    with pytest.raises(ValidationError):
        Session(id="s", steps=(make_step("a"),), current_step_index=2)


def test_session_current_step_and_lookup(
    make_step: Callable[..., Step], make_session: Callable[..., Session]
) -> None:
    session = make_session(make_step("a"), make_step("b"))

    assert session.current_step is not None and session.current_step.id == "a"
    assert not session.is_last_step
    assert session.step_by_id("b") is session.steps[1]
    assert session.step_by_id("zzz") is None

    finished = session.model_copy(update={"current_step_index": 2})
    assert finished.current_step is None
    assert finished.is_last_step


def test_intervention_record_timestamps_are_utc_and_new_value_is_modify_only() -> None:
    naive = InterventionRecord(
        step_id="s",
        action=DecisionAction.APPROVE,
        original_value="X",
        timestamp=datetime(2026, 2, 13, 12, 0, 0),
    )
    assert naive.timestamp.tzinfo is not None
    assert naive.timestamp.isoformat() == "2026-02-13T12:00:00+00:00"

    with pytest.raises(ValidationError):
        InterventionRecord(
            step_id="s",
            action=DecisionAction.APPROVE,
            original_value="X",
            new_value="Y",
            timestamp=datetime(2026, 2, 13),
        )


def test_decision_events_require_an_action() -> None:
    with pytest.raises(ValidationError):
        SessionEvent(event_kind=SessionEventKind.DECISION, session_id="s")

    event = SessionEvent(event_kind=SessionEventKind.DECISION, session_id="s", action=DecisionAction.REJECT)
    assert event.action is DecisionAction.REJECT


def test_error_values_carry_codes_and_payloads() -> None:
    err = DecisionNotAccepted(message="not paused", session_id="s", details={"session_status": "running"})

    assert is_error(err)
    assert isinstance(err, InvalidTransition)
    assert err.to_payload() == {
        "code": "decision_not_accepted",
        "message": "not paused",
        "session_id": "s",
        "details": {"session_status": "running"},
    }
    assert InvalidSelection(message="x").code == "invalid_selection"
    assert not is_error(Step(id="s", title="T"))


def test_status_enums_render_as_their_values() -> None:
    assert str(StepStatus.INTERVENTION) == "intervention"
    assert DecisionAction("modify") is DecisionAction.MODIFY
