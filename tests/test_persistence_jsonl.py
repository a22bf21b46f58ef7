# tests/test_persistence_jsonl.py
from __future__ import annotations

import json
from pathlib import Path

import pytest

from reasoning_session.adapters.persistence import (
    append_intervention_record,
    append_jsonl,
    append_session_event,
    iter_session_events,
    read_jsonl,
)
from reasoning_session.contracts import (
    DecisionAction,
    InterventionRecord,
    SessionEvent,
    SessionEventKind,
)


def test_jsonl_rows_come_back_in_write_order(tmp_path: Path) -> None:
    p = tmp_path / "steps.jsonl"

    append_jsonl(p, {"step_id": "step-1", "status": "complete"})
    append_jsonl(p, {"step_id": "step-2", "status": "intervention"})

    assert [rec["step_id"] for _, rec in read_jsonl(p)] == ["step-1", "step-2"]
    assert all(isinstance(json.loads(ln), dict) for ln in p.read_text(encoding="utf-8").splitlines())


def test_append_jsonl_returns_line_refs_and_creates_parent_dirs(tmp_path: Path) -> None:
    p = tmp_path / "nested" / "dir" / "log.jsonl"

    first = append_jsonl(p, {"n": 1})
    second = append_jsonl(p, {"n": 2})

    assert first == {"kind": "jsonl", "ref": "log.jsonl@1"}
    assert second == {"kind": "jsonl", "ref": "log.jsonl@2"}
    metas = [meta for meta, _ in read_jsonl(p)]
    assert [m["lineno"] for m in metas] == [1, 2]


def test_append_jsonl_rejects_non_object_records(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        append_jsonl(tmp_path / "bad.jsonl", [1, 2, 3])


def test_read_jsonl_skips_blank_lines_and_rejects_non_objects(tmp_path: Path) -> None:
    p = tmp_path / "raw.jsonl"
    p.write_text('{"a": 1}\n\n[1]\n', encoding="utf-8")

    rows = read_jsonl(p)
    assert next(rows)[1] == {"a": 1}
    with pytest.raises(ValueError):
        next(rows)


def test_append_intervention_record_serializes_enums_and_timestamps(tmp_path: Path) -> None:
    p = tmp_path / "interventions.jsonl"
    record = InterventionRecord(
        step_id="step-4",
        action=DecisionAction.MODIFY,
        original_value="patient",
        new_value="stratified",
        timestamp="2026-02-13T00:00:00+00:00",
    )

    ref = append_intervention_record(p, record, session_id="session:demo")

    ((meta, rec),) = list(read_jsonl(p))
    assert ref == {"kind": "jsonl", "ref": "interventions.jsonl@1"}
    assert meta["lineno"] == 1
    assert rec["event_kind"] == "intervention_record"
    assert rec["action"] == "modify"
    assert rec["new_value"] == "stratified"
    assert rec["session_id"] == "session:demo"


def test_append_intervention_record_requires_a_record(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        append_intervention_record(tmp_path / "x.jsonl")


def test_session_events_roundtrip_and_filter_by_session(tmp_path: Path) -> None:
    p = tmp_path / "session_events.jsonl"
    mine = [
        SessionEvent(event_kind=SessionEventKind.START, session_id="s:a"),
        SessionEvent(event_kind=SessionEventKind.TIMER_FIRED, session_id="s:a", step_id="step-1"),
        SessionEvent(
            event_kind=SessionEventKind.DECISION,
            session_id="s:a",
            step_id="step-1",
            action=DecisionAction.APPROVE,
            timestamp="2026-02-13T00:00:00+00:00",
        ),
    ]
    append_session_event(p, mine[0])
    append_session_event(p, SessionEvent(event_kind=SessionEventKind.START, session_id="s:b"))
    append_jsonl(p, {"event_kind": "intervention_record", "session_id": "s:a"})
    for event in mine[1:]:
        append_session_event(p, event)

    assert list(iter_session_events(p, session_id="s:a")) == mine
    assert len(list(iter_session_events(p))) == 4
