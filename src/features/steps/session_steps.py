# features/steps/session_steps.py
from __future__ import annotations

from typing import Any

from behave import given, then, when  # type: ignore[import-untyped]

from reasoning_session.contracts import DecisionAction, EngineError, Session, is_error
from reasoning_session.controller import SessionController, new_session
from thinkgate.step_state import get_review_step_state


def _row_to_step(row: Any) -> dict[str, Any]:
    step: dict[str, Any] = {
        "id": row["id"],
        "title": row["title"],
        "reasoning": row["reasoning"],
        "isInterventionPoint": row["intervention"].strip().lower() in {"yes", "true"},
    }
    if row["recommendation"]:
        step["recommendation"] = {"value": row["recommendation"], "alternatives": []}
    return step


def _build_controller(context: Any) -> SessionController:
    state = get_review_step_state(context)
    session = new_session(state.step_rows, context="bdd", session_id="session:bdd")
    assert isinstance(session, Session), session
    state.controller = SessionController(session, timers=state.timers, on_intervention=state.record_notice)
    return state.controller


# ----------------------------
# Given
# ----------------------------


@given("a catalog with steps")
def step_catalog_table(context: Any) -> None:
    state = get_review_step_state(context)
    state.step_rows = [_row_to_step(row) for row in context.table]
    _build_controller(context)


@given('a single checkpoint step recommending "{value}" with alternative "{alternative}"')
def step_single_checkpoint(context: Any, value: str, alternative: str) -> None:
    state = get_review_step_state(context)
    state.step_rows = [
        {
            "id": "step-1",
            "title": "Recommending Strategy",
            "reasoning": "Based on the evidence, determine the strategy.",
            "isInterventionPoint": True,
            "confidence": 98,
            "recommendation": {
                "value": value,
                "alternatives": [{"id": alternative, "label": alternative, "description": "alternative"}],
            },
        }
    ]
    _build_controller(context)


# ----------------------------
# When
# ----------------------------


@when("the session is started")
def step_start(context: Any) -> None:
    state = get_review_step_state(context)
    state.last_result = state.require_controller().start()


@when("the session is reset")
def step_reset(context: Any) -> None:
    state = get_review_step_state(context)
    state.last_result = state.require_controller().reset()


@when("the scheduler fires {count:d} time")
@when("the scheduler fires {count:d} times")
def step_fire(context: Any, count: int) -> None:
    state = get_review_step_state(context)
    for _ in range(count):
        state.timers.fire_next()


@when("the operator approves")
def step_approve(context: Any) -> None:
    state = get_review_step_state(context)
    state.last_result = state.require_controller().apply_decision(DecisionAction.APPROVE)


@when('the operator selects alternative "{alternative}"')
def step_select(context: Any, alternative: str) -> None:
    state = get_review_step_state(context)
    state.last_result = state.require_controller().select_alternative(alternative)


@when('the operator confirms modify with "{alternative}"')
def step_confirm_modify(context: Any, alternative: str) -> None:
    state = get_review_step_state(context)
    state.last_result = state.require_controller().apply_decision(DecisionAction.MODIFY, alternative)


@when("the operator rejects")
def step_reject(context: Any) -> None:
    state = get_review_step_state(context)
    state.last_result = state.require_controller().apply_decision(DecisionAction.REJECT)


# ----------------------------
# Then
# ----------------------------


@then('the session status is "{status}"')
def step_session_status(context: Any, status: str) -> None:
    session = get_review_step_state(context).require_controller().session
    assert session.status.value == status, session.status


@then('the current step status is "{status}"')
def step_current_step_status(context: Any, status: str) -> None:
    step = get_review_step_state(context).require_controller().current_step
    assert step is not None
    assert step.status.value == status, step.status


@then('the final recommendation is "{value}"')
def step_final_value(context: Any, value: str) -> None:
    session = get_review_step_state(context).require_controller().session
    assert session.final_recommendation_value == value, session.final_recommendation_value


@then("there is no final recommendation")
def step_no_final_value(context: Any) -> None:
    session = get_review_step_state(context).require_controller().session
    assert session.final_recommendation_value is None


@then('the audit log holds 1 "{action}" record for "{value}"')
def step_single_audit_record(context: Any, action: str, value: str) -> None:
    log = get_review_step_state(context).require_controller().audit_log
    assert len(log) == 1
    record = log.records[0]
    assert record.action.value == action
    resolved = record.new_value if record.action == DecisionAction.MODIFY else record.original_value
    assert resolved == value


@then("the audit log is empty")
def step_audit_empty(context: Any) -> None:
    assert len(get_review_step_state(context).require_controller().audit_log) == 0


@then('the last result is an "{code}" error')
def step_last_error(context: Any, code: str) -> None:
    result = get_review_step_state(context).last_result
    assert is_error(result), result
    assert isinstance(result, EngineError)
    assert result.code == code


@then('the host was notified of "{action}"')
def step_notified(context: Any, action: str) -> None:
    notices = get_review_step_state(context).notices
    assert notices and notices[-1][0].value == action, notices


@then('every step is "{status}"')
def step_every_step(context: Any, status: str) -> None:
    session = get_review_step_state(context).require_controller().session
    assert all(step.status.value == status for step in session.steps)
