from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional

from reasoning_session.contracts import (
    ACTIVE_STEP_STATUSES,
    DecisionAction,
    Session,
    SessionStatus,
    StepStatus,
)


class InvariantId(str, Enum):
    SINGLE_ACTIVE_STEP = "single_active_step.v1"
    ORDERED_PROGRESS = "ordered_progress.v1"
    STATUS_ALIGNMENT = "status_alignment.v1"
    AUDIT_ACCOUNTING = "audit_accounting.v1"


@dataclass(frozen=True)
class InvariantOutcome:
    invariant_id: InvariantId
    passed: bool
    reason: str
    code: str
    details: Mapping[str, Any] = field(default_factory=dict)


Checker = Callable[[Session], InvariantOutcome]


def _ok(invariant_id: InvariantId, code: str, details: Optional[Mapping[str, Any]] = None) -> InvariantOutcome:
    detail_map = dict(details or {})
    return InvariantOutcome(
        invariant_id=invariant_id,
        passed=True,
        reason=str(detail_map.get("message") or code),
        code=code,
        details=detail_map,
    )


def _fail(invariant_id: InvariantId, code: str, reason: str, **details: Any) -> InvariantOutcome:
    return InvariantOutcome(
        invariant_id=invariant_id,
        passed=False,
        reason=reason,
        code=code,
        details={"message": reason, **details},
    )


def _in_flight(session: Session) -> bool:
    return session.status in {SessionStatus.RUNNING, SessionStatus.PAUSED}


def check_single_active_step(session: Session) -> InvariantOutcome:
    active = [idx for idx, step in enumerate(session.steps) if step.status in ACTIVE_STEP_STATUSES]

    if not _in_flight(session):
        if active:
            return _fail(
                InvariantId.SINGLE_ACTIVE_STEP,
                "active_step_outside_run",
                "Idle and complete sessions must not have an active step.",
                active_indices=active,
            )
        return _ok(InvariantId.SINGLE_ACTIVE_STEP, "no_run_in_flight")

    if active != [session.current_step_index]:
        return _fail(
            InvariantId.SINGLE_ACTIVE_STEP,
            "active_step_mismatch",
            "Exactly one step, the current one, must be processing or awaiting intervention.",
            active_indices=active,
            current_step_index=session.current_step_index,
        )
    return _ok(InvariantId.SINGLE_ACTIVE_STEP, "single_active_step")


def check_ordered_progress(session: Session) -> InvariantOutcome:
    statuses = [step.status for step in session.steps]
    idx = session.current_step_index

    if session.status == SessionStatus.IDLE:
        if idx != 0 or any(s != StepStatus.PENDING for s in statuses):
            return _fail(
                InvariantId.ORDERED_PROGRESS,
                "idle_not_pristine",
                "Idle sessions start at step 0 with every step pending.",
                current_step_index=idx,
            )
        return _ok(InvariantId.ORDERED_PROGRESS, "idle_pristine")

    if session.status == SessionStatus.COMPLETE:
        if any(s != StepStatus.COMPLETE for s in statuses):
            return _fail(
                InvariantId.ORDERED_PROGRESS,
                "complete_with_open_steps",
                "A complete session has every step complete.",
            )
        return _ok(InvariantId.ORDERED_PROGRESS, "all_steps_complete")

    before_ok = all(s == StepStatus.COMPLETE for s in statuses[:idx])
    after_ok = all(s == StepStatus.PENDING for s in statuses[idx + 1 :])
    if not (before_ok and after_ok):
        return _fail(
            InvariantId.ORDERED_PROGRESS,
            "progress_out_of_order",
            "Steps before the current one are complete and steps after it are pending.",
            current_step_index=idx,
            statuses=[s.value for s in statuses],
        )
    return _ok(InvariantId.ORDERED_PROGRESS, "progress_ordered")


def check_status_alignment(session: Session) -> InvariantOutcome:
    step = session.current_step
    expected = {
        SessionStatus.RUNNING: StepStatus.PROCESSING,
        SessionStatus.PAUSED: StepStatus.INTERVENTION,
    }.get(session.status)
    if expected is None:
        if session.staged_alternative_id is not None:
            return _fail(
                InvariantId.STATUS_ALIGNMENT,
                "staged_selection_outside_pause",
                "A staged alternative only exists while a decision is awaited.",
            )
        return _ok(InvariantId.STATUS_ALIGNMENT, "alignment_not_applicable")

    if step is None or step.status != expected:
        return _fail(
            InvariantId.STATUS_ALIGNMENT,
            "session_step_status_mismatch",
            f"A {session.status.value} session requires its current step to be {expected.value}.",
            step_status=step.status.value if step is not None else None,
        )
    if session.status == SessionStatus.PAUSED and not step.is_intervention_point:
        return _fail(
            InvariantId.STATUS_ALIGNMENT,
            "paused_outside_checkpoint",
            "Only intervention points may pause a session.",
            step_id=step.id,
        )
    return _ok(InvariantId.STATUS_ALIGNMENT, "status_aligned")


def check_audit_accounting(session: Session) -> InvariantOutcome:
    seen: set[str] = set()
    for record in session.interventions:
        if record.action == DecisionAction.REJECT:
            return _fail(
                InvariantId.AUDIT_ACCOUNTING,
                "reject_in_audit_log",
                "Rejections never count as resolved interventions.",
                step_id=record.step_id,
            )
        if record.step_id in seen:
            return _fail(
                InvariantId.AUDIT_ACCOUNTING,
                "duplicate_resolution",
                "Each step is resolved by at most one recorded decision.",
                step_id=record.step_id,
            )
        seen.add(record.step_id)

        step = session.step_by_id(record.step_id)
        if step is None or step.status != StepStatus.COMPLETE:
            return _fail(
                InvariantId.AUDIT_ACCOUNTING,
                "record_without_completed_step",
                "Recorded decisions must point at a completed step.",
                step_id=record.step_id,
            )
        expected = record.new_value if record.action == DecisionAction.MODIFY else record.original_value
        if step.resolved_value != expected:
            return _fail(
                InvariantId.AUDIT_ACCOUNTING,
                "resolved_value_mismatch",
                "A step's resolved value must match the decision recorded for it.",
                step_id=record.step_id,
                resolved_value=step.resolved_value,
                recorded_value=expected,
            )

    if session.status == SessionStatus.COMPLETE:
        last = session.steps[-1]
        if session.final_recommendation_value != last.resolved_value:
            return _fail(
                InvariantId.AUDIT_ACCOUNTING,
                "final_value_mismatch",
                "The final recommendation is the last step's resolved value.",
            )
    elif session.final_recommendation_value is not None:
        return _fail(
            InvariantId.AUDIT_ACCOUNTING,
            "final_value_before_completion",
            "A final recommendation only exists once the session is complete.",
        )
    return _ok(InvariantId.AUDIT_ACCOUNTING, "audit_consistent", {"records": len(session.interventions)})


REGISTRY: dict[InvariantId, Checker] = {
    InvariantId.SINGLE_ACTIVE_STEP: check_single_active_step,
    InvariantId.ORDERED_PROGRESS: check_ordered_progress,
    InvariantId.STATUS_ALIGNMENT: check_status_alignment,
    InvariantId.AUDIT_ACCOUNTING: check_audit_accounting,
}


def run_checkers(session: Session, invariant_ids: Optional[Iterable[InvariantId]] = None) -> list[InvariantOutcome]:
    ids = tuple(invariant_ids) if invariant_ids is not None else tuple(REGISTRY)
    return [REGISTRY[invariant_id](session) for invariant_id in ids]


def violations(session: Session) -> list[InvariantOutcome]:
    return [outcome for outcome in run_checkers(session) if not outcome.passed]
