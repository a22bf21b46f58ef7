# reasoning_session/gate.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from reasoning_session._compat import utc_now
from reasoning_session.config import DEFAULT_CONFIG, EngineConfig
from reasoning_session.contracts import (
    DecisionAction,
    DecisionNotAccepted,
    EngineError,
    InterventionNotice,
    InterventionRecord,
    InvalidSelection,
    InvalidTransition,
    Session,
    SessionResult,
    SessionStatus,
    Step,
    StepStatus,
)
from reasoning_session.scheduler import resolve_current_step

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateOutcome:
    session: Session
    notice: InterventionNotice


GateResult = Union[GateOutcome, EngineError]


def _awaiting_step(session: Session) -> Union[Step, EngineError]:
    if session.status != SessionStatus.PAUSED:
        return DecisionNotAccepted(
            message=f"session is {session.status.value}, not waiting for a decision",
            session_id=session.id,
            details={"session_status": session.status.value},
        )
    step = session.current_step
    if step is None or step.status != StepStatus.INTERVENTION:
        return InvalidTransition(
            message="current step is not at an intervention point",
            session_id=session.id,
            details={"step_status": step.status.value if step is not None else None},
        )
    return step


def coerce_action(session: Session, action: object) -> Union[DecisionAction, EngineError]:
    """Accept a ``DecisionAction`` or its string value; anything else is an invalid transition."""
    try:
        return DecisionAction(action)
    except ValueError:
        return InvalidTransition(
            message=f"unknown decision action {action!r}",
            session_id=session.id,
            details={"action": str(action), "known": [a.value for a in DecisionAction]},
        )


def select_alternative(session: Session, alternative_id: str) -> SessionResult:
    """Stage an alternative for a Modify decision. Nothing is applied to the step yet."""
    step = _awaiting_step(session)
    if isinstance(step, EngineError):
        return step

    rec = step.recommendation
    if rec is None or rec.find_alternative(alternative_id) is None:
        return InvalidSelection(
            message=f"unknown alternative {alternative_id!r} for step {step.id}",
            session_id=session.id,
            details={
                "step_id": step.id,
                "alternative_id": alternative_id,
                "known": [alt.id for alt in rec.alternatives] if rec is not None else [],
            },
        )
    return session.model_copy(update={"staged_alternative_id": alternative_id})


def _resolve(
    session: Session,
    step: Step,
    record: InterventionRecord,
    resolved_value: Optional[str],
) -> GateOutcome:
    resolved = resolve_current_step(
        session,
        resolved_value,
        interventions=session.interventions + (record,),
    )
    logger.info(
        "session %s: %s on step %s resolved to %r (%s)",
        session.id,
        record.action.value,
        step.id,
        resolved_value,
        resolved.status.value,
    )
    return GateOutcome(
        session=resolved,
        notice=InterventionNotice(session_id=session.id, step_id=step.id, action=record.action, value=resolved_value),
    )


def approve(session: Session, *, now: Optional[datetime] = None, reason: Optional[str] = None) -> GateResult:
    step = _awaiting_step(session)
    if isinstance(step, EngineError):
        return step

    record = InterventionRecord(
        step_id=step.id,
        action=DecisionAction.APPROVE,
        original_value=step.recommended_value,
        reason=reason,
        timestamp=now or utc_now(),
    )
    return _resolve(session, step, record, step.recommended_value)


def confirm_modify(
    session: Session,
    alternative_id: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
    reason: Optional[str] = None,
) -> GateResult:
    """Second phase of Modify: apply the staged alternative."""
    step = _awaiting_step(session)
    if isinstance(step, EngineError):
        return step

    staged = session.staged_alternative_id
    if staged is None:
        return InvalidSelection(
            message="modify confirmed without a staged alternative",
            session_id=session.id,
            details={"step_id": step.id, "alternative_id": alternative_id},
        )
    if alternative_id is not None and alternative_id != staged:
        return InvalidSelection(
            message=f"confirmed alternative {alternative_id!r} does not match staged {staged!r}",
            session_id=session.id,
            details={"step_id": step.id, "alternative_id": alternative_id, "staged": staged},
        )

    alternative = step.recommendation.find_alternative(staged) if step.recommendation is not None else None
    if alternative is None:
        return InvalidSelection(
            message=f"staged alternative {staged!r} is not offered by step {step.id}",
            session_id=session.id,
            details={"step_id": step.id, "staged": staged},
        )

    record = InterventionRecord(
        step_id=step.id,
        action=DecisionAction.MODIFY,
        original_value=step.recommended_value,
        new_value=alternative.value,
        reason=reason,
        timestamp=now or utc_now(),
    )
    return _resolve(session, step, record, alternative.value)


def reject(
    session: Session,
    *,
    config: EngineConfig = DEFAULT_CONFIG,
    now: Optional[datetime] = None,
    reason: Optional[str] = None,
) -> GateResult:
    """Reject leaves the step paused; restarting the pipeline is the host's call."""
    step = _awaiting_step(session)
    if isinstance(step, EngineError):
        return step

    updates: dict[str, object] = {"staged_alternative_id": None}
    if config.record_rejections:
        record = InterventionRecord(
            step_id=step.id,
            action=DecisionAction.REJECT,
            original_value=step.recommended_value,
            reason=reason,
            timestamp=now or utc_now(),
        )
        updates["rejections"] = session.rejections + (record,)

    logger.info("session %s: reject on step %s; session stays paused", session.id, step.id)
    return GateOutcome(
        session=session.model_copy(update=updates),
        notice=InterventionNotice(session_id=session.id, step_id=step.id, action=DecisionAction.REJECT, value=None),
    )


def decide(
    session: Session,
    action: DecisionAction,
    alternative_id: Optional[str] = None,
    *,
    config: EngineConfig = DEFAULT_CONFIG,
    now: Optional[datetime] = None,
    reason: Optional[str] = None,
) -> GateResult:
    action = coerce_action(session, action)
    if isinstance(action, EngineError):
        return action
    if action == DecisionAction.APPROVE:
        return approve(session, now=now, reason=reason)
    if action == DecisionAction.MODIFY:
        return confirm_modify(session, alternative_id, now=now, reason=reason)
    return reject(session, config=config, now=now, reason=reason)
