from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence, Union

from reasoning_session.adapters.timers import ManualTimerService
from reasoning_session.audit import AuditLog
from reasoning_session.catalog import StepCatalog, load_catalog
from reasoning_session.config import DEFAULT_CONFIG, EngineConfig
from reasoning_session.contracts import (
    DecisionAction,
    EngineError,
    InterventionNotice,
    Session,
    SessionEvent,
    SessionStatus,
    is_error,
)
from reasoning_session.controller import SessionController, new_session, progress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScriptedDecision:
    action: DecisionAction
    alternative_id: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def parse(cls, raw: str) -> ScriptedDecision:
        """Parse ``ACTION[:ALTERNATIVE]``, e.g. ``approve`` or ``modify:stratified``."""
        action, _, alternative = raw.strip().partition(":")
        return cls(action=DecisionAction(action.strip().lower()), alternative_id=alternative.strip() or None)


@dataclass(frozen=True)
class ScriptedRunResult:
    session: Session
    notices: tuple[InterventionNotice, ...]
    events: tuple[SessionEvent, ...]
    errors: tuple[EngineError, ...]
    elapsed_ms: int

    @property
    def audit_log(self) -> AuditLog:
        return AuditLog.of(self.session)


def _apply_scripted(controller: SessionController, decision: ScriptedDecision) -> list[EngineError]:
    errors: list[EngineError] = []
    if decision.action == DecisionAction.MODIFY and decision.alternative_id is not None:
        staged = controller.select_alternative(decision.alternative_id)
        if is_error(staged):
            errors.append(staged)
            return errors
    result = controller.apply_decision(decision.action, decision.alternative_id, reason=decision.reason)
    if is_error(result):
        errors.append(result)
    return errors


def run_scripted_session(
    catalog: StepCatalog,
    decisions: Sequence[ScriptedDecision],
    *,
    config: EngineConfig = DEFAULT_CONFIG,
    max_fires: int = 10_000,
) -> Union[ScriptedRunResult, EngineError]:
    """
    Run a catalog on a virtual clock, answering each checkpoint with the next scripted decision.

    Stops when the session completes, or when it is paused and the script has
    run out (a trailing Reject therefore leaves the session paused).
    """
    session = new_session(catalog)
    if is_error(session):
        return session

    timers = ManualTimerService()
    controller = SessionController(session, timers=timers, config=config)
    controller.start()

    script = list(decisions)
    errors: list[EngineError] = []
    fires = 0
    while controller.session.status != SessionStatus.COMPLETE and fires < max_fires:
        if controller.awaiting_decision:
            if not script:
                logger.info("session %s: paused with no scripted decision left", controller.session.id)
                break
            errors.extend(_apply_scripted(controller, script.pop(0)))
            continue
        if not timers.fire_next():
            break
        fires += 1

    return ScriptedRunResult(
        session=controller.session,
        notices=controller.notices,
        events=controller.events,
        errors=tuple(errors),
        elapsed_ms=timers.now_ms,
    )


def run_catalog_file(
    path: Union[str, Path],
    decisions: Sequence[ScriptedDecision],
    *,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Union[ScriptedRunResult, EngineError]:
    return run_scripted_session(load_catalog(path), decisions, config=config)


def summarize(result: ScriptedRunResult) -> dict[str, Any]:
    session = result.session
    return {
        "session_id": session.id,
        "context": session.context,
        "status": session.status.value,
        "progress": round(progress(session), 4),
        "final_recommendation_value": session.final_recommendation_value,
        "elapsed_ms": result.elapsed_ms,
        "interventions": [record.model_dump(mode="json") for record in session.interventions],
        "rejections": [record.model_dump(mode="json") for record in session.rejections],
        "notices": [notice.model_dump(mode="json") for notice in result.notices],
        "errors": [error.to_payload() for error in result.errors],
    }
