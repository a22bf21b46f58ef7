# reasoning_session/scheduler.py
"""
Timer-driven advancement of a running session.

The pure half (``processing_duration_ms``, ``advance_on_timer``,
``resolve_current_step``) computes the next session value. The ``Scheduler``
wires one host timer per in-flight step and fences late deliveries: a fire is
only handed on if it still matches the timer currently armed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from reasoning_session.adapters.timers import TimerService, TimerToken
from reasoning_session.config import DEFAULT_CONFIG, EngineConfig
from reasoning_session.contracts import (
    InvalidTransition,
    Session,
    SessionResult,
    SessionStatus,
    Step,
    StepStatus,
    TimerFired,
)

logger = logging.getLogger(__name__)


def processing_duration_ms(step: Step, config: EngineConfig = DEFAULT_CONFIG) -> int:
    return min(config.ms_per_char * len(step.reasoning_text), config.max_step_duration_ms)


def activate_step(session: Session, index: int) -> tuple[Step, ...]:
    step = session.steps[index]
    return session.replace_step(index, step.model_copy(update={"status": StepStatus.PROCESSING}))


def resolve_current_step(session: Session, resolved_value: Optional[str], **updates: object) -> Session:
    """Complete the current step with ``resolved_value``, then move on or finish the session."""
    index = session.current_step_index
    done = session.steps[index].model_copy(update={"status": StepStatus.COMPLETE, "resolved_value": resolved_value})
    steps = session.replace_step(index, done)

    if not session.is_last_step:
        next_index = index + 1
        nxt = steps[next_index].model_copy(update={"status": StepStatus.PROCESSING})
        steps = steps[:next_index] + (nxt,) + steps[next_index + 1 :]
        return session.model_copy(
            update={
                **updates,
                "steps": steps,
                "current_step_index": next_index,
                "status": SessionStatus.RUNNING,
                "staged_alternative_id": None,
            }
        )

    return session.model_copy(
        update={
            **updates,
            "steps": steps,
            "status": SessionStatus.COMPLETE,
            "final_recommendation_value": resolved_value,
            "staged_alternative_id": None,
        }
    )


def advance_on_timer(session: Session) -> SessionResult:
    """Apply a timer expiry to the current step: pause at a checkpoint, otherwise complete it."""
    step = session.current_step
    if session.status != SessionStatus.RUNNING or step is None or step.status != StepStatus.PROCESSING:
        return InvalidTransition(
            message="timer fired while no step was processing",
            session_id=session.id,
            details={
                "session_status": session.status.value,
                "step_status": step.status.value if step is not None else None,
            },
        )

    if step.is_intervention_point:
        paused = step.model_copy(update={"status": StepStatus.INTERVENTION})
        return session.model_copy(
            update={
                "steps": session.replace_step(session.current_step_index, paused),
                "status": SessionStatus.PAUSED,
            }
        )

    return resolve_current_step(session, step.recommended_value)


@dataclass(frozen=True)
class _ArmedTimer:
    token: TimerToken
    event: TimerFired


class Scheduler:
    """Holds at most one outstanding timer for the session's in-flight step."""

    def __init__(self, timers: TimerService, config: EngineConfig = DEFAULT_CONFIG) -> None:
        self._timers = timers
        self._config = config
        self._armed: Optional[_ArmedTimer] = None

    @property
    def armed(self) -> Optional[TimerFired]:
        return self._armed.event if self._armed is not None else None

    def is_armed_for(self, session: Session) -> bool:
        armed = self._armed
        if armed is None:
            return False
        return (
            armed.event.session_id == session.id
            and armed.event.epoch == session.epoch
            and armed.event.step_index == session.current_step_index
        )

    def arm(self, session: Session, on_fire: Callable[[TimerFired], None]) -> Optional[TimerToken]:
        """Schedule the expiry of the current Processing step, replacing any outstanding timer."""
        self.disarm()
        step = session.current_step
        if session.status != SessionStatus.RUNNING or step is None or step.status != StepStatus.PROCESSING:
            return None

        event = TimerFired(
            session_id=session.id,
            epoch=session.epoch,
            step_id=step.id,
            step_index=session.current_step_index,
        )
        duration = processing_duration_ms(step, self._config)

        issued: list[TimerToken] = []

        def _deliver() -> None:
            self._on_timer(issued[0], event, on_fire)

        token = self._timers.schedule(_deliver, duration)
        issued.append(token)
        self._armed = _ArmedTimer(token=token, event=event)
        logger.debug("armed timer %s for step %s (%d ms, epoch %d)", token, step.id, duration, session.epoch)
        return token

    def disarm(self) -> bool:
        armed = self._armed
        if armed is None:
            return False
        self._armed = None
        cancelled = self._timers.cancel(armed.token)
        logger.debug("cancelled timer %s for step %s (pending=%s)", armed.token, armed.event.step_id, cancelled)
        return cancelled

    def _on_timer(self, token: TimerToken, event: TimerFired, on_fire: Callable[[TimerFired], None]) -> None:
        armed = self._armed
        if armed is None or armed.token != token or armed.event != event:
            logger.debug("discarding stale timer for step %s (epoch %d)", event.step_id, event.epoch)
            return
        self._armed = None
        on_fire(event)
