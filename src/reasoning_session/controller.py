# reasoning_session/controller.py
"""
Public API of the reasoning-session engine.

The module-level functions are pure: each consumes a ``Session`` and returns
a new one, or an ``EngineError`` value, and never touches timers.
``transition`` is the single place where an event becomes a new session; both
``SessionController`` (live, timer-driven) and ``replay`` (recorded events)
go through it.

``SessionController`` owns one caller-created session for one host view. All
stimuli, host calls and timer expiries alike, funnel through ``_dispatch``:
run the pure transition, commit, re-arm or disarm the scheduler, record the
event, then notify listeners with the committed snapshot.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Union, cast

from pydantic import ValidationError

from reasoning_session._compat import utc_now
from reasoning_session.adapters.intervention_sink import InterventionListener, SessionChangeListener
from reasoning_session.adapters.timers import TimerService, TimerToken
from reasoning_session.audit import AuditLog
from reasoning_session.catalog import CatalogLoadError, StepCatalog, parse_steps
from reasoning_session.config import DEFAULT_CONFIG, EngineConfig
from reasoning_session.contracts import (
    DecisionAction,
    EmptyCatalog,
    EngineError,
    InterventionNotice,
    InvalidCatalog,
    InvalidTransition,
    Session,
    SessionEvent,
    SessionEventKind,
    SessionResult,
    SessionStatus,
    Step,
    StepStatus,
    TimerFired,
    is_error,
)
from reasoning_session.gate import coerce_action, decide
from reasoning_session.gate import select_alternative as _stage_alternative
from reasoning_session.invariants import violations
from reasoning_session.scheduler import Scheduler, activate_step, advance_on_timer

logger = logging.getLogger(__name__)


def _new_id(prefix: str = "") -> str:
    return f"{prefix}{uuid.uuid4().hex}"


# ------------------------------------------------------------------------------
# Pure API
# ------------------------------------------------------------------------------


def new_session(
    steps: Union[StepCatalog, Iterable[object]],
    *,
    context: Optional[str] = None,
    session_id: Optional[str] = None,
) -> Union[Session, EmptyCatalog, InvalidCatalog]:
    """Create an Idle session over a catalog. Zero steps is an error, never an instantly complete session."""
    if isinstance(steps, StepCatalog):
        context = steps.context if context is None else context
        session_id = session_id or steps.session_id
    sid = session_id or _new_id("session:")

    try:
        parsed = steps.steps if isinstance(steps, StepCatalog) else parse_steps(steps)
    except CatalogLoadError as exc:
        return InvalidCatalog(message=str(exc), session_id=sid)

    if not parsed:
        return EmptyCatalog(message="a session needs at least one step", session_id=sid)

    try:
        return Session(
            id=sid,
            context=context or "",
            steps=tuple(step.pending() for step in parsed),
        )
    except ValidationError as exc:
        return InvalidCatalog(
            message="catalog cannot form a session",
            session_id=sid,
            details={"errors": [err["msg"] for err in exc.errors()]},
        )


def start(session: Session) -> SessionResult:
    if session.status in {SessionStatus.RUNNING, SessionStatus.COMPLETE}:
        return session
    if session.status != SessionStatus.IDLE:
        return InvalidTransition(
            message=f"cannot start a {session.status.value} session",
            session_id=session.id,
            details={"session_status": session.status.value},
        )
    return session.model_copy(
        update={
            "steps": activate_step(session, 0),
            "current_step_index": 0,
            "status": SessionStatus.RUNNING,
        }
    )


def reset(session: Session) -> Session:
    """Fresh Idle session over the same catalog; valid from any state."""
    return session.model_copy(
        update={
            "steps": tuple(step.pending() for step in session.steps),
            "current_step_index": 0,
            "status": SessionStatus.IDLE,
            "interventions": (),
            "rejections": (),
            "final_recommendation_value": None,
            "staged_alternative_id": None,
            "epoch": session.epoch + 1,
        }
    )


def cancel(session: Session) -> Session:
    """Invalidate outstanding timers without touching progress."""
    return session.model_copy(update={"epoch": session.epoch + 1})


def select_alternative(session: Session, alternative_id: str) -> SessionResult:
    return _stage_alternative(session, alternative_id)


def apply_decision(
    session: Session,
    action: DecisionAction,
    alternative_id: Optional[str] = None,
    *,
    config: EngineConfig = DEFAULT_CONFIG,
    now: Optional[datetime] = None,
    reason: Optional[str] = None,
) -> SessionResult:
    outcome = decide(session, action, alternative_id, config=config, now=now, reason=reason)
    if is_error(outcome):
        return outcome
    return outcome.session


def progress(session: Session) -> float:
    done = 1 if session.status == SessionStatus.COMPLETE else 0
    return (session.current_step_index + done) / len(session.steps)


# ------------------------------------------------------------------------------
# Event transition + replay
# ------------------------------------------------------------------------------


@dataclass(frozen=True)
class Transition:
    session: Session
    notice: Optional[InterventionNotice] = None


TransitionResult = Union[Transition, EngineError]


def _timer_event_matches(session: Session, event: SessionEvent) -> bool:
    step = session.current_step
    return event.epoch == session.epoch and step is not None and step.id == event.step_id


def transition(session: Session, event: SessionEvent, *, config: EngineConfig = DEFAULT_CONFIG) -> TransitionResult:
    kind = event.event_kind

    if kind == SessionEventKind.START:
        result: SessionResult = start(session)
    elif kind == SessionEventKind.RESET:
        result = reset(session)
    elif kind == SessionEventKind.CANCEL:
        result = cancel(session)
    elif kind == SessionEventKind.TIMER_FIRED:
        if not _timer_event_matches(session, event):
            return InvalidTransition(
                message="timer event does not belong to the current step",
                session_id=session.id,
                details={"event_epoch": event.epoch, "epoch": session.epoch, "step_id": event.step_id},
            )
        result = advance_on_timer(session)
    elif kind == SessionEventKind.SELECT_ALTERNATIVE:
        result = select_alternative(session, event.alternative_id or "")
    else:
        outcome = decide(
            session,
            event.action or DecisionAction.APPROVE,
            event.alternative_id,
            config=config,
            now=event.timestamp,
            reason=event.reason,
        )
        if is_error(outcome):
            return outcome
        return Transition(session=outcome.session, notice=outcome.notice)

    if is_error(result):
        return result
    return Transition(session=result)


def replay(
    session: Session,
    events: Iterable[SessionEvent],
    *,
    config: EngineConfig = DEFAULT_CONFIG,
) -> SessionResult:
    """Fold recorded events over ``session``; stops at the first event that does not apply."""
    current = session
    for event in events:
        result = transition(current, event, config=config)
        if is_error(result):
            return result
        current = result.session
    return current


# ------------------------------------------------------------------------------
# Live controller
# ------------------------------------------------------------------------------


class SessionController:
    """Drives one session with real (or virtual) timers and host decisions."""

    def __init__(
        self,
        session: Session,
        *,
        timers: TimerService,
        config: EngineConfig = DEFAULT_CONFIG,
        on_intervention: Optional[InterventionListener] = None,
        on_change: Optional[SessionChangeListener] = None,
    ) -> None:
        self._session = session
        self._timers = timers
        self._config = config
        self._scheduler = Scheduler(timers, config)
        self._on_intervention = on_intervention
        self._on_change = on_change
        self._auto_start_token: Optional[TimerToken] = None
        self._events: list[SessionEvent] = []
        self._notices: list[InterventionNotice] = []

    @property
    def session(self) -> Session:
        return self._session

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def events(self) -> tuple[SessionEvent, ...]:
        return tuple(self._events)

    @property
    def notices(self) -> tuple[InterventionNotice, ...]:
        return tuple(self._notices)

    @property
    def audit_log(self) -> AuditLog:
        return AuditLog.of(self._session)

    @property
    def progress(self) -> float:
        return progress(self._session)

    @property
    def current_step(self) -> Optional[Step]:
        return self._session.current_step

    @property
    def awaiting_decision(self) -> bool:
        step = self._session.current_step
        return self._session.status == SessionStatus.PAUSED and step is not None and step.status == StepStatus.INTERVENTION

    # -- host operations ---------------------------------------------------------

    def start(self) -> SessionResult:
        self._cancel_auto_start()
        return self._dispatch(self._event(SessionEventKind.START))

    def auto_start(self) -> bool:
        """Start after the configured delay, as the review panel does when it opens."""
        if self._session.status != SessionStatus.IDLE or self._auto_start_token is not None:
            return False
        epoch = self._session.epoch
        self._auto_start_token = self._timers.schedule(
            lambda: self._auto_start_fired(epoch), self._config.auto_start_delay_ms
        )
        logger.debug("session %s: auto-start in %d ms", self._session.id, self._config.auto_start_delay_ms)
        return True

    def reset(self) -> Session:
        self._disarm()
        # reset never fails; the cast only narrows the union
        return cast(Session, self._dispatch(self._event(SessionEventKind.RESET)))

    def cancel(self) -> Session:
        self._disarm()
        return cast(Session, self._dispatch(self._event(SessionEventKind.CANCEL)))

    def select_alternative(self, alternative_id: str) -> SessionResult:
        return self._dispatch(self._event(SessionEventKind.SELECT_ALTERNATIVE, alternative_id=alternative_id))

    def apply_decision(
        self,
        action: DecisionAction,
        alternative_id: Optional[str] = None,
        *,
        reason: Optional[str] = None,
    ) -> SessionResult:
        parsed = coerce_action(self._session, action)
        if is_error(parsed):
            logger.info("session %s: decision rejected (%s): %s", self._session.id, parsed.code, parsed.message)
            return parsed
        event = self._event(
            SessionEventKind.DECISION,
            action=parsed,
            alternative_id=alternative_id,
            reason=reason,
            timestamp=utc_now(),
        )
        return self._dispatch(event)

    # -- internals ---------------------------------------------------------------

    def _event(self, kind: SessionEventKind, **fields: object) -> SessionEvent:
        step = self._session.current_step
        fields.setdefault("step_id", step.id if step is not None else None)
        return SessionEvent(
            event_kind=kind,
            session_id=self._session.id,
            epoch=self._session.epoch,
            **fields,
        )

    def _disarm(self) -> None:
        self._cancel_auto_start()
        self._scheduler.disarm()

    def _cancel_auto_start(self) -> None:
        if self._auto_start_token is not None:
            self._timers.cancel(self._auto_start_token)
            self._auto_start_token = None

    def _auto_start_fired(self, epoch: int) -> None:
        self._auto_start_token = None
        if epoch != self._session.epoch or self._session.status != SessionStatus.IDLE:
            logger.debug("session %s: dropping stale auto-start", self._session.id)
            return
        self.start()

    def _on_timer(self, fired: TimerFired) -> None:
        if fired.session_id != self._session.id or fired.epoch != self._session.epoch:
            logger.debug("session %s: ignoring timer from epoch %d", self._session.id, fired.epoch)
            return
        self._dispatch(
            self._event(SessionEventKind.TIMER_FIRED, step_id=fired.step_id),
        )

    def _sync_scheduler(self) -> None:
        session = self._session
        step = session.current_step
        if session.status == SessionStatus.RUNNING and step is not None and step.status == StepStatus.PROCESSING:
            if not self._scheduler.is_armed_for(session):
                self._scheduler.arm(session, self._on_timer)
        else:
            self._scheduler.disarm()

    def _dispatch(self, event: SessionEvent) -> SessionResult:
        before = self._session
        result = transition(before, event, config=self._config)
        if is_error(result):
            logger.info("session %s: %s rejected (%s): %s", before.id, event.event_kind.value, result.code, result.message)
            return result

        committed = result.session
        self._session = committed
        self._events.append(event)
        if event.event_kind == SessionEventKind.CANCEL:
            # stays disarmed until the host starts again
            self._scheduler.disarm()
        else:
            self._sync_scheduler()

        if committed.status != before.status:
            logger.info("session %s: %s -> %s", committed.id, before.status.value, committed.status.value)
        for outcome in violations(committed):
            logger.warning(
                "session %s: invariant %s violated (%s): %s",
                committed.id,
                outcome.invariant_id.value,
                outcome.code,
                outcome.reason,
            )

        if self._on_change is not None and committed != before:
            self._on_change(committed)
        if result.notice is not None:
            self._notices.append(result.notice)
            if self._on_intervention is not None:
                self._on_intervention(result.notice.action, result.notice.value)
        return committed
