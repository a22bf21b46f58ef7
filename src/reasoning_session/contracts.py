# reasoning_session/contracts.py
from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, ClassVar, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing_extensions import TypeGuard

from reasoning_session._compat import UTC, Self, StrEnum

# ------------------------------------------------------------------------------
# Shared BaseModel config helpers
# ------------------------------------------------------------------------------

_IMMUTABLE_CONTRACT_CONFIG = ConfigDict(
    extra="forbid",
    use_enum_values=False,  # keep enums as enums in Python
    frozen=True,
)


# ------------------------------------------------------------------------------
# Status enums
# ------------------------------------------------------------------------------


class StepStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    INTERVENTION = "intervention"
    COMPLETE = "complete"


class SessionStatus(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETE = "complete"


class DecisionAction(StrEnum):
    APPROVE = "approve"
    MODIFY = "modify"
    REJECT = "reject"


ACTIVE_STEP_STATUSES = frozenset({StepStatus.PROCESSING, StepStatus.INTERVENTION})


# ------------------------------------------------------------------------------
# Step catalog
# ------------------------------------------------------------------------------


class EvidenceRef(BaseModel):
    """Opaque host-owned evidence label. The engine carries it, never reads it."""

    model_config = _IMMUTABLE_CONTRACT_CONFIG
    kind: str = Field(min_length=1)
    ref: str = Field(min_length=1)

    @classmethod
    def from_raw(cls, payload: object) -> EvidenceRef:
        """Normalize a raw evidence payload into a typed reference."""
        if isinstance(payload, cls):
            return payload

        if isinstance(payload, str):
            return cls(kind="label", ref=payload)

        if isinstance(payload, Mapping):
            # web catalogs ship {id, type, title, detail}
            raw_kind = payload.get("kind", payload.get("type"))
            raw_ref = payload.get("ref", payload.get("title", payload.get("id")))
            return cls.model_validate(
                {
                    "kind": str(raw_kind or "unknown"),
                    "ref": "" if raw_ref is None else str(raw_ref),
                }
            )

        raise ValueError("evidence payload must be a string, a mapping, or an EvidenceRef")

    @classmethod
    def parse_many(cls, payloads: Iterable[object]) -> tuple[EvidenceRef, ...]:
        return tuple(cls.from_raw(payload) for payload in payloads)


class Alternative(BaseModel):
    model_config = _IMMUTABLE_CONTRACT_CONFIG
    id: str = Field(min_length=1)
    label: str = ""
    description: str = ""

    @property
    def value(self) -> str:
        return self.id


class Recommendation(BaseModel):
    model_config = _IMMUTABLE_CONTRACT_CONFIG
    value: str
    alternatives: tuple[Alternative, ...] = ()

    @model_validator(mode="after")
    def _unique_alternative_ids(self) -> Self:
        ids = [alt.id for alt in self.alternatives]
        if len(ids) != len(set(ids)):
            raise ValueError("alternative ids must be unique within a recommendation")
        return self

    def find_alternative(self, alternative_id: str) -> Optional[Alternative]:
        for alt in self.alternatives:
            if alt.id == alternative_id:
                return alt
        return None


class Step(BaseModel):
    model_config = _IMMUTABLE_CONTRACT_CONFIG

    id: str = Field(min_length=1)
    title: str
    reasoning_text: str = ""
    evidence: tuple[EvidenceRef, ...] = ()
    conclusion_text: Optional[str] = None
    confidence: Optional[int] = Field(default=None, ge=0, le=100)
    is_intervention_point: bool = False
    recommendation: Optional[Recommendation] = None
    status: StepStatus = StepStatus.PENDING
    resolved_value: Optional[str] = None

    @field_validator("evidence", mode="before")
    @classmethod
    def _normalize_evidence(cls, value: object) -> tuple[EvidenceRef, ...]:
        if value is None:
            return ()
        if not isinstance(value, (list, tuple)):
            raise ValueError("evidence must be a list")
        return EvidenceRef.parse_many(value)

    @model_validator(mode="after")
    def _resolved_only_when_complete(self) -> Self:
        if self.resolved_value is not None and self.status != StepStatus.COMPLETE:
            raise ValueError("resolved_value is only allowed on complete steps")
        return self

    @property
    def recommended_value(self) -> Optional[str]:
        return self.recommendation.value if self.recommendation is not None else None

    def pending(self) -> Step:
        return self.model_copy(update={"status": StepStatus.PENDING, "resolved_value": None})


# ------------------------------------------------------------------------------
# Audit records
# ------------------------------------------------------------------------------


class InterventionRecord(BaseModel):
    model_config = _IMMUTABLE_CONTRACT_CONFIG

    step_id: str
    action: DecisionAction
    original_value: Optional[str] = None
    new_value: Optional[str] = None
    reason: Optional[str] = None
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _aware_timestamp(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @model_validator(mode="after")
    def _new_value_only_for_modify(self) -> Self:
        if self.new_value is not None and self.action != DecisionAction.MODIFY:
            raise ValueError("new_value is only recorded for modify decisions")
        return self


class InterventionNotice(BaseModel):
    """What the host is told once a decision has been resolved."""

    model_config = _IMMUTABLE_CONTRACT_CONFIG
    session_id: str
    step_id: str
    action: DecisionAction
    value: Optional[str] = None


# ------------------------------------------------------------------------------
# Session
# ------------------------------------------------------------------------------


class Session(BaseModel):
    model_config = _IMMUTABLE_CONTRACT_CONFIG

    id: str
    context: str = ""
    steps: tuple[Step, ...]
    current_step_index: int = Field(default=0, ge=0)
    status: SessionStatus = SessionStatus.IDLE
    interventions: tuple[InterventionRecord, ...] = ()
    rejections: tuple[InterventionRecord, ...] = ()
    final_recommendation_value: Optional[str] = None
    staged_alternative_id: Optional[str] = None
    epoch: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _validate_catalog_shape(self) -> Self:
        if not self.steps:
            raise ValueError("a session requires at least one step")
        ids = [step.id for step in self.steps]
        if len(ids) != len(set(ids)):
            raise ValueError("step ids must be unique within a session")
        if self.current_step_index > len(self.steps):
            raise ValueError("current_step_index is out of range")
        return self

    @property
    def current_step(self) -> Optional[Step]:
        if self.current_step_index < len(self.steps):
            return self.steps[self.current_step_index]
        return None

    @property
    def is_last_step(self) -> bool:
        return self.current_step_index >= len(self.steps) - 1

    def step_by_id(self, step_id: str) -> Optional[Step]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def replace_step(self, index: int, step: Step) -> tuple[Step, ...]:
        return self.steps[:index] + (step,) + self.steps[index + 1 :]


# ------------------------------------------------------------------------------
# Events (timer + host stimuli), recorded for replay
# ------------------------------------------------------------------------------


class SessionEventKind(StrEnum):
    START = "start"
    RESET = "reset"
    CANCEL = "cancel"
    TIMER_FIRED = "timer_fired"
    SELECT_ALTERNATIVE = "select_alternative"
    DECISION = "decision"


class TimerFired(BaseModel):
    model_config = _IMMUTABLE_CONTRACT_CONFIG
    session_id: str
    epoch: int
    step_id: str
    step_index: int


class SessionEvent(BaseModel):
    model_config = _IMMUTABLE_CONTRACT_CONFIG

    event_kind: SessionEventKind
    session_id: str
    epoch: int = 0
    step_id: Optional[str] = None
    action: Optional[DecisionAction] = None
    alternative_id: Optional[str] = None
    reason: Optional[str] = None
    timestamp: Optional[datetime] = None

    @model_validator(mode="after")
    def _decision_requires_action(self) -> Self:
        if self.event_kind == SessionEventKind.DECISION and self.action is None:
            raise ValueError("decision events require an action")
        return self


# ------------------------------------------------------------------------------
# Error values (returned, never raised across the engine boundary)
# ------------------------------------------------------------------------------


class EngineError(BaseModel):
    model_config = _IMMUTABLE_CONTRACT_CONFIG

    code: ClassVar[str] = "engine_error"

    message: str
    session_id: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {"code": self.code, **self.model_dump(mode="json")}


class InvalidTransition(EngineError):
    code: ClassVar[str] = "invalid_transition"


class DecisionNotAccepted(InvalidTransition):
    """A decision arrived while the session was not waiting for one."""

    code: ClassVar[str] = "decision_not_accepted"


class InvalidSelection(EngineError):
    code: ClassVar[str] = "invalid_selection"


class EmptyCatalog(EngineError):
    code: ClassVar[str] = "empty_catalog"


class InvalidCatalog(EngineError):
    """Step definitions that cannot form a session (malformed rows, duplicate ids)."""

    code: ClassVar[str] = "invalid_catalog"


SessionResult = Union[Session, EngineError]


def is_error(result: object) -> TypeGuard[EngineError]:
    return isinstance(result, EngineError)
