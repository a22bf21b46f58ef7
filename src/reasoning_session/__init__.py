"""Reasoning-session engine: stepwise, pausable review workflows with an audit trail."""

from reasoning_session.audit import AuditLog
from reasoning_session.catalog import CatalogLoadError, StepCatalog, load_catalog, parse_catalog
from reasoning_session.config import DEFAULT_CONFIG, EngineConfig
from reasoning_session.contracts import (
    Alternative,
    DecisionAction,
    DecisionNotAccepted,
    EmptyCatalog,
    EngineError,
    EvidenceRef,
    InterventionNotice,
    InterventionRecord,
    InvalidCatalog,
    InvalidSelection,
    InvalidTransition,
    Recommendation,
    Session,
    SessionEvent,
    SessionEventKind,
    SessionResult,
    SessionStatus,
    Step,
    StepStatus,
    is_error,
)
from reasoning_session.controller import (
    SessionController,
    apply_decision,
    cancel,
    new_session,
    progress,
    replay,
    reset,
    select_alternative,
    start,
    transition,
)
from reasoning_session.scheduler import advance_on_timer, processing_duration_ms

__all__ = [
    "Alternative",
    "AuditLog",
    "CatalogLoadError",
    "DEFAULT_CONFIG",
    "DecisionAction",
    "DecisionNotAccepted",
    "EmptyCatalog",
    "EngineConfig",
    "EngineError",
    "EvidenceRef",
    "InterventionNotice",
    "InterventionRecord",
    "InvalidCatalog",
    "InvalidSelection",
    "InvalidTransition",
    "Recommendation",
    "Session",
    "SessionController",
    "SessionEvent",
    "SessionEventKind",
    "SessionResult",
    "SessionStatus",
    "Step",
    "StepCatalog",
    "StepStatus",
    "advance_on_timer",
    "apply_decision",
    "cancel",
    "is_error",
    "load_catalog",
    "new_session",
    "parse_catalog",
    "processing_duration_ms",
    "progress",
    "replay",
    "reset",
    "select_alternative",
    "start",
    "transition",
]
