from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from reasoning_session.adapters.timers import ManualTimerService
from reasoning_session.contracts import DecisionAction
from reasoning_session.controller import SessionController


@dataclass
class ReviewStepState:
    step_rows: list[dict[str, Any]] = field(default_factory=list)
    timers: ManualTimerService = field(default_factory=ManualTimerService)
    controller: Optional[SessionController] = None
    notices: list[tuple[DecisionAction, Optional[str]]] = field(default_factory=list)
    last_result: Any = None

    def record_notice(self, action: DecisionAction, value: Optional[str]) -> None:
        self.notices.append((action, value))

    def require_controller(self) -> SessionController:
        if self.controller is None:
            raise AssertionError("no review session has been created in this scenario")
        return self.controller


def get_review_step_state(context: Any) -> ReviewStepState:
    state = getattr(context, "_review_step_state", None)
    if not isinstance(state, ReviewStepState):
        state = ReviewStepState()
        setattr(context, "_review_step_state", state)
    return state

