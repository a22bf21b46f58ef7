from __future__ import annotations

from typing import Optional, Protocol

from reasoning_session.contracts import DecisionAction, Session


class InterventionListener(Protocol):
    """Host hook fired once per resolved decision; applies side effects the engine does not own."""

    def __call__(self, action: DecisionAction, value: Optional[str]) -> None:
        ...


class SessionChangeListener(Protocol):
    """Host hook receiving every committed session snapshot, e.g. to re-render."""

    def __call__(self, session: Session) -> None:
        ...
