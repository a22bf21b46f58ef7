from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from reasoning_session.adapters.timers import ManualTimerService, TimerToken
from reasoning_session.contracts import Alternative, Recommendation, Session, Step


@pytest.fixture
def timers() -> ManualTimerService:
    return ManualTimerService()


@pytest.fixture
def make_step() -> Callable[..., Step]:
    def _make_step(
        step_id: str = "step-1",
        *,
        title: str = "Analyzing Dataset Structure",
        reasoning_text: str = "Inspect the manifest.",
        intervention: bool = False,
        value: str | None = "patient",
        alternatives: tuple[str, ...] = (),
        confidence: int | None = 90,
    ) -> Step:
        recommendation = None
        if value is not None:
            recommendation = Recommendation(
                value=value,
                alternatives=tuple(Alternative(id=alt, label=alt.title()) for alt in alternatives),
            )
        return Step(
            id=step_id,
            title=title,
            reasoning_text=reasoning_text,
            confidence=confidence,
            is_intervention_point=intervention,
            recommendation=recommendation,
        )

    return _make_step


@pytest.fixture
def make_session(make_step: Callable[..., Step]) -> Callable[..., Session]:
    def _make_session(*steps: Step, session_id: str = "session:test", context: str = "test") -> Session:
        return Session(id=session_id, context=context, steps=steps or (make_step(),))

    return _make_session


@pytest.fixture
def checkpoint_session(make_step: Callable[..., Step], make_session: Callable[..., Session]) -> Session:
    """Single checkpoint recommending X, with Y offered as the alternative."""
    return make_session(
        make_step("step-1", reasoning_text="Based on the evidence.", intervention=True, value="X", alternatives=("Y",))
    )


@pytest.fixture
def split_catalog_rows() -> list[dict[str, Any]]:
    return [
        {
            "id": "step-1",
            "title": "Analyzing Dataset Structure",
            "reasoning": "Inspect the manifest.",
            "evidence": [{"id": "ev-1", "type": "metadata", "title": "Dataset manifest"}],
            "conclusion": "Multiple images per patient.",
            "confidence": 95,
            "isInterventionPoint": False,
        },
        {
            "id": "step-2",
            "title": "Recommending Strategy",
            "reasoning": "Patient-level split prevents leakage.",
            "isInterventionPoint": True,
            "confidence": 98,
            "recommendation": {
                "value": "patient",
                "alternatives": [
                    {"id": "stratified", "label": "Stratified", "description": "Balance labels"},
                    {"id": "random", "label": "Random", "description": "Image-level split"},
                ],
            },
        },
    ]


class LeakyTimerService(ManualTimerService):
    """Timer service whose cancel reports success but never stops the callback."""

    def cancel(self, token: TimerToken) -> bool:
        return token in self._live


@pytest.fixture
def leaky_timers() -> LeakyTimerService:
    return LeakyTimerService()
