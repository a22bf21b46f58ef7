"""
Step catalogs supplied by the host.

A catalog is an ordered list of step definitions. It may be given as Python
mappings or loaded from JSON, either as a bare list or as an object with
``context``, ``session_id`` and ``steps``. Keys written by the web client
(``reasoning``, ``isInterventionPoint``, ``conclusion``) are accepted alongside
the engine's own field names. Any status fields in the input are ignored: a
catalog always describes pending steps.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from reasoning_session.contracts import Step

PathLike = Union[str, Path]

_FIELD_ALIASES = {
    "reasoning": "reasoning_text",
    "reasoningText": "reasoning_text",
    "conclusion": "conclusion_text",
    "conclusionText": "conclusion_text",
    "isInterventionPoint": "is_intervention_point",
    "evidenceRefs": "evidence",
}

_RUNTIME_FIELDS = {"status", "resolved_value", "resolvedValue"}


class CatalogLoadError(ValueError):
    """Raised when a catalog file or payload cannot be turned into step definitions."""


@dataclass(frozen=True)
class StepCatalog:
    steps: tuple[Step, ...]
    context: str = ""
    session_id: Optional[str] = None

    def __len__(self) -> int:
        return len(self.steps)


def _normalize_step(raw: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in raw.items():
        name = _FIELD_ALIASES.get(str(key), str(key))
        if name in _RUNTIME_FIELDS:
            continue
        out[name] = value
    return out


def parse_steps(payloads: Iterable[Any]) -> tuple[Step, ...]:
    steps: list[Step] = []
    for position, raw in enumerate(payloads):
        if isinstance(raw, Step):
            steps.append(raw.pending())
            continue
        if not isinstance(raw, Mapping):
            raise CatalogLoadError(f"step #{position} must be an object, got {type(raw).__name__}")
        try:
            steps.append(Step.model_validate(_normalize_step(raw)))
        except ValidationError as exc:
            raise CatalogLoadError(f"step #{position} is invalid: {exc}") from exc
    return tuple(steps)


def parse_catalog(payload: Any) -> StepCatalog:
    if isinstance(payload, list):
        return StepCatalog(steps=parse_steps(payload))
    if not isinstance(payload, Mapping):
        raise CatalogLoadError(f"catalog must be a list or an object, got {type(payload).__name__}")

    raw_steps = payload.get("steps")
    if not isinstance(raw_steps, list):
        raise CatalogLoadError("catalog object requires a 'steps' list")
    context = payload.get("context", payload.get("pageContext", ""))
    session_id = payload.get("session_id", payload.get("id"))
    return StepCatalog(
        steps=parse_steps(raw_steps),
        context=str(context or ""),
        session_id=str(session_id) if session_id else None,
    )


def load_catalog(path: PathLike) -> StepCatalog:
    p = Path(path)
    try:
        payload = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise CatalogLoadError(f"{p} is not valid JSON: {exc}") from exc
    return parse_catalog(payload)
