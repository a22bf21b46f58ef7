# reasoning_session/audit.py
from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from reasoning_session.adapters.persistence import JsonObj, append_intervention_record, read_jsonl
from reasoning_session.contracts import InterventionRecord, Session

PathLike = Union[str, Path]


@dataclass(frozen=True)
class AuditLog:
    """
    Append-only trail of resolved decisions.

    Entries are never reordered or replaced; ``append`` returns a new log.
    Answers "why did the session end with this value": every Approve/Modify
    that shaped the outcome appears exactly once, in the order it was applied.
    """

    records: tuple[InterventionRecord, ...] = ()

    @classmethod
    def of(cls, session: Session) -> AuditLog:
        return cls(records=session.interventions)

    def append(self, record: InterventionRecord) -> AuditLog:
        return AuditLog(records=self.records + (record,))

    def for_step(self, step_id: str) -> tuple[InterventionRecord, ...]:
        return tuple(r for r in self.records if r.step_id == step_id)

    def latest(self) -> Optional[InterventionRecord]:
        return self.records[-1] if self.records else None

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[InterventionRecord]:
        return iter(self.records)

    def export_jsonl(self, path: PathLike, *, session_id: Optional[str] = None) -> Optional[JsonObj]:
        """Append every record to ``path``; returns an evidence ref to the first written line."""
        first_ref: Optional[JsonObj] = None
        for record in self.records:
            ref = append_intervention_record(path, record, session_id=session_id)
            if first_ref is None:
                first_ref = ref
        return first_ref

    @classmethod
    def load_jsonl(cls, path: PathLike, *, session_id: Optional[str] = None) -> AuditLog:
        return cls(records=tuple(_iter_records(read_jsonl(path), session_id=session_id)))


def _iter_records(
    rows: Iterable[tuple[JsonObj, JsonObj]], *, session_id: Optional[str]
) -> Iterator[InterventionRecord]:
    for _, raw in rows:
        if raw.get("event_kind") != "intervention_record":
            continue
        if session_id is not None and raw.get("session_id") != session_id:
            continue
        payload = {k: v for k, v in raw.items() if k not in {"event_kind", "session_id"}}
        yield InterventionRecord.model_validate(payload)
