# reasoning_session/adapters/persistence.py
from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple, Union

from pydantic import BaseModel

from reasoning_session.contracts import InterventionRecord, SessionEvent

JsonObj = Dict[str, Any]
PathLike = Union[str, Path]

AUDIT_LOG_PATH = Path("artifacts/interventions.jsonl")
SESSION_EVENTS_PATH = Path("artifacts/session_events.jsonl")


def _to_jsonable(x: Any) -> Any:
    if x is None:
        return None
    if isinstance(x, BaseModel):
        return x.model_dump(mode="json")
    if is_dataclass(x) and not isinstance(x, type):
        return _to_jsonable(asdict(x))
    if isinstance(x, Enum):
        return x.value
    if isinstance(x, datetime):
        return x.isoformat()
    if isinstance(x, dict):
        return {str(k): _to_jsonable(v) for k, v in x.items()}
    if isinstance(x, (list, tuple)):
        return [_to_jsonable(v) for v in x]
    return x


def _next_offset(p: Path) -> int:
    if not p.exists():
        return 1
    return len(p.read_text(encoding="utf-8").splitlines()) + 1


def append_jsonl(path: PathLike, record: Any) -> JsonObj:
    """Append one JSON object line; returns an evidence ref ``{"kind": "jsonl", "ref": "<name>@<line>"}``."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    offset = _next_offset(p)
    obj = _to_jsonable(record)
    if not isinstance(obj, dict):
        raise ValueError(f"append_jsonl expects a dict-like record, got {type(obj).__name__}")

    # enforce "one JSON object per line"
    line = json.dumps(obj, ensure_ascii=False)
    with p.open("a", encoding="utf-8") as f:
        f.write(line + "\n")
    return {"kind": "jsonl", "ref": f"{p.name}@{offset}"}


def read_jsonl(path: PathLike) -> Iterator[Tuple[JsonObj, JsonObj]]:
    """
    Yields (meta, obj) for each JSON object line.
    - meta includes line number and source path.
    - obj is the parsed dict.
    """
    p = Path(path)
    with p.open("r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            s = line.strip()
            if not s:
                continue
            obj = json.loads(s)
            if not isinstance(obj, dict):
                raise ValueError(f"Expected JSON object on line {lineno}, got {type(obj).__name__}")
            meta: JsonObj = {"path": str(p), "lineno": lineno}
            yield meta, obj


def append_intervention_record(
    path: PathLike = AUDIT_LOG_PATH,
    record: Optional[InterventionRecord] = None,
    *,
    session_id: Optional[str] = None,
) -> JsonObj:
    if record is None:
        raise ValueError("append_intervention_record requires a record")
    event: JsonObj = {"event_kind": "intervention_record", **_to_jsonable(record)}
    if session_id:
        event["session_id"] = session_id
    return append_jsonl(path, event)


def append_session_event(path: PathLike = SESSION_EVENTS_PATH, event: Optional[SessionEvent] = None) -> JsonObj:
    if event is None:
        raise ValueError("append_session_event requires an event")
    return append_jsonl(path, {"record_kind": "session_event", **_to_jsonable(event)})


def iter_session_events(path: PathLike, *, session_id: Optional[str] = None) -> Iterator[SessionEvent]:
    """Yield recorded session events in file order, skipping rows of other kinds."""
    for _, raw in read_jsonl(path):
        if raw.get("record_kind") != "session_event":
            continue
        if session_id is not None and raw.get("session_id") != session_id:
            continue
        payload = {k: v for k, v in raw.items() if k != "record_kind"}
        yield SessionEvent.model_validate(payload)
