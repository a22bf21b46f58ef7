"""
Engine configuration.

Timing constants for the scheduler, the auto-start delay used when a review
panel opens, and the rejection-trail policy. Loaded from an optional JSON file;
a missing file yields the defaults.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

PathLike = Union[str, Path]

DEFAULT_CONFIG_PATH = Path("thinkgate.json")


class EngineConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    # processing time per character of reasoning text
    ms_per_char: int = Field(default=20, ge=0)
    max_step_duration_ms: int = Field(default=3000, ge=0)
    auto_start_delay_ms: int = Field(default=500, ge=0)
    # keep a separate trail of Reject decisions; never counted as interventions
    record_rejections: bool = False

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> EngineConfig:
        # accept the camelCase keys the web client writes
        renamed = {
            "msPerChar": "ms_per_char",
            "maxStepDurationMs": "max_step_duration_ms",
            "autoStartDelayMs": "auto_start_delay_ms",
            "recordRejections": "record_rejections",
        }
        normalized = {renamed.get(str(k), str(k)): v for k, v in data.items()}
        return cls.model_validate(normalized)

    @classmethod
    def load(cls, path: PathLike | None = None) -> EngineConfig:
        """Load configuration from a JSON file, falling back to defaults when it is absent."""
        p = Path(path) if path is not None else DEFAULT_CONFIG_PATH
        if not p.exists():
            return cls()

        data = json.loads(p.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object in {p}, got {type(data).__name__}")
        return cls.from_mapping(data)

    def save(self, path: PathLike | None = None) -> Path:
        p = Path(path) if path is not None else DEFAULT_CONFIG_PATH
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(json.dumps(self.model_dump(mode="json"), indent=2) + "\n", encoding="utf-8")
        return p


DEFAULT_CONFIG = EngineConfig()
