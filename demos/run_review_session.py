from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Optional, Sequence

from reasoning_session.catalog import CatalogLoadError
from reasoning_session.config import EngineConfig
from reasoning_session.contracts import is_error
from reasoning_session.demo_runner import ScriptedDecision, run_catalog_file, summarize


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a step catalog through the reasoning-session engine on a virtual clock.")
    parser.add_argument("--catalog", required=True, help="Path to a step catalog JSON file.")
    parser.add_argument(
        "--decision",
        action="append",
        default=[],
        metavar="ACTION[:ALTERNATIVE]",
        help="Decision applied at the next checkpoint (approve, reject, modify:<id>). Repeat for multiple checkpoints.",
    )
    parser.add_argument("--audit-out", default=None, help="Append the resulting audit log to this JSONL file.")
    parser.add_argument("--config", default=None, help="Engine configuration JSON (defaults apply when absent).")
    parser.add_argument("--log-level", default="WARNING", help="Logging level for engine diagnostics.")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    config = EngineConfig.load(args.config) if args.config else EngineConfig()
    decisions = [ScriptedDecision.parse(item) for item in args.decision]
    try:
        result = run_catalog_file(args.catalog, decisions, config=config)
    except CatalogLoadError as exc:
        print(json.dumps({"code": "catalog_load_error", "message": str(exc)}, indent=2))
        return 1
    if is_error(result):
        print(json.dumps(result.to_payload(), indent=2))
        return 1

    if args.audit_out:
        result.audit_log.export_jsonl(Path(args.audit_out), session_id=result.session.id)

    print(json.dumps(summarize(result), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
