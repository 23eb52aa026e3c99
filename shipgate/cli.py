#!/usr/bin/env python3
"""Command-line entry point for shipgate.

Examples:
    shipgate run --context metrics.json
    shipgate exceptions create --gate critical-functionality \\
        --criteria test-pass-rate --reason "Flaky suite" --approver qa-lead --expires-in-hours 24
    shipgate thresholds adjust major --min-pass-rate 85
    shipgate history show --limit 10

Exit codes: 0 when the run passes (or warns), 1 when it fails or an id is
unknown, 2 on configuration, storage or input errors.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from shipgate.config import load_manager_settings
from shipgate.error_handling import ShipgateError, log_shipgate_error
from shipgate.logging_config import init_logging
from shipgate.manager import QualityGateManager
from shipgate.quality_gates.models import GateLevel, GateStatus, parse_timestamp, utc_now
from shipgate.quality_reports import build_report_payload

logger = logging.getLogger("shipgate.cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ERROR = 2


def _load_json_file(path: Path) -> Any:
    if not path.is_file():
        raise SystemExit(f"file not found: {path}")
    with open(path, encoding="utf-8") as handle:
        return json.load(handle)


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2))


def _cmd_run(manager: QualityGateManager, args: argparse.Namespace) -> int:
    context = _load_json_file(args.context) if args.context else {}
    if not isinstance(context, dict):
        raise SystemExit("metrics context must be a JSON object")

    result = manager.execute_quality_gates(context)
    if args.json:
        _emit(build_report_payload(result, manager.get_configuration()))
    else:
        print(f"Overall status: {result.overall_status.value.upper()}")
        for execution in result.executions:
            print(f"  {execution.gate_id}: {execution.status.value.upper()} ({execution.overall_score:.1f}/100)")
        for line in result.recommendations:
            print(line)
        if result.report_key:
            print(f"Report: {result.report_key}")
    return EXIT_FAILED if result.overall_status == GateStatus.FAIL else EXIT_OK


def _cmd_exceptions(manager: QualityGateManager, args: argparse.Namespace) -> int:
    if args.exceptions_command == "create":
        if args.expires_at:
            expires_at = parse_timestamp(args.expires_at)
        else:
            expires_at = utc_now() + timedelta(hours=args.expires_in_hours)
        exception_id = manager.create_exception(
            args.gate,
            args.reason,
            args.approver,
            expires_at,
            criteria_id=args.criteria,
            conditions=args.condition,
        )
        print(exception_id)
        return EXIT_OK

    if args.exceptions_command == "deactivate":
        if manager.deactivate_exception(args.exception_id):
            print(f"Deactivated {args.exception_id}")
            return EXIT_OK
        print(f"Exception not found: {args.exception_id}", file=sys.stderr)
        return EXIT_FAILED

    _emit([e.to_dict() for e in manager.get_exceptions(active_only=args.active_only)])
    return EXIT_OK


def _cmd_thresholds(manager: QualityGateManager, args: argparse.Namespace) -> int:
    adjustments: Dict[str, Any] = {}
    if args.min_pass_rate is not None:
        adjustments["min_pass_rate"] = args.min_pass_rate
    if args.max_failures is not None:
        adjustments["max_failures"] = args.max_failures
    manager.adjust_quality_thresholds(args.level, adjustments)
    level = GateLevel(args.level)
    _emit(manager.get_configuration().threshold_for(level).to_dict())
    return EXIT_OK


def _cmd_config(manager: QualityGateManager, args: argparse.Namespace) -> int:
    if args.config_command == "replace":
        manager.replace_configuration(_load_json_file(args.file))
    _emit(manager.get_configuration().to_dict())
    return EXIT_OK


def _cmd_history(manager: QualityGateManager, args: argparse.Namespace) -> int:
    _emit([e.to_dict() for e in manager.get_execution_history(limit=args.limit)])
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shipgate", description="Evaluate release quality gates.")
    parser.add_argument("--storage-root", default=None, help="Directory holding settings and reports.")
    parser.add_argument("--log-json", action="store_true", default=None, help="Emit JSON log lines.")
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO).")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run every enabled gate against a metrics context.")
    run.add_argument("--context", type=Path, default=None, help="JSON file with the metrics context.")
    run.add_argument("--json", action="store_true", help="Print the run as a JSON report.")

    exceptions = subparsers.add_parser("exceptions", help="Manage gate exceptions.")
    exc_sub = exceptions.add_subparsers(dest="exceptions_command", required=True)
    create = exc_sub.add_parser("create", help="Create an exception.")
    create.add_argument("--gate", required=True)
    create.add_argument("--criteria", default=None, help="Limit the exception to one criterion.")
    create.add_argument("--reason", required=True)
    create.add_argument("--approver", required=True)
    expiry = create.add_mutually_exclusive_group(required=True)
    expiry.add_argument("--expires-at", default=None, help="ISO-8601 expiry timestamp.")
    expiry.add_argument("--expires-in-hours", type=float, default=None)
    create.add_argument("--condition", action="append", default=[])
    deactivate = exc_sub.add_parser("deactivate", help="Deactivate an exception.")
    deactivate.add_argument("exception_id")
    listing = exc_sub.add_parser("list", help="List exceptions.")
    listing.add_argument("--active-only", action="store_true")

    thresholds = subparsers.add_parser("thresholds", help="Adjust level thresholds.")
    thr_sub = thresholds.add_subparsers(dest="thresholds_command", required=True)
    adjust = thr_sub.add_parser("adjust", help="Partially update one level's thresholds.")
    adjust.add_argument("level", choices=[level.value for level in GateLevel])
    adjust.add_argument("--min-pass-rate", type=float, default=None)
    adjust.add_argument("--max-failures", type=int, default=None)

    config = subparsers.add_parser("config", help="Show or replace the gate configuration.")
    cfg_sub = config.add_subparsers(dest="config_command", required=True)
    cfg_sub.add_parser("show", help="Print the configuration document.")
    replace = cfg_sub.add_parser("replace", help="Validate and install a configuration document.")
    replace.add_argument("file", type=Path)

    history = subparsers.add_parser("history", help="Inspect execution history.")
    hist_sub = history.add_subparsers(dest="history_command", required=True)
    show = hist_sub.add_parser("show", help="Print recent gate executions.")
    show.add_argument("--limit", type=int, default=None)

    return parser


_COMMANDS = {
    "run": _cmd_run,
    "exceptions": _cmd_exceptions,
    "thresholds": _cmd_thresholds,
    "config": _cmd_config,
    "history": _cmd_history,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    level = None
    if args.log_level:
        level = logging.getLevelName(args.log_level.upper())
        if isinstance(level, str):
            level = logging.INFO
    init_logging(level=level, json_enabled=args.log_json)

    overrides = {"storage_root": args.storage_root} if args.storage_root else None
    try:
        manager = QualityGateManager.from_settings(load_manager_settings(overrides))
        manager.initialize()
        return _COMMANDS[args.command](manager, args)
    except ShipgateError as exc:
        log_shipgate_error(exc, f"{args.command} failed", logger=logger)
        print(f"error: {exc.message}", file=sys.stderr)
        return EXIT_ERROR
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
