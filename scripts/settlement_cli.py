#!/usr/bin/env python3
"""Operator CLI for vesting settlement, lifecycle changes, listings and audits."""

from __future__ import annotations

import argparse
import asyncio
from decimal import Decimal, InvalidOperation
import json
import logging
from pathlib import Path
import sys
from typing import Any, Optional
from uuid import UUID

# Ensure repository root is importable when script is executed by path.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from settlement.config import SettlementConfig, load_settlement_config
from settlement.engine import SettlementEngine, build_engine
from settlement.errors import SettlementError
from settlement.notifications import LoggingNotifier
from settlement.numeric import decimal_to_str
from settlement.psycopg_db import connect_settlement_db
from settlement.records import (
    BackfillReport,
    CallerIdentity,
    ExerciseResult,
    ProcedureResult,
    SettlementResult,
    TransitionResult,
)

logger = logging.getLogger("settlement_cli")

_MUTATING_COMMANDS = frozenset(
    {"settle", "exercise", "confirm", "forfeit", "cancel", "promote-due", "backfill-schedules"}
)


def _parse_decimal(value: str) -> Decimal:
    try:
        parsed = Decimal(value.strip())
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"Invalid decimal: {value}") from exc
    if not parsed.is_finite():
        raise argparse.ArgumentTypeError(f"Decimal must be finite: {value}")
    return parsed


def _parse_caller_id(value: str) -> str:
    if not value.strip():
        raise argparse.ArgumentTypeError("Caller id must be non-empty.")
    return value.strip()


def _optional_decimal(value: Optional[Decimal]) -> Optional[str]:
    return decimal_to_str(value) if value is not None else None


def _settlement_payload(result: SettlementResult) -> dict[str, Any]:
    return {
        "success": result.success,
        "reason_code": result.reason_code,
        "detail": result.detail,
        "retryable": result.retryable,
        "event_id": str(result.event_id),
        "plan_type": result.plan_type,
        "transfer": result.transfer.as_payload() if result.transfer else None,
    }


def _exercise_payload(result: ExerciseResult) -> dict[str, Any]:
    return {
        "success": result.success,
        "reason_code": result.reason_code,
        "detail": result.detail,
        "retryable": result.retryable,
        "event_id": str(result.event_id),
        "shares_exercised": _optional_decimal(result.shares_exercised),
        "exercise_price": _optional_decimal(result.exercise_price),
        "total_exercise_cost": _optional_decimal(result.total_exercise_cost),
        "transfer": result.transfer.as_payload() if result.transfer else None,
    }


def _transition_payload(result: TransitionResult) -> dict[str, Any]:
    return {
        "success": result.success,
        "reason_code": result.reason_code,
        "detail": result.detail,
        "retryable": result.retryable,
        "event_id": str(result.event_id),
        "previous_status": result.previous_status,
        "new_status": result.new_status,
    }


def _procedure_payload(result: ProcedureResult) -> dict[str, Any]:
    return {
        "success": result.success,
        "reason_code": result.reason_code,
        "detail": result.detail,
        "retryable": result.retryable,
    }


def _backfill_payload(report: BackfillReport) -> dict[str, Any]:
    return {
        "success": report.success,
        "reason_code": report.reason_code,
        "detail": report.detail,
        "total_grants": report.total_grants,
        "selected_grants": report.selected_grants,
        "processed": report.processed,
        "skipped": report.skipped,
        "errors": report.errors,
        "error_details": list(report.error_details),
        "promotion": _procedure_payload(report.promotion) if report.promotion else None,
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Vesting event settlement CLI")
    parser.add_argument("--dsn", help="PostgreSQL DSN (defaults to SETTLEMENT_DATABASE_URL)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    def _event_command(name: str, help_text: str) -> argparse.ArgumentParser:
        cmd = subparsers.add_parser(name, help=help_text)
        cmd.add_argument("--event-id", required=True, type=UUID)
        cmd.add_argument("--caller-id", required=True, type=_parse_caller_id)
        return cmd

    _event_command("settle", "Transfer a vested RSU/RSA event to the employee portfolio")
    exercise_cmd = _event_command("exercise", "Exercise a vested ESOP event")
    exercise_cmd.add_argument("--shares", type=_parse_decimal, default=None)
    confirm_cmd = _event_command("confirm", "Confirm a due event as vested")
    confirm_cmd.add_argument("--fmv", type=_parse_decimal, default=None)
    confirm_cmd.add_argument("--performance-met", action=argparse.BooleanOptionalAction, default=None)
    confirm_cmd.add_argument("--notes", default=None)
    _event_command("forfeit", "Forfeit a non-terminal event")
    _event_command("cancel", "Cancel a non-terminal event")

    stats_cmd = subparsers.add_parser("stats", help="Company vesting event rollup")
    stats_cmd.add_argument("--company-id", required=True, type=UUID)

    list_cmd = subparsers.add_parser("list-events", help="List company vesting events with details")
    list_cmd.add_argument("--company-id", required=True, type=UUID)
    list_cmd.add_argument("--status", default=None)
    list_cmd.add_argument("--event-type", default=None)
    list_cmd.add_argument("--grant-id", dest="grant_ids", action="append", type=UUID, default=None)
    list_cmd.add_argument("--limit", type=int, default=None)

    audit_cmd = subparsers.add_parser("audit", help="Reconcile transfers against settled events")
    audit_cmd.add_argument("--company-id", required=True, type=UUID)

    promote_cmd = subparsers.add_parser("promote-due", help="Run the pending -> due promotion procedure")
    promote_cmd.add_argument("--caller-id", required=True, type=_parse_caller_id)

    backfill_cmd = subparsers.add_parser(
        "backfill-schedules",
        help="Generate vesting events for active grants that have none",
    )
    backfill_cmd.add_argument("--company-id", required=True, type=UUID)
    backfill_cmd.add_argument("--caller-id", required=True, type=_parse_caller_id)
    backfill_cmd.add_argument("--grant-id", dest="grant_ids", action="append", type=UUID, default=None)

    return parser


async def _dispatch(engine: SettlementEngine, args: argparse.Namespace) -> tuple[dict[str, Any], int]:
    caller = CallerIdentity(args.caller_id) if args.command in _MUTATING_COMMANDS else None

    if args.command == "settle":
        result = await engine.settle(args.event_id, caller)
        return _settlement_payload(result), 0 if result.success else 2

    if args.command == "exercise":
        exercise_result = await engine.exercise(args.event_id, caller, args.shares)
        return _exercise_payload(exercise_result), 0 if exercise_result.success else 2

    if args.command == "confirm":
        transition = await engine.confirm_vesting(
            args.event_id,
            caller,
            fair_market_value=args.fmv,
            performance_condition_met=args.performance_met,
            notes=args.notes,
        )
        return _transition_payload(transition), 0 if transition.success else 2

    if args.command in ("forfeit", "cancel"):
        operation = engine.forfeit if args.command == "forfeit" else engine.cancel
        transition = await operation(args.event_id, caller)
        return _transition_payload(transition), 0 if transition.success else 2

    if args.command == "stats":
        stats = await engine.stats(args.company_id)
        return stats.as_payload(), 0

    if args.command == "list-events":
        events = await engine.list_company_events(
            args.company_id,
            status=args.status,
            event_type=args.event_type,
            grant_ids=args.grant_ids,
            limit=args.limit,
        )
        return {"count": len(events), "events": [event.as_payload() for event in events]}, 0

    if args.command == "audit":
        report = await engine.audit(args.company_id)
        return report.as_payload(), 0 if report.is_consistent else 2

    if args.command == "promote-due":
        promotion = await engine.promote_due_events(caller)
        return _procedure_payload(promotion), 0 if promotion.success else 2

    backfill = await engine.backfill_schedules(args.company_id, caller, args.grant_ids)
    return _backfill_payload(backfill), 0 if backfill.reason_code == "OK" else 2


async def _run(args: argparse.Namespace, config: SettlementConfig) -> tuple[dict[str, Any], int]:
    dsn = args.dsn or config.require_database_url()
    db = await connect_settlement_db(dsn, statement_timeout_ms=config.statement_timeout_ms)
    try:
        engine = build_engine(db, config=config, notifier=LoggingNotifier())
        return await _dispatch(engine, args)
    finally:
        await db.close()


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    config = load_settlement_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.dsn is None and config.database_url is None:
        raise SystemExit("Missing DB connection args. Provide --dsn or set SETTLEMENT_DATABASE_URL.")

    try:
        payload, exit_code = asyncio.run(_run(args, config))
    except SettlementError as exc:
        logger.error("Settlement CLI command %s failed: %s", args.command, exc.detail)
        payload = {
            "success": False,
            "reason_code": exc.reason_code,
            "detail": exc.detail,
            "retryable": exc.retryable,
        }
        exit_code = 2
    print(json.dumps(payload, sort_keys=True))
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
