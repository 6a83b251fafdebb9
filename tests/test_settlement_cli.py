"""Unit tests for scripts/settlement_cli.py."""

from __future__ import annotations

import argparse
import importlib.util
import json
from pathlib import Path
import runpy
import sys
from typing import Any

import pytest

from settlement.config import DEFAULT_CONFIG
from settlement.errors import BackendError, TransientBackendError
from tests.utils.fake_db import FakeSettlementDB, seed_event


ROOT = Path(__file__).resolve().parents[1]
SCRIPT_PATH = ROOT / "scripts" / "settlement_cli.py"
DSN = "postgresql://settle@localhost/equity"


def _load_cli_module(module_name: str) -> Any:
    spec = importlib.util.spec_from_file_location(module_name, SCRIPT_PATH)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


def _wire(monkeypatch: pytest.MonkeyPatch, module: Any, db: FakeSettlementDB, argv: list[str]) -> list[tuple[str, int]]:
    connects: list[tuple[str, int]] = []

    async def _connect(dsn: str, *, statement_timeout_ms: int) -> FakeSettlementDB:
        connects.append((dsn, statement_timeout_ms))
        return db

    monkeypatch.setattr(module, "connect_settlement_db", _connect)
    monkeypatch.setattr(module, "load_settlement_config", lambda: DEFAULT_CONFIG)
    monkeypatch.setattr(sys, "argv", ["settlement_cli.py", "--dsn", DSN, *argv])
    return connects


def test_import_path_branch_adds_root_when_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    root = str(ROOT)
    monkeypatch.setattr(sys, "path", [entry for entry in sys.path if entry != root])

    _load_cli_module("settlement_cli_path_branch")

    assert sys.path[0] == root


def test_parse_decimal_rejects_invalid_and_non_finite() -> None:
    module = _load_cli_module("settlement_cli_decimal")

    assert str(module._parse_decimal(" 12.50 ")) == "12.50"
    for raw in ("abc", "NaN", "Infinity"):
        with pytest.raises(argparse.ArgumentTypeError):
            module._parse_decimal(raw)


def test_blank_caller_id_is_rejected_by_parser(capsys: pytest.CaptureFixture[str]) -> None:
    module = _load_cli_module("settlement_cli_caller")

    with pytest.raises(SystemExit) as exc:
        module._build_parser().parse_args(
            ["settle", "--event-id", "8c2a0a7e-7f4b-4a43-9a58-3f4f1b6c2d10", "--caller-id", "   "]
        )

    assert exc.value.code == 2
    assert "Caller id must be non-empty" in capsys.readouterr().err


def test_settle_command_prints_transfer(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    module = _load_cli_module("settlement_cli_settle")
    seeded = seed_event()
    connects = _wire(
        monkeypatch,
        module,
        seeded.db,
        ["settle", "--event-id", str(seeded.event_id), "--caller-id", "hr-admin-1"],
    )

    assert module.main() == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["success"] is True
    assert payload["plan_type"] == "LTIP_RSU"
    assert payload["transfer"]["transfer_type"] == "vesting"
    assert connects == [(DSN, DEFAULT_CONFIG.statement_timeout_ms)]
    assert seeded.db.closed is True
    assert seeded.db.row("vesting_events", seeded.event_id)["status"] == "transferred"


def test_rejected_command_exits_two(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    module = _load_cli_module("settlement_cli_rejected")
    seeded = seed_event(status="due")
    _wire(
        monkeypatch,
        module,
        seeded.db,
        ["settle", "--event-id", str(seeded.event_id), "--caller-id", "hr-admin-1"],
    )

    assert module.main() == 2

    payload = json.loads(capsys.readouterr().out)
    assert payload["reason_code"] == "EVENT_NOT_VESTED"
    assert payload["transfer"] is None


def test_confirm_command_passes_options(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    module = _load_cli_module("settlement_cli_confirm")
    seeded = seed_event(status="due")
    _wire(
        monkeypatch,
        module,
        seeded.db,
        [
            "confirm",
            "--event-id",
            str(seeded.event_id),
            "--caller-id",
            "plan-admin",
            "--fmv",
            "42.5",
            "--performance-met",
            "--notes",
            "Q4 target reached",
        ],
    )

    assert module.main() == 0

    payload = json.loads(capsys.readouterr().out)
    assert (payload["previous_status"], payload["new_status"]) == ("due", "vested")
    event = seeded.db.row("vesting_events", seeded.event_id)
    assert event["performance_notes"] == "Q4 target reached"
    assert event["performance_condition_met"] is True


def test_stats_command(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    module = _load_cli_module("settlement_cli_stats")
    seeded = seed_event()
    _wire(monkeypatch, module, seeded.db, ["stats", "--company-id", str(seeded.company_id)])

    assert module.main() == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["total_events"] == 1
    assert payload["total_vested_shares"] == "2500"


def test_list_events_command(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    module = _load_cli_module("settlement_cli_list")
    seeded = seed_event()
    _wire(
        monkeypatch,
        module,
        seeded.db,
        ["list-events", "--company-id", str(seeded.company_id), "--status", "vested", "--limit", "5"],
    )

    assert module.main() == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["count"] == 1
    assert payload["events"][0]["employee_name"] == "Sara Haddad"


def test_audit_command_exits_two_when_inconsistent(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    module = _load_cli_module("settlement_cli_audit")
    seeded = seed_event(status="transferred")
    _wire(monkeypatch, module, seeded.db, ["audit", "--company-id", str(seeded.company_id)])

    assert module.main() == 2

    payload = json.loads(capsys.readouterr().out)
    assert payload["consistent"] is False
    assert payload["unlinked_events"][0]["event_id"] == str(seeded.event_id)


def test_backfill_command_with_errors_exits_two(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    module = _load_cli_module("settlement_cli_backfill")
    db = FakeSettlementDB()
    company_id = db.add_company()
    employee_id = db.add_employee(company_id)
    plan_id = db.add_plan(company_id)
    grant_id = db.add_grant(company_id, plan_id, employee_id)
    db.failing_schedule_grants.add(grant_id)
    _wire(
        monkeypatch,
        module,
        db,
        ["backfill-schedules", "--company-id", str(company_id), "--caller-id", "scheduler"],
    )

    assert module.main() == 2

    payload = json.loads(capsys.readouterr().out)
    assert payload["success"] is True
    assert payload["errors"] == 1
    assert payload["promotion"]["success"] is True


def test_backfill_command_exits_two_when_promotion_fails(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    module = _load_cli_module("settlement_cli_backfill_promotion")
    db = FakeSettlementDB()
    company_id = db.add_company()
    employee_id = db.add_employee(company_id)
    db.add_grant(company_id, db.add_plan(company_id), employee_id)
    db.fail_on("update_vesting_event_status", BackendError("function update_vesting_event_status() does not exist"))
    _wire(
        monkeypatch,
        module,
        db,
        ["backfill-schedules", "--company-id", str(company_id), "--caller-id", "scheduler"],
    )

    assert module.main() == 2

    payload = json.loads(capsys.readouterr().out)
    assert payload["reason_code"] == "PROMOTION_FAILED"
    assert payload["errors"] == 0
    assert payload["promotion"]["reason_code"] == "PROCEDURE_FAILED"


def test_connection_failure_prints_error_payload(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    module = _load_cli_module("settlement_cli_connect_error")

    async def _connect(dsn: str, *, statement_timeout_ms: int) -> FakeSettlementDB:
        raise TransientBackendError("connection refused")

    monkeypatch.setattr(module, "connect_settlement_db", _connect)
    monkeypatch.setattr(module, "load_settlement_config", lambda: DEFAULT_CONFIG)
    monkeypatch.setattr(sys, "argv", ["settlement_cli.py", "--dsn", DSN, "promote-due", "--caller-id", "cron"])

    assert module.main() == 2

    payload = json.loads(capsys.readouterr().out)
    assert payload == {
        "success": False,
        "reason_code": "TRANSIENT_BACKEND_ERROR",
        "detail": "connection refused",
        "retryable": True,
    }


def test_missing_dsn_exits(monkeypatch: pytest.MonkeyPatch) -> None:
    module = _load_cli_module("settlement_cli_missing_dsn")
    monkeypatch.setattr(module, "load_settlement_config", lambda: DEFAULT_CONFIG)
    monkeypatch.setattr(sys, "argv", ["settlement_cli.py", "promote-due", "--caller-id", "cron"])

    with pytest.raises(SystemExit, match="Provide --dsn"):
        module.main()


def test_script_main_guard_raises_system_exit(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "argv", ["settlement_cli.py"])

    with pytest.raises(SystemExit) as exc:
        runpy.run_path(str(SCRIPT_PATH), run_name="__main__")

    assert exc.value.code == 2
