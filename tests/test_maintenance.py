"""Unit tests for status promotion and vesting schedule backfill."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
import uuid

from settlement.config import DEFAULT_CONFIG
from settlement.errors import BackendError, TransientBackendError
from settlement.maintenance import ScheduleMaintenance, StoredProcedureGateway
from settlement.records import CallerIdentity
from tests.utils.fake_db import FakeSettlementDB, FixedClock, RecordingNotifier


CALLER = CallerIdentity("scheduler")


def _maintenance(db: FakeSettlementDB, **kwargs) -> ScheduleMaintenance:
    kwargs.setdefault("clock", FixedClock())
    return ScheduleMaintenance(db, **kwargs)


def _company(db: FakeSettlementDB) -> tuple[uuid.UUID, uuid.UUID, uuid.UUID]:
    company_id = db.add_company()
    employee_id = db.add_employee(company_id)
    plan_id = db.add_plan(company_id)
    return company_id, employee_id, plan_id


def test_gateway_reports_missing_procedure() -> None:
    db = FakeSettlementDB()
    db.procedures_available = False

    result = asyncio.run(StoredProcedureGateway(db).update_vesting_event_status())

    assert result.success is False
    assert result.reason_code == "PROCEDURE_FAILED"
    assert result.detail.startswith("update_vesting_event_status:")


def test_gateway_failure_keeps_retryable_flag() -> None:
    db = FakeSettlementDB()
    db.fail_on("generate_vesting_events_for_grant", TransientBackendError("statement timeout"))

    result = asyncio.run(StoredProcedureGateway(db).generate_vesting_events_for_grant(uuid.uuid4()))

    assert result.success is False
    assert result.retryable is True


def test_promotion_moves_due_pending_events_and_notifies() -> None:
    db = FakeSettlementDB()
    company_id, employee_id, plan_id = _company(db)
    grant_id = db.add_grant(company_id, plan_id, employee_id)
    due_today = db.add_event(grant_id, status="pending", vesting_date=db.today)
    future = db.add_event(grant_id, status="pending", vesting_date=db.today + timedelta(days=1))
    notifier = RecordingNotifier()

    result = asyncio.run(_maintenance(db, notifier=notifier).promote_due_events(CALLER))

    assert result.success is True
    assert db.row("vesting_events", due_today)["status"] == "due"
    assert db.row("vesting_events", future)["status"] == "pending"
    assert [change.action for change in notifier.changes] == ["promotion"]
    assert notifier.changes[0].caller_id == "scheduler"


def test_promotion_notification_can_be_disabled() -> None:
    db = FakeSettlementDB()
    notifier = RecordingNotifier()
    config = replace(DEFAULT_CONFIG, notify_on_promotion=False)

    result = asyncio.run(_maintenance(db, notifier=notifier, config=config).promote_due_events(CALLER))

    assert result.success is True
    assert notifier.changes == []


def test_failed_promotion_is_reported_without_notification() -> None:
    db = FakeSettlementDB()
    db.procedures_available = False
    notifier = RecordingNotifier()

    result = asyncio.run(_maintenance(db, notifier=notifier).promote_due_events(CALLER))

    assert result.success is False
    assert notifier.changes == []


def test_grants_without_events_lists_newest_first() -> None:
    db = FakeSettlementDB()
    company_id, employee_id, plan_id = _company(db)
    older = db.add_grant(company_id, plan_id, employee_id, created_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
    newer = db.add_grant(company_id, plan_id, employee_id, created_at=datetime(2026, 2, 1, tzinfo=timezone.utc))
    with_events = db.add_grant(company_id, plan_id, employee_id)
    db.add_event(with_events, status="pending")
    db.add_grant(company_id, plan_id, employee_id, status="cancelled")

    grants = asyncio.run(_maintenance(db).grants_without_events(company_id))

    assert [grant.grant_id for grant in grants] == [newer, older]
    assert grants[0].employee_name == "Sara Haddad"
    assert grants[0].plan_code == "LTIP-2026"
    assert grants[0].total_shares == Decimal("10000")


def test_backfill_generates_missing_schedules_and_promotes() -> None:
    db = FakeSettlementDB()
    company_id, employee_id, plan_id = _company(db)
    bare = db.add_grant(company_id, plan_id, employee_id, created_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
    scheduled = db.add_grant(company_id, plan_id, employee_id, created_at=datetime(2026, 1, 2, tzinfo=timezone.utc))
    db.add_event(scheduled, status="pending", vesting_date=db.today + timedelta(days=90))

    report = asyncio.run(_maintenance(db).backfill_schedules(company_id, CALLER))

    assert report.success is True
    assert report.reason_code == "OK"
    assert (report.total_grants, report.selected_grants) == (2, 2)
    assert (report.processed, report.skipped, report.errors) == (1, 1, 0)
    assert report.promotion is not None and report.promotion.success is True
    generated = [row for row in db.tables["vesting_events"] if row["grant_id"] == bare]
    assert len(generated) == 1
    # Generated cliff event is dated today, so the trailing promotion makes it due.
    assert generated[0]["status"] == "due"


def test_backfill_respects_grant_selection() -> None:
    db = FakeSettlementDB()
    company_id, employee_id, plan_id = _company(db)
    chosen = db.add_grant(company_id, plan_id, employee_id)
    ignored = db.add_grant(company_id, plan_id, employee_id)

    report = asyncio.run(_maintenance(db).backfill_schedules(company_id, CALLER, grant_ids=[chosen]))

    assert (report.selected_grants, report.processed, report.skipped) == (1, 1, 1)
    assert not any(row["grant_id"] == ignored for row in db.tables["vesting_events"])


def test_backfill_collects_per_grant_failures() -> None:
    db = FakeSettlementDB()
    company_id, employee_id, plan_id = _company(db)
    good = db.add_grant(company_id, plan_id, employee_id, created_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
    bad = db.add_grant(company_id, plan_id, employee_id, created_at=datetime(2026, 1, 2, tzinfo=timezone.utc))
    db.failing_schedule_grants.add(bad)

    report = asyncio.run(_maintenance(db).backfill_schedules(company_id, CALLER))

    assert report.success is True
    assert report.reason_code == "PARTIAL_FAILURE"
    assert (report.processed, report.errors) == (1, 1)
    assert report.error_details[0].startswith(f"Grant {bad}:")
    assert any(row["grant_id"] == good for row in db.tables["vesting_events"])


def test_backfill_lookup_failure_returns_failed_report() -> None:
    db = FakeSettlementDB()
    company_id, _, _ = _company(db)
    db.fail_on("from grants g left join employees e", BackendError("permission denied for table grants"))

    report = asyncio.run(_maintenance(db).backfill_schedules(company_id, CALLER))

    assert report.success is False
    assert report.reason_code == "BACKEND_ERROR"
    assert report.promotion is None
    assert db.count_statements("update_vesting_event_status") == 0


def test_backfill_reports_failed_status_promotion() -> None:
    db = FakeSettlementDB()
    company_id, employee_id, plan_id = _company(db)
    db.add_grant(company_id, plan_id, employee_id)
    db.fail_on("update_vesting_event_status", BackendError("function update_vesting_event_status() does not exist"))

    report = asyncio.run(_maintenance(db).backfill_schedules(company_id, CALLER))

    assert report.reason_code == "PROMOTION_FAILED"
    assert (report.processed, report.errors) == (1, 0)
    assert report.promotion is not None and report.promotion.success is False
    assert "Status promotion failed" in report.detail
