"""Unit tests for the assembled settlement engine facade."""

from __future__ import annotations

import asyncio
from decimal import Decimal

from settlement import CallerIdentity, build_engine
from tests.utils.fake_db import FixedClock, RecordingNotifier, seed_event


CALLER = CallerIdentity("hr-admin-1")


def test_engine_runs_a_full_lifecycle() -> None:
    seeded = seed_event(status="due", shares_to_vest=Decimal("2500"))
    notifier = RecordingNotifier()
    engine = build_engine(seeded.db, notifier=notifier, clock=FixedClock())

    async def _scenario():
        confirmed = await engine.confirm_vesting(seeded.event_id, CALLER, fair_market_value="12.00")
        settled = await engine.settle(seeded.event_id, CALLER)
        stats = await engine.stats(seeded.company_id)
        listing = await engine.list_company_events(seeded.company_id, status="transferred")
        report = await engine.audit(seeded.company_id)
        return confirmed, settled, stats, listing, report

    confirmed, settled, stats, listing, report = asyncio.run(_scenario())

    assert confirmed.success is True
    assert settled.success is True
    assert stats.transferred_events == 1
    assert stats.total_transferred_shares == Decimal("2500")
    assert [event.event_id for event in listing] == [seeded.event_id]
    assert report.is_consistent is True
    assert [change.action for change in notifier.changes] == ["confirm", "transfer"]


def test_engine_routes_esop_events_to_exercise() -> None:
    seeded = seed_event(plan_type="ESOP", plan_exercise_price=Decimal("4.50"))
    engine = build_engine(seeded.db, clock=FixedClock())

    settle = asyncio.run(engine.settle(seeded.event_id, CALLER))
    exercise = asyncio.run(engine.exercise(seeded.event_id, CALLER))

    assert settle.reason_code == "PLAN_TYPE_NOT_SETTLEABLE"
    assert exercise.success is True
    assert exercise.total_exercise_cost == Decimal("11250.00")


def test_engine_backfill_and_promotion() -> None:
    seeded = seed_event(status="pending")
    engine = build_engine(seeded.db, clock=FixedClock())

    promotion = asyncio.run(engine.promote_due_events(CALLER))
    backfill = asyncio.run(engine.backfill_schedules(seeded.company_id, CALLER))

    assert promotion.success is True
    assert seeded.db.row("vesting_events", seeded.event_id)["status"] == "due"
    assert (backfill.processed, backfill.skipped) == (0, 1)
