"""Unit tests for vesting confirmation, forfeiture and cancellation."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from settlement.lifecycle import VestingLifecycle, _grant_deltas
from settlement.records import CallerIdentity
from tests.utils.fake_db import FIXED_NOW, FakeSettlementDB, FixedClock, RecordingNotifier, seed_event


CALLER = CallerIdentity("plan-admin")


def _lifecycle(db: FakeSettlementDB, notifier: RecordingNotifier | None = None) -> VestingLifecycle:
    return VestingLifecycle(db, notifier=notifier, clock=FixedClock())


def test_grant_delta_rules() -> None:
    shares = Decimal("100")
    assert _grant_deltas("due", "vested", shares) == {"vested": shares, "unvested": -shares}
    assert _grant_deltas("pending", "forfeited", shares) == {"forfeited": shares, "unvested": -shares}
    assert _grant_deltas("vested", "forfeited", shares) == {"forfeited": shares, "vested": -shares}
    assert _grant_deltas("due", "cancelled", shares) == {}
    assert _grant_deltas("vested", "cancelled", shares) == {}


def test_confirm_due_event_moves_shares_into_vested_counter() -> None:
    seeded = seed_event(status="due", shares_to_vest=Decimal("2500"))
    db = seeded.db
    notifier = RecordingNotifier()

    result = asyncio.run(
        _lifecycle(db, notifier).confirm_vesting(
            seeded.event_id,
            CALLER,
            fair_market_value="31.2",
            notes="Board approved",
        )
    )

    assert result.success is True
    assert (result.previous_status, result.new_status) == ("due", "vested")
    event = db.row("vesting_events", seeded.event_id)
    assert event["status"] == "vested"
    assert event["fair_market_value"] == Decimal("31.200000")
    assert event["performance_notes"] == "Board approved"
    assert event["processed_by"] == "plan-admin"
    assert event["processed_at"] == FIXED_NOW
    grant = db.row("grants", seeded.grant_id)
    assert grant["vested_shares"] == Decimal("2500")
    assert grant["remaining_unvested_shares"] == Decimal("7500")
    assert [change.action for change in notifier.changes] == ["confirm"]


def test_confirm_rejects_non_due_event() -> None:
    seeded = seed_event(status="pending")

    result = asyncio.run(_lifecycle(seeded.db).confirm_vesting(seeded.event_id, CALLER))

    assert result.success is False
    assert result.reason_code == "EVENT_NOT_DUE"
    assert seeded.db.row("vesting_events", seeded.event_id)["status"] == "pending"


def test_confirm_rejects_negative_fair_market_value() -> None:
    seeded = seed_event(status="due")

    result = asyncio.run(
        _lifecycle(seeded.db).confirm_vesting(seeded.event_id, CALLER, fair_market_value="-1")
    )

    assert result.success is False
    assert result.reason_code == "INVALID_FAIR_MARKET_VALUE"


def test_performance_event_with_linked_metrics_requires_confirmation() -> None:
    seeded = seed_event(status="due", event_type="performance")
    db = seeded.db
    db.link_metric(seeded.grant_id, db.add_metric(seeded.company_id))

    rejected = asyncio.run(_lifecycle(db).confirm_vesting(seeded.event_id, CALLER))
    assert rejected.success is False
    assert rejected.reason_code == "PERFORMANCE_NOT_CONFIRMED"
    assert db.row("vesting_events", seeded.event_id)["status"] == "due"

    accepted = asyncio.run(
        _lifecycle(db).confirm_vesting(seeded.event_id, CALLER, performance_condition_met=True)
    )
    assert accepted.success is True
    assert db.row("vesting_events", seeded.event_id)["performance_condition_met"] is True


def test_performance_event_without_linked_metrics_vests_directly() -> None:
    seeded = seed_event(status="due", event_type="performance")

    result = asyncio.run(_lifecycle(seeded.db).confirm_vesting(seeded.event_id, CALLER))

    assert result.success is True


@pytest.mark.parametrize(
    ("status", "vested_after", "remaining_after"),
    [
        ("pending", Decimal("0"), Decimal("7500")),
        ("vested", Decimal("0"), Decimal("7500")),
    ],
)
def test_forfeit_adjusts_grant_counters(status: str, vested_after: Decimal, remaining_after: Decimal) -> None:
    seeded = seed_event(status=status, shares_to_vest=Decimal("2500"))
    db = seeded.db
    grant = db.row("grants", seeded.grant_id)
    if status == "vested":
        grant["vested_shares"] = Decimal("2500")
        grant["remaining_unvested_shares"] = Decimal("7500")

    result = asyncio.run(_lifecycle(db).forfeit(seeded.event_id, CALLER))

    assert result.success is True
    assert (result.previous_status, result.new_status) == (status, "forfeited")
    grant = db.row("grants", seeded.grant_id)
    assert grant["forfeited_shares"] == Decimal("2500")
    assert grant["vested_shares"] == vested_after
    assert grant["remaining_unvested_shares"] == remaining_after


def test_cancel_due_event() -> None:
    seeded = seed_event(status="due")
    notifier = RecordingNotifier()
    grant_before = dict(seeded.db.row("grants", seeded.grant_id))

    result = asyncio.run(_lifecycle(seeded.db, notifier).cancel(seeded.event_id, CALLER))

    assert result.success is True
    assert seeded.db.row("vesting_events", seeded.event_id)["status"] == "cancelled"
    assert notifier.changes[0].action == "cancel"
    assert notifier.changes[0].previous_status == "due"
    assert seeded.db.row("grants", seeded.grant_id) == grant_before
    assert seeded.db.count_statements("update grants set") == 0


@pytest.mark.parametrize("status", ["transferred", "exercised", "forfeited", "cancelled"])
def test_terminal_events_cannot_be_closed(status: str) -> None:
    seeded = seed_event(status=status)

    forfeit = asyncio.run(_lifecycle(seeded.db).forfeit(seeded.event_id, CALLER))
    cancel = asyncio.run(_lifecycle(seeded.db).cancel(seeded.event_id, CALLER))

    assert forfeit.reason_code == "ILLEGAL_TRANSITION"
    assert cancel.reason_code == "ILLEGAL_TRANSITION"
    assert seeded.db.row("vesting_events", seeded.event_id)["status"] == status
