"""Reads and guarded writes against vesting_events and grants."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Mapping, Optional
from uuid import UUID

from settlement.common import SettlementDatabase
from settlement.errors import ConcurrentModificationError, EventNotFoundError, InconsistentStateError
from settlement.records import VestingEventRecord

logger = logging.getLogger(__name__)

_EVENT_SELECT = """
    SELECT ve.id, ve.grant_id, ve.employee_id, ve.company_id, ve.event_type,
           ve.sequence_number, ve.vesting_date, ve.shares_to_vest, ve.status,
           ve.exercise_price, ve.portfolio_transaction_id,
           g.company_id AS grant_company_id, g.grant_number,
           g.exercise_price AS grant_exercise_price, g.vesting_schedule_id,
           ip.plan_type, ip.exercise_price AS plan_exercise_price
    FROM vesting_events ve
    JOIN grants g ON g.id = ve.grant_id
    JOIN incentive_plans ip ON ip.id = g.plan_id
    WHERE ve.id = :event_id
"""

# Columns an orchestrator may stamp alongside a status change.
_STAMPABLE_COLUMNS: frozenset[str] = frozenset(
    {
        "processed_at",
        "processed_by",
        "exercise_price",
        "fair_market_value",
        "total_exercise_cost",
        "performance_condition_met",
        "performance_notes",
        "portfolio_transaction_id",
    }
)


async def load_event(
    db: SettlementDatabase,
    event_id: UUID,
    *,
    for_update: bool = False,
) -> VestingEventRecord:
    """Load an event joined with grant and plan; optionally lock the event row."""
    sql = _EVENT_SELECT + ("    FOR UPDATE OF ve\n" if for_update else "")
    row = await db.fetch_one(sql, {"event_id": event_id})
    if row is None:
        raise EventNotFoundError(f"Vesting event not found: {event_id}.")
    return VestingEventRecord.from_row(row)


async def compare_and_set_status(
    db: SettlementDatabase,
    *,
    event_id: UUID,
    expected_status: str,
    target_status: str,
    updated_at: datetime,
    stamps: Optional[Mapping[str, Any]] = None,
) -> Mapping[str, Any]:
    """Move an event to target_status only if it still holds expected_status."""
    stamps = dict(stamps or {})
    unknown = sorted(set(stamps) - _STAMPABLE_COLUMNS)
    if unknown:
        raise ValueError(f"Unsupported vesting_events stamp columns: {unknown}")

    assignments = ["status = :target_status", "updated_at = :updated_at"]
    assignments.extend(f"{column} = :{column}" for column in sorted(stamps))
    sql = f"""
        UPDATE vesting_events
        SET {", ".join(assignments)}
        WHERE id = :event_id
          AND status = :expected_status
        RETURNING id, status
    """
    params: dict[str, Any] = {
        "event_id": event_id,
        "expected_status": expected_status,
        "target_status": target_status,
        "updated_at": updated_at,
        **stamps,
    }
    row = await db.fetch_one(sql, params)
    if row is None:
        raise ConcurrentModificationError(
            f"Vesting event {event_id} is no longer {expected_status}; status update to {target_status} rejected."
        )
    return row


async def apply_grant_deltas(
    db: SettlementDatabase,
    *,
    grant_id: UUID,
    updated_at: datetime,
    vested: Decimal = Decimal("0"),
    exercised: Decimal = Decimal("0"),
    forfeited: Decimal = Decimal("0"),
    unvested: Decimal = Decimal("0"),
) -> None:
    """Adjust grant share counters; a missing remaining counter is derived from totals."""
    row = await db.fetch_one(
        """
        UPDATE grants
        SET vested_shares = GREATEST(vested_shares + :vested_delta, 0),
            exercised_shares = GREATEST(exercised_shares + :exercised_delta, 0),
            forfeited_shares = GREATEST(forfeited_shares + :forfeited_delta, 0),
            remaining_unvested_shares = GREATEST(
                COALESCE(remaining_unvested_shares, total_shares - vested_shares - forfeited_shares)
                + :unvested_delta,
                0
            ),
            updated_at = :updated_at
        WHERE id = :grant_id
        RETURNING id
        """,
        {
            "grant_id": grant_id,
            "vested_delta": vested,
            "exercised_delta": exercised,
            "forfeited_delta": forfeited,
            "unvested_delta": unvested,
            "updated_at": updated_at,
        },
    )
    if row is None:
        raise InconsistentStateError(f"Grant {grant_id} disappeared while adjusting share counters.")


async def grant_has_linked_metrics(db: SettlementDatabase, grant_id: UUID) -> bool:
    row = await db.fetch_one(
        """
        SELECT COUNT(*) AS link_count
        FROM grant_performance_metrics
        WHERE grant_id = :grant_id
        """,
        {"grant_id": grant_id},
    )
    return row is not None and int(row["link_count"]) > 0
