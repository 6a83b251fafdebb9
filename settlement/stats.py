"""Read-only rollups of vesting events by status and event type."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
import logging
from typing import Any, Iterable, Mapping
from uuid import UUID

from settlement.common import SettlementDatabase
from settlement.numeric import as_decimal_or_zero, decimal_to_str
from settlement.state_machine import (
    ALL_STATUSES,
    CANCELLED,
    DUE,
    EXERCISED,
    FORFEITED,
    PENDING,
    TRANSFERRED,
    VESTED,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VestingEventStats:
    total_events: int
    total_shares: Decimal
    pending_events: int
    due_events: int
    vested_events: int
    transferred_events: int
    exercised_events: int
    forfeited_events: int
    cancelled_events: int
    processed_events: int
    total_pending_shares: Decimal
    total_due_shares: Decimal
    total_vested_shares: Decimal
    total_transferred_shares: Decimal
    total_exercised_shares: Decimal
    total_forfeited_shares: Decimal
    total_cancelled_shares: Decimal
    cliff_events: int
    time_based_events: int
    non_cliff_events: int

    def as_payload(self) -> dict[str, Any]:
        return {
            key: decimal_to_str(value) if isinstance(value, Decimal) else value
            for key, value in asdict(self).items()
        }


def aggregate_stats(rows: Iterable[Mapping[str, Any]]) -> VestingEventStats:
    """Roll up (status, shares_to_vest, event_type) rows; null shares count as zero."""
    counts = {status: 0 for status in ALL_STATUSES}
    shares = {status: Decimal("0") for status in ALL_STATUSES}
    total_events = 0
    total_shares = Decimal("0")
    cliff_events = 0
    time_based_events = 0

    for row in rows:
        status = row.get("status")
        amount = as_decimal_or_zero(row.get("shares_to_vest"))
        event_type = row.get("event_type")
        total_events += 1
        total_shares += amount
        if status in counts:
            counts[status] += 1
            shares[status] += amount
        if event_type == "cliff":
            cliff_events += 1
        elif event_type == "time_based":
            time_based_events += 1

    return VestingEventStats(
        total_events=total_events,
        total_shares=total_shares,
        pending_events=counts[PENDING],
        due_events=counts[DUE],
        vested_events=counts[VESTED],
        transferred_events=counts[TRANSFERRED],
        exercised_events=counts[EXERCISED],
        forfeited_events=counts[FORFEITED],
        cancelled_events=counts[CANCELLED],
        processed_events=counts[TRANSFERRED] + counts[EXERCISED],
        total_pending_shares=shares[PENDING],
        total_due_shares=shares[DUE],
        total_vested_shares=shares[VESTED],
        total_transferred_shares=shares[TRANSFERRED],
        total_exercised_shares=shares[EXERCISED],
        total_forfeited_shares=shares[FORFEITED],
        total_cancelled_shares=shares[CANCELLED],
        cliff_events=cliff_events,
        time_based_events=time_based_events,
        non_cliff_events=total_events - cliff_events,
    )


async def load_company_stats(db: SettlementDatabase, company_id: UUID) -> VestingEventStats:
    rows = await db.fetch_all(
        """
        SELECT status, shares_to_vest, event_type
        FROM vesting_events
        WHERE company_id = :company_id
        """,
        {"company_id": company_id},
    )
    return aggregate_stats(rows)
