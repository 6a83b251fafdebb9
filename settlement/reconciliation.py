"""Audit queries for partially completed settlements."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import Any, Optional
from uuid import UUID

from settlement.common import SettlementDatabase
from settlement.numeric import as_decimal, decimal_to_str

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrphanedTransfer:
    """Active transfer whose originating event is not in the matching terminal status."""

    transfer_id: UUID
    transfer_number: str
    vesting_event_id: Optional[UUID]
    transfer_type: str
    transfer_status: str
    shares_transferred: Decimal
    event_status: Optional[str]


@dataclass(frozen=True)
class UnlinkedSettledEvent:
    """Settled event with no active transfer of the matching type."""

    event_id: UUID
    grant_id: UUID
    employee_id: UUID
    status: str
    shares_to_vest: Decimal


@dataclass(frozen=True)
class ReconciliationReport:
    company_id: UUID
    orphaned_transfers: tuple[OrphanedTransfer, ...]
    unlinked_events: tuple[UnlinkedSettledEvent, ...]

    @property
    def is_consistent(self) -> bool:
        return not self.orphaned_transfers and not self.unlinked_events

    def as_payload(self) -> dict[str, Any]:
        return {
            "company_id": str(self.company_id),
            "consistent": self.is_consistent,
            "orphaned_transfers": [
                {
                    "transfer_id": str(item.transfer_id),
                    "transfer_number": item.transfer_number,
                    "vesting_event_id": str(item.vesting_event_id) if item.vesting_event_id else None,
                    "transfer_type": item.transfer_type,
                    "transfer_status": item.transfer_status,
                    "shares_transferred": decimal_to_str(item.shares_transferred),
                    "event_status": item.event_status,
                }
                for item in self.orphaned_transfers
            ],
            "unlinked_events": [
                {
                    "event_id": str(item.event_id),
                    "grant_id": str(item.grant_id),
                    "employee_id": str(item.employee_id),
                    "status": item.status,
                    "shares_to_vest": decimal_to_str(item.shares_to_vest),
                }
                for item in self.unlinked_events
            ],
        }


class ReconciliationAuditor:
    def __init__(self, db: SettlementDatabase) -> None:
        self._db = db

    async def find_orphaned_transfers(self, company_id: UUID) -> tuple[OrphanedTransfer, ...]:
        rows = await self._db.fetch_all(
            """
            SELECT transfer_id, transfer_number, vesting_event_id, transfer_type,
                   transfer_status, shares_transferred, event_status
            FROM v_orphaned_share_transfers
            WHERE company_id = :company_id
            ORDER BY transfer_number
            """,
            {"company_id": company_id},
        )
        return tuple(
            OrphanedTransfer(
                transfer_id=row["transfer_id"],
                transfer_number=row["transfer_number"],
                vesting_event_id=row.get("vesting_event_id"),
                transfer_type=row["transfer_type"],
                transfer_status=row["transfer_status"],
                shares_transferred=as_decimal(row["shares_transferred"]),
                event_status=row.get("event_status"),
            )
            for row in rows
        )

    async def find_unlinked_settled_events(self, company_id: UUID) -> tuple[UnlinkedSettledEvent, ...]:
        rows = await self._db.fetch_all(
            """
            SELECT ve.id, ve.grant_id, ve.employee_id, ve.status, ve.shares_to_vest
            FROM vesting_events ve
            WHERE ve.company_id = :company_id
              AND ve.status IN ('transferred', 'exercised')
              AND NOT EXISTS (
                SELECT 1
                FROM share_transfers st
                WHERE st.vesting_event_id = ve.id
                  AND st.status <> 'cancelled'
                  AND (
                    (ve.status = 'transferred' AND st.transfer_type = 'vesting')
                    OR (ve.status = 'exercised' AND st.transfer_type = 'exercise')
                  )
              )
            ORDER BY ve.vesting_date, ve.id
            """,
            {"company_id": company_id},
        )
        return tuple(
            UnlinkedSettledEvent(
                event_id=row["id"],
                grant_id=row["grant_id"],
                employee_id=row["employee_id"],
                status=row["status"],
                shares_to_vest=as_decimal(row["shares_to_vest"]),
            )
            for row in rows
        )

    async def audit(self, company_id: UUID) -> ReconciliationReport:
        orphaned = await self.find_orphaned_transfers(company_id)
        unlinked = await self.find_unlinked_settled_events(company_id)
        if orphaned or unlinked:
            logger.warning(
                "Settlement audit found inconsistencies: company_id=%s orphaned_transfers=%d unlinked_events=%d",
                company_id,
                len(orphaned),
                len(unlinked),
            )
        return ReconciliationReport(company_id=company_id, orphaned_transfers=orphaned, unlinked_events=unlinked)
