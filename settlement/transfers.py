"""Share transfer record creation with collision-checked numbering."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
import logging
from typing import Callable, Optional
import uuid

from settlement.common import SettlementDatabase
from settlement.errors import DuplicateKeyError, InconsistentStateError, TransientBackendError
from settlement.portfolio_resolver import PortfolioPair
from settlement.records import CallerIdentity, ShareTransferRecord, VestingEventRecord

logger = logging.getLogger(__name__)

TRANSFER_NUMBER_CONSTRAINT = "uq_share_transfers_transfer_number"
ACTIVE_EVENT_TRANSFER_CONSTRAINT = "uq_share_transfers_active_vesting_event"

TransferNumberFactory = Callable[[date], str]


def generate_transfer_number(transfer_date: date, token: Optional[str] = None) -> str:
    """TR-YYYYMMDD-<12 upper hex chars of a uuid4>."""
    suffix = token if token is not None else uuid.uuid4().hex[:12].upper()
    return f"TR-{transfer_date:%Y%m%d}-{suffix}"


class TransferWriter:
    """Insert share_transfers rows, retrying on transfer-number collisions."""

    def __init__(
        self,
        db: SettlementDatabase,
        *,
        max_attempts: int,
        number_factory: TransferNumberFactory = generate_transfer_number,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._db = db
        self._max_attempts = max_attempts
        self._number_factory = number_factory

    async def create(
        self,
        *,
        event: VestingEventRecord,
        portfolios: PortfolioPair,
        shares: Decimal,
        transfer_type: str,
        transfer_date: date,
        caller: CallerIdentity,
        notes: str,
    ) -> ShareTransferRecord:
        for attempt in range(1, self._max_attempts + 1):
            transfer_number = self._number_factory(transfer_date)
            try:
                # Savepoint so a collision does not abort the enclosing transaction.
                async with self._db.transaction():
                    row = await self._db.fetch_one(
                        """
                        INSERT INTO share_transfers (
                            transfer_number, company_id, grant_id, employee_id, vesting_event_id,
                            from_portfolio_id, to_portfolio_id, shares_transferred, transfer_type,
                            transfer_date, status, processed_by_system, initiated_by, notes
                        )
                        VALUES (
                            :transfer_number, :company_id, :grant_id, :employee_id, :vesting_event_id,
                            :from_portfolio_id, :to_portfolio_id, :shares_transferred, :transfer_type,
                            :transfer_date, 'pending', FALSE, :initiated_by, :notes
                        )
                        RETURNING id, transfer_number, company_id, grant_id, employee_id, vesting_event_id,
                                  from_portfolio_id, to_portfolio_id, shares_transferred, transfer_type,
                                  transfer_date, status, initiated_by, notes
                        """,
                        {
                            "transfer_number": transfer_number,
                            "company_id": event.company_id,
                            "grant_id": event.grant_id,
                            "employee_id": event.employee_id,
                            "vesting_event_id": event.event_id,
                            "from_portfolio_id": portfolios.source.portfolio_id,
                            "to_portfolio_id": portfolios.destination.portfolio_id,
                            "shares_transferred": shares,
                            "transfer_type": transfer_type,
                            "transfer_date": transfer_date,
                            "initiated_by": caller.audit_label,
                            "notes": notes,
                        },
                    )
            except DuplicateKeyError as exc:
                if exc.constraint == ACTIVE_EVENT_TRANSFER_CONSTRAINT:
                    raise InconsistentStateError(
                        f"Vesting event {event.event_id} already has an active share transfer.",
                        reason_code="ACTIVE_TRANSFER_EXISTS",
                    ) from exc
                if exc.constraint != TRANSFER_NUMBER_CONSTRAINT:
                    raise
                logger.warning(
                    "Transfer number collision on %s (attempt %d/%d): event_id=%s",
                    transfer_number,
                    attempt,
                    self._max_attempts,
                    event.event_id,
                )
                continue
            if row is None:
                raise InconsistentStateError(f"Share transfer insert returned no row for event {event.event_id}.")
            return ShareTransferRecord.from_row(row)

        raise TransientBackendError(
            f"Could not allocate a unique transfer number after {self._max_attempts} attempts "
            f"for event {event.event_id}.",
            reason_code="TRANSFER_NUMBER_EXHAUSTED",
        )
