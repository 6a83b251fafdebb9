"""RSU/RSA settlement: move a vested event's shares from the company pool to the employee."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from settlement.common import SettlementClock, SettlementDatabase
from settlement.config import DEFAULT_CONFIG, SettlementConfig
from settlement.errors import SettlementError, failure_fields
from settlement.event_store import compare_and_set_status, load_event
from settlement.notifications import NullNotifier, SettlementNotifier, SettlementStateChanged, publish
from settlement.portfolio_resolver import PortfolioResolver
from settlement.records import CallerIdentity, SettlementResult, ShareTransferRecord, VestingEventRecord
from settlement.state_machine import TRANSFERRED, VESTED, require_settleable
from settlement.transfers import TransferNumberFactory, TransferWriter, generate_transfer_number

logger = logging.getLogger(__name__)


class SettlementOrchestrator:
    """Transfer workflow for vested RSU/RSA events.

    The transfer insert and the ``vested -> transferred`` compare-and-set run in
    one backend transaction with the event row locked, so concurrent requests for
    the same event produce exactly one transfer.
    """

    def __init__(
        self,
        db: SettlementDatabase,
        *,
        notifier: Optional[SettlementNotifier] = None,
        clock: Optional[SettlementClock] = None,
        config: SettlementConfig = DEFAULT_CONFIG,
        transfer_number_factory: TransferNumberFactory = generate_transfer_number,
    ) -> None:
        self._db = db
        self._notifier = notifier or NullNotifier()
        self._clock = clock or SettlementClock()
        self._resolver = PortfolioResolver(db)
        self._writer = TransferWriter(
            db,
            max_attempts=config.transfer_number_attempts,
            number_factory=transfer_number_factory,
        )

    async def settle(self, event_id: UUID, caller: CallerIdentity) -> SettlementResult:
        """Settle one event; failures come back as a result, never as an exception."""
        try:
            event, transfer = await self._settle(event_id, caller)
        except SettlementError as exc:
            logger.warning(
                "Settlement rejected: event_id=%s caller=%s reason=%s detail=%s",
                event_id,
                caller.caller_id,
                exc.reason_code,
                exc.detail,
            )
            return SettlementResult(success=False, event_id=event_id, **failure_fields(exc))
        except Exception:
            logger.exception("Unexpected settlement failure: event_id=%s caller=%s", event_id, caller.caller_id)
            return SettlementResult(
                success=False,
                reason_code="UNEXPECTED_ERROR",
                detail=f"Unexpected error while settling vesting event {event_id}.",
                event_id=event_id,
            )

        await publish(
            self._notifier,
            SettlementStateChanged(
                action="transfer",
                occurred_at=self._clock.now_utc(),
                event_id=event.event_id,
                company_id=event.company_id,
                employee_id=event.employee_id,
                previous_status=VESTED,
                new_status=TRANSFERRED,
                caller_id=caller.caller_id,
            ),
        )
        return SettlementResult(
            success=True,
            reason_code="OK",
            detail=f"Transferred {transfer.shares_transferred} shares under {transfer.transfer_number}.",
            event_id=event.event_id,
            plan_type=event.plan_type,
            transfer=transfer,
        )

    async def _settle(
        self,
        event_id: UUID,
        caller: CallerIdentity,
    ) -> tuple[VestingEventRecord, ShareTransferRecord]:
        event = await load_event(self._db, event_id)
        require_settleable(event)
        logger.info(
            "Settling vesting event: event_id=%s company_id=%s employee_id=%s shares=%s",
            event.event_id,
            event.company_id,
            event.employee_id,
            event.shares_to_vest,
        )

        now = self._clock.now_utc()
        async with self._db.transaction():
            locked = await load_event(self._db, event_id, for_update=True)
            # Another request may have settled the event since the first read.
            require_settleable(locked)

            portfolios = await self._resolver.resolve_pair(locked.company_id, locked.employee_id)
            transfer = await self._writer.create(
                event=locked,
                portfolios=portfolios,
                shares=locked.shares_to_vest,
                transfer_type="vesting",
                transfer_date=now.date(),
                caller=caller,
                notes=f"Transfer request for vesting event {locked.event_id}",
            )
            await compare_and_set_status(
                self._db,
                event_id=locked.event_id,
                expected_status=VESTED,
                target_status=TRANSFERRED,
                updated_at=now,
                stamps={"portfolio_transaction_id": transfer.transfer_id},
            )

        logger.info(
            "Settled vesting event: event_id=%s company_id=%s employee_id=%s transfer=%s from=%s to=%s",
            locked.event_id,
            locked.company_id,
            locked.employee_id,
            transfer.transfer_number,
            portfolios.source.portfolio_number,
            portfolios.destination.portfolio_number,
        )
        return locked, transfer
