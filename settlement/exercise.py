"""ESOP exercise: price the exercised options and record the matching share transfer."""

from __future__ import annotations

from decimal import Decimal
import logging
from typing import Any, Optional
from uuid import UUID

from settlement.common import SettlementClock, SettlementDatabase
from settlement.config import DEFAULT_CONFIG, SettlementConfig
from settlement.errors import PreconditionError, SettlementError, failure_fields
from settlement.event_store import apply_grant_deltas, compare_and_set_status, load_event
from settlement.notifications import NullNotifier, SettlementNotifier, SettlementStateChanged, publish
from settlement.numeric import MONEY_SCALE, as_decimal, normalize_decimal
from settlement.portfolio_resolver import PortfolioResolver
from settlement.records import CallerIdentity, ExerciseResult, VestingEventRecord
from settlement.state_machine import EXERCISED, VESTED, require_exercisable
from settlement.transfers import TransferNumberFactory, TransferWriter, generate_transfer_number

logger = logging.getLogger(__name__)


def resolve_exercise_shares(event: VestingEventRecord, requested: Optional[Any]) -> Decimal:
    """Full tranche by default; a partial request must be within (0, shares_to_vest]."""
    if requested is None:
        return event.shares_to_vest
    try:
        shares = normalize_decimal(as_decimal(requested))
    except ArithmeticError as exc:
        raise PreconditionError(
            f"Invalid exercise share count: {requested}.",
            reason_code="INVALID_EXERCISE_SHARES",
        ) from exc
    if shares.is_nan() or shares <= 0 or shares > event.shares_to_vest:
        raise PreconditionError(
            f"Exercise share count {shares} must be > 0 and <= {event.shares_to_vest}.",
            reason_code="INVALID_EXERCISE_SHARES",
        )
    return shares


def compute_exercise_cost(shares: Decimal, exercise_price: Decimal) -> Decimal:
    return normalize_decimal(shares * exercise_price, MONEY_SCALE)


def _exercise_terms(event: VestingEventRecord, requested: Optional[Any]) -> tuple[Decimal, Decimal, Decimal]:
    require_exercisable(event)
    shares = resolve_exercise_shares(event, requested)
    price = event.resolve_exercise_price()
    if price is None:
        raise PreconditionError(
            f"No exercise price on event, grant or plan for vesting event {event.event_id}.",
            reason_code="EXERCISE_PRICE_MISSING",
        )
    return shares, price, compute_exercise_cost(shares, price)


class ExerciseOrchestrator:
    """Exercise workflow for vested ESOP events."""

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

    async def exercise(
        self,
        event_id: UUID,
        caller: CallerIdentity,
        shares: Optional[Any] = None,
    ) -> ExerciseResult:
        try:
            result = await self._exercise(event_id, caller, shares)
        except SettlementError as exc:
            logger.warning(
                "Exercise rejected: event_id=%s caller=%s reason=%s detail=%s",
                event_id,
                caller.caller_id,
                exc.reason_code,
                exc.detail,
            )
            return ExerciseResult(success=False, event_id=event_id, **failure_fields(exc))
        except Exception:
            logger.exception("Unexpected exercise failure: event_id=%s caller=%s", event_id, caller.caller_id)
            return ExerciseResult(
                success=False,
                reason_code="UNEXPECTED_ERROR",
                detail=f"Unexpected error while exercising vesting event {event_id}.",
                event_id=event_id,
            )

        await publish(
            self._notifier,
            SettlementStateChanged(
                action="exercise",
                occurred_at=self._clock.now_utc(),
                event_id=event_id,
                company_id=result.transfer.company_id if result.transfer else None,
                employee_id=result.transfer.employee_id if result.transfer else None,
                previous_status=VESTED,
                new_status=EXERCISED,
                caller_id=caller.caller_id,
            ),
        )
        return result

    async def _exercise(self, event_id: UUID, caller: CallerIdentity, requested: Optional[Any]) -> ExerciseResult:
        event = await load_event(self._db, event_id)
        shares, price, cost = _exercise_terms(event, requested)
        logger.info(
            "Exercising vesting event: event_id=%s company_id=%s employee_id=%s shares=%s price=%s cost=%s",
            event.event_id,
            event.company_id,
            event.employee_id,
            shares,
            price,
            cost,
        )

        now = self._clock.now_utc()
        async with self._db.transaction():
            locked = await load_event(self._db, event_id, for_update=True)
            # Price and cost are stamped from the locked row, not the first read.
            shares, price, cost = _exercise_terms(locked, requested)

            portfolios = await self._resolver.resolve_pair(locked.company_id, locked.employee_id)
            transfer = await self._writer.create(
                event=locked,
                portfolios=portfolios,
                shares=shares,
                transfer_type="exercise",
                transfer_date=now.date(),
                caller=caller,
                notes=f"Exercise of {shares} options for vesting event {locked.event_id}",
            )
            await compare_and_set_status(
                self._db,
                event_id=locked.event_id,
                expected_status=VESTED,
                target_status=EXERCISED,
                updated_at=now,
                stamps={
                    "processed_at": now,
                    "processed_by": caller.audit_label,
                    "exercise_price": price,
                    "total_exercise_cost": cost,
                    "portfolio_transaction_id": transfer.transfer_id,
                },
            )
            await apply_grant_deltas(self._db, grant_id=locked.grant_id, updated_at=now, exercised=shares)

        logger.info(
            "Exercised vesting event: event_id=%s company_id=%s employee_id=%s transfer=%s",
            locked.event_id,
            locked.company_id,
            locked.employee_id,
            transfer.transfer_number,
        )
        return ExerciseResult(
            success=True,
            reason_code="OK",
            detail=f"Exercised {shares} options for a total cost of {cost}.",
            event_id=locked.event_id,
            shares_exercised=shares,
            exercise_price=price,
            total_exercise_cost=cost,
            transfer=transfer,
        )
