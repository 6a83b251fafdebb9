"""Vesting confirmation, forfeiture and cancellation of single events."""

from __future__ import annotations

from decimal import Decimal
import logging
from typing import Any, Awaitable, Optional
from uuid import UUID

from settlement.common import SettlementClock, SettlementDatabase
from settlement.errors import PreconditionError, SettlementError, failure_fields
from settlement.event_store import apply_grant_deltas, compare_and_set_status, grant_has_linked_metrics, load_event
from settlement.notifications import NullNotifier, SettlementNotifier, SettlementStateChanged, publish
from settlement.numeric import PRICE_SCALE, as_decimal, normalize_decimal
from settlement.records import CallerIdentity, TransitionResult, VestingEventRecord
from settlement.state_machine import (
    CANCELLED,
    DUE,
    FORFEITED,
    PENDING,
    PERFORMANCE_EVENT_TYPES,
    VESTED,
    enforce_transition,
    require_confirmable,
)

logger = logging.getLogger(__name__)


def _grant_deltas(previous_status: str, target_status: str, shares: Decimal) -> dict[str, Decimal]:
    """Counter movements for a status change on one tranche.

    Cancelling leaves the grant counters alone: the shares stay on the grant so
    vested + remaining_unvested + forfeited still adds up to total_shares.
    """
    if target_status == VESTED:
        return {"vested": shares, "unvested": -shares}
    if target_status != FORFEITED:
        return {}
    deltas: dict[str, Decimal] = {"forfeited": shares}
    if previous_status in (PENDING, DUE):
        deltas["unvested"] = -shares
    elif previous_status == VESTED:
        deltas["vested"] = -shares
    return deltas


class VestingLifecycle:
    """Status changes that are not share settlements."""

    def __init__(
        self,
        db: SettlementDatabase,
        *,
        notifier: Optional[SettlementNotifier] = None,
        clock: Optional[SettlementClock] = None,
    ) -> None:
        self._db = db
        self._notifier = notifier or NullNotifier()
        self._clock = clock or SettlementClock()

    async def confirm_vesting(
        self,
        event_id: UUID,
        caller: CallerIdentity,
        *,
        fair_market_value: Optional[Any] = None,
        performance_condition_met: Optional[bool] = None,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """Mark a due event vested and move its shares into the grant's vested counter."""
        return await self._guarded(
            "confirm",
            event_id,
            caller,
            self._confirm(event_id, caller, fair_market_value, performance_condition_met, notes),
        )

    async def forfeit(self, event_id: UUID, caller: CallerIdentity) -> TransitionResult:
        return await self._guarded("forfeit", event_id, caller, self._close(event_id, caller, FORFEITED))

    async def cancel(self, event_id: UUID, caller: CallerIdentity) -> TransitionResult:
        return await self._guarded("cancel", event_id, caller, self._close(event_id, caller, CANCELLED))

    async def _guarded(
        self,
        action: str,
        event_id: UUID,
        caller: CallerIdentity,
        work: Awaitable[tuple[VestingEventRecord, str, str]],
    ) -> TransitionResult:
        try:
            event, previous_status, new_status = await work
        except SettlementError as exc:
            logger.warning(
                "Vesting %s rejected: event_id=%s caller=%s reason=%s detail=%s",
                action,
                event_id,
                caller.caller_id,
                exc.reason_code,
                exc.detail,
            )
            return TransitionResult(success=False, event_id=event_id, **failure_fields(exc))
        except Exception:
            logger.exception("Unexpected vesting %s failure: event_id=%s caller=%s", action, event_id, caller.caller_id)
            return TransitionResult(
                success=False,
                reason_code="UNEXPECTED_ERROR",
                detail=f"Unexpected error during {action} of vesting event {event_id}.",
                event_id=event_id,
            )

        await publish(
            self._notifier,
            SettlementStateChanged(
                action=action,
                occurred_at=self._clock.now_utc(),
                event_id=event.event_id,
                company_id=event.company_id,
                employee_id=event.employee_id,
                previous_status=previous_status,
                new_status=new_status,
                caller_id=caller.caller_id,
            ),
        )
        return TransitionResult(
            success=True,
            reason_code="OK",
            detail=f"Vesting event moved {previous_status} -> {new_status}.",
            event_id=event.event_id,
            previous_status=previous_status,
            new_status=new_status,
        )

    async def _confirm(
        self,
        event_id: UUID,
        caller: CallerIdentity,
        fair_market_value: Optional[Any],
        performance_condition_met: Optional[bool],
        notes: Optional[str],
    ) -> tuple[VestingEventRecord, str, str]:
        event = await load_event(self._db, event_id)
        require_confirmable(event)
        if event.event_type in PERFORMANCE_EVENT_TYPES and not performance_condition_met:
            if await grant_has_linked_metrics(self._db, event.grant_id):
                raise PreconditionError(
                    f"Performance conditions must be confirmed before vesting event {event_id}.",
                    reason_code="PERFORMANCE_NOT_CONFIRMED",
                )

        stamps: dict[str, Any] = {}
        if fair_market_value is not None:
            try:
                fmv = normalize_decimal(as_decimal(fair_market_value), PRICE_SCALE)
            except ArithmeticError as exc:
                raise PreconditionError(
                    f"Invalid fair market value: {fair_market_value}.",
                    reason_code="INVALID_FAIR_MARKET_VALUE",
                ) from exc
            if fmv.is_nan() or fmv < 0:
                raise PreconditionError(
                    f"Fair market value must be non-negative, got {fmv}.",
                    reason_code="INVALID_FAIR_MARKET_VALUE",
                )
            stamps["fair_market_value"] = fmv
        if performance_condition_met is not None:
            stamps["performance_condition_met"] = performance_condition_met
        if notes:
            stamps["performance_notes"] = notes

        now = self._clock.now_utc()
        async with self._db.transaction():
            locked = await load_event(self._db, event_id, for_update=True)
            require_confirmable(locked)
            await compare_and_set_status(
                self._db,
                event_id=locked.event_id,
                expected_status=DUE,
                target_status=VESTED,
                updated_at=now,
                stamps={"processed_at": now, "processed_by": caller.audit_label, **stamps},
            )
            await apply_grant_deltas(
                self._db,
                grant_id=locked.grant_id,
                updated_at=now,
                **_grant_deltas(DUE, VESTED, locked.shares_to_vest),
            )
        logger.info(
            "Confirmed vesting: event_id=%s company_id=%s employee_id=%s shares=%s",
            locked.event_id,
            locked.company_id,
            locked.employee_id,
            locked.shares_to_vest,
        )
        return locked, DUE, VESTED

    async def _close(
        self,
        event_id: UUID,
        caller: CallerIdentity,
        target_status: str,
    ) -> tuple[VestingEventRecord, str, str]:
        event = await load_event(self._db, event_id)
        enforce_transition(event.status, target_status)

        now = self._clock.now_utc()
        async with self._db.transaction():
            locked = await load_event(self._db, event_id, for_update=True)
            enforce_transition(locked.status, target_status)
            await compare_and_set_status(
                self._db,
                event_id=locked.event_id,
                expected_status=locked.status,
                target_status=target_status,
                updated_at=now,
                stamps={"processed_at": now, "processed_by": caller.audit_label},
            )
            deltas = _grant_deltas(locked.status, target_status, locked.shares_to_vest)
            if deltas:
                await apply_grant_deltas(self._db, grant_id=locked.grant_id, updated_at=now, **deltas)
        logger.info(
            "Closed vesting event: event_id=%s company_id=%s employee_id=%s %s -> %s",
            locked.event_id,
            locked.company_id,
            locked.employee_id,
            locked.status,
            target_status,
        )
        return locked, locked.status, target_status
