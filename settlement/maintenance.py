"""Stored-procedure gateway, status promotion and vesting schedule backfill."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Optional, Sequence
from uuid import UUID

from settlement.common import SettlementClock, SettlementDatabase
from settlement.config import DEFAULT_CONFIG, SettlementConfig
from settlement.errors import BackendError
from settlement.notifications import NullNotifier, SettlementNotifier, SettlementStateChanged, publish
from settlement.numeric import as_decimal_or_zero
from settlement.queries import employee_display_name
from settlement.records import BackfillReport, CallerIdentity, ProcedureResult

logger = logging.getLogger(__name__)


class StoredProcedureGateway:
    """Calls into the store's black-box procedures; unavailability is reported, never raised."""

    def __init__(self, db: SettlementDatabase) -> None:
        self._db = db

    async def update_vesting_event_status(self) -> ProcedureResult:
        return await self._call("update_vesting_event_status", "SELECT update_vesting_event_status()", {})

    async def generate_vesting_events_for_grant(self, grant_id: UUID) -> ProcedureResult:
        return await self._call(
            "generate_vesting_events_for_grant",
            "SELECT generate_vesting_events_for_grant(:grant_id)",
            {"grant_id": grant_id},
        )

    async def _call(self, name: str, sql: str, params: dict[str, Any]) -> ProcedureResult:
        try:
            await self._db.execute(sql, params)
        except BackendError as exc:
            logger.error("Stored procedure %s failed: %s", name, exc.detail)
            return ProcedureResult(
                success=False,
                reason_code="PROCEDURE_FAILED",
                detail=f"{name}: {exc.detail}",
                retryable=exc.retryable,
            )
        return ProcedureResult(success=True, reason_code="OK", detail=f"{name} completed.")


@dataclass(frozen=True)
class GrantWithoutEvents:
    grant_id: UUID
    grant_number: Optional[str]
    employee_id: UUID
    employee_name: str
    total_shares: Decimal
    plan_name: Optional[str]
    plan_code: Optional[str]
    plan_type: Optional[str]
    created_at: Optional[datetime]


class ScheduleMaintenance:
    """Daily promotion trigger and materialization of missing vesting schedules."""

    def __init__(
        self,
        db: SettlementDatabase,
        *,
        gateway: Optional[StoredProcedureGateway] = None,
        notifier: Optional[SettlementNotifier] = None,
        clock: Optional[SettlementClock] = None,
        config: SettlementConfig = DEFAULT_CONFIG,
    ) -> None:
        self._db = db
        self._gateway = gateway or StoredProcedureGateway(db)
        self._notifier = notifier or NullNotifier()
        self._clock = clock or SettlementClock()
        self._config = config

    async def promote_due_events(self, caller: CallerIdentity) -> ProcedureResult:
        """Run the date-driven pending -> due promotion procedure once."""
        result = await self._gateway.update_vesting_event_status()
        if result.success:
            logger.info("Vesting status promotion completed: caller=%s", caller.caller_id)
            if self._config.notify_on_promotion:
                await publish(
                    self._notifier,
                    SettlementStateChanged(
                        action="promotion",
                        occurred_at=self._clock.now_utc(),
                        caller_id=caller.caller_id,
                    ),
                )
        return result

    async def grants_without_events(self, company_id: UUID) -> list[GrantWithoutEvents]:
        rows = await self._db.fetch_all(
            """
            SELECT g.id, g.grant_number, g.employee_id, g.total_shares, g.created_at,
                   e.first_name_en, e.first_name_ar, e.last_name_en, e.last_name_ar,
                   ip.plan_name_en, ip.plan_code, ip.plan_type
            FROM grants g
            LEFT JOIN employees e ON e.id = g.employee_id
            LEFT JOIN incentive_plans ip ON ip.id = g.plan_id
            WHERE g.company_id = :company_id
              AND g.status = 'active'
              AND NOT EXISTS (SELECT 1 FROM vesting_events ve WHERE ve.grant_id = g.id)
            ORDER BY g.created_at DESC
            """,
            {"company_id": company_id},
        )
        return [
            GrantWithoutEvents(
                grant_id=row["id"],
                grant_number=row.get("grant_number"),
                employee_id=row["employee_id"],
                employee_name=employee_display_name(row),
                total_shares=as_decimal_or_zero(row.get("total_shares")),
                plan_name=row.get("plan_name_en"),
                plan_code=row.get("plan_code"),
                plan_type=row.get("plan_type"),
                created_at=row.get("created_at"),
            )
            for row in rows
        ]

    async def backfill_schedules(
        self,
        company_id: UUID,
        caller: CallerIdentity,
        grant_ids: Optional[Sequence[UUID]] = None,
    ) -> BackfillReport:
        """Generate events for active grants that have none, then run status promotion."""
        try:
            grants = await self._db.fetch_all(
                """
                SELECT g.id, e.first_name_en, e.first_name_ar, e.last_name_en, e.last_name_ar
                FROM grants g
                LEFT JOIN employees e ON e.id = g.employee_id
                WHERE g.company_id = :company_id
                  AND g.status = 'active'
                ORDER BY g.created_at, g.id
                """,
                {"company_id": company_id},
            )
        except BackendError as exc:
            logger.error("Backfill grant lookup failed: company_id=%s detail=%s", company_id, exc.detail)
            return BackfillReport(success=False, reason_code=exc.reason_code, detail=exc.detail)

        wanted = {str(grant_id) for grant_id in grant_ids} if grant_ids else None
        selected = [row for row in grants if wanted is None or str(row["id"]) in wanted]
        selected_ids = {str(row["id"]) for row in selected}
        processed = 0
        skipped = 0
        error_details: list[str] = []

        for row in grants:
            grant_id = row["id"]
            if str(grant_id) not in selected_ids:
                skipped += 1
                continue
            try:
                existing = await self._db.fetch_one(
                    """
                    SELECT id
                    FROM vesting_events
                    WHERE grant_id = :grant_id
                    LIMIT 1
                    """,
                    {"grant_id": grant_id},
                )
            except BackendError as exc:
                error_details.append(f"Grant {grant_id}: {exc.detail}")
                continue
            if existing is not None:
                logger.info("Grant %s already has vesting events; skipping.", grant_id)
                skipped += 1
                continue

            result = await self._gateway.generate_vesting_events_for_grant(grant_id)
            if not result.success:
                error_details.append(f"Grant {grant_id}: {result.detail}")
                continue
            logger.info("Generated vesting events for grant %s (%s)", grant_id, employee_display_name(row))
            processed += 1

        for message in error_details:
            logger.error("Schedule backfill error: %s", message)

        promotion = await self.promote_due_events(caller)
        detail = f"Processed {processed} grant(s), skipped {skipped}, errors {len(error_details)}."
        if not promotion.success:
            reason_code = "PROMOTION_FAILED"
            detail = f"{detail} Status promotion failed: {promotion.detail}"
        elif error_details:
            reason_code = "PARTIAL_FAILURE"
        else:
            reason_code = "OK"
        return BackfillReport(
            success=True,
            reason_code=reason_code,
            detail=detail,
            total_grants=len(grants),
            selected_grants=len(selected),
            processed=processed,
            skipped=skipped,
            errors=len(error_details),
            error_details=tuple(error_details),
            promotion=promotion,
        )
