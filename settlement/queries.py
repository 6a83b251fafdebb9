"""Read-side vesting event listings with display details attached."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
import logging
from typing import Any, Mapping, Optional, Sequence
from uuid import UUID

from settlement.common import SettlementClock, SettlementDatabase
from settlement.config import DEFAULT_CONFIG, SettlementConfig
from settlement.numeric import as_decimal_or_zero, as_optional_decimal, decimal_to_str
from settlement.performance_linker import (
    NO_PERFORMANCE,
    EventMetricKey,
    PerformanceMetricLinker,
    PerformanceResolution,
)
from settlement.records import PLAN_TYPE_ALIASES
from settlement.state_machine import DUE, PENDING, VESTED

logger = logging.getLogger(__name__)

UNFILTERED = "all"

_DETAIL_SELECT = """
    SELECT ve.id, ve.grant_id, ve.employee_id, ve.company_id, ve.event_type, ve.sequence_number,
           ve.vesting_date, ve.shares_to_vest, ve.cumulative_shares_vested, ve.status,
           ve.processed_at, ve.processed_by, ve.exercise_price, ve.fair_market_value,
           ve.total_exercise_cost, ve.performance_condition_met, ve.performance_notes,
           ve.portfolio_transaction_id,
           e.first_name_en, e.first_name_ar, e.last_name_en, e.last_name_ar,
           g.grant_number, g.vesting_schedule_id,
           ip.plan_name_en, ip.plan_code, ip.plan_type
    FROM vesting_events ve
    LEFT JOIN employees e ON e.id = ve.employee_id
    LEFT JOIN grants g ON g.id = ve.grant_id
    LEFT JOIN incentive_plans ip ON ip.id = g.plan_id
"""


@dataclass(frozen=True)
class VestingEventDetails:
    """Vesting event joined with employee, grant and plan display data."""

    event_id: UUID
    grant_id: UUID
    employee_id: UUID
    company_id: UUID
    event_type: str
    sequence_number: int
    vesting_date: date
    shares_to_vest: Decimal
    cumulative_shares_vested: Decimal
    status: str
    processed_at: Optional[datetime]
    processed_by: Optional[str]
    exercise_price: Optional[Decimal]
    fair_market_value: Optional[Decimal]
    total_exercise_cost: Optional[Decimal]
    performance_condition_met: bool
    performance_notes: Optional[str]
    portfolio_transaction_id: Optional[UUID]
    grant_number: Optional[str]
    vesting_schedule_id: Optional[UUID]
    employee_name: str
    plan_name: str
    plan_code: str
    plan_type: str
    days_remaining: int
    can_exercise: bool
    requires_exercise: bool
    performance: PerformanceResolution = NO_PERFORMANCE

    def metric_key(self) -> EventMetricKey:
        return EventMetricKey(
            event_id=self.event_id,
            grant_id=self.grant_id,
            event_type=self.event_type,
            sequence_number=self.sequence_number,
            vesting_schedule_id=self.vesting_schedule_id,
        )

    def as_payload(self) -> dict[str, Any]:
        return {
            "id": str(self.event_id),
            "grant_id": str(self.grant_id),
            "grant_number": self.grant_number,
            "employee_id": str(self.employee_id),
            "employee_name": self.employee_name,
            "event_type": self.event_type,
            "sequence_number": self.sequence_number,
            "vesting_date": self.vesting_date.isoformat(),
            "shares_to_vest": decimal_to_str(self.shares_to_vest),
            "status": self.status,
            "plan_name": self.plan_name,
            "plan_code": self.plan_code,
            "plan_type": self.plan_type,
            "days_remaining": self.days_remaining,
            "can_exercise": self.can_exercise,
            "requires_exercise": self.requires_exercise,
            "has_linked_metrics": self.performance.has_linked_metrics,
            "requires_performance_confirmation": self.performance.requires_performance_confirmation,
            "performance_metrics": [metric.as_payload() for metric in self.performance.metrics],
            "performance_milestone_id": (
                str(self.performance.milestone_id) if self.performance.milestone_id else None
            ),
        }


def employee_display_name(row: Mapping[str, Any]) -> str:
    """English name, else Arabic, else the "Unknown Employee" placeholder, per name part."""
    first = row.get("first_name_en") or row.get("first_name_ar") or "Unknown"
    last = row.get("last_name_en") or row.get("last_name_ar") or "Employee"
    return f"{first} {last}"


def _display_plan_type(value: Any) -> str:
    if value is None:
        return "LTIP_RSU"
    return PLAN_TYPE_ALIASES.get(str(value).upper(), str(value))


def build_event_details(row: Mapping[str, Any], *, today: date, clamp_days: bool) -> VestingEventDetails:
    vesting_date = row["vesting_date"]
    if isinstance(vesting_date, datetime):
        vesting_date = vesting_date.date()
    elif not isinstance(vesting_date, date):
        vesting_date = date.fromisoformat(str(vesting_date)[:10])
    days_remaining = (vesting_date - today).days
    if clamp_days:
        days_remaining = max(0, days_remaining)
    plan_type = _display_plan_type(row.get("plan_type"))
    return VestingEventDetails(
        event_id=row["id"],
        grant_id=row["grant_id"],
        employee_id=row["employee_id"],
        company_id=row["company_id"],
        event_type=row["event_type"],
        sequence_number=int(row["sequence_number"]),
        vesting_date=vesting_date,
        shares_to_vest=as_decimal_or_zero(row.get("shares_to_vest")),
        cumulative_shares_vested=as_decimal_or_zero(row.get("cumulative_shares_vested")),
        status=row["status"],
        processed_at=row.get("processed_at"),
        processed_by=row.get("processed_by"),
        exercise_price=as_optional_decimal(row.get("exercise_price")),
        fair_market_value=as_optional_decimal(row.get("fair_market_value")),
        total_exercise_cost=as_optional_decimal(row.get("total_exercise_cost")),
        performance_condition_met=bool(row.get("performance_condition_met")),
        performance_notes=row.get("performance_notes"),
        portfolio_transaction_id=row.get("portfolio_transaction_id"),
        grant_number=row.get("grant_number"),
        vesting_schedule_id=row.get("vesting_schedule_id"),
        employee_name=employee_display_name(row),
        plan_name=row.get("plan_name_en") or "Unknown Plan",
        plan_code=row.get("plan_code") or "N/A",
        plan_type=plan_type,
        days_remaining=days_remaining,
        can_exercise=plan_type == "ESOP" and row["status"] == VESTED,
        requires_exercise=plan_type == "ESOP",
    )


class VestingEventQueries:
    """Company, upcoming, employee and grant views over vesting events."""

    def __init__(
        self,
        db: SettlementDatabase,
        *,
        clock: Optional[SettlementClock] = None,
        config: SettlementConfig = DEFAULT_CONFIG,
    ) -> None:
        self._db = db
        self._clock = clock or SettlementClock()
        self._config = config
        self._linker = PerformanceMetricLinker(db)

    async def list_company_events(
        self,
        company_id: UUID,
        *,
        status: Optional[str] = None,
        event_type: Optional[str] = None,
        grant_ids: Optional[Sequence[UUID]] = None,
        limit: Optional[int] = None,
    ) -> list[VestingEventDetails]:
        """All events of a company ordered by vesting date; a grant filter raises the limit."""
        clauses = ["ve.company_id = :company_id"]
        params: dict[str, Any] = {"company_id": company_id}
        effective_limit = limit if limit is not None else self._config.event_list_limit
        if grant_ids:
            clauses.append("ve.grant_id = ANY(:grant_ids)")
            params["grant_ids"] = list(grant_ids)
            effective_limit = max(effective_limit, self._config.grant_filter_limit)
        if status and status != UNFILTERED:
            clauses.append("ve.status = :status")
            params["status"] = status
        if event_type and event_type != UNFILTERED:
            clauses.append("ve.event_type = :event_type")
            params["event_type"] = event_type
        params["limit"] = effective_limit

        rows = await self._db.fetch_all(
            _DETAIL_SELECT
            + "    WHERE "
            + "\n      AND ".join(clauses)
            + "\n    ORDER BY ve.vesting_date ASC, ve.sequence_number ASC\n    LIMIT :limit\n",
            params,
        )
        return await self._with_performance(rows, clamp_days=False)

    async def list_upcoming_events(self, company_id: UUID, *, limit: int = 10) -> list[VestingEventDetails]:
        """Pending or due events dated today or later."""
        rows = await self._db.fetch_all(
            _DETAIL_SELECT
            + """
    WHERE ve.company_id = :company_id
      AND ve.status IN (:pending_status, :due_status)
      AND ve.vesting_date >= :today
    ORDER BY ve.vesting_date ASC, ve.sequence_number ASC
    LIMIT :limit
""",
            {
                "company_id": company_id,
                "pending_status": PENDING,
                "due_status": DUE,
                "today": self._clock.today(),
                "limit": limit,
            },
        )
        return await self._with_performance(rows, clamp_days=True)

    async def list_employee_events(
        self,
        employee_id: UUID,
        *,
        statuses: Optional[Sequence[str]] = None,
    ) -> list[VestingEventDetails]:
        clauses = ["ve.employee_id = :employee_id"]
        params: dict[str, Any] = {"employee_id": employee_id}
        if statuses:
            clauses.append("ve.status::text = ANY(:statuses)")
            params["statuses"] = list(statuses)
        rows = await self._db.fetch_all(
            _DETAIL_SELECT
            + "    WHERE "
            + "\n      AND ".join(clauses)
            + "\n    ORDER BY ve.vesting_date ASC, ve.sequence_number ASC\n",
            params,
        )
        return await self._with_performance(rows, clamp_days=True)

    async def list_grant_events(self, grant_id: UUID) -> list[VestingEventDetails]:
        rows = await self._db.fetch_all(
            _DETAIL_SELECT
            + """
    WHERE ve.grant_id = :grant_id
    ORDER BY ve.sequence_number ASC
""",
            {"grant_id": grant_id},
        )
        return await self._with_performance(rows, clamp_days=False)

    async def _with_performance(
        self,
        rows: Sequence[Mapping[str, Any]],
        *,
        clamp_days: bool,
    ) -> list[VestingEventDetails]:
        today = self._clock.today()
        details = [build_event_details(row, today=today, clamp_days=clamp_days) for row in rows]
        if not details:
            return details
        resolutions = await self._linker.resolve([item.metric_key() for item in details])
        return [
            replace(item, performance=resolutions.get(item.event_id, NO_PERFORMANCE))
            for item in details
        ]
