"""Typed projections of the rows the settlement engine reads and writes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
import logging
from typing import Any, Mapping, Optional
from uuid import UUID

from settlement.errors import PreconditionError
from settlement.numeric import as_decimal, as_optional_decimal

logger = logging.getLogger(__name__)

# Store values keep the LTIP_ prefix; callers may use the short names.
PLAN_TYPE_ALIASES: dict[str, str] = {
    "RSU": "LTIP_RSU",
    "RSA": "LTIP_RSA",
    "LTIP_RSU": "LTIP_RSU",
    "LTIP_RSA": "LTIP_RSA",
    "ESOP": "ESOP",
}


def normalize_plan_type(value: Any) -> str:
    if value is None:
        raise PreconditionError("Grant plan type is missing.", reason_code="PLAN_TYPE_MISSING")
    normalized = PLAN_TYPE_ALIASES.get(str(value).strip().upper())
    if normalized is None:
        raise PreconditionError(f"Unknown plan type: {value}.", reason_code="PLAN_TYPE_UNKNOWN")
    return normalized


def _as_uuid(value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    return UUID(str(value))


def _as_optional_uuid(value: Any) -> Optional[UUID]:
    if value is None:
        return None
    return _as_uuid(value)


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _as_optional_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass(frozen=True)
class CallerIdentity:
    """Explicit identity of whoever triggered an engine operation."""

    caller_id: str
    display_name: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.caller_id or not self.caller_id.strip():
            raise ValueError("caller_id must be a non-empty string.")

    @property
    def audit_label(self) -> str:
        return self.caller_id.strip()


@dataclass(frozen=True)
class VestingEventRecord:
    """Event joined with its grant and incentive plan."""

    event_id: UUID
    grant_id: UUID
    employee_id: UUID
    company_id: UUID
    event_type: str
    sequence_number: int
    vesting_date: date
    shares_to_vest: Decimal
    status: str
    plan_type: str
    grant_number: Optional[str] = None
    event_exercise_price: Optional[Decimal] = None
    grant_exercise_price: Optional[Decimal] = None
    plan_exercise_price: Optional[Decimal] = None
    vesting_schedule_id: Optional[UUID] = None
    portfolio_transaction_id: Optional[UUID] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "VestingEventRecord":
        raw_shares = row.get("shares_to_vest")
        try:
            shares = as_optional_decimal(raw_shares)
        except ArithmeticError:
            shares = None
        if shares is None or shares.is_nan() or shares <= 0:
            raise PreconditionError(
                f"Vesting event {row['id']} has invalid shares_to_vest={raw_shares!r}.",
                reason_code="INVALID_SHARES",
            )
        company_id = row.get("company_id") or row.get("grant_company_id")
        if company_id is None:
            raise PreconditionError(
                f"Vesting event {row['id']} has no company reference.",
                reason_code="COMPANY_MISSING",
            )
        return cls(
            event_id=_as_uuid(row["id"]),
            grant_id=_as_uuid(row["grant_id"]),
            employee_id=_as_uuid(row["employee_id"]),
            company_id=_as_uuid(company_id),
            event_type=str(row["event_type"]),
            sequence_number=int(row["sequence_number"]),
            vesting_date=_as_date(row["vesting_date"]),
            shares_to_vest=shares,
            status=str(row["status"]),
            plan_type=normalize_plan_type(row.get("plan_type")),
            grant_number=row.get("grant_number"),
            event_exercise_price=as_optional_decimal(row.get("exercise_price")),
            grant_exercise_price=as_optional_decimal(row.get("grant_exercise_price")),
            plan_exercise_price=as_optional_decimal(row.get("plan_exercise_price")),
            vesting_schedule_id=_as_optional_uuid(row.get("vesting_schedule_id")),
            portfolio_transaction_id=_as_optional_uuid(row.get("portfolio_transaction_id")),
        )

    def resolve_exercise_price(self) -> Optional[Decimal]:
        """Event price wins, then grant, then plan."""
        for candidate in (self.event_exercise_price, self.grant_exercise_price, self.plan_exercise_price):
            if candidate is not None:
                return candidate
        return None


@dataclass(frozen=True)
class PortfolioRecord:
    portfolio_id: UUID
    portfolio_type: str
    company_id: UUID
    employee_id: Optional[UUID]
    portfolio_number: str
    total_shares: Decimal = Decimal("0")
    available_shares: Decimal = Decimal("0")
    locked_shares: Decimal = Decimal("0")

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PortfolioRecord":
        return cls(
            portfolio_id=_as_uuid(row["id"]),
            portfolio_type=str(row["portfolio_type"]),
            company_id=_as_uuid(row["company_id"]),
            employee_id=_as_optional_uuid(row.get("employee_id")),
            portfolio_number=str(row["portfolio_number"]),
            total_shares=as_decimal(row.get("total_shares", 0)),
            available_shares=as_decimal(row.get("available_shares", 0)),
            locked_shares=as_decimal(row.get("locked_shares", 0)),
        )


@dataclass(frozen=True)
class ShareTransferRecord:
    transfer_id: UUID
    transfer_number: str
    company_id: UUID
    grant_id: UUID
    employee_id: UUID
    vesting_event_id: Optional[UUID]
    from_portfolio_id: UUID
    to_portfolio_id: UUID
    shares_transferred: Decimal
    transfer_type: str
    transfer_date: date
    status: str
    initiated_by: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ShareTransferRecord":
        return cls(
            transfer_id=_as_uuid(row["id"]),
            transfer_number=str(row["transfer_number"]),
            company_id=_as_uuid(row["company_id"]),
            grant_id=_as_uuid(row["grant_id"]),
            employee_id=_as_uuid(row["employee_id"]),
            vesting_event_id=_as_optional_uuid(row.get("vesting_event_id")),
            from_portfolio_id=_as_uuid(row["from_portfolio_id"]),
            to_portfolio_id=_as_uuid(row["to_portfolio_id"]),
            shares_transferred=as_decimal(row["shares_transferred"]),
            transfer_type=str(row["transfer_type"]),
            transfer_date=_as_date(row["transfer_date"]),
            status=str(row["status"]),
            initiated_by=row.get("initiated_by"),
            notes=row.get("notes"),
        )

    def as_payload(self) -> dict[str, Any]:
        return {
            "transfer_id": str(self.transfer_id),
            "transfer_number": self.transfer_number,
            "vesting_event_id": str(self.vesting_event_id) if self.vesting_event_id else None,
            "from_portfolio_id": str(self.from_portfolio_id),
            "to_portfolio_id": str(self.to_portfolio_id),
            "shares_transferred": str(self.shares_transferred),
            "transfer_type": self.transfer_type,
            "transfer_date": self.transfer_date.isoformat(),
            "status": self.status,
        }


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of an RSU/RSA transfer request."""

    success: bool
    reason_code: str
    detail: str
    event_id: UUID
    retryable: bool = False
    plan_type: Optional[str] = None
    transfer: Optional[ShareTransferRecord] = None


@dataclass(frozen=True)
class ExerciseResult:
    """Outcome of an ESOP exercise request."""

    success: bool
    reason_code: str
    detail: str
    event_id: UUID
    retryable: bool = False
    shares_exercised: Optional[Decimal] = None
    exercise_price: Optional[Decimal] = None
    total_exercise_cost: Optional[Decimal] = None
    transfer: Optional[ShareTransferRecord] = None


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a confirm/forfeit/cancel status change."""

    success: bool
    reason_code: str
    detail: str
    event_id: UUID
    retryable: bool = False
    previous_status: Optional[str] = None
    new_status: Optional[str] = None


@dataclass(frozen=True)
class ProcedureResult:
    """Outcome of an external stored procedure call."""

    success: bool
    reason_code: str
    detail: str
    retryable: bool = False


@dataclass(frozen=True)
class BackfillReport:
    success: bool
    reason_code: str
    detail: str
    total_grants: int = 0
    selected_grants: int = 0
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: tuple[str, ...] = field(default_factory=tuple)
    promotion: Optional[ProcedureResult] = None
