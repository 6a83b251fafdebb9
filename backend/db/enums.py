"""PostgreSQL native enum contracts for the equity-incentive schema."""

from __future__ import annotations

import enum
import logging

from sqlalchemy.dialects.postgresql import ENUM as PGEnum

logger = logging.getLogger(__name__)


class PlanType(str, enum.Enum):
    """Incentive plan family. Stored values keep the LTIP_ prefix used by the store."""

    RSU = "LTIP_RSU"
    RSA = "LTIP_RSA"
    ESOP = "ESOP"


class VestingScheduleType(str, enum.Enum):
    """How a plan's tranches are gated."""

    TIME_BASED = "time_based"
    PERFORMANCE_BASED = "performance_based"
    HYBRID = "hybrid"


class GrantStatus(str, enum.Enum):
    """Grant lifecycle status."""

    DRAFT = "draft"
    PENDING_SIGNATURE = "pending_signature"
    ACTIVE = "active"
    COMPLETED = "completed"
    FORFEITED = "forfeited"
    CANCELLED = "cancelled"


class VestingEventType(str, enum.Enum):
    """Kind of tranche a vesting event represents."""

    CLIFF = "cliff"
    TIME_BASED = "time_based"
    PERFORMANCE = "performance"
    ACCELERATION = "acceleration"


class VestingEventStatus(str, enum.Enum):
    """Vesting event lifecycle status."""

    PENDING = "pending"
    DUE = "due"
    VESTED = "vested"
    TRANSFERRED = "transferred"
    EXERCISED = "exercised"
    FORFEITED = "forfeited"
    CANCELLED = "cancelled"


class PortfolioType(str, enum.Enum):
    """Share ledger account type."""

    COMPANY_RESERVED = "company_reserved"
    EMPLOYEE_VESTED = "employee_vested"


class TransferType(str, enum.Enum):
    """Reason a share transfer was created."""

    VESTING = "vesting"
    EXERCISE = "exercise"


class TransferStatus(str, enum.Enum):
    """Share transfer processing status."""

    PENDING = "pending"
    TRANSFERRED = "transferred"
    CANCELLED = "cancelled"


plan_type_enum = PGEnum(PlanType, name="plan_type_enum", values_callable=lambda e: [m.value for m in e])
vesting_schedule_type_enum = PGEnum(
    VestingScheduleType,
    name="vesting_schedule_type_enum",
    values_callable=lambda e: [m.value for m in e],
)
grant_status_enum = PGEnum(GrantStatus, name="grant_status_enum", values_callable=lambda e: [m.value for m in e])
vesting_event_type_enum = PGEnum(
    VestingEventType,
    name="vesting_event_type_enum",
    values_callable=lambda e: [m.value for m in e],
)
vesting_event_status_enum = PGEnum(
    VestingEventStatus,
    name="vesting_event_status_enum",
    values_callable=lambda e: [m.value for m in e],
)
portfolio_type_enum = PGEnum(
    PortfolioType,
    name="portfolio_type_enum",
    values_callable=lambda e: [m.value for m in e],
)
transfer_type_enum = PGEnum(
    TransferType,
    name="transfer_type_enum",
    values_callable=lambda e: [m.value for m in e],
)
transfer_status_enum = PGEnum(
    TransferStatus,
    name="transfer_status_enum",
    values_callable=lambda e: [m.value for m in e],
)
