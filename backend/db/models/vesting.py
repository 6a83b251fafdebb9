"""Vesting event model definitions."""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    PrimaryKeyConstraint,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from backend.db.base import Base
from backend.db.enums import vesting_event_status_enum, vesting_event_type_enum

logger = logging.getLogger(__name__)


class VestingEvent(Base):
    """One materialized tranche of a grant's vesting schedule."""

    __tablename__ = "vesting_events"
    __table_args__ = (
        PrimaryKeyConstraint("id", name="pk_vesting_events"),
        UniqueConstraint("grant_id", "sequence_number", name="uq_vesting_events_grant_sequence"),
        CheckConstraint("shares_to_vest > 0", name="ck_vesting_events_shares_pos"),
        CheckConstraint("sequence_number >= 1", name="ck_vesting_events_sequence_pos"),
        CheckConstraint(
            "total_exercise_cost IS NULL OR total_exercise_cost >= 0",
            name="ck_vesting_events_exercise_cost_nonneg",
        ),
        Index("idx_vesting_events_company_status", "company_id", "status"),
        Index("idx_vesting_events_company_vesting_date", "company_id", "vesting_date"),
        Index("idx_vesting_events_employee_id", "employee_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    grant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("grants.id", name="fk_vesting_events_grant", ondelete="RESTRICT"),
        nullable=False,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("employees.id", name="fk_vesting_events_employee", ondelete="RESTRICT"),
        nullable=False,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", name="fk_vesting_events_company", ondelete="RESTRICT"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(vesting_event_type_enum, nullable=False)
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False)
    vesting_date: Mapped[date] = mapped_column(Date, nullable=False)
    shares_to_vest: Mapped[Decimal] = mapped_column(Numeric(20, 4), nullable=False)
    cumulative_shares_vested: Mapped[Decimal] = mapped_column(
        Numeric(20, 4),
        nullable=False,
        server_default=text("0"),
    )
    status: Mapped[str] = mapped_column(
        vesting_event_status_enum,
        nullable=False,
        server_default=text("'pending'"),
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    exercise_price: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    fair_market_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    total_exercise_cost: Mapped[Decimal | None] = mapped_column(Numeric(24, 2), nullable=True)
    performance_condition_met: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("FALSE"),
    )
    performance_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    portfolio_transaction_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
