"""Grant and grant-metric link model definitions."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    PrimaryKeyConstraint,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from backend.db.base import Base
from backend.db.enums import grant_status_enum

logger = logging.getLogger(__name__)


class Grant(Base):
    """Equity award issued to one employee under one plan."""

    __tablename__ = "grants"
    __table_args__ = (
        PrimaryKeyConstraint("id", name="pk_grants"),
        UniqueConstraint("grant_number", name="uq_grants_grant_number"),
        CheckConstraint("total_shares > 0", name="ck_grants_total_shares_pos"),
        CheckConstraint("vested_shares >= 0", name="ck_grants_vested_nonneg"),
        CheckConstraint("exercised_shares >= 0", name="ck_grants_exercised_nonneg"),
        CheckConstraint("forfeited_shares >= 0", name="ck_grants_forfeited_nonneg"),
        CheckConstraint(
            "remaining_unvested_shares IS NULL OR remaining_unvested_shares >= 0",
            name="ck_grants_remaining_nonneg",
        ),
        CheckConstraint(
            "exercise_price IS NULL OR exercise_price >= 0",
            name="ck_grants_exercise_price_nonneg",
        ),
        Index("idx_grants_company_status", "company_id", "status"),
        Index("idx_grants_employee_id", "employee_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    grant_number: Mapped[str] = mapped_column(Text, nullable=False)
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", name="fk_grants_company", ondelete="RESTRICT"),
        nullable=False,
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("incentive_plans.id", name="fk_grants_plan", ondelete="RESTRICT"),
        nullable=False,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("employees.id", name="fk_grants_employee", ondelete="RESTRICT"),
        nullable=False,
    )
    total_shares: Mapped[Decimal] = mapped_column(Numeric(20, 4), nullable=False)
    vested_shares: Mapped[Decimal] = mapped_column(
        Numeric(20, 4),
        nullable=False,
        server_default=text("0"),
    )
    exercised_shares: Mapped[Decimal] = mapped_column(
        Numeric(20, 4),
        nullable=False,
        server_default=text("0"),
    )
    forfeited_shares: Mapped[Decimal] = mapped_column(
        Numeric(20, 4),
        nullable=False,
        server_default=text("0"),
    )
    remaining_unvested_shares: Mapped[Decimal | None] = mapped_column(Numeric(20, 4), nullable=True)
    status: Mapped[str] = mapped_column(
        grant_status_enum,
        nullable=False,
        server_default=text("'draft'"),
    )
    exercise_price: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    vesting_schedule_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    employee_acceptance_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
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


class GrantPerformanceMetric(Base):
    """Link between a grant and a performance metric definition."""

    __tablename__ = "grant_performance_metrics"
    __table_args__ = (
        PrimaryKeyConstraint("id", name="pk_grant_performance_metrics"),
        UniqueConstraint(
            "grant_id",
            "performance_metric_id",
            name="uq_grant_performance_metrics_grant_metric",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", name="fk_grant_performance_metrics_company", ondelete="RESTRICT"),
        nullable=False,
    )
    grant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("grants.id", name="fk_grant_performance_metrics_grant", ondelete="CASCADE"),
        nullable=False,
    )
    performance_metric_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey(
            "performance_metrics.id",
            name="fk_grant_performance_metrics_metric",
            ondelete="RESTRICT",
        ),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
