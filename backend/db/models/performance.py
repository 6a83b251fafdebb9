"""Performance metric and vesting milestone model definitions."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
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

logger = logging.getLogger(__name__)


class PerformanceMetric(Base):
    """Company-defined performance measure (revenue, EBITDA, TSR, ...)."""

    __tablename__ = "performance_metrics"
    __table_args__ = (
        PrimaryKeyConstraint("id", name="pk_performance_metrics"),
        CheckConstraint(
            "length(btrim(name)) > 0",
            name="ck_performance_metrics_name_not_blank",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", name="fk_performance_metrics_company", ondelete="RESTRICT"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    metric_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    unit_of_measure: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )


class VestingMilestone(Base):
    """Target/actual pair for one sequence position of a vesting schedule."""

    __tablename__ = "vesting_milestones"
    __table_args__ = (
        PrimaryKeyConstraint("id", name="pk_vesting_milestones"),
        UniqueConstraint(
            "vesting_schedule_id",
            "sequence_order",
            name="uq_vesting_milestones_schedule_sequence",
        ),
        CheckConstraint("sequence_order >= 1", name="ck_vesting_milestones_sequence_pos"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    vesting_schedule_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)
    performance_metric_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("performance_metrics.id", name="fk_vesting_milestones_metric", ondelete="RESTRICT"),
        nullable=True,
    )
    target_value: Mapped[Decimal | None] = mapped_column(Numeric(24, 6), nullable=True)
    actual_value: Mapped[Decimal | None] = mapped_column(Numeric(24, 6), nullable=True)
    is_achieved: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    achieved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
