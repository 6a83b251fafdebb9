"""Incentive plan model definitions."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Numeric,
    PrimaryKeyConstraint,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from backend.db.base import Base
from backend.db.enums import plan_type_enum, vesting_schedule_type_enum

logger = logging.getLogger(__name__)


class IncentivePlan(Base):
    """ESOP / LTIP plan a grant is issued under."""

    __tablename__ = "incentive_plans"
    __table_args__ = (
        PrimaryKeyConstraint("id", name="pk_incentive_plans"),
        UniqueConstraint("company_id", "plan_code", name="uq_incentive_plans_company_code"),
        CheckConstraint(
            "exercise_price IS NULL OR exercise_price >= 0",
            name="ck_incentive_plans_exercise_price_nonneg",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", name="fk_incentive_plans_company", ondelete="RESTRICT"),
        nullable=False,
    )
    plan_name_en: Mapped[str] = mapped_column(Text, nullable=False)
    plan_code: Mapped[str] = mapped_column(Text, nullable=False)
    plan_type: Mapped[str] = mapped_column(plan_type_enum, nullable=False)
    vesting_schedule_type: Mapped[str] = mapped_column(
        vesting_schedule_type_enum,
        nullable=False,
        server_default=text("'time_based'"),
    )
    exercise_price: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
