"""Share ledger account (portfolio) model definitions."""

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
from backend.db.enums import portfolio_type_enum

logger = logging.getLogger(__name__)


class Portfolio(Base):
    """Company-reserved pool or employee-vested holding."""

    __tablename__ = "portfolios"
    __table_args__ = (
        PrimaryKeyConstraint("id", name="pk_portfolios"),
        UniqueConstraint("company_id", "portfolio_number", name="uq_portfolios_company_number"),
        CheckConstraint("total_shares >= 0", name="ck_portfolios_total_nonneg"),
        CheckConstraint("available_shares >= 0", name="ck_portfolios_available_nonneg"),
        CheckConstraint("locked_shares >= 0", name="ck_portfolios_locked_nonneg"),
        CheckConstraint(
            "available_shares <= total_shares",
            name="ck_portfolios_available_le_total",
        ),
        CheckConstraint(
            "(portfolio_type = 'company_reserved' AND employee_id IS NULL) "
            "OR (portfolio_type = 'employee_vested' AND employee_id IS NOT NULL)",
            name="ck_portfolios_owner_matches_type",
        ),
        Index(
            "uq_portfolios_company_reserved",
            "company_id",
            unique=True,
            postgresql_where=text("portfolio_type = 'company_reserved'"),
        ),
        Index(
            "uq_portfolios_employee_vested",
            "company_id",
            "employee_id",
            unique=True,
            postgresql_where=text("portfolio_type = 'employee_vested'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    portfolio_type: Mapped[str] = mapped_column(portfolio_type_enum, nullable=False)
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", name="fk_portfolios_company", ondelete="RESTRICT"),
        nullable=False,
    )
    employee_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("employees.id", name="fk_portfolios_employee", ondelete="RESTRICT"),
        nullable=True,
    )
    total_shares: Mapped[Decimal] = mapped_column(
        Numeric(20, 4),
        nullable=False,
        server_default=text("0"),
    )
    available_shares: Mapped[Decimal] = mapped_column(
        Numeric(20, 4),
        nullable=False,
        server_default=text("0"),
    )
    locked_shares: Mapped[Decimal] = mapped_column(
        Numeric(20, 4),
        nullable=False,
        server_default=text("0"),
    )
    portfolio_number: Mapped[str] = mapped_column(Text, nullable=False)
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
