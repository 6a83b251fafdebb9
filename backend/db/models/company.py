"""Company and employee reference model definitions."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    PrimaryKeyConstraint,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from backend.db.base import Base

logger = logging.getLogger(__name__)


class Company(Base):
    """Issuer registry."""

    __tablename__ = "companies"
    __table_args__ = (
        PrimaryKeyConstraint("id", name="pk_companies"),
        CheckConstraint(
            "length(btrim(company_name_en)) > 0",
            name="ck_companies_name_not_blank",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    company_name_en: Mapped[str] = mapped_column(Text, nullable=False)
    tadawul_symbol: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("'active'"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )


class Employee(Base):
    """Employee registry scoped to one company."""

    __tablename__ = "employees"
    __table_args__ = (
        PrimaryKeyConstraint("id", name="pk_employees"),
        UniqueConstraint("company_id", "employee_number", name="uq_employees_company_number"),
        Index("idx_employees_company_id", "company_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", name="fk_employees_company", ondelete="RESTRICT"),
        nullable=False,
    )
    employee_number: Mapped[str] = mapped_column(Text, nullable=False)
    first_name_en: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_name_en: Mapped[str | None] = mapped_column(Text, nullable=True)
    first_name_ar: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_name_ar: Mapped[str | None] = mapped_column(Text, nullable=True)
    employment_status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        server_default=text("'active'"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
