"""Share transfer settlement record model definitions."""

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
    Numeric,
    PrimaryKeyConstraint,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from backend.db.base import Base
from backend.db.enums import transfer_status_enum, transfer_type_enum

logger = logging.getLogger(__name__)


class ShareTransfer(Base):
    """Pool-to-holding transfer created once per settled vesting event."""

    __tablename__ = "share_transfers"
    __table_args__ = (
        PrimaryKeyConstraint("id", name="pk_share_transfers"),
        UniqueConstraint("transfer_number", name="uq_share_transfers_transfer_number"),
        CheckConstraint("shares_transferred > 0", name="ck_share_transfers_shares_pos"),
        CheckConstraint(
            "from_portfolio_id <> to_portfolio_id",
            name="ck_share_transfers_distinct_portfolios",
        ),
        Index(
            "uq_share_transfers_active_vesting_event",
            "vesting_event_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
        ),
        Index("idx_share_transfers_company_status", "company_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    transfer_number: Mapped[str] = mapped_column(Text, nullable=False)
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", name="fk_share_transfers_company", ondelete="RESTRICT"),
        nullable=False,
    )
    grant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("grants.id", name="fk_share_transfers_grant", ondelete="RESTRICT"),
        nullable=False,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("employees.id", name="fk_share_transfers_employee", ondelete="RESTRICT"),
        nullable=False,
    )
    vesting_event_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("vesting_events.id", name="fk_share_transfers_vesting_event", ondelete="RESTRICT"),
        nullable=True,
    )
    from_portfolio_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("portfolios.id", name="fk_share_transfers_from_portfolio", ondelete="RESTRICT"),
        nullable=False,
    )
    to_portfolio_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("portfolios.id", name="fk_share_transfers_to_portfolio", ondelete="RESTRICT"),
        nullable=False,
    )
    shares_transferred: Mapped[Decimal] = mapped_column(Numeric(20, 4), nullable=False)
    transfer_type: Mapped[str] = mapped_column(transfer_type_enum, nullable=False)
    transfer_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        transfer_status_enum,
        nullable=False,
        server_default=text("'pending'"),
    )
    processed_by_system: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("FALSE"),
    )
    initiated_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
