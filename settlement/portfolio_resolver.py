"""Lookup and idempotent provisioning of settlement ledger accounts."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional
from uuid import UUID

from settlement.common import SettlementDatabase
from settlement.errors import ConfigurationError, InconsistentStateError
from settlement.records import PortfolioRecord

logger = logging.getLogger(__name__)

EMPLOYEE_PORTFOLIO_PREFIX = "PORT-EMPLOYEE-"

_PORTFOLIO_COLUMNS = """
    id, portfolio_type, company_id, employee_id, portfolio_number,
    total_shares, available_shares, locked_shares
"""


@dataclass(frozen=True)
class PortfolioPair:
    """Source pool and destination holding for one settlement."""

    source: PortfolioRecord
    destination: PortfolioRecord


def employee_portfolio_number(employee_number: Optional[str], employee_id: UUID) -> str:
    """Deterministic number from the business identifier, else the id prefix."""
    token = (employee_number or "").strip() or str(employee_id)[:8]
    return f"{EMPLOYEE_PORTFOLIO_PREFIX}{token}"


class PortfolioResolver:
    """Resolve the company pool and the employee holding a settlement needs."""

    def __init__(self, db: SettlementDatabase) -> None:
        self._db = db

    async def company_reserved(self, company_id: UUID) -> PortfolioRecord:
        row = await self._db.fetch_one(
            f"""
            SELECT {_PORTFOLIO_COLUMNS}
            FROM portfolios
            WHERE company_id = :company_id
              AND portfolio_type = 'company_reserved'
              AND employee_id IS NULL
            """,
            {"company_id": company_id},
        )
        if row is None:
            logger.error("Company reserved portfolio missing: company_id=%s", company_id)
            raise ConfigurationError(
                f"Company reserved portfolio not found for company {company_id}. "
                "Please ensure a company reserved portfolio exists for this company.",
                reason_code="COMPANY_PORTFOLIO_MISSING",
            )
        return PortfolioRecord.from_row(row)

    async def employee_vested(self, company_id: UUID, employee_id: UUID) -> Optional[PortfolioRecord]:
        row = await self._db.fetch_one(
            f"""
            SELECT {_PORTFOLIO_COLUMNS}
            FROM portfolios
            WHERE company_id = :company_id
              AND employee_id = :employee_id
              AND portfolio_type = 'employee_vested'
            """,
            {"company_id": company_id, "employee_id": employee_id},
        )
        return PortfolioRecord.from_row(row) if row is not None else None

    async def ensure_employee_vested(self, company_id: UUID, employee_id: UUID) -> PortfolioRecord:
        """Return the employee holding, creating it with zero balances if absent."""
        existing = await self.employee_vested(company_id, employee_id)
        if existing is not None:
            return existing

        logger.warning(
            "Employee vested portfolio missing; provisioning: company_id=%s employee_id=%s",
            company_id,
            employee_id,
        )
        employee = await self._db.fetch_one(
            """
            SELECT employee_number
            FROM employees
            WHERE id = :employee_id
            """,
            {"employee_id": employee_id},
        )
        portfolio_number = employee_portfolio_number(
            employee["employee_number"] if employee is not None else None,
            employee_id,
        )
        created = await self._db.fetch_one(
            f"""
            INSERT INTO portfolios (
                portfolio_type, company_id, employee_id,
                total_shares, available_shares, locked_shares, portfolio_number
            )
            VALUES ('employee_vested', :company_id, :employee_id, 0, 0, 0, :portfolio_number)
            ON CONFLICT (company_id, employee_id) WHERE portfolio_type = 'employee_vested'
            DO NOTHING
            RETURNING {_PORTFOLIO_COLUMNS}
            """,
            {
                "company_id": company_id,
                "employee_id": employee_id,
                "portfolio_number": portfolio_number,
            },
        )
        if created is not None:
            logger.info(
                "Provisioned employee portfolio %s: company_id=%s employee_id=%s",
                portfolio_number,
                company_id,
                employee_id,
            )
            return PortfolioRecord.from_row(created)

        # A concurrent settlement won the insert.
        winner = await self.employee_vested(company_id, employee_id)
        if winner is None:
            raise InconsistentStateError(
                f"Employee vested portfolio for company {company_id} employee {employee_id} "
                "was neither inserted nor found."
            )
        return winner

    async def resolve_pair(self, company_id: UUID, employee_id: UUID) -> PortfolioPair:
        source = await self.company_reserved(company_id)
        destination = await self.ensure_employee_vested(company_id, employee_id)
        return PortfolioPair(source=source, destination=destination)
