"""DB-backed integration tests for settlement against the migrated schema."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any
import uuid

import pytest

from settlement.engine import build_engine
from settlement.psycopg_db import PsycopgSettlementDB, connect_settlement_db
from settlement.records import CallerIdentity


CALLER = CallerIdentity("integration-admin")


def _insert(conn: Any, table: str, values: dict[str, Any]) -> uuid.UUID:
    columns = ", ".join(values)
    placeholders = ", ".join(f"%({name})s" for name in values)
    with conn.cursor() as cur:
        cur.execute(f"INSERT INTO {table} ({columns}) VALUES ({placeholders}) RETURNING id", values)
        row = cur.fetchone()
    assert row is not None
    return row[0]


def _seed(conn: Any, *, plan_type: str, status: str = "vested", exercise_price: Decimal | None = None) -> dict[str, uuid.UUID]:
    company_id = _insert(conn, "companies", {"company_name_en": "Integration Holdings"})
    employee_id = _insert(
        conn,
        "employees",
        {"company_id": company_id, "employee_number": "E-7", "first_name_en": "Omar", "last_name_en": "Saleh"},
    )
    plan_id = _insert(
        conn,
        "incentive_plans",
        {
            "company_id": company_id,
            "plan_name_en": "Integration Plan",
            "plan_code": f"P-{uuid.uuid4().hex[:6]}",
            "plan_type": plan_type,
            "exercise_price": exercise_price,
        },
    )
    grant_id = _insert(
        conn,
        "grants",
        {
            "grant_number": f"G-{uuid.uuid4().hex[:8]}",
            "company_id": company_id,
            "plan_id": plan_id,
            "employee_id": employee_id,
            "total_shares": Decimal("10000"),
            "remaining_unvested_shares": Decimal("7500"),
            "vested_shares": Decimal("2500"),
            "status": "active",
        },
    )
    event_id = _insert(
        conn,
        "vesting_events",
        {
            "grant_id": grant_id,
            "employee_id": employee_id,
            "company_id": company_id,
            "event_type": "time_based",
            "sequence_number": 1,
            "vesting_date": "2026-01-01",
            "shares_to_vest": Decimal("2500"),
            "status": status,
        },
    )
    _insert(
        conn,
        "portfolios",
        {
            "portfolio_type": "company_reserved",
            "company_id": company_id,
            "total_shares": Decimal("1000000"),
            "available_shares": Decimal("1000000"),
            "portfolio_number": "PORT-COMPANY-RESERVED",
        },
    )
    return {"company_id": company_id, "employee_id": employee_id, "grant_id": grant_id, "event_id": event_id}


async def _connect(dsn: str, schema: str) -> PsycopgSettlementDB:
    db = await connect_settlement_db(dsn, statement_timeout_ms=15000)
    await db.execute(f"SET search_path TO {schema}, public", {})
    return db


def _fetch(conn: Any, sql: str, params: dict[str, Any]) -> list[tuple[Any, ...]]:
    with conn.cursor() as cur:
        cur.execute(sql, params)
        return list(cur.fetchall())


def test_settlement_provisions_portfolio_and_writes_one_transfer(
    pg_conn: Any,
    pg_dsn: str,
    settlement_schema: str,
) -> None:
    seeded = _seed(pg_conn, plan_type="LTIP_RSU")

    async def _scenario() -> tuple[Any, Any, Any]:
        db = await _connect(pg_dsn, settlement_schema)
        try:
            engine = build_engine(db)
            first = await engine.settle(seeded["event_id"], CALLER)
            second = await engine.settle(seeded["event_id"], CALLER)
            report = await engine.audit(seeded["company_id"])
            return first, second, report
        finally:
            await db.close()

    first, second, report = asyncio.run(_scenario())

    assert first.success is True
    assert first.transfer is not None
    assert first.transfer.shares_transferred == Decimal("2500.0000")
    assert second.success is False
    assert second.reason_code == "EVENT_NOT_VESTED"
    assert report.is_consistent is True

    events = _fetch(
        pg_conn,
        "SELECT status::text, portfolio_transaction_id FROM vesting_events WHERE id = %(id)s",
        {"id": seeded["event_id"]},
    )
    assert events == [("transferred", first.transfer.transfer_id)]
    holdings = _fetch(
        pg_conn,
        "SELECT portfolio_number, total_shares FROM portfolios WHERE employee_id = %(employee_id)s",
        {"employee_id": seeded["employee_id"]},
    )
    assert holdings == [("PORT-EMPLOYEE-E-7", Decimal("0.0000"))]


def test_concurrent_settlements_produce_exactly_one_transfer(
    pg_conn: Any,
    pg_dsn: str,
    settlement_schema: str,
) -> None:
    seeded = _seed(pg_conn, plan_type="LTIP_RSA")

    async def _race() -> list[Any]:
        first_db = await _connect(pg_dsn, settlement_schema)
        second_db = await _connect(pg_dsn, settlement_schema)
        try:
            return list(
                await asyncio.gather(
                    build_engine(first_db).settle(seeded["event_id"], CALLER),
                    build_engine(second_db).settle(seeded["event_id"], CALLER),
                )
            )
        finally:
            await first_db.close()
            await second_db.close()

    results = asyncio.run(_race())

    assert sorted(result.success for result in results) == [False, True]
    loser = next(result for result in results if not result.success)
    assert loser.reason_code == "EVENT_NOT_VESTED"
    transfers = _fetch(
        pg_conn,
        "SELECT COUNT(*) FROM share_transfers WHERE vesting_event_id = %(id)s",
        {"id": seeded["event_id"]},
    )
    assert transfers == [(1,)]


def test_esop_exercise_records_cost_and_grant_counter(
    pg_conn: Any,
    pg_dsn: str,
    settlement_schema: str,
) -> None:
    seeded = _seed(pg_conn, plan_type="ESOP", exercise_price=Decimal("4.50"))

    async def _exercise() -> Any:
        db = await _connect(pg_dsn, settlement_schema)
        try:
            return await build_engine(db).exercise(seeded["event_id"], CALLER, None)
        finally:
            await db.close()

    result = asyncio.run(_exercise())

    assert result.success is True
    assert result.total_exercise_cost == Decimal("11250.00")
    rows = _fetch(
        pg_conn,
        "SELECT ve.status::text, ve.total_exercise_cost, g.exercised_shares "
        "FROM vesting_events ve JOIN grants g ON g.id = ve.grant_id WHERE ve.id = %(id)s",
        {"id": seeded["event_id"]},
    )
    assert rows == [("exercised", Decimal("11250.00"), Decimal("2500.0000"))]


def test_missing_procedures_are_reported_not_raised(pg_dsn: str, settlement_schema: str) -> None:
    async def _promote() -> Any:
        db = await _connect(pg_dsn, settlement_schema)
        try:
            return await build_engine(db).promote_due_events(CALLER)
        finally:
            await db.close()

    result = asyncio.run(_promote())

    if result.success:
        pytest.skip("Database provides update_vesting_event_status(); nothing to assert.")
    assert result.reason_code == "PROCEDURE_FAILED"
