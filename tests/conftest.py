"""Pytest fixtures shared across unit and integration tests."""

from __future__ import annotations

import importlib.util
import os
from pathlib import Path
import sys
import types
from typing import Any, Iterator
import uuid

import psycopg
from psycopg.conninfo import make_conninfo
import pytest


MIGRATION_PATH = Path(__file__).resolve().parents[1] / "backend" / "db" / "migrations" / "versions" / "0001_initial_schema.py"


def _integration_params() -> dict[str, str]:
    params = {
        "host": os.getenv("TEST_DB_HOST"),
        "port": os.getenv("TEST_DB_PORT"),
        "dbname": os.getenv("TEST_DB_NAME"),
        "user": os.getenv("TEST_DB_USER"),
        "password": os.getenv("TEST_DB_PASSWORD"),
    }
    if not all(params.values()):
        pytest.skip("Integration DB env vars are missing; set TEST_DB_HOST/PORT/NAME/USER/PASSWORD")
    return {key: str(value) for key, value in params.items()}


@pytest.fixture(scope="session")
def pg_dsn() -> str:
    """libpq connection string for the integration database."""
    return make_conninfo(**_integration_params())


@pytest.fixture(scope="session")
def pg_conn(pg_dsn: str) -> Any:
    """Session-scoped psycopg connection for integration tests."""
    conn = psycopg.connect(pg_dsn, autocommit=True)
    try:
        yield conn
    finally:
        conn.close()


def _apply_migration(conn: Any) -> None:
    executed: list[str] = []

    def _execute(statement: str) -> None:
        with conn.cursor() as cur:
            cur.execute(statement)
        executed.append(statement)

    fake_alembic = types.ModuleType("alembic")
    fake_alembic.op = types.SimpleNamespace(execute=_execute)
    previous = sys.modules.get("alembic")
    sys.modules["alembic"] = fake_alembic
    try:
        spec = importlib.util.spec_from_file_location("migration_0001_integration", MIGRATION_PATH)
        assert spec is not None and spec.loader is not None
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        module.upgrade()
    finally:
        if previous is None:
            sys.modules.pop("alembic", None)
        else:
            sys.modules["alembic"] = previous


@pytest.fixture
def settlement_schema(pg_conn: Any) -> Iterator[str]:
    """Fresh schema with the initial migration applied; dropped after the test."""
    schema = f"settlement_it_{uuid.uuid4().hex[:12]}"
    with pg_conn.cursor() as cur:
        cur.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto SCHEMA public;")
        cur.execute(f"CREATE SCHEMA {schema};")
        cur.execute(f"SET search_path TO {schema}, public;")
    try:
        _apply_migration(pg_conn)
        yield schema
    finally:
        with pg_conn.cursor() as cur:
            cur.execute("SET search_path TO public;")
            cur.execute(f"DROP SCHEMA IF EXISTS {schema} CASCADE;")
