"""Async psycopg adapter implementing the settlement DB protocol."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import re
from typing import Any, AsyncIterator, Mapping, Optional, Sequence

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import dict_row

from settlement.errors import BackendError, DuplicateKeyError, TransientBackendError

logger = logging.getLogger(__name__)

_NAMED_PARAM_RE = re.compile(r"(?<!:):([a-zA-Z_][a-zA-Z0-9_]*)")

_TRANSIENT_ERRORS: tuple[type[psycopg.Error], ...] = (
    psycopg.OperationalError,
    pg_errors.SerializationFailure,
    pg_errors.DeadlockDetected,
    pg_errors.QueryCanceled,
    pg_errors.LockNotAvailable,
)


def _convert_named_params(sql: str) -> str:
    return _NAMED_PARAM_RE.sub(r"%(\1)s", sql)


def translate_error(exc: psycopg.Error) -> BackendError:
    """Map driver exceptions onto the settlement error taxonomy."""
    if isinstance(exc, pg_errors.UniqueViolation):
        constraint = exc.diag.constraint_name if exc.diag is not None else None
        return DuplicateKeyError(str(exc).strip(), constraint=constraint)
    if isinstance(exc, _TRANSIENT_ERRORS):
        return TransientBackendError(str(exc).strip())
    return BackendError(str(exc).strip())


class PsycopgSettlementDB:
    """Adapter over one autocommit AsyncConnection.

    Statements outside ``transaction()`` commit individually. One adapter must not
    be shared by concurrently running tasks; open one connection per worker.
    """

    def __init__(self, conn: psycopg.AsyncConnection[Any]) -> None:
        self.conn = conn

    async def fetch_one(self, sql: str, params: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        rows = await self.fetch_all(sql, params)
        return rows[0] if rows else None

    async def fetch_all(self, sql: str, params: Mapping[str, Any]) -> Sequence[Mapping[str, Any]]:
        converted = _convert_named_params(sql)
        try:
            async with self.conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(converted, dict(params))
                if cur.description is None:
                    return []
                return [dict(row) for row in await cur.fetchall()]
        except psycopg.Error as exc:
            raise translate_error(exc) from exc

    async def execute(self, sql: str, params: Mapping[str, Any]) -> None:
        converted = _convert_named_params(sql)
        try:
            async with self.conn.cursor() as cur:
                await cur.execute(converted, dict(params))
        except psycopg.Error as exc:
            raise translate_error(exc) from exc

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        try:
            async with self.conn.transaction():
                yield
        except psycopg.Error as exc:
            raise translate_error(exc) from exc

    async def close(self) -> None:
        await self.conn.close()


async def connect_settlement_db(dsn: str, *, statement_timeout_ms: int) -> PsycopgSettlementDB:
    """Open an autocommit connection with a per-session statement timeout."""
    try:
        conn = await psycopg.AsyncConnection.connect(
            dsn,
            autocommit=True,
            options=f"-c statement_timeout={int(statement_timeout_ms)}",
        )
    except psycopg.Error as exc:
        logger.error("Settlement DB connection failed: %s", exc)
        raise translate_error(exc) from exc
    return PsycopgSettlementDB(conn)
