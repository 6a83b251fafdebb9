"""Shared protocols and helpers for settlement orchestration."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, AsyncContextManager, Mapping, Optional, Protocol, Sequence


class SettlementDatabase(Protocol):
    """Minimal async DB protocol used by settlement modules."""

    async def fetch_one(self, sql: str, params: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        """Fetch one row."""

    async def fetch_all(self, sql: str, params: Mapping[str, Any]) -> Sequence[Mapping[str, Any]]:
        """Fetch rows."""

    async def execute(self, sql: str, params: Mapping[str, Any]) -> None:
        """Execute mutation statement."""

    def transaction(self) -> AsyncContextManager[None]:
        """Open an atomic unit; nested calls become savepoints."""


@dataclass(frozen=True)
class SettlementClock:
    """Injectable UTC clock for deterministic testing."""

    def now_utc(self) -> datetime:
        """Return current UTC timestamp."""
        return datetime.now(tz=timezone.utc)

    def today(self) -> date:
        return self.now_utc().date()


def utc_iso(ts: datetime) -> str:
    """Normalize timestamp to UTC RFC3339 string."""
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
