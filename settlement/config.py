"""Environment-backed configuration for the settlement engine."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class SettlementConfig:
    """Canonical configuration surface for settlement runtime."""

    database_url: Optional[str]
    transfer_number_attempts: int
    statement_timeout_ms: int
    event_list_limit: int
    grant_filter_limit: int
    log_level: str
    notify_on_promotion: bool

    def require_database_url(self) -> str:
        if not self.database_url:
            raise RuntimeError(
                "Missing required environment variable: SETTLEMENT_DATABASE_URL (or DATABASE_URL)"
            )
        return self.database_url


def _read_env(name: str, default: str | None = None) -> str:
    value = os.getenv(name, default)
    if value is None or value.strip() == "":
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value.strip()


def _read_optional(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return raw.strip()


def _read_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise RuntimeError(f"Invalid boolean value for {name}: {raw}")


def _read_int(name: str, default: int, *, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"Invalid integer value for {name}: {raw}") from exc
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}, got {value}")
    return value


def load_settlement_config() -> SettlementConfig:
    """Load and validate settlement configuration from environment."""
    log_level = _read_env("SETTLEMENT_LOG_LEVEL", "INFO").upper()
    if log_level not in _LOG_LEVELS:
        raise RuntimeError(f"Invalid log level for SETTLEMENT_LOG_LEVEL: {log_level}")

    return SettlementConfig(
        database_url=_read_optional("SETTLEMENT_DATABASE_URL") or _read_optional("DATABASE_URL"),
        transfer_number_attempts=_read_int("SETTLEMENT_TRANSFER_NUMBER_ATTEMPTS", 5),
        statement_timeout_ms=_read_int("SETTLEMENT_STATEMENT_TIMEOUT_MS", 15000, minimum=0),
        event_list_limit=_read_int("SETTLEMENT_EVENT_LIST_LIMIT", 100),
        grant_filter_limit=_read_int("SETTLEMENT_GRANT_FILTER_LIMIT", 1000),
        log_level=log_level,
        notify_on_promotion=_read_bool("SETTLEMENT_NOTIFY_ON_PROMOTION", True),
    )


DEFAULT_CONFIG = SettlementConfig(
    database_url=None,
    transfer_number_attempts=5,
    statement_timeout_ms=15000,
    event_list_limit=100,
    grant_filter_limit=1000,
    log_level="INFO",
    notify_on_promotion=True,
)
