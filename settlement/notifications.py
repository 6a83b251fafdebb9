"""Outbound port for settlement state-change signals."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Optional, Protocol
from uuid import UUID

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementStateChanged:
    """Coarse signal consumed by badge/counter refreshers."""

    action: str
    occurred_at: datetime
    event_id: Optional[UUID] = None
    company_id: Optional[UUID] = None
    employee_id: Optional[UUID] = None
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    caller_id: Optional[str] = None


class SettlementNotifier(Protocol):
    """Receiver of settlement state-change signals."""

    async def notify(self, change: SettlementStateChanged) -> None:
        """Deliver one signal; no acknowledgement is expected."""


class NullNotifier:
    async def notify(self, change: SettlementStateChanged) -> None:
        return None


class LoggingNotifier:
    """Notifier that writes each signal to the module logger."""

    async def notify(self, change: SettlementStateChanged) -> None:
        logger.info(
            "Settlement state changed: action=%s event_id=%s company_id=%s %s->%s caller=%s",
            change.action,
            change.event_id,
            change.company_id,
            change.previous_status,
            change.new_status,
            change.caller_id,
        )


async def publish(notifier: SettlementNotifier, change: SettlementStateChanged) -> bool:
    """Deliver a signal after commit. Delivery failures are logged and reported, never raised."""
    try:
        await notifier.notify(change)
    except Exception:
        logger.warning(
            "Settlement notification delivery failed: action=%s event_id=%s",
            change.action,
            change.event_id,
            exc_info=True,
        )
        return False
    return True
