"""Exception hierarchy for vesting settlement operations."""

from __future__ import annotations

from typing import Optional


class SettlementError(RuntimeError):
    """Base error for settlement engine failures."""

    reason_code = "SETTLEMENT_ERROR"
    retryable = False

    def __init__(self, detail: str, *, reason_code: Optional[str] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if reason_code is not None:
            self.reason_code = reason_code


class PreconditionError(SettlementError):
    """Requested operation does not match event status or plan type."""

    reason_code = "PRECONDITION_FAILED"


class EventNotFoundError(PreconditionError):
    reason_code = "EVENT_NOT_FOUND"


class IllegalTransitionError(PreconditionError):
    """Attempted status change is not an edge of the vesting state machine."""

    reason_code = "ILLEGAL_TRANSITION"

    def __init__(self, current_status: str, target_status: str) -> None:
        super().__init__(f"Illegal vesting event transition {current_status} -> {target_status}.")
        self.current_status = current_status
        self.target_status = target_status


class ConfigurationError(SettlementError):
    """Required reference data (for example the company pool) is missing."""

    reason_code = "CONFIGURATION_ERROR"


class BackendError(SettlementError):
    """Persistence backend rejected a statement."""

    reason_code = "BACKEND_ERROR"


class TransientBackendError(BackendError):
    """Timeout, dropped connection or serialization failure; safe to retry."""

    reason_code = "TRANSIENT_BACKEND_ERROR"
    retryable = True


class DuplicateKeyError(BackendError):
    reason_code = "DUPLICATE_KEY"

    def __init__(self, detail: str, *, constraint: Optional[str] = None) -> None:
        super().__init__(detail)
        self.constraint = constraint


class ConcurrentModificationError(SettlementError):
    """Compare-and-set status update matched no row."""

    reason_code = "CONCURRENT_MODIFICATION"
    retryable = True


class InconsistentStateError(SettlementError):
    reason_code = "INCONSISTENT_STATE"


def failure_fields(exc: SettlementError) -> dict[str, object]:
    """Result-dataclass fields describing a rejected operation."""
    return {"reason_code": exc.reason_code, "detail": exc.detail, "retryable": exc.retryable}
