"""Vesting event lifecycle and share settlement engine."""

from settlement.config import SettlementConfig, load_settlement_config
from settlement.engine import SettlementEngine, build_engine
from settlement.errors import (
    BackendError,
    ConcurrentModificationError,
    ConfigurationError,
    DuplicateKeyError,
    EventNotFoundError,
    IllegalTransitionError,
    InconsistentStateError,
    PreconditionError,
    SettlementError,
    TransientBackendError,
)
from settlement.exercise import ExerciseOrchestrator
from settlement.lifecycle import VestingLifecycle
from settlement.maintenance import ScheduleMaintenance, StoredProcedureGateway
from settlement.notifications import LoggingNotifier, NullNotifier, SettlementNotifier, SettlementStateChanged
from settlement.orchestrator import SettlementOrchestrator
from settlement.performance_linker import PerformanceMetricLinker, PerformanceResolution
from settlement.portfolio_resolver import PortfolioResolver
from settlement.queries import VestingEventDetails, VestingEventQueries
from settlement.reconciliation import ReconciliationAuditor, ReconciliationReport
from settlement.records import (
    BackfillReport,
    CallerIdentity,
    ExerciseResult,
    ProcedureResult,
    SettlementResult,
    TransitionResult,
)
from settlement.stats import VestingEventStats, aggregate_stats, load_company_stats

__all__ = [
    "BackendError",
    "BackfillReport",
    "CallerIdentity",
    "ConcurrentModificationError",
    "ConfigurationError",
    "DuplicateKeyError",
    "EventNotFoundError",
    "ExerciseOrchestrator",
    "ExerciseResult",
    "IllegalTransitionError",
    "InconsistentStateError",
    "LoggingNotifier",
    "NullNotifier",
    "PerformanceMetricLinker",
    "PerformanceResolution",
    "PortfolioResolver",
    "PreconditionError",
    "ProcedureResult",
    "ReconciliationAuditor",
    "ReconciliationReport",
    "ScheduleMaintenance",
    "SettlementConfig",
    "SettlementEngine",
    "SettlementError",
    "SettlementNotifier",
    "SettlementOrchestrator",
    "SettlementResult",
    "SettlementStateChanged",
    "StoredProcedureGateway",
    "TransientBackendError",
    "TransitionResult",
    "VestingEventDetails",
    "VestingEventQueries",
    "VestingEventStats",
    "VestingLifecycle",
    "aggregate_stats",
    "build_engine",
    "load_settlement_config",
]
