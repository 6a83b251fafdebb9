"""Single entry point wiring the settlement components over one database handle."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Optional, Sequence
from uuid import UUID

from settlement.common import SettlementClock, SettlementDatabase
from settlement.config import DEFAULT_CONFIG, SettlementConfig
from settlement.exercise import ExerciseOrchestrator
from settlement.lifecycle import VestingLifecycle
from settlement.maintenance import ScheduleMaintenance, StoredProcedureGateway
from settlement.notifications import NullNotifier, SettlementNotifier
from settlement.orchestrator import SettlementOrchestrator
from settlement.performance_linker import PerformanceMetricLinker
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
from settlement.stats import VestingEventStats, load_company_stats
from settlement.transfers import TransferNumberFactory, generate_transfer_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementEngine:
    """Facade over the orchestrators, read models and maintenance jobs."""

    db: SettlementDatabase
    settlement: SettlementOrchestrator
    exercises: ExerciseOrchestrator
    lifecycle: VestingLifecycle
    queries: VestingEventQueries
    linker: PerformanceMetricLinker
    auditor: ReconciliationAuditor
    maintenance: ScheduleMaintenance

    async def settle(self, event_id: UUID, caller: CallerIdentity) -> SettlementResult:
        return await self.settlement.settle(event_id, caller)

    async def exercise(
        self,
        event_id: UUID,
        caller: CallerIdentity,
        shares: Optional[Any] = None,
    ) -> ExerciseResult:
        return await self.exercises.exercise(event_id, caller, shares)

    async def confirm_vesting(self, event_id: UUID, caller: CallerIdentity, **kwargs: Any) -> TransitionResult:
        return await self.lifecycle.confirm_vesting(event_id, caller, **kwargs)

    async def forfeit(self, event_id: UUID, caller: CallerIdentity) -> TransitionResult:
        return await self.lifecycle.forfeit(event_id, caller)

    async def cancel(self, event_id: UUID, caller: CallerIdentity) -> TransitionResult:
        return await self.lifecycle.cancel(event_id, caller)

    async def stats(self, company_id: UUID) -> VestingEventStats:
        return await load_company_stats(self.db, company_id)

    async def list_company_events(self, company_id: UUID, **filters: Any) -> list[VestingEventDetails]:
        return await self.queries.list_company_events(company_id, **filters)

    async def audit(self, company_id: UUID) -> ReconciliationReport:
        return await self.auditor.audit(company_id)

    async def promote_due_events(self, caller: CallerIdentity) -> ProcedureResult:
        return await self.maintenance.promote_due_events(caller)

    async def backfill_schedules(
        self,
        company_id: UUID,
        caller: CallerIdentity,
        grant_ids: Optional[Sequence[UUID]] = None,
    ) -> BackfillReport:
        return await self.maintenance.backfill_schedules(company_id, caller, grant_ids)


def build_engine(
    db: SettlementDatabase,
    *,
    config: SettlementConfig = DEFAULT_CONFIG,
    notifier: Optional[SettlementNotifier] = None,
    clock: Optional[SettlementClock] = None,
    transfer_number_factory: TransferNumberFactory = generate_transfer_number,
) -> SettlementEngine:
    notifier = notifier or NullNotifier()
    clock = clock or SettlementClock()
    return SettlementEngine(
        db=db,
        settlement=SettlementOrchestrator(
            db,
            notifier=notifier,
            clock=clock,
            config=config,
            transfer_number_factory=transfer_number_factory,
        ),
        exercises=ExerciseOrchestrator(
            db,
            notifier=notifier,
            clock=clock,
            config=config,
            transfer_number_factory=transfer_number_factory,
        ),
        lifecycle=VestingLifecycle(db, notifier=notifier, clock=clock),
        queries=VestingEventQueries(db, clock=clock, config=config),
        linker=PerformanceMetricLinker(db),
        auditor=ReconciliationAuditor(db),
        maintenance=ScheduleMaintenance(
            db,
            gateway=StoredProcedureGateway(db),
            notifier=notifier,
            clock=clock,
            config=config,
        ),
    )
