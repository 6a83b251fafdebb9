"""Resolve linked performance metrics and schedule milestones for vesting events."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Iterable, Mapping, Optional, Sequence
from uuid import UUID

from settlement.common import SettlementDatabase
from settlement.errors import BackendError
from settlement.numeric import as_optional_decimal
from settlement.state_machine import requires_performance_confirmation

logger = logging.getLogger(__name__)

DEFAULT_METRIC_NAME = "Performance Metric"


@dataclass(frozen=True)
class EventMetricKey:
    """The event attributes metric resolution depends on."""

    event_id: UUID
    grant_id: UUID
    event_type: str
    sequence_number: int
    vesting_schedule_id: Optional[UUID] = None


@dataclass(frozen=True)
class MetricSummary:
    metric_id: Optional[UUID]
    name: Optional[str] = None
    description: Optional[str] = None
    metric_type: Optional[str] = None
    unit_of_measure: Optional[str] = None
    target_value: Optional[Decimal] = None
    actual_value: Optional[Decimal] = None
    is_achieved: Optional[bool] = None
    achieved_at: Optional[datetime] = None

    def merged_with(self, milestone: "MetricSummary") -> "MetricSummary":
        """Overlay milestone values, keeping existing values the milestone lacks."""
        overlay = {
            name: getattr(milestone, name)
            for name in (
                "name",
                "description",
                "metric_type",
                "unit_of_measure",
                "target_value",
                "actual_value",
                "is_achieved",
                "achieved_at",
            )
            if getattr(milestone, name) is not None
        }
        return replace(self, **overlay)

    def as_payload(self) -> dict[str, Any]:
        return {
            "id": str(self.metric_id) if self.metric_id else None,
            "name": self.name,
            "description": self.description,
            "metric_type": self.metric_type,
            "unit_of_measure": self.unit_of_measure,
            "target_value": str(self.target_value) if self.target_value is not None else None,
            "actual_value": str(self.actual_value) if self.actual_value is not None else None,
            "is_achieved": self.is_achieved,
            "achieved_at": self.achieved_at.isoformat() if self.achieved_at else None,
        }


@dataclass(frozen=True)
class PerformanceResolution:
    has_linked_metrics: bool
    requires_performance_confirmation: bool
    metrics: tuple[MetricSummary, ...] = ()
    milestone_id: Optional[UUID] = None
    milestone_metric: Optional[MetricSummary] = None


NO_PERFORMANCE = PerformanceResolution(has_linked_metrics=False, requires_performance_confirmation=False)


@dataclass(frozen=True)
class _Milestone:
    milestone_id: UUID
    metric: MetricSummary


def _metric_from_row(row: Mapping[str, Any], metric_id: Any) -> MetricSummary:
    return MetricSummary(
        metric_id=metric_id,
        name=row.get("name"),
        description=row.get("description"),
        metric_type=row.get("metric_type"),
        unit_of_measure=row.get("unit_of_measure"),
    )


class PerformanceMetricLinker:
    """Read-only resolution of grant metric links and milestone targets.

    Link lookups propagate backend errors. Milestone lookups degrade to
    "no milestone detail" so that listings never abort on them.
    """

    def __init__(self, db: SettlementDatabase) -> None:
        self._db = db

    async def resolve(self, events: Sequence[EventMetricKey]) -> dict[UUID, PerformanceResolution]:
        if not events:
            return {}

        links = await self._load_grant_metrics({event.grant_id for event in events})
        resolutions: dict[UUID, PerformanceResolution] = {}
        for event in events:
            metrics = links.get(event.grant_id, ())
            has_metrics = bool(metrics)
            resolutions[event.event_id] = PerformanceResolution(
                has_linked_metrics=has_metrics,
                requires_performance_confirmation=requires_performance_confirmation(event.event_type, has_metrics),
                metrics=tuple(metrics),
            )

        gated = [
            event
            for event in events
            if resolutions[event.event_id].requires_performance_confirmation and event.vesting_schedule_id
        ]
        if not gated:
            return resolutions

        milestones = await self._load_milestones_degrading({event.vesting_schedule_id for event in gated})
        for event in gated:
            milestone = milestones.get((event.vesting_schedule_id, event.sequence_number))
            if milestone is None:
                continue
            resolutions[event.event_id] = self._attach_milestone(resolutions[event.event_id], milestone)
        return resolutions

    async def resolve_one(self, event: EventMetricKey) -> PerformanceResolution:
        return (await self.resolve([event])).get(event.event_id, NO_PERFORMANCE)

    @staticmethod
    def _attach_milestone(resolution: PerformanceResolution, milestone: _Milestone) -> PerformanceResolution:
        metric = milestone.metric
        metrics = list(resolution.metrics)
        if metric.metric_id is not None:
            for index, existing in enumerate(metrics):
                if existing.metric_id == metric.metric_id:
                    metrics[index] = existing.merged_with(metric)
                    break
            else:
                metrics.append(metric)
        return replace(
            resolution,
            metrics=tuple(metrics),
            milestone_id=milestone.milestone_id,
            milestone_metric=metric,
        )

    async def _load_grant_metrics(self, grant_ids: Iterable[UUID]) -> dict[UUID, tuple[MetricSummary, ...]]:
        rows = await self._db.fetch_all(
            """
            SELECT gpm.grant_id, gpm.performance_metric_id,
                   pm.name, pm.description, pm.metric_type, pm.unit_of_measure
            FROM grant_performance_metrics gpm
            LEFT JOIN performance_metrics pm ON pm.id = gpm.performance_metric_id
            WHERE gpm.grant_id = ANY(:grant_ids)
            ORDER BY gpm.grant_id, gpm.created_at, gpm.performance_metric_id
            """,
            {"grant_ids": sorted(grant_ids, key=str)},
        )
        grouped: dict[UUID, dict[Any, MetricSummary]] = {}
        for row in rows:
            metric_id = row.get("performance_metric_id")
            if metric_id is None:
                continue
            per_grant = grouped.setdefault(row["grant_id"], {})
            if metric_id in per_grant:
                continue
            per_grant[metric_id] = _metric_from_row(row, metric_id)
        return {grant_id: tuple(metrics.values()) for grant_id, metrics in grouped.items()}

    async def _load_milestones_degrading(
        self,
        schedule_ids: Iterable[Optional[UUID]],
    ) -> dict[tuple[UUID, int], _Milestone]:
        ids = sorted((schedule_id for schedule_id in schedule_ids if schedule_id is not None), key=str)
        try:
            rows = await self._db.fetch_all(
                """
                SELECT vm.id, vm.vesting_schedule_id, vm.sequence_order, vm.performance_metric_id,
                       vm.target_value, vm.actual_value, vm.is_achieved, vm.achieved_at,
                       pm.id AS metric_id, pm.name, pm.description, pm.metric_type, pm.unit_of_measure
                FROM vesting_milestones vm
                LEFT JOIN performance_metrics pm ON pm.id = vm.performance_metric_id
                WHERE vm.vesting_schedule_id = ANY(:schedule_ids)
                """,
                {"schedule_ids": ids},
            )
        except BackendError as exc:
            logger.warning("Milestone lookup failed; continuing without milestone detail: %s", exc.detail)
            return {}

        milestones: dict[tuple[UUID, int], _Milestone] = {}
        for row in rows:
            metric = _metric_from_row(row, row.get("metric_id") or row.get("performance_metric_id"))
            metric = replace(
                metric,
                name=metric.name or DEFAULT_METRIC_NAME,
                target_value=as_optional_decimal(row.get("target_value")),
                actual_value=as_optional_decimal(row.get("actual_value")),
                is_achieved=row.get("is_achieved"),
                achieved_at=row.get("achieved_at"),
            )
            key = (row["vesting_schedule_id"], int(row["sequence_order"]))
            milestones[key] = _Milestone(milestone_id=row["id"], metric=metric)
        return milestones
