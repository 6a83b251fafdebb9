"""Model module imports for SQLAlchemy metadata registration."""

from __future__ import annotations

import logging

from backend.db.models.company import Company, Employee
from backend.db.models.grant import Grant, GrantPerformanceMetric
from backend.db.models.performance import PerformanceMetric, VestingMilestone
from backend.db.models.plan import IncentivePlan
from backend.db.models.portfolio import Portfolio
from backend.db.models.transfer import ShareTransfer
from backend.db.models.vesting import VestingEvent

logger = logging.getLogger(__name__)

__all__ = [
    "Company",
    "Employee",
    "Grant",
    "GrantPerformanceMetric",
    "IncentivePlan",
    "PerformanceMetric",
    "Portfolio",
    "ShareTransfer",
    "VestingEvent",
    "VestingMilestone",
]
