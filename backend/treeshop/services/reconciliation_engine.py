"""
reconciliation_engine.py — Two-tier job reconciliation.

Tier 1 is the locked estimate: client price, standard PPH and standard
cost/hr captured from the service template when the proposal was created.
Tier 2 is what the crew actually logged. The reconciler diffs the two:

    actual_pph       = adjusted_score / actual production hours
    pph_variance     = actual_pph - standard_pph           (+ = crew faster)
    actual_cost      = labor cost + equipment cost
    actual_profit    = client_price - actual_cost
    actual_margin    = actual_profit / client_price × 100   (0 when price is 0)
    cost_variance    = actual_cost - estimated_cost         (+ = over budget)
    profit_variance  = estimated_profit - actual_profit     (+ = profit short)
    margin_variance  = actual_margin - estimated_margin
    hours_variance   = actual total hours - estimated hours

profit_variance has the opposite sign convention to cost_variance: a
negative value means the job beat its projected profit. Every variance has a
matching ``*_status`` ("favorable", "unfavorable", "on_target") so display
code never re-derives the sign.

The client price is copied from the locked estimate and never recomputed
from actuals. Crew performance moves profit, not the amount billed.

Only hours whose entry counts for PPH (Production Time) feed actual PPH.
Only entries logged under the Site Support category land in the Site
Support bucket. Transport, setup and every other non-production category
is General Support.
"""

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from treeshop.services.errors import InvalidInputError
from treeshop.services.settings import DEFAULT_SETTINGS, PricingSettings, ServiceType

logger = logging.getLogger("treeshop.reconciliation")

_VARIANCE_TOLERANCE = 1e-9

FAVORABLE = "favorable"
UNFAVORABLE = "unfavorable"
ON_TARGET = "on_target"


# ---------------------------------------------------------------------------
# Task catalog
# ---------------------------------------------------------------------------

class TaskCategory(str, Enum):
    PRODUCTION = "Production Time"
    TRANSPORT = "Transport Time"
    SETUP_TEARDOWN = "Setup/Teardown"
    BREAKS = "Breaks"
    MAINTENANCE = "Maintenance"
    ADMIN_SAFETY = "Admin/Safety"
    SITE_SUPPORT = "Site Support"

    @classmethod
    def parse(cls, value: Any) -> "TaskCategory":
        if isinstance(value, cls):
            return value
        for member in cls:
            if value == member.value or str(value).upper() == member.name:
                return member
        raise InvalidInputError(
            f"Unknown task category '{value}'. Choose from {[m.value for m in cls]}"
        )


class HourBucket(str, Enum):
    PRODUCTION = "Production"
    SITE_SUPPORT = "Site Support"
    GENERAL_SUPPORT = "General Support"


@dataclass(frozen=True)
class TimeTrackingTask:
    name: str
    category: TaskCategory
    billable: bool

    @property
    def counts_for_pph(self) -> bool:
        return self.category is TaskCategory.PRODUCTION


def _tasks(*rows: Tuple[str, TaskCategory, bool]) -> Tuple[TimeTrackingTask, ...]:
    return tuple(TimeTrackingTask(name, category, billable) for name, category, billable in rows)


_P = TaskCategory.PRODUCTION
_T = TaskCategory.TRANSPORT
_S = TaskCategory.SETUP_TEARDOWN
_B = TaskCategory.BREAKS
_M = TaskCategory.MAINTENANCE
_A = TaskCategory.ADMIN_SAFETY
_SS = TaskCategory.SITE_SUPPORT

SERVICE_TASKS: Dict[ServiceType, Tuple[TimeTrackingTask, ...]] = {
    ServiceType.FORESTRY_MULCHING: _tasks(
        ("Transport - To Site", _T, True),
        ("Setup/Site Prep", _S, True),
        ("Safety Briefing", _A, False),
        ("Mulching - Production", _P, True),
        ("Equipment Adjustment/Repair", _M, False),
        ("Refuel", _M, False),
        ("Break - Meal", _B, False),
        ("Break - Rest", _B, False),
        ("Cleanup", _S, True),
        ("Customer Walkthrough", _A, False),
        ("Transport - Return", _T, True),
        ("Equipment Maintenance", _M, False),
        ("Photo Documentation", _A, False),
    ),
    ServiceType.TREE_REMOVAL: _tasks(
        ("Transport - To Site", _T, True),
        ("Setup/Site Prep", _S, True),
        ("Safety Briefing", _A, False),
        ("Rigging Setup", _S, True),
        ("Climbing/Cutting", _P, True),
        ("Crane Operations", _P, True),
        ("Felling", _P, True),
        ("Limb Cutting/Processing", _P, True),
        ("Stump Grinding", _P, True),
        ("Debris Loading", _S, True),
        ("Debris Hauling", _T, True),
        ("Break - Meal", _B, False),
        ("Break - Rest", _B, False),
        ("Cleanup/Site Restoration", _S, True),
        ("Equipment Repair", _M, False),
        ("Transport - Return", _T, True),
    ),
    ServiceType.TREE_TRIMMING: _tasks(
        ("Transport - To Site", _T, True),
        ("Setup/Site Prep", _S, True),
        ("Safety Briefing", _A, False),
        ("Climbing", _P, True),
        ("Pruning/Cutting", _P, True),
        ("Palm Trimming", _P, True),
        ("Debris Cutting/Chipping", _S, True),
        ("Debris Hauling", _T, True),
        ("Break - Meal", _B, False),
        ("Break - Rest", _B, False),
        ("Cleanup", _S, True),
        ("Equipment Maintenance", _M, False),
        ("Transport - Return", _T, True),
    ),
    ServiceType.STUMP_GRINDING: _tasks(
        ("Transport - To Site", _T, True),
        ("Setup/Access Prep", _S, True),
        ("Safety Briefing", _A, False),
        ("Grinding - Production", _P, True),
        ("Blade Change", _M, False),
        ("Refuel", _M, False),
        ("Cleanup/Mulch Removal", _S, True),
        ("Break - Meal", _B, False),
        ("Break - Rest", _B, False),
        ("Equipment Maintenance", _M, False),
        ("Transport - Return", _T, True),
    ),
    ServiceType.LAND_CLEARING: _tasks(
        ("Transport - To Site", _T, True),
        ("Setup/Site Prep", _S, True),
        ("Safety Briefing", _A, False),
        ("Clearing - Production", _P, True),
        ("Debris Piling", _S, True),
        ("Debris Hauling", _T, True),
        ("Equipment Adjustment/Repair", _M, False),
        ("Refuel", _M, False),
        ("Break - Meal", _B, False),
        ("Break - Rest", _B, False),
        ("Cleanup/Grading", _S, True),
        ("Transport - Return", _T, True),
    ),
}

UNIVERSAL_TASKS: Tuple[TimeTrackingTask, ...] = _tasks(
    ("Site Assessment", _SS, True),
    ("Equipment Setup", _SS, True),
    ("Customer Consultation", _SS, True),
    ("Shop Maintenance", _M, False),
    ("Administrative", _A, False),
    ("Training", _A, False),
    ("Safety Meeting", _A, False),
    ("Equipment Repair - Shop", _M, False),
    ("Waiting on Customer", _A, False),
    ("Weather Delay", _A, False),
)


def tasks_for_service(service_type: Optional[Any] = None) -> List[TimeTrackingTask]:
    """Service-specific tasks followed by the universal ones (universal only when None)."""
    if service_type is None:
        return list(UNIVERSAL_TASKS)
    return list(SERVICE_TASKS[ServiceType.parse(service_type)]) + list(UNIVERSAL_TASKS)


# ---------------------------------------------------------------------------
# Actuals
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TimeEntry:
    task_name: str
    category: TaskCategory
    duration_hours: float
    billable: bool = True
    counts_for_pph: Optional[bool] = None    # None → category is Production Time
    labor_cost: float = 0.0
    equipment_cost: float = 0.0

    @property
    def is_production(self) -> bool:
        if self.counts_for_pph is None:
            return TaskCategory.parse(self.category) is TaskCategory.PRODUCTION
        return self.counts_for_pph

    @property
    def bucket(self) -> HourBucket:
        if self.is_production:
            return HourBucket.PRODUCTION
        if TaskCategory.parse(self.category) is TaskCategory.SITE_SUPPORT:
            return HourBucket.SITE_SUPPORT
        return HourBucket.GENERAL_SUPPORT

    @classmethod
    def from_task(
        cls,
        task: TimeTrackingTask,
        duration_hours: float,
        labor_cost: float = 0.0,
        equipment_cost: float = 0.0,
    ) -> "TimeEntry":
        return cls(
            task_name=task.name,
            category=task.category,
            duration_hours=duration_hours,
            billable=task.billable,
            counts_for_pph=task.counts_for_pph,
            labor_cost=labor_cost,
            equipment_cost=equipment_cost,
        )


@dataclass(frozen=True)
class ActualTotals:
    production_hours: float = 0.0
    site_support_hours: float = 0.0
    general_support_hours: float = 0.0
    billable_hours: float = 0.0
    labor_cost: float = 0.0
    equipment_cost: float = 0.0
    task_breakdown: Dict[str, float] = field(default_factory=dict)

    @property
    def total_hours(self) -> float:
        return self.production_hours + self.site_support_hours + self.general_support_hours

    @property
    def total_cost(self) -> float:
        return self.labor_cost + self.equipment_cost

    @property
    def billable_percentage(self) -> float:
        total = self.total_hours
        return self.billable_hours / total * 100.0 if total > 0 else 0.0

    @property
    def production_percentage(self) -> float:
        total = self.total_hours
        return self.production_hours / total * 100.0 if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "production_hours": round(self.production_hours, 4),
            "site_support_hours": round(self.site_support_hours, 4),
            "general_support_hours": round(self.general_support_hours, 4),
            "billable_hours": round(self.billable_hours, 4),
            "total_hours": round(self.total_hours, 4),
            "labor_cost": round(self.labor_cost, 2),
            "equipment_cost": round(self.equipment_cost, 2),
            "total_cost": round(self.total_cost, 2),
            "billable_percentage": round(self.billable_percentage, 2),
            "production_percentage": round(self.production_percentage, 2),
            "task_breakdown": {k: round(v, 4) for k, v in self.task_breakdown.items()},
        }


def _non_negative(value: float, label: str) -> float:
    value = float(value)
    if math.isnan(value) or math.isinf(value) or value < 0:
        raise InvalidInputError(f"{label} must be a finite non-negative number; received {value}")
    return value


def summarize_time_entries(entries: Iterable[TimeEntry]) -> ActualTotals:
    """Aggregate logged time entries into bucket hours and actual costs."""
    hours = {bucket: 0.0 for bucket in HourBucket}
    billable = 0.0
    labor = 0.0
    equipment = 0.0
    breakdown: "OrderedDict[str, float]" = OrderedDict()

    for entry in entries:
        duration = _non_negative(entry.duration_hours, f"duration_hours ({entry.task_name})")
        labor += _non_negative(entry.labor_cost, f"labor_cost ({entry.task_name})")
        equipment += _non_negative(entry.equipment_cost, f"equipment_cost ({entry.task_name})")
        hours[entry.bucket] += duration
        if entry.billable:
            billable += duration
        breakdown[entry.task_name] = breakdown.get(entry.task_name, 0.0) + duration

    return ActualTotals(
        production_hours=hours[HourBucket.PRODUCTION],
        site_support_hours=hours[HourBucket.SITE_SUPPORT],
        general_support_hours=hours[HourBucket.GENERAL_SUPPORT],
        billable_hours=billable,
        labor_cost=labor,
        equipment_cost=equipment,
        task_breakdown=dict(breakdown),
    )


# ---------------------------------------------------------------------------
# Locked estimate and summary
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LockedEstimate:
    """Tier-1 figures captured at proposal time. Read, never mutated."""
    client_price: float
    standard_pph: float
    standard_cost_per_hour: float
    adjusted_score: float
    estimated_hours: float
    estimated_cost: float
    estimated_profit: float
    estimated_margin: float
    service_type: Optional[ServiceType] = None

    def __post_init__(self) -> None:
        for name in ("client_price", "standard_pph", "standard_cost_per_hour",
                     "adjusted_score", "estimated_hours", "estimated_cost"):
            _non_negative(getattr(self, name), name)

    @classmethod
    def from_quote(cls, quote: Any) -> "LockedEstimate":
        """Lock a ``LineItemQuote``: its price becomes the client price."""
        pricing = quote.pricing
        return cls(
            client_price=pricing.total_price,
            standard_pph=quote.production_rate_pph,
            standard_cost_per_hour=quote.cost_per_hour,
            adjusted_score=quote.score.adjusted_score,
            estimated_hours=quote.time.total_estimated_hours,
            estimated_cost=pricing.total_cost,
            estimated_profit=pricing.profit,
            estimated_margin=pricing.margin_percent,
            service_type=quote.score.service_type,
        )


def _status(variance: Optional[float], higher_is_better: bool) -> Optional[str]:
    if variance is None:
        return None
    if abs(variance) <= _VARIANCE_TOLERANCE:
        return ON_TARGET
    if (variance > 0) == higher_is_better:
        return FAVORABLE
    return UNFAVORABLE


@dataclass(frozen=True)
class JobSummary:
    client_price: float
    actual_total_cost: float
    actual_profit: float
    actual_margin: float
    actual_pph: Optional[float]
    pph_variance: Optional[float]
    cost_variance: float
    profit_variance: float
    margin_variance: float
    hours_variance: float
    actuals: ActualTotals
    standard_pph: float = 0.0
    estimated_cost: float = 0.0
    estimated_profit: float = 0.0
    estimated_margin: float = 0.0

    @property
    def pph_variance_status(self) -> Optional[str]:
        return _status(self.pph_variance, higher_is_better=True)

    @property
    def cost_variance_status(self) -> str:
        return _status(self.cost_variance, higher_is_better=False)

    @property
    def profit_variance_status(self) -> str:
        # estimated - actual: positive means profit came in short
        return _status(self.profit_variance, higher_is_better=False)

    @property
    def margin_variance_status(self) -> str:
        return _status(self.margin_variance, higher_is_better=True)

    def to_dict(self) -> Dict[str, Any]:
        def _r(value: Optional[float], digits: int = 2) -> Optional[float]:
            return None if value is None else round(value, digits)

        return {
            "client_price": _r(self.client_price),
            "actual_total_cost": _r(self.actual_total_cost),
            "actual_profit": _r(self.actual_profit),
            "actual_margin": _r(self.actual_margin),
            "actual_pph": _r(self.actual_pph, 4),
            "standard_pph": self.standard_pph,
            "pph_variance": _r(self.pph_variance, 4),
            "pph_variance_status": self.pph_variance_status,
            "estimated_cost": _r(self.estimated_cost),
            "cost_variance": _r(self.cost_variance),
            "cost_variance_status": self.cost_variance_status,
            "estimated_profit": _r(self.estimated_profit),
            "profit_variance": _r(self.profit_variance),
            "profit_variance_status": self.profit_variance_status,
            "estimated_margin": _r(self.estimated_margin),
            "margin_variance": _r(self.margin_variance),
            "margin_variance_status": self.margin_variance_status,
            "hours_variance": _r(self.hours_variance, 4),
            "actuals": self.actuals.to_dict(),
        }


@dataclass(frozen=True)
class PerformanceRecord:
    """Feedback row written when a job is finalized; feeds template recalculation."""
    service_type: ServiceType
    adjusted_score: float
    actual_production_hours: float
    actual_total_hours: float
    actual_pph: float
    standard_pph: float
    pph_variance: float
    actual_cost: float
    estimated_cost: float
    cost_variance: float
    client_price: float
    actual_profit: float
    actual_margin: float
    projected_profit: float
    projected_margin: float
    loadout_name: str = ""
    include_in_template_recalc: bool = True
    outlier: bool = False

    @property
    def pph_variance_percent(self) -> float:
        return self.pph_variance / self.standard_pph * 100.0 if self.standard_pph else 0.0


class JobReconciler:
    """Compares a locked estimate against logged actuals."""

    def __init__(self, settings: Optional[PricingSettings] = None) -> None:
        self.settings = settings or DEFAULT_SETTINGS

    def reconcile(
        self,
        locked: LockedEstimate,
        actuals: Union[ActualTotals, Iterable[TimeEntry]],
        work_order_id: Optional[str] = None,
    ) -> JobSummary:
        if not isinstance(actuals, ActualTotals):
            actuals = summarize_time_entries(actuals)

        actual_pph: Optional[float] = None
        pph_variance: Optional[float] = None
        if actuals.production_hours > 0:
            actual_pph = locked.adjusted_score / actuals.production_hours
            pph_variance = actual_pph - locked.standard_pph

        client_price = locked.client_price
        actual_cost = actuals.total_cost
        actual_profit = client_price - actual_cost
        actual_margin = actual_profit / client_price * 100.0 if client_price > 0 else 0.0

        summary = JobSummary(
            client_price=client_price,
            actual_total_cost=actual_cost,
            actual_profit=actual_profit,
            actual_margin=actual_margin,
            actual_pph=actual_pph,
            pph_variance=pph_variance,
            cost_variance=actual_cost - locked.estimated_cost,
            profit_variance=locked.estimated_profit - actual_profit,
            margin_variance=actual_margin - locked.estimated_margin,
            hours_variance=actuals.total_hours - locked.estimated_hours,
            actuals=actuals,
            standard_pph=locked.standard_pph,
            estimated_cost=locked.estimated_cost,
            estimated_profit=locked.estimated_profit,
            estimated_margin=locked.estimated_margin,
        )
        logger.info(
            "reconciled job: price=%.2f cost=%.2f margin=%.2f%% pph=%s",
            client_price,
            actual_cost,
            actual_margin,
            "n/a" if actual_pph is None else f"{actual_pph:.2f}",
            extra={"work_order_id": work_order_id} if work_order_id else None,
        )
        return summary

    def performance_record(
        self,
        locked: LockedEstimate,
        summary: JobSummary,
        loadout_name: str = "",
        outlier: bool = False,
    ) -> PerformanceRecord:
        if summary.actual_pph is None:
            raise InvalidInputError("No production hours logged; cannot record job performance")
        if locked.service_type is None:
            raise InvalidInputError("Locked estimate has no service type")
        return PerformanceRecord(
            service_type=locked.service_type,
            adjusted_score=locked.adjusted_score,
            actual_production_hours=summary.actuals.production_hours,
            actual_total_hours=summary.actuals.total_hours,
            actual_pph=summary.actual_pph,
            standard_pph=locked.standard_pph,
            pph_variance=summary.pph_variance or 0.0,
            actual_cost=summary.actual_total_cost,
            estimated_cost=locked.estimated_cost,
            cost_variance=summary.cost_variance,
            client_price=summary.client_price,
            actual_profit=summary.actual_profit,
            actual_margin=summary.actual_margin,
            projected_profit=locked.estimated_profit,
            projected_margin=locked.estimated_margin,
            loadout_name=loadout_name,
            include_in_template_recalc=not outlier,
            outlier=outlier,
        )


_default_reconciler = JobReconciler()


def reconcile(
    locked: LockedEstimate,
    actuals: Union[ActualTotals, Iterable[TimeEntry]],
) -> JobSummary:
    """Module-level entry point: ``reconcile(locked, actuals) -> JobSummary``."""
    return _default_reconciler.reconcile(locked, actuals)
