"""
service_templates.py — Company-wide (Tier 1) service templates.

A service template holds the standard PPH, cost/hr and billing rate for one
service type. Proposals are priced from the template, not from whichever
loadout eventually does the work, so the client price is independent of crew
assignment.

Covers:
  - Default seeds for all five services (45 % target margin)
  - In-memory registry over caller-supplied templates; missing or inactive
    template → MissingConfigurationError
  - Recalculation from completed-job performance records

Recalculation (≥ min_jobs records, outliers excluded):
    standard_pph     = mean(actual_pph)
    cost_per_hour    = Σ actual_cost / Σ actual_total_hours
    billing_rate     = cost_per_hour / (1 - target_margin)
    consistency      = max(0, 100 - mean(|pph_variance|) / standard_pph × 100)
    volume           = min(100, jobs / 20 × 100)
    confidence       = (consistency + volume) / 2
"""

import logging
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

from treeshop.services.errors import InvalidInputError, MissingConfigurationError
from treeshop.services.pricing_engine import cost_to_price, derive_margin
from treeshop.services.reconciliation_engine import PerformanceRecord
from treeshop.services.settings import ServiceType

logger = logging.getLogger("treeshop.templates")

MIN_JOBS_FOR_RECALC = 5
FULL_CONFIDENCE_JOBS = 20


@dataclass(frozen=True)
class ServiceTemplate:
    service_type: ServiceType
    formula_used: str
    standard_pph: float
    standard_cost_per_hour: float
    standard_billing_rate: float
    target_margin: float
    description: str = ""
    confidence_score: Optional[float] = None
    total_jobs_in_average: int = 0
    is_active: bool = True

    def __post_init__(self) -> None:
        if self.standard_pph <= 0:
            raise InvalidInputError(
                f"{self.service_type.value}: standard_pph must be positive; received {self.standard_pph}"
            )
        if self.standard_cost_per_hour < 0:
            raise InvalidInputError(
                f"{self.service_type.value}: standard_cost_per_hour must not be negative"
            )
        if not 0 <= self.target_margin < 100:
            raise InvalidInputError(
                f"{self.service_type.value}: target_margin must be in [0, 100); "
                f"received {self.target_margin}"
            )

    @property
    def implied_margin(self) -> float:
        """Margin actually achieved by standard_billing_rate over standard cost."""
        return derive_margin(self.standard_cost_per_hour, self.standard_billing_rate)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["service_type"] = self.service_type.value
        return data


DEFAULT_SERVICE_TEMPLATES: Tuple[ServiceTemplate, ...] = (
    ServiceTemplate(
        service_type=ServiceType.FORESTRY_MULCHING,
        formula_used="MulchingScore",
        standard_pph=1.3,
        standard_cost_per_hour=247.50,
        standard_billing_rate=450.00,
        target_margin=45.0,
        description="Standard forestry mulching with company-average equipment and crew",
    ),
    ServiceTemplate(
        service_type=ServiceType.LAND_CLEARING,
        formula_used="ClearingScore",
        standard_pph=0.8,
        standard_cost_per_hour=385.00,
        standard_billing_rate=700.00,
        target_margin=45.0,
        description="Standard land clearing including debris hauling",
    ),
    ServiceTemplate(
        service_type=ServiceType.STUMP_GRINDING,
        formula_used="StumpScore",
        standard_pph=400.0,
        standard_cost_per_hour=165.00,
        standard_billing_rate=300.00,
        target_margin=45.0,
        description="Standard stump grinding with a mid-size grinder",
    ),
    ServiceTemplate(
        service_type=ServiceType.TREE_REMOVAL,
        formula_used="TreeScore",
        standard_pph=250.0,
        standard_cost_per_hour=285.00,
        standard_billing_rate=520.00,
        target_margin=45.0,
        description="Standard tree removal with climbing crew and chipper",
    ),
    ServiceTemplate(
        service_type=ServiceType.TREE_TRIMMING,
        formula_used="TrimScore",
        standard_pph=180.0,
        standard_cost_per_hour=235.00,
        standard_billing_rate=425.00,
        target_margin=45.0,
        description="Standard tree trimming and pruning",
    ),
)


class ServiceTemplateRegistry:
    """
    Lookup of the active template per service type.

    Templates come from the caller (the document store is external); the
    registry never invents one, so an unconfigured service surfaces as
    ``MissingConfigurationError`` instead of a zero price.
    """

    def __init__(self, templates: Optional[Iterable[ServiceTemplate]] = None) -> None:
        self._templates: Dict[ServiceType, ServiceTemplate] = {}
        for template in templates if templates is not None else DEFAULT_SERVICE_TEMPLATES:
            self.register(template)

    def register(self, template: ServiceTemplate) -> None:
        self._templates[template.service_type] = template

    def get(self, service_type: Any) -> ServiceTemplate:
        st = ServiceType.parse(service_type)
        template = self._templates.get(st)
        if template is None:
            raise MissingConfigurationError(st.value, f"No service template configured for {st.value}")
        if not template.is_active:
            raise MissingConfigurationError(st.value, f"Service template for {st.value} is inactive")
        return template

    def active(self) -> List[ServiceTemplate]:
        return [t for t in self._templates.values() if t.is_active]

    def __contains__(self, service_type: Any) -> bool:
        try:
            self.get(service_type)
        except MissingConfigurationError:
            return False
        return True


def recalculate_from_history(
    template: ServiceTemplate,
    records: Iterable[PerformanceRecord],
    min_jobs: int = MIN_JOBS_FOR_RECALC,
) -> ServiceTemplate:
    """New template whose standards are averaged from completed jobs."""
    usable = [
        r for r in records
        if r.service_type == template.service_type
        and r.include_in_template_recalc
        and not r.outlier
    ]
    if len(usable) < min_jobs:
        raise InvalidInputError(
            f"Not enough historical data to recalculate {template.service_type.value}. "
            f"Need at least {min_jobs} jobs, have {len(usable)}."
        )

    total_hours = sum(r.actual_total_hours for r in usable)
    if total_hours <= 0:
        raise InvalidInputError("Performance records carry no logged hours")

    avg_pph = sum(r.actual_pph for r in usable) / len(usable)
    cost_per_hour = sum(r.actual_cost for r in usable) / total_hours
    billing_rate = cost_to_price(cost_per_hour, template.target_margin)

    avg_variance = sum(abs(r.pph_variance) for r in usable) / len(usable)
    consistency = max(0.0, 100.0 - (avg_variance / avg_pph) * 100.0) if avg_pph > 0 else 0.0
    volume = min(100.0, len(usable) / FULL_CONFIDENCE_JOBS * 100.0)
    confidence = (consistency + volume) / 2.0

    revenue = sum(r.client_price for r in usable)
    achieved = sum(r.actual_profit for r in usable) / revenue * 100.0 if revenue > 0 else 0.0
    logger.info(
        "recalculated %s from %d jobs: pph=%.3f cost/hr=%.2f achieved margin=%.1f%% confidence=%.1f",
        template.service_type.value, len(usable), avg_pph, cost_per_hour, achieved, confidence,
    )

    return replace(
        template,
        standard_pph=avg_pph,
        standard_cost_per_hour=cost_per_hour,
        standard_billing_rate=billing_rate,
        confidence_score=confidence,
        total_jobs_in_average=len(usable),
    )
