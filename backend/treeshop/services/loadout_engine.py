"""
loadout_engine.py — Crew-configuration hourly cost and billing rates.

A loadout is one equipment + crew combination. Its hourly cost is

    total_cost_per_hour = Σ equipment.total_per_hour
                        + Σ employee.true_cost
                        + overhead_cost_per_hour

and its billing rate at each ladder margin m is total ÷ (1 - m).

An empty loadout costs $0/hr. That is valid: the calculators run in
"scoring only" mode when no loadout is selected.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from treeshop.services.equipment_cost_engine import EquipmentCostEngine, EquipmentCostInputs
from treeshop.services.errors import InvalidInputError
from treeshop.services.labor_engine import EmployeeCompensationInputs, LaborEngine
from treeshop.services.pricing_engine import MarginPricer
from treeshop.services.settings import DEFAULT_SETTINGS, PricingSettings

logger = logging.getLogger("treeshop.loadout")


@dataclass(frozen=True)
class Loadout:
    name: str
    production_rate_pph: float
    equipment: Tuple[EquipmentCostInputs, ...] = field(default_factory=tuple)
    employees: Tuple[EmployeeCompensationInputs, ...] = field(default_factory=tuple)
    service_type: Optional[str] = None
    overhead_cost_per_hour: float = 0.0


@dataclass(frozen=True)
class LoadoutCost:
    loadout_name: str
    production_rate_pph: float
    equipment_cost_per_hour: float
    labor_cost_per_hour: float
    overhead_cost_per_hour: float
    total_cost_per_hour: float
    billing_rates: Dict[float, float]
    equipment_detail: Tuple[Dict[str, Any], ...] = ()
    labor_detail: Tuple[Dict[str, Any], ...] = ()

    @property
    def is_scoring_only(self) -> bool:
        return self.total_cost_per_hour == 0.0

    def billing_rate(self, margin_pct: float) -> float:
        return self.billing_rates[float(margin_pct)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loadout_name": self.loadout_name,
            "production_rate_pph": self.production_rate_pph,
            "equipment_cost_per_hour": round(self.equipment_cost_per_hour, 2),
            "labor_cost_per_hour": round(self.labor_cost_per_hour, 2),
            "overhead_cost_per_hour": round(self.overhead_cost_per_hour, 2),
            "total_cost_per_hour": round(self.total_cost_per_hour, 2),
            "billing_rates": {
                f"{int(m) if float(m).is_integer() else m}": round(rate, 2)
                for m, rate in self.billing_rates.items()
            },
            "equipment_detail": list(self.equipment_detail),
            "labor_detail": list(self.labor_detail),
            "scoring_only": self.is_scoring_only,
        }


class LoadoutCostAggregator:
    """Sums equipment and labor true costs into one crew hourly cost."""

    def __init__(self, settings: Optional[PricingSettings] = None) -> None:
        self.settings = settings or DEFAULT_SETTINGS
        self.equipment_engine = EquipmentCostEngine(self.settings)
        self.labor_engine = LaborEngine(self.settings)
        self.pricer = MarginPricer(self.settings)

    def calculate(self, loadout: Loadout) -> LoadoutCost:
        if loadout.production_rate_pph < 0:
            raise InvalidInputError(
                f"production_rate_pph must not be negative; received {loadout.production_rate_pph}"
            )
        if loadout.overhead_cost_per_hour < 0:
            raise InvalidInputError(
                f"overhead_cost_per_hour must not be negative; received {loadout.overhead_cost_per_hour}"
            )

        equipment_detail: List[Dict[str, Any]] = []
        equipment_total = 0.0
        for item in loadout.equipment:
            cost = self.equipment_engine.calculate(item)
            equipment_total += cost.total_per_hour
            equipment_detail.append({
                "name": item.name,
                "ownership_per_hour": round(cost.ownership_per_hour, 2),
                "operating_per_hour": round(cost.operating_per_hour, 2),
                "total_per_hour": round(cost.total_per_hour, 2),
            })

        labor_detail: List[Dict[str, Any]] = []
        labor_total = 0.0
        for emp in loadout.employees:
            comp = self.labor_engine.calculate(emp)
            labor_total += comp.true_cost
            labor_detail.append({
                "name": emp.name,
                "tier": emp.tier,
                "total_hourly": round(comp.total_hourly, 2),
                "true_cost": round(comp.true_cost, 2),
            })

        total = equipment_total + labor_total + loadout.overhead_cost_per_hour
        billing_rates = self.pricer.billing_rates(total)

        if total == 0.0:
            logger.debug("loadout %s has no cost inputs; scoring-only mode", loadout.name)

        return LoadoutCost(
            loadout_name=loadout.name,
            production_rate_pph=loadout.production_rate_pph,
            equipment_cost_per_hour=equipment_total,
            labor_cost_per_hour=labor_total,
            overhead_cost_per_hour=loadout.overhead_cost_per_hour,
            total_cost_per_hour=total,
            billing_rates=billing_rates,
            equipment_detail=tuple(equipment_detail),
            labor_detail=tuple(labor_detail),
        )
