"""
equipment_cost_engine.py — Equipment ownership + operating hourly cost.

Covers:
  - Straight-line depreciation (purchase price / useful life)
  - Simple annual finance charge (purchase price × finance rate)
  - Insurance and registration (annual)
  - Fuel (GPH × $/gal × annual hours), maintenance and repairs (annual)
  - Per-year and per-hour totals with a seven-line per-hour breakdown

The model is additive and non-compounding on purpose: depreciation is
straight-line, not amortized or present-value. Changing that changes every
loadout cost in the system and must be flagged, not slipped in.
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional

from treeshop.services.errors import InvalidInputError
from treeshop.services.settings import DEFAULT_SETTINGS, PricingSettings

logger = logging.getLogger("treeshop.equipment")

BREAKDOWN_COMPONENTS = (
    "depreciation",
    "finance",
    "insurance",
    "registration",
    "fuel",
    "maintenance",
    "repairs",
)


@dataclass(frozen=True)
class EquipmentCostInputs:
    purchase_price: float
    useful_life_years: float
    finance_rate: float                 # annual, decimal (0.05 = 5 %)
    insurance_cost: float               # $/yr
    registration_cost: float            # $/yr
    fuel_consumption_gph: float
    fuel_price_per_gallon: float
    maintenance_cost_annual: float
    repair_cost_annual: float
    annual_hours: float
    name: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EquipmentCostInputs":
        return cls(
            purchase_price=float(data.get("purchase_price", 0.0)),
            useful_life_years=float(data.get("useful_life_years", 0.0)),
            finance_rate=float(data.get("finance_rate", 0.0)),
            insurance_cost=float(data.get("insurance_cost", 0.0)),
            registration_cost=float(data.get("registration_cost", 0.0)),
            fuel_consumption_gph=float(data.get("fuel_consumption_gph", 0.0)),
            fuel_price_per_gallon=float(data.get("fuel_price_per_gallon", 0.0)),
            maintenance_cost_annual=float(data.get("maintenance_cost_annual", 0.0)),
            repair_cost_annual=float(data.get("repair_cost_annual", 0.0)),
            annual_hours=float(data.get("annual_hours", 0.0)),
            name=str(data.get("name", "")),
        )


@dataclass(frozen=True)
class EquipmentCostBreakdown:
    ownership_per_hour: float
    operating_per_hour: float
    total_per_hour: float
    ownership_per_year: float
    operating_per_year: float
    total_per_year: float
    # per-hour detail
    depreciation: float
    finance: float
    insurance: float
    registration: float
    fuel: float
    maintenance: float
    repairs: float

    def components(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in BREAKDOWN_COMPONENTS}

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def calculate_equipment_cost(inputs: EquipmentCostInputs) -> EquipmentCostBreakdown:
    """
    Raw cost model. Does not validate: ``annual_hours == 0`` raises
    ZeroDivisionError. Use ``EquipmentCostEngine.calculate`` anywhere the
    result may be shown.

    Formula:
        ownership/yr = price/life + price×finance + insurance + registration
        operating/yr = gph × $/gal × annual_hours + maintenance + repairs
        per-hour     = per-year / annual_hours
    """
    hours = inputs.annual_hours

    depreciation_yr = inputs.purchase_price / inputs.useful_life_years
    finance_yr = inputs.purchase_price * inputs.finance_rate
    insurance_yr = inputs.insurance_cost
    registration_yr = inputs.registration_cost
    ownership_yr = depreciation_yr + finance_yr + insurance_yr + registration_yr

    fuel_yr = inputs.fuel_consumption_gph * inputs.fuel_price_per_gallon * hours
    maintenance_yr = inputs.maintenance_cost_annual
    repairs_yr = inputs.repair_cost_annual
    operating_yr = fuel_yr + maintenance_yr + repairs_yr

    depreciation = depreciation_yr / hours
    finance = finance_yr / hours
    insurance = insurance_yr / hours
    registration = registration_yr / hours
    fuel = fuel_yr / hours
    maintenance = maintenance_yr / hours
    repairs = repairs_yr / hours

    # per-hour totals are built from the components, not from the yearly sums
    ownership_hr = depreciation + finance + insurance + registration
    operating_hr = fuel + maintenance + repairs

    return EquipmentCostBreakdown(
        ownership_per_hour=ownership_hr,
        operating_per_hour=operating_hr,
        total_per_hour=ownership_hr + operating_hr,
        ownership_per_year=ownership_yr,
        operating_per_year=operating_yr,
        total_per_year=ownership_yr + operating_yr,
        depreciation=depreciation,
        finance=finance,
        insurance=insurance,
        registration=registration,
        fuel=fuel,
        maintenance=maintenance,
        repairs=repairs,
    )


def calculate_loadout_equipment_cost(items: Iterable[EquipmentCostInputs]) -> float:
    return sum(calculate_equipment_cost(item).total_per_hour for item in items)


class EquipmentCostEngine:
    """Guarded entry point for the equipment cost model."""

    def __init__(self, settings: Optional[PricingSettings] = None) -> None:
        self.settings = settings or DEFAULT_SETTINGS

    def validate(self, inputs: EquipmentCostInputs) -> None:
        for name in ("annual_hours", "useful_life_years"):
            value = getattr(inputs, name)
            if not math.isfinite(value) or value <= 0:
                raise InvalidInputError(f"{name} must be finite and positive; received {value}")
        for name in (
            "purchase_price",
            "finance_rate",
            "insurance_cost",
            "registration_cost",
            "fuel_consumption_gph",
            "fuel_price_per_gallon",
            "maintenance_cost_annual",
            "repair_cost_annual",
        ):
            value = getattr(inputs, name)
            if math.isnan(value) or math.isinf(value) or value < 0:
                raise InvalidInputError(f"{name} must be finite and >= 0; received {value}")

    def calculate(self, inputs: EquipmentCostInputs) -> EquipmentCostBreakdown:
        self.validate(inputs)
        breakdown = calculate_equipment_cost(inputs)
        if not math.isfinite(breakdown.total_per_hour):
            raise InvalidInputError(
                f"Equipment cost for {inputs.name or '<unnamed>'} overflowed to {breakdown.total_per_hour}"
            )
        logger.debug(
            "equipment %s: ownership=%.2f/hr operating=%.2f/hr total=%.2f/hr",
            inputs.name or "<unnamed>",
            breakdown.ownership_per_hour,
            breakdown.operating_per_hour,
            breakdown.total_per_hour,
        )
        return breakdown

    def calculate_many(self, items: Iterable[EquipmentCostInputs]) -> List[EquipmentCostBreakdown]:
        return [self.calculate(item) for item in items]

    def loadout_equipment_cost(self, items: Iterable[EquipmentCostInputs]) -> float:
        """Σ total_per_hour across a loadout's equipment."""
        return sum(b.total_per_hour for b in self.calculate_many(items))
