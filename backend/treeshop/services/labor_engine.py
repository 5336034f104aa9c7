"""
labor_engine.py — Employee true-cost engine.

Covers:
  - Career-track tier multipliers (Tier 1 entry … Tier 5 master)
  - Hourly premiums: leadership, equipment certifications, driver licences,
    professional certifications
  - Burden multiplier (default 1.7x: taxes, insurance, overhead,
    non-billable time)

Formula:
    base_tiered  = base_hourly × tier_multiplier
    total_hourly = base_tiered + leadership + equipment + driver + certs
    true_cost    = total_hourly × burden_multiplier

Example: $25/hr, Tier 3 (1.8x) → $45; ISA (+$4) → $49; × 1.7 → $83.30/hr.

Unknown tier or premium codes resolve to multiplier 1.0 / premium 0 so that
codes added later in the employee form never break an existing loadout.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from treeshop.services.errors import InvalidInputError
from treeshop.services.settings import DEFAULT_SETTINGS, PricingSettings

logger = logging.getLogger("treeshop.labor")


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BURDEN_MULTIPLIER: float = 1.7

# tier -> (multiplier, label, experience)
TIER_LEVELS: Dict[int, Tuple[float, str, str]] = {
    1: (1.0, "Tier 1 - Entry Level", "0-6 months"),
    2: (1.6, "Tier 2 - Developing", "6-18 months"),
    3: (1.8, "Tier 3 - Competent", "18 months-3 years"),
    4: (2.0, "Tier 4 - Advanced", "3-5 years"),
    5: (2.2, "Tier 5 - Master", "5+ years"),
}

# code -> (premium $/hr, label)
LEADERSHIP_LEVELS: Dict[str, Tuple[float, str]] = {
    "L": (2.0, "Team Leader"),
    "S": (3.0, "Supervisor"),
    "M": (5.0, "Manager"),
    "D": (6.0, "Director"),
    "C": (7.0, "Chief/Executive"),
}

EQUIPMENT_LEVELS: Dict[str, Tuple[float, str]] = {
    "E1": (0.5, "Basic Equipment"),           # hand tools, chainsaws
    "E2": (2.0, "Intermediate Machinery"),    # chippers, stump grinders
    "E3": (4.0, "Advanced Equipment"),        # cranes, bucket trucks
    "E4": (7.0, "Specialized Equipment"),     # forestry mulchers
}

DRIVER_LICENSES: Dict[str, Tuple[float, str]] = {
    "D1": (0.5, "Standard License"),
    "D2": (2.0, "CDL Class B"),
    "D3": (3.0, "CDL Class A"),
    "DH": (1.0, "Hazmat Endorsement"),
}

CERTIFICATIONS: Dict[str, Tuple[float, str]] = {
    "ISA": (4.0, "ISA Certified Arborist"),
    "CRA": (3.0, "Crane Certified"),
    "TRA": (2.0, "Trainer Certified"),
    "OSH": (1.0, "OSHA Safety"),
    "PES": (2.0, "Pesticide License"),
    "CPR": (0.5, "First Aid/CPR"),
}


@dataclass(frozen=True)
class EmployeeCompensationInputs:
    base_hourly_rate: float
    tier: int = 1
    leadership: Optional[str] = None
    equipment_certs: Tuple[str, ...] = field(default_factory=tuple)
    driver_licenses: Tuple[str, ...] = field(default_factory=tuple)
    certifications: Tuple[str, ...] = field(default_factory=tuple)
    name: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmployeeCompensationInputs":
        return cls(
            base_hourly_rate=float(data.get("base_hourly_rate", 0.0)),
            tier=int(data.get("tier", 1)),
            leadership=data.get("leadership") or None,
            equipment_certs=tuple(data.get("equipment_certs") or ()),
            driver_licenses=tuple(data.get("driver_licenses") or ()),
            certifications=tuple(data.get("certifications") or ()),
            name=str(data.get("name", "")),
        )


@dataclass(frozen=True)
class EmployeeCompensationBreakdown:
    base_hourly_rate: float
    tier_multiplier: float
    base_tiered: float
    leadership_premium: float
    equipment_premium: float
    driver_premium: float
    cert_premium: float
    total_hourly: float
    true_cost: float
    burden_multiplier: float = BURDEN_MULTIPLIER
    unrecognised_codes: Tuple[str, ...] = ()

    @property
    def total_premiums(self) -> float:
        return (
            self.leadership_premium
            + self.equipment_premium
            + self.driver_premium
            + self.cert_premium
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["unrecognised_codes"] = list(self.unrecognised_codes)
        data["total_premiums"] = self.total_premiums
        return data


def get_tier_multiplier(tier: int) -> float:
    level = TIER_LEVELS.get(tier)
    return level[0] if level else 1.0


def _sum_premiums(
    codes: Iterable[str],
    table: Dict[str, Tuple[float, str]],
    unrecognised: List[str],
) -> float:
    total = 0.0
    for code in codes:
        entry = table.get(code)
        if entry is None:
            unrecognised.append(code)
            continue
        total += entry[0]
    return total


def calculate_employee_compensation(
    inputs: EmployeeCompensationInputs,
    burden_multiplier: float = BURDEN_MULTIPLIER,
) -> EmployeeCompensationBreakdown:
    """Fully-burdened hourly true cost for one employee."""
    unrecognised: List[str] = []

    tier_multiplier = get_tier_multiplier(inputs.tier)
    if inputs.tier not in TIER_LEVELS:
        unrecognised.append(f"tier:{inputs.tier}")
    base_tiered = inputs.base_hourly_rate * tier_multiplier

    leadership_premium = 0.0
    if inputs.leadership:
        leadership_premium = _sum_premiums([inputs.leadership], LEADERSHIP_LEVELS, unrecognised)
    equipment_premium = _sum_premiums(inputs.equipment_certs, EQUIPMENT_LEVELS, unrecognised)
    driver_premium = _sum_premiums(inputs.driver_licenses, DRIVER_LICENSES, unrecognised)
    cert_premium = _sum_premiums(inputs.certifications, CERTIFICATIONS, unrecognised)

    total_hourly = (
        base_tiered + leadership_premium + equipment_premium + driver_premium + cert_premium
    )

    return EmployeeCompensationBreakdown(
        base_hourly_rate=inputs.base_hourly_rate,
        tier_multiplier=tier_multiplier,
        base_tiered=base_tiered,
        leadership_premium=leadership_premium,
        equipment_premium=equipment_premium,
        driver_premium=driver_premium,
        cert_premium=cert_premium,
        total_hourly=total_hourly,
        true_cost=total_hourly * burden_multiplier,
        burden_multiplier=burden_multiplier,
        unrecognised_codes=tuple(unrecognised),
    )


def calculate_simple_employee_cost(
    base_hourly_rate: float,
    tier: int = 1,
    burden_multiplier: float = BURDEN_MULTIPLIER,
) -> float:
    """True cost for an employee with no premiums."""
    return base_hourly_rate * get_tier_multiplier(tier) * burden_multiplier


def calculate_loadout_labor_cost(
    employees: Iterable[EmployeeCompensationInputs],
    burden_multiplier: float = BURDEN_MULTIPLIER,
) -> float:
    return sum(calculate_employee_compensation(e, burden_multiplier).true_cost for e in employees)


class LaborEngine:
    """
    Employee true-cost engine.

    The burden multiplier comes from the injected settings so organizations
    can tune it; the default is the company-wide 1.7x.
    """

    def __init__(self, settings: Optional[PricingSettings] = None) -> None:
        self.settings = settings or DEFAULT_SETTINGS

    @property
    def burden_multiplier(self) -> float:
        return self.settings.burden_multiplier

    def calculate(self, inputs: EmployeeCompensationInputs) -> EmployeeCompensationBreakdown:
        if inputs.base_hourly_rate <= 0:
            raise InvalidInputError(
                f"base_hourly_rate must be positive; received {inputs.base_hourly_rate}"
            )
        breakdown = calculate_employee_compensation(inputs, self.burden_multiplier)
        if breakdown.unrecognised_codes:
            logger.warning(
                "employee %s: ignoring unrecognised codes %s",
                inputs.name or "<unnamed>",
                list(breakdown.unrecognised_codes),
            )
        return breakdown

    def calculate_many(
        self, employees: Iterable[EmployeeCompensationInputs]
    ) -> List[EmployeeCompensationBreakdown]:
        return [self.calculate(emp) for emp in employees]

    def loadout_labor_cost(self, employees: Iterable[EmployeeCompensationInputs]) -> float:
        """Σ true_cost across a loadout's crew."""
        return sum(b.true_cost for b in self.calculate_many(employees))

    def simple_cost(self, base_hourly_rate: float, tier: int = 1) -> float:
        if base_hourly_rate <= 0:
            raise InvalidInputError(
                f"base_hourly_rate must be positive; received {base_hourly_rate}"
            )
        return calculate_simple_employee_cost(base_hourly_rate, tier, self.burden_multiplier)

    def premium_catalog(self) -> Dict[str, Any]:
        """Tier and premium tables for the employee form, with the configured burden."""
        return {
            "tiers": [
                {"tier": t, "multiplier": m, "label": label, "experience": exp}
                for t, (m, label, exp) in TIER_LEVELS.items()
            ],
            "leadership": [
                {"code": c, "premium": p, "label": label} for c, (p, label) in LEADERSHIP_LEVELS.items()
            ],
            "equipment_certs": [
                {"code": c, "premium": p, "label": label} for c, (p, label) in EQUIPMENT_LEVELS.items()
            ],
            "driver_licenses": [
                {"code": c, "premium": p, "label": label} for c, (p, label) in DRIVER_LICENSES.items()
            ],
            "certifications": [
                {"code": c, "premium": p, "label": label} for c, (p, label) in CERTIFICATIONS.items()
            ],
            "burden_multiplier": self.burden_multiplier,
        }
