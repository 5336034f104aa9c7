"""
settings.py — Tunable constants for the TreeShop pricing engines.

Every engine takes a ``PricingSettings`` instance in its constructor
(``None`` means defaults), so an organization can diverge from the company
defaults without touching module-level constants.

Defaults:
  - Burden multiplier 1.7 (taxes, insurance, overhead, non-billable time)
  - Time buffer 10 % of production hours
  - Margin ladder 30 / 40 / 50 / 60 / 70 %
  - Land-clearing density factors Light 0.7, Average 1.0, Heavy 1.3
  - Stump modifiers hardwood +15 %, root flare +20 %, rotten -15 %,
    rocks +10 %, tight space +15 %, summed per stump
  - Trim tiers Light 15 %, Medium 25 %, Heavy 45 %
  - AFISS floor 0.5x, no ceiling, warning above 3.0x
  - Stump grinding 2-hour minimum; transport rates 0.3 stump / 0.5 others
"""

import os
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from treeshop.services.errors import InvalidInputError


class ServiceType(str, Enum):
    """Service-type tag used to dispatch score calculators and templates."""
    STUMP_GRINDING = "Stump Grinding"
    FORESTRY_MULCHING = "Forestry Mulching"
    LAND_CLEARING = "Land Clearing"
    TREE_REMOVAL = "Tree Removal"
    TREE_TRIMMING = "Tree Trimming"

    @classmethod
    def parse(cls, value: Any) -> "ServiceType":
        """Accept an enum member, its value ("Tree Removal") or its name ("TREE_REMOVAL")."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for member in cls:
            if text == member.value or text.upper().replace(" ", "_") == member.name:
                return member
        raise InvalidInputError(
            f"Unknown service type '{value}'. Choose from {[m.value for m in cls]}"
        )


STUMP_MODIFIER_MODES = ("additive", "compound")


def _default_density_factors() -> Dict[str, float]:
    return {"Light": 0.7, "Average": 1.0, "Heavy": 1.3}


def _default_stump_modifiers() -> Dict[str, float]:
    return {
        "hardwood": 0.15,
        "root_flare": 0.20,
        "rotten": -0.15,
        "rocks": 0.10,
        "tight_space": 0.15,
    }


def _default_trim_tiers() -> Dict[str, float]:
    return {"Light": 0.15, "Medium": 0.25, "Heavy": 0.45}


def _default_minimum_hours() -> Dict[str, Optional[float]]:
    return {
        ServiceType.STUMP_GRINDING.value: 2.0,
        ServiceType.FORESTRY_MULCHING.value: None,
        ServiceType.LAND_CLEARING.value: None,
        ServiceType.TREE_REMOVAL.value: None,
        ServiceType.TREE_TRIMMING.value: None,
    }


def _default_transport_rates() -> Dict[str, float]:
    return {
        ServiceType.STUMP_GRINDING.value: 0.3,   # smaller trailer
        ServiceType.FORESTRY_MULCHING.value: 0.5,
        ServiceType.LAND_CLEARING.value: 0.5,
        ServiceType.TREE_REMOVAL.value: 0.5,
        ServiceType.TREE_TRIMMING.value: 0.5,
    }


@dataclass(frozen=True)
class PricingSettings:
    """Per-organization pricing configuration passed into every engine."""

    burden_multiplier: float = 1.7
    buffer_pct: float = 0.10
    margin_ladder: Tuple[float, ...] = (30.0, 40.0, 50.0, 60.0, 70.0)

    density_factors: Dict[str, float] = field(default_factory=_default_density_factors)
    stump_modifiers: Dict[str, float] = field(default_factory=_default_stump_modifiers)
    stump_modifier_mode: str = "additive"
    trim_tiers: Dict[str, float] = field(default_factory=_default_trim_tiers)

    afiss_floor: float = 0.5
    afiss_ceiling: Optional[float] = None
    afiss_warning_threshold: float = 3.0

    minimum_hours: Dict[str, Optional[float]] = field(default_factory=_default_minimum_hours)
    transport_rates: Dict[str, float] = field(default_factory=_default_transport_rates)
    minimum_acres: float = 0.5

    def __post_init__(self) -> None:
        if self.burden_multiplier < 1.0:
            raise InvalidInputError(
                f"burden_multiplier must be >= 1.0; received {self.burden_multiplier}"
            )
        if not 0.0 <= self.buffer_pct < 1.0:
            raise InvalidInputError(f"buffer_pct must be in [0, 1); received {self.buffer_pct}")
        for margin in self.margin_ladder:
            if not 0.0 <= margin < 100.0:
                raise InvalidInputError(f"margin ladder entry {margin} outside [0, 100)")
        if self.afiss_floor <= 0:
            raise InvalidInputError(f"afiss_floor must be positive; received {self.afiss_floor}")
        if self.afiss_ceiling is not None and self.afiss_ceiling < self.afiss_floor:
            raise InvalidInputError("afiss_ceiling must not be below afiss_floor")
        if self.stump_modifier_mode not in STUMP_MODIFIER_MODES:
            raise InvalidInputError(
                f"stump_modifier_mode must be one of {STUMP_MODIFIER_MODES}; "
                f"received '{self.stump_modifier_mode}'"
            )
        light, average, heavy = (
            self.density_factors.get("Light"),
            self.density_factors.get("Average"),
            self.density_factors.get("Heavy"),
        )
        if None in (light, average, heavy) or not (0 < light < average < heavy):
            raise InvalidInputError("density factors must satisfy 0 < Light < Average < Heavy")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def minimum_hours_for(self, service_type: Any) -> Optional[float]:
        return self.minimum_hours.get(ServiceType.parse(service_type).value)

    def transport_rate_for(self, service_type: Any) -> float:
        return self.transport_rates.get(ServiceType.parse(service_type).value, 0.5)

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_overrides(cls, overrides: Optional[Dict[str, Any]] = None) -> "PricingSettings":
        """
        Build settings from a per-organization override dict.

        Unknown keys are rejected so a typo never silently falls back to
        the company default. Dict-valued settings are merged key by key.
        """
        base = cls()
        if not overrides:
            return base
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise InvalidInputError(f"Unknown pricing settings: {unknown}")

        changes: Dict[str, Any] = {}
        for key, value in overrides.items():
            current = getattr(base, key)
            if isinstance(current, dict) and isinstance(value, dict):
                merged = dict(current)
                merged.update(value)
                changes[key] = merged
            elif key == "margin_ladder":
                changes[key] = tuple(float(m) for m in value)
            else:
                changes[key] = value
        return replace(base, **changes)

    @classmethod
    def from_env(cls) -> "PricingSettings":
        """Read overrides from ``TREESHOP_*`` environment variables."""
        overrides: Dict[str, Any] = {}
        float_vars = {
            "TREESHOP_BURDEN_MULTIPLIER": "burden_multiplier",
            "TREESHOP_BUFFER_PCT": "buffer_pct",
            "TREESHOP_AFISS_FLOOR": "afiss_floor",
            "TREESHOP_AFISS_CEILING": "afiss_ceiling",
            "TREESHOP_AFISS_WARNING_THRESHOLD": "afiss_warning_threshold",
            "TREESHOP_MINIMUM_ACRES": "minimum_acres",
        }
        for var, key in float_vars.items():
            raw = os.getenv(var)
            if raw is None or raw == "":
                continue
            try:
                overrides[key] = float(raw)
            except ValueError:
                raise InvalidInputError(f"{var} must be numeric; received '{raw}'")
        mode = os.getenv("TREESHOP_STUMP_MODIFIER_MODE")
        if mode:
            overrides["stump_modifier_mode"] = mode.strip().lower()
        return cls.from_overrides(overrides)


DEFAULT_SETTINGS = PricingSettings()
