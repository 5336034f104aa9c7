"""
afiss_engine.py — AFISS site-complexity multiplier.

AFISS = Access / Facilities / Irregularities / Site / Safety.

Covers:
  - The fixed 35-factor catalog (signed decimal impacts, applicable services)
  - Multiplier from raw impacts or from selected factor ids
  - Floor clamp (default 0.5x) and optional ceiling from settings
  - Warning flag above the configured threshold (default 3.0x)

Formula:
    multiplier = max(1 + Σ impacts, floor)

Impacts are summed, never chained, so selection order has no effect.
There is no ceiling unless an operator configures one; very large
multipliers are flagged, not capped.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from treeshop.services.errors import InvalidInputError
from treeshop.services.settings import DEFAULT_SETTINGS, PricingSettings, ServiceType

logger = logging.getLogger("treeshop.afiss")


_ALL = tuple(s.value for s in ServiceType)
_SG = ServiceType.STUMP_GRINDING.value
_FM = ServiceType.FORESTRY_MULCHING.value
_LC = ServiceType.LAND_CLEARING.value
_TR = ServiceType.TREE_REMOVAL.value
_TT = ServiceType.TREE_TRIMMING.value

AFISS_CATEGORIES: Tuple[str, ...] = ("Access", "Facilities", "Irregularities", "Site", "Safety")


@dataclass(frozen=True)
class AfissFactor:
    id: str
    name: str
    category: str
    impact: float
    service_types: Tuple[str, ...] = _ALL

    def applies_to(self, service_type: Any) -> bool:
        return ServiceType.parse(service_type).value in self.service_types

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "impact": self.impact,
            "service_types": list(self.service_types),
        }


AFISS_FACTORS: Tuple[AfissFactor, ...] = (
    # Access
    AfissFactor("access_narrow_gate", "Narrow Gate (<8 ft)", "Access", 0.12, (_FM, _LC, _SG)),
    AfissFactor("access_no_equipment", "No Equipment Access", "Access", 0.50, (_TR, _TT, _SG)),
    AfissFactor("access_soft_ground", "Soft/Muddy Ground", "Access", 0.15, (_FM, _LC, _SG)),
    AfissFactor("access_steep_slope", "Steep Slope (>15°)", "Access", 0.20, (_FM, _LC, _TR)),
    AfissFactor("access_long_drive", "Long Drive (>2 hrs)", "Access", 0.10, (_FM, _LC, _SG, _TR, _TT)),
    AfissFactor("access_no_bucket", "No Bucket Truck Access", "Access", 0.25, (_TR, _TT)),
    AfissFactor("access_backyard_only", "Backyard Access Only", "Access", 0.15, (_TR, _SG, _LC)),
    AfissFactor("access_over_structure", "Over Structure/Garage", "Access", 0.30, (_TR, _TT)),
    # Facilities
    AfissFactor("facilities_power_lines_touching", "Power Lines Touching", "Facilities", 0.30, (_TR, _TT)),
    AfissFactor("facilities_power_lines_nearby", "Power Lines Nearby (<10 ft)", "Facilities", 0.15, (_TR, _TT, _FM, _LC)),
    AfissFactor("facilities_buildings_within_50ft", "Buildings Within 50 ft", "Facilities", 0.20, (_TR, _TT, _LC, _FM)),
    AfissFactor("facilities_pool_high_value", "Pool/High Value Target", "Facilities", 0.30, (_TR, _TT, _LC)),
    AfissFactor("facilities_utilities_in_zone", "Utilities in Work Zone", "Facilities", 0.15, (_LC, _SG, _FM)),
    AfissFactor("facilities_tight_landscaping", "Tight Landscaping", "Facilities", 0.15, (_SG, _TR, _TT)),
    # Irregularities
    AfissFactor("irregularities_dead_hazard", "Dead/Hazard Tree", "Irregularities", 0.15, (_TR, _TT)),
    AfissFactor("irregularities_leaning_tree", "Leaning Tree", "Irregularities", 0.20, (_TR,)),
    AfissFactor("irregularities_multi_trunk", "Multi-Trunk Tree", "Irregularities", 0.10, (_TR, _TT)),
    AfissFactor("irregularities_hardwood", "Hardwood Species", "Irregularities", 0.15, (_TR, _SG, _TT)),
    AfissFactor("irregularities_large_root_flare", "Large Root Flare", "Irregularities", 0.20, (_SG,)),
    # decayed wood grinds faster
    AfissFactor("irregularities_rotten_stump", "Rotten/Deteriorated Stump", "Irregularities", -0.15, (_SG,)),
    AfissFactor("irregularities_pine_sap", "Heavy Sap/Resin", "Irregularities", 0.10, (_TR, _SG, _TT)),
    AfissFactor("irregularities_hollow_tree", "Hollow/Cavity Tree", "Irregularities", 0.25, (_TR,)),
    # Site
    AfissFactor("site_wetlands", "Wetlands in Work Area", "Site", 0.20, (_FM, _LC)),
    AfissFactor("site_rocky_ground", "Rocky/Hard Ground", "Site", 0.25, (_SG, _LC, _FM)),
    AfissFactor("site_dense_undergrowth", "Dense Undergrowth", "Site", 0.15, (_FM, _LC, _TR)),
    AfissFactor("site_protected_habitat", "Protected Species Habitat", "Site", 0.30, (_FM, _LC)),
    AfissFactor("site_flood_zone", "Flood Zone/Standing Water", "Site", 0.20, (_FM, _LC, _SG)),
    AfissFactor("site_fire_damage", "Fire Damage", "Site", 0.15, (_TR, _LC, _FM)),
    AfissFactor("site_storm_damage", "Storm Damage", "Site", 0.20, (_TR, _LC)),
    # Safety
    AfissFactor("safety_high_voltage", "High Voltage Lines", "Safety", 0.50, (_TR, _TT)),
    AfissFactor("safety_confined_space", "Confined Space Work", "Safety", 0.25, (_TR, _TT)),
    AfissFactor("safety_near_public_road", "Near Public Road/Traffic", "Safety", 0.10, (_TR, _TT, _SG)),
    AfissFactor("safety_wildlife_hazard", "Wildlife Hazard", "Safety", 0.15, (_TR, _TT, _SG, _LC)),
    AfissFactor("safety_contaminated_site", "Contaminated Site", "Safety", 0.30, (_LC, _FM, _SG)),
    AfissFactor("safety_overhead_hazard", "Overhead Hazards", "Safety", 0.20, (_TR, _TT)),
)

AFISS_FACTORS_BY_ID: Dict[str, AfissFactor] = {f.id: f for f in AFISS_FACTORS}


@dataclass(frozen=True)
class AfissResult:
    multiplier: float
    total_impact: float
    selected_factor_ids: Tuple[str, ...] = ()
    unknown_factor_ids: Tuple[str, ...] = ()
    clamped: bool = False
    warning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "multiplier": round(self.multiplier, 4),
            "total_impact": round(self.total_impact, 4),
            "selected_factor_ids": list(self.selected_factor_ids),
            "unknown_factor_ids": list(self.unknown_factor_ids),
            "clamped": self.clamped,
            "warning": self.warning,
        }


def factors_by_category() -> Dict[str, List[AfissFactor]]:
    grouped: Dict[str, List[AfissFactor]] = {c: [] for c in AFISS_CATEGORIES}
    for factor in AFISS_FACTORS:
        grouped[factor.category].append(factor)
    return grouped


def factors_for_service(service_type: Any) -> List[AfissFactor]:
    """Catalog entries that apply to ``service_type``, in catalog order."""
    st = ServiceType.parse(service_type)
    return [f for f in AFISS_FACTORS if st.value in f.service_types]


class AfissEngine:
    """Sums selected factor impacts into one score multiplier."""

    def __init__(self, settings: Optional[PricingSettings] = None) -> None:
        self.settings = settings or DEFAULT_SETTINGS

    def calculate_multiplier(
        self,
        impacts: Iterable[float],
        selected_factor_ids: Tuple[str, ...] = (),
        unknown_factor_ids: Tuple[str, ...] = (),
    ) -> AfissResult:
        total_impact = 0.0
        for impact in impacts:
            value = float(impact)
            if value != value:
                raise InvalidInputError("AFISS impact must be a number; received NaN")
            total_impact += value

        raw = 1.0 + total_impact
        multiplier = max(raw, self.settings.afiss_floor)
        if self.settings.afiss_ceiling is not None:
            multiplier = min(multiplier, self.settings.afiss_ceiling)
        clamped = multiplier != raw
        if clamped:
            logger.warning("AFISS multiplier %.4f clamped to %.4f", raw, multiplier)

        warning = None
        if multiplier > self.settings.afiss_warning_threshold:
            warning = (
                f"AFISS multiplier {multiplier:.2f}x exceeds "
                f"{self.settings.afiss_warning_threshold:.2f}x; confirm the factor selection"
            )
            logger.warning(warning)

        return AfissResult(
            multiplier=multiplier,
            total_impact=total_impact,
            selected_factor_ids=selected_factor_ids,
            unknown_factor_ids=unknown_factor_ids,
            clamped=clamped,
            warning=warning,
        )

    def calculate_from_factor_ids(self, factor_ids: Iterable[str]) -> AfissResult:
        """
        Multiplier from catalog ids. Duplicates count once; unknown ids are
        ignored and echoed back in ``unknown_factor_ids``.
        """
        selected: List[str] = []
        unknown: List[str] = []
        for factor_id in factor_ids:
            if factor_id in selected or factor_id in unknown:
                continue
            if factor_id in AFISS_FACTORS_BY_ID:
                selected.append(factor_id)
            else:
                unknown.append(factor_id)
        if unknown:
            logger.debug("ignoring unknown AFISS factor ids %s", unknown)
        impacts = [AFISS_FACTORS_BY_ID[i].impact for i in selected]
        return self.calculate_multiplier(impacts, tuple(selected), tuple(unknown))


_default_engine = AfissEngine()


def calculate_multiplier(impacts: Iterable[float]) -> AfissResult:
    return _default_engine.calculate_multiplier(impacts)


def calculate_from_factor_ids(factor_ids: Iterable[str]) -> AfissResult:
    return _default_engine.calculate_from_factor_ids(factor_ids)
