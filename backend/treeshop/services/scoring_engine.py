"""
scoring_engine.py — TreeShop Score calculators, one per service type.

Covers:
  - Stump grinding:    Σ diameter² × (height_above + depth_below) × modifiers
  - Forestry mulching: acres × DBH package, × AFISS
  - Land clearing:     acres × density factor, × AFISS
  - Tree removal:      Σ height × canopy_radius × 2 × dbh / 12, × AFISS
  - Tree trimming:     removal score × trim tier (15 / 25 / 45 %), × AFISS

Every calculator returns the same ``ScoreResult`` contract:

    adjusted_score = base_score × complexity_multiplier

``ScoringEngine.score(work)`` picks the calculator from the input's
``service_type`` tag, so time and pricing wiring is shared by all five
services.

Stump modifiers are folded into the per-stump score, so a stump job always
reports complexity_multiplier 1.0. By default the selected deltas are summed
(score × (1 + Σ deltas)); ``stump_modifier_mode="compound"`` chains them
instead (score × Π (1 + delta)).
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type, Union

from treeshop.services.errors import InvalidInputError
from treeshop.services.settings import DEFAULT_SETTINGS, PricingSettings, ServiceType

logger = logging.getLogger("treeshop.scoring")

# Acreage-based services must meet the minimum-acres rule before quoting
ACREAGE_SERVICES = (ServiceType.FORESTRY_MULCHING, ServiceType.LAND_CLEARING)

STUMP_MODIFIER_FLAGS = ("hardwood", "root_flare", "rotten", "rocks", "tight_space")


# ---------------------------------------------------------------------------
# Work-volume inputs (tagged by service_type)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StumpInput:
    diameter_inches: float
    height_above_ft: float
    depth_below_ft: float
    hardwood: bool = False
    root_flare: bool = False
    rotten: bool = False
    rocks: bool = False
    tight_space: bool = False

    def selected_modifiers(self) -> List[str]:
        return [flag for flag in STUMP_MODIFIER_FLAGS if getattr(self, flag)]


@dataclass(frozen=True)
class StumpGrindingInput:
    service_type: ClassVar[ServiceType] = ServiceType.STUMP_GRINDING
    stumps: Tuple[StumpInput, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MulchingInput:
    service_type: ClassVar[ServiceType] = ServiceType.FORESTRY_MULCHING
    acres: float = 0.0
    dbh_package: float = 0.0           # max stem diameter cleared, inches
    afiss_multiplier: float = 1.0


@dataclass(frozen=True)
class LandClearingInput:
    service_type: ClassVar[ServiceType] = ServiceType.LAND_CLEARING
    acres: float = 0.0
    density: str = "Average"
    afiss_multiplier: float = 1.0


@dataclass(frozen=True)
class TreeInput:
    height_ft: float
    dbh_inches: float
    canopy_radius_ft: float


@dataclass(frozen=True)
class TreeRemovalInput:
    service_type: ClassVar[ServiceType] = ServiceType.TREE_REMOVAL
    trees: Tuple[TreeInput, ...] = field(default_factory=tuple)
    afiss_multiplier: float = 1.0


@dataclass(frozen=True)
class TreeTrimmingInput:
    service_type: ClassVar[ServiceType] = ServiceType.TREE_TRIMMING
    trees: Tuple[TreeInput, ...] = field(default_factory=tuple)
    trim_percentage: Union[str, float] = "Medium"
    afiss_multiplier: float = 1.0


WorkVolumeInput = Union[
    StumpGrindingInput, MulchingInput, LandClearingInput, TreeRemovalInput, TreeTrimmingInput
]


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoreResult:
    service_type: ServiceType
    base_score: float
    complexity_multiplier: float
    adjusted_score: float
    formula_used: str
    work_volume_inputs: Dict[str, Any] = field(default_factory=dict)

    @property
    def acres(self) -> Optional[float]:
        return self.work_volume_inputs.get("acres")

    def is_quotable(self, minimum_acres: float = 0.5) -> bool:
        """False when the result must not be added to a proposal."""
        if self.adjusted_score <= 0:
            return False
        if self.service_type in ACREAGE_SERVICES:
            acres = self.acres
            if acres is None or acres < minimum_acres:
                return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_type": self.service_type.value,
            "base_score": round(self.base_score, 4),
            "complexity_multiplier": round(self.complexity_multiplier, 4),
            "adjusted_score": round(self.adjusted_score, 4),
            "formula_used": self.formula_used,
            "work_volume_inputs": self.work_volume_inputs,
        }


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

def _non_negative(value: float, label: str) -> float:
    value = float(value)
    if math.isnan(value) or math.isinf(value) or value < 0:
        raise InvalidInputError(f"{label} must be a finite non-negative number; received {value}")
    return value


def _multiplier(value: float) -> float:
    value = float(value)
    if math.isnan(value) or math.isinf(value) or value <= 0:
        raise InvalidInputError(f"afiss_multiplier must be positive; received {value}")
    return value


def tree_score(tree: TreeInput) -> float:
    """height × canopy_radius × 2 × dbh / 12 for a single tree."""
    height = _non_negative(tree.height_ft, "height_ft")
    dbh = _non_negative(tree.dbh_inches, "dbh_inches")
    radius = _non_negative(tree.canopy_radius_ft, "canopy_radius_ft")
    return height * radius * 2.0 * dbh / 12.0


# ---------------------------------------------------------------------------
# Calculators
# ---------------------------------------------------------------------------

class ScoreCalculator:
    """Base class: ``score(work) -> ScoreResult`` for one service type."""

    service_type: ClassVar[ServiceType]
    formula_used: ClassVar[str]
    input_type: ClassVar[type]

    def __init__(self, settings: Optional[PricingSettings] = None) -> None:
        self.settings = settings or DEFAULT_SETTINGS

    def score(self, work: Any) -> ScoreResult:
        if not isinstance(work, self.input_type):
            raise InvalidInputError(
                f"{type(self).__name__} expects {self.input_type.__name__}; "
                f"received {type(work).__name__}"
            )
        base, multiplier, detail = self._compute(work)
        result = ScoreResult(
            service_type=self.service_type,
            base_score=base,
            complexity_multiplier=multiplier,
            adjusted_score=base * multiplier,
            formula_used=self.formula_used,
            work_volume_inputs=detail,
        )
        logger.debug(
            "%s: base=%.4f multiplier=%.4f adjusted=%.4f",
            self.formula_used, result.base_score, multiplier, result.adjusted_score,
        )
        return result

    def _compute(self, work: Any) -> Tuple[float, float, Dict[str, Any]]:
        raise NotImplementedError


class StumpScoreCalculator(ScoreCalculator):
    service_type = ServiceType.STUMP_GRINDING
    formula_used = "StumpScore"
    input_type = StumpGrindingInput

    def stump_score(self, stump: StumpInput) -> Tuple[float, float, float]:
        """Returns (raw score, modifier factor, modified score) for one stump."""
        diameter = _non_negative(stump.diameter_inches, "diameter_inches")
        above = _non_negative(stump.height_above_ft, "height_above_ft")
        below = _non_negative(stump.depth_below_ft, "depth_below_ft")
        raw = diameter ** 2 * (above + below)

        deltas = [self.settings.stump_modifiers.get(flag, 0.0) for flag in stump.selected_modifiers()]
        if self.settings.stump_modifier_mode == "compound":
            factor = 1.0
            for delta in deltas:
                factor *= 1.0 + delta
        else:
            factor = 1.0 + sum(deltas)
        return raw, factor, raw * factor

    def _compute(self, work: StumpGrindingInput) -> Tuple[float, float, Dict[str, Any]]:
        rows = []
        total = 0.0
        for stump in work.stumps:
            raw, factor, modified = self.stump_score(stump)
            total += modified
            rows.append({
                **asdict(stump),
                "raw_score": raw,
                "modifiers": stump.selected_modifiers(),
                "modifier_factor": factor,
                "score": modified,
            })
        detail = {
            "stump_count": len(work.stumps),
            "modifier_mode": self.settings.stump_modifier_mode,
            "stumps": rows,
            "description": f"{len(work.stumps)} stump(s)",
        }
        return total, 1.0, detail


class MulchingScoreCalculator(ScoreCalculator):
    service_type = ServiceType.FORESTRY_MULCHING
    formula_used = "MulchingScore"
    input_type = MulchingInput

    def _compute(self, work: MulchingInput) -> Tuple[float, float, Dict[str, Any]]:
        acres = _non_negative(work.acres, "acres")
        dbh = _non_negative(work.dbh_package, "dbh_package")
        multiplier = _multiplier(work.afiss_multiplier)
        detail = {
            "acres": acres,
            "dbh_package": dbh,
            "afiss_multiplier": multiplier,
            "description": f'{acres:g} acres, {dbh:g}" DBH package',
        }
        return acres * dbh, multiplier, detail


class LandClearingScoreCalculator(ScoreCalculator):
    service_type = ServiceType.LAND_CLEARING
    formula_used = "ClearingScore"
    input_type = LandClearingInput

    def density_factor(self, density: str) -> float:
        for name, factor in self.settings.density_factors.items():
            if str(density).strip().lower() == name.lower():
                return factor
        raise InvalidInputError(
            f"Unknown density '{density}'. Choose from {list(self.settings.density_factors)}"
        )

    def _compute(self, work: LandClearingInput) -> Tuple[float, float, Dict[str, Any]]:
        acres = _non_negative(work.acres, "acres")
        factor = self.density_factor(work.density)
        multiplier = _multiplier(work.afiss_multiplier)
        detail = {
            "acres": acres,
            "density": work.density,
            "density_factor": factor,
            "afiss_multiplier": multiplier,
            "description": f"{acres:g} acres, {work.density} density",
        }
        return acres * factor, multiplier, detail


class TreeRemovalScoreCalculator(ScoreCalculator):
    service_type = ServiceType.TREE_REMOVAL
    formula_used = "TreeScore"
    input_type = TreeRemovalInput

    def _tree_rows(self, trees: Tuple[TreeInput, ...]) -> Tuple[float, List[Dict[str, Any]]]:
        rows = []
        total = 0.0
        for tree in trees:
            score = tree_score(tree)
            total += score
            rows.append({**asdict(tree), "score": score})
        return total, rows

    def _compute(self, work: TreeRemovalInput) -> Tuple[float, float, Dict[str, Any]]:
        multiplier = _multiplier(work.afiss_multiplier)
        total, rows = self._tree_rows(work.trees)
        detail = {
            "tree_count": len(work.trees),
            "trees": rows,
            "afiss_multiplier": multiplier,
            "description": f"{len(work.trees)} tree(s) removed",
        }
        return total, multiplier, detail


class TreeTrimmingScoreCalculator(TreeRemovalScoreCalculator):
    service_type = ServiceType.TREE_TRIMMING
    formula_used = "TrimScore"
    input_type = TreeTrimmingInput

    def trim_percentage(self, value: Union[str, float]) -> Tuple[str, float]:
        """Resolve a tier name ("Medium") or its exact value (0.25)."""
        tiers = self.settings.trim_tiers
        if isinstance(value, str):
            for name, pct in tiers.items():
                if value.strip().lower() == name.lower():
                    return name, pct
        else:
            for name, pct in tiers.items():
                if abs(float(value) - pct) < 1e-9:
                    return name, pct
        raise InvalidInputError(
            f"Trim percentage must be one of {tiers}; received {value!r}"
        )

    def _compute(self, work: TreeTrimmingInput) -> Tuple[float, float, Dict[str, Any]]:
        multiplier = _multiplier(work.afiss_multiplier)
        tier, pct = self.trim_percentage(work.trim_percentage)
        removal_total, rows = self._tree_rows(work.trees)
        detail = {
            "tree_count": len(work.trees),
            "trees": rows,
            "removal_score": removal_total,
            "trim_tier": tier,
            "trim_percentage": pct,
            "afiss_multiplier": multiplier,
            "description": f"{len(work.trees)} tree(s), {tier} trim ({pct:.0%})",
        }
        return removal_total * pct, multiplier, detail


CALCULATORS: Dict[ServiceType, Type[ScoreCalculator]] = {
    ServiceType.STUMP_GRINDING: StumpScoreCalculator,
    ServiceType.FORESTRY_MULCHING: MulchingScoreCalculator,
    ServiceType.LAND_CLEARING: LandClearingScoreCalculator,
    ServiceType.TREE_REMOVAL: TreeRemovalScoreCalculator,
    ServiceType.TREE_TRIMMING: TreeTrimmingScoreCalculator,
}


class ScoringEngine:
    """Dispatches a work-volume input to its service's calculator."""

    def __init__(self, settings: Optional[PricingSettings] = None) -> None:
        self.settings = settings or DEFAULT_SETTINGS
        self._calculators = {st: cls(self.settings) for st, cls in CALCULATORS.items()}

    def calculator_for(self, service_type: Any) -> ScoreCalculator:
        return self._calculators[ServiceType.parse(service_type)]

    def score(self, work: WorkVolumeInput) -> ScoreResult:
        service_type = getattr(work, "service_type", None)
        if not isinstance(service_type, ServiceType):
            raise InvalidInputError(
                f"Unsupported work-volume input {type(work).__name__}"
            )
        return self._calculators[service_type].score(work)

    def validate_for_proposal(self, result: ScoreResult) -> None:
        """Raise ``InvalidInputError`` when a score may not be added to a proposal."""
        if result.adjusted_score <= 0:
            raise InvalidInputError(
                f"{result.service_type.value}: adjusted score is 0; nothing to quote"
            )
        if not result.is_quotable(self.settings.minimum_acres):
            raise InvalidInputError(
                f"{result.service_type.value}: at least {self.settings.minimum_acres:g} "
                f"acres required; received {result.acres}"
            )


_default_engine = ScoringEngine()


def score(work: WorkVolumeInput) -> ScoreResult:
    """Module-level entry point: ``score(work) -> ScoreResult``."""
    return _default_engine.score(work)
