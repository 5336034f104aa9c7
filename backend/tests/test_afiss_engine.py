"""
test_afiss_engine.py — Unit tests for the AFISS complexity multiplier.

Tests cover:
  - Empty selection → 1.0
  - Additive, order-independent sum of impacts
  - Floor clamp at 0.5 and optional ceiling
  - Warning flag above 3.0x (no cap by default)
  - Catalog shape and per-service filtering
"""

import itertools

import pytest

from treeshop.services.afiss_engine import (
    AFISS_CATEGORIES,
    AFISS_FACTORS,
    AFISS_FACTORS_BY_ID,
    AfissEngine,
    calculate_from_factor_ids,
    calculate_multiplier,
    factors_by_category,
    factors_for_service,
)
from treeshop.services.errors import InvalidInputError
from treeshop.services.settings import PricingSettings


# ===========================================================================
# Class 1: Multiplier arithmetic
# ===========================================================================

class TestAfissMultiplier:

    def test_no_factors_is_identity(self, afiss_engine):
        result = afiss_engine.calculate_multiplier([])
        assert result.multiplier == 1.0
        assert result.total_impact == 0.0
        assert not result.clamped
        assert result.warning is None

    def test_module_level_empty(self):
        assert calculate_multiplier([]).multiplier == 1.0
        assert calculate_from_factor_ids([]).multiplier == 1.0

    def test_impacts_are_summed(self, afiss_engine):
        """1 + 0.12 + 0.20 - 0.15 = 1.17."""
        result = afiss_engine.calculate_multiplier([0.12, 0.20, -0.15])
        assert abs(result.multiplier - 1.17) < 1e-12

    def test_order_does_not_matter(self, afiss_engine):
        ids = ["access_narrow_gate", "facilities_power_lines_touching", "irregularities_rotten_stump", "site_wetlands"]
        values = {
            round(afiss_engine.calculate_from_factor_ids(list(p)).multiplier, 12)
            for p in itertools.permutations(ids)
        }
        assert len(values) == 1

    def test_factor_ids(self, afiss_engine):
        """access_steep_slope 0.20 + facilities_power_lines_nearby 0.15 = 1.35."""
        result = afiss_engine.calculate_from_factor_ids(["access_steep_slope", "facilities_power_lines_nearby"])
        assert result.multiplier == pytest.approx(1.35)
        assert result.selected_factor_ids == ("access_steep_slope", "facilities_power_lines_nearby")

    def test_duplicate_ids_count_once(self, afiss_engine):
        result = afiss_engine.calculate_from_factor_ids(["safety_high_voltage", "safety_high_voltage"])
        assert result.multiplier == pytest.approx(1.5)

    def test_unknown_ids_ignored_and_reported(self, afiss_engine):
        result = afiss_engine.calculate_from_factor_ids(["access_narrow_gate", "alien_landing"])
        assert result.multiplier == pytest.approx(1.12)
        assert result.unknown_factor_ids == ("alien_landing",)

    def test_nan_impact_rejected(self, afiss_engine):
        with pytest.raises(InvalidInputError):
            afiss_engine.calculate_multiplier([float("nan")])


# ===========================================================================
# Class 2: Floor, ceiling, warning
# ===========================================================================

class TestAfissBounds:

    def test_floor_clamp(self, afiss_engine):
        """1 - 0.9 = 0.1 → clamped to 0.5."""
        result = afiss_engine.calculate_multiplier([-0.9])
        assert result.multiplier == 0.5
        assert result.clamped

    def test_no_ceiling_by_default(self, afiss_engine):
        """Every positive factor selected: far above 3x, not capped but flagged."""
        ids = [f.id for f in AFISS_FACTORS if f.impact > 0]
        result = afiss_engine.calculate_from_factor_ids(ids)
        expected = 1.0 + sum(f.impact for f in AFISS_FACTORS if f.impact > 0)
        assert result.multiplier == pytest.approx(expected)
        assert result.multiplier > 3.0
        assert not result.clamped
        assert result.warning is not None

    def test_warning_threshold_boundary(self, afiss_engine):
        assert afiss_engine.calculate_multiplier([2.0]).warning is None
        assert afiss_engine.calculate_multiplier([2.01]).warning is not None

    def test_configured_ceiling(self):
        engine = AfissEngine(PricingSettings(afiss_ceiling=2.5))
        result = engine.calculate_multiplier([1.0, 1.0])
        assert result.multiplier == 2.5
        assert result.clamped

    def test_configured_floor(self):
        engine = AfissEngine(PricingSettings(afiss_floor=0.8))
        assert engine.calculate_multiplier([-0.5]).multiplier == 0.8

    def test_non_positive_floor_rejected(self):
        with pytest.raises(InvalidInputError):
            PricingSettings(afiss_floor=0.0)

    def test_warning_logged(self, afiss_engine, caplog):
        with caplog.at_level("WARNING", logger="treeshop.afiss"):
            afiss_engine.calculate_multiplier([5.0])
        assert "exceeds" in caplog.text


# ===========================================================================
# Class 3: Catalog
# ===========================================================================

class TestAfissCatalog:

    def test_thirty_five_factors_in_five_categories(self):
        assert len(AFISS_FACTORS) == 35
        grouped = factors_by_category()
        assert tuple(grouped) == AFISS_CATEGORIES
        assert {category: len(factors) for category, factors in grouped.items()} == {
            "Access": 8, "Facilities": 6, "Irregularities": 8, "Site": 7, "Safety": 6,
        }

    @pytest.mark.parametrize("factor_id, impact, services", [
        ("site_rocky_ground", 0.25, {"Stump Grinding", "Land Clearing", "Forestry Mulching"}),
        ("access_no_equipment", 0.50, {"Tree Removal", "Tree Trimming", "Stump Grinding"}),
        ("irregularities_hollow_tree", 0.25, {"Tree Removal"}),
        ("access_long_drive", 0.10, {"Forestry Mulching", "Land Clearing", "Stump Grinding",
                                     "Tree Removal", "Tree Trimming"}),
    ])
    def test_catalog_values(self, factor_id, impact, services):
        factor = AFISS_FACTORS_BY_ID[factor_id]
        assert factor.impact == impact
        assert set(factor.service_types) == services

    def test_old_unprefixed_ids_unknown(self, afiss_engine):
        result = afiss_engine.calculate_from_factor_ids(["rocky_ground"])
        assert result.multiplier == 1.0
        assert result.unknown_factor_ids == ("rocky_ground",)

    def test_ids_are_unique(self):
        assert len(AFISS_FACTORS_BY_ID) == len(AFISS_FACTORS)

    def test_rotten_stump_is_the_only_negative(self):
        negatives = [f.id for f in AFISS_FACTORS if f.impact < 0]
        assert negatives == ["irregularities_rotten_stump"]

    def test_filter_by_service(self):
        stump_ids = {f.id for f in factors_for_service("Stump Grinding")}
        assert "irregularities_rotten_stump" in stump_ids
        assert "facilities_power_lines_touching" not in stump_ids
        trim_ids = {f.id for f in factors_for_service("TREE_TRIMMING")}
        assert "facilities_power_lines_touching" in trim_ids
        assert "irregularities_rotten_stump" not in trim_ids

    def test_every_service_has_factors(self):
        for service in ("Stump Grinding", "Forestry Mulching", "Land Clearing", "Tree Removal", "Tree Trimming"):
            assert factors_for_service(service)

    def test_unknown_service_rejected(self):
        with pytest.raises(InvalidInputError):
            factors_for_service("Snow Removal")
