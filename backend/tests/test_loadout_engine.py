"""
test_loadout_engine.py — Unit tests for LoadoutCostAggregator.

Tests cover:
  - Crew hourly cost = Σ equipment + Σ employee true cost (+ overhead)
  - Billing-rate ladder 30 / 40 / 50 / 60 / 70 % as cost ÷ (1 - m)
  - Empty loadout ("scoring only" mode)
"""

import pytest

from treeshop.services.errors import InvalidInputError
from treeshop.services.loadout_engine import Loadout, LoadoutCostAggregator
from treeshop.services.settings import PricingSettings


class TestLoadoutCost:

    def test_mulcher_and_climber(self, loadout_aggregator, mulcher_inputs, climber_inputs):
        """59.50 equipment + 83.30 labor = 142.80 $/hr."""
        loadout = Loadout(
            name="Mulching crew",
            production_rate_pph=1.5,
            equipment=(mulcher_inputs,),
            employees=(climber_inputs,),
        )
        cost = loadout_aggregator.calculate(loadout)
        assert cost.equipment_cost_per_hour == pytest.approx(59.50)
        assert cost.labor_cost_per_hour == pytest.approx(83.30)
        assert cost.total_cost_per_hour == pytest.approx(142.80)
        assert not cost.is_scoring_only

    def test_billing_ladder(self, loadout_aggregator, mulcher_inputs, climber_inputs):
        """142.80 / 0.7 = 204.00; / 0.5 = 285.60; / 0.3 = 476.00."""
        loadout = Loadout("crew", 1.5, (mulcher_inputs,), (climber_inputs,))
        cost = loadout_aggregator.calculate(loadout)
        assert sorted(cost.billing_rates) == [30.0, 40.0, 50.0, 60.0, 70.0]
        assert cost.billing_rate(30) == pytest.approx(204.0)
        assert cost.billing_rate(50) == pytest.approx(285.60)
        assert cost.billing_rate(70) == pytest.approx(476.0)

    def test_every_ladder_rate_hits_its_margin(self, loadout_aggregator, mulcher_inputs):
        cost = loadout_aggregator.calculate(Loadout("crew", 1.0, (mulcher_inputs,)))
        for margin, rate in cost.billing_rates.items():
            assert abs((rate - cost.total_cost_per_hour) / rate - margin / 100.0) < 1e-12

    def test_overhead_included(self, loadout_aggregator, climber_inputs):
        """83.30 labor + 10.00 overhead = 93.30."""
        loadout = Loadout("crew", 1.0, employees=(climber_inputs,), overhead_cost_per_hour=10.0)
        assert loadout_aggregator.calculate(loadout).total_cost_per_hour == pytest.approx(93.30)

    def test_empty_loadout_is_scoring_only(self, loadout_aggregator):
        cost = loadout_aggregator.calculate(Loadout(name="empty", production_rate_pph=0.0))
        assert cost.total_cost_per_hour == 0.0
        assert cost.is_scoring_only
        assert all(rate == 0.0 for rate in cost.billing_rates.values())

    def test_detail_rows(self, loadout_aggregator, mulcher_inputs, climber_inputs):
        cost = loadout_aggregator.calculate(
            Loadout("crew", 1.0, (mulcher_inputs,), (climber_inputs,))
        )
        assert cost.equipment_detail[0]["name"] == "Mulcher"
        assert cost.labor_detail[0]["true_cost"] == pytest.approx(83.30)

    def test_to_dict_uses_string_margin_keys(self, loadout_aggregator, climber_inputs):
        data = loadout_aggregator.calculate(Loadout("crew", 1.0, employees=(climber_inputs,))).to_dict()
        assert set(data["billing_rates"]) == {"30", "40", "50", "60", "70"}

    def test_custom_ladder(self, climber_inputs):
        aggregator = LoadoutCostAggregator(PricingSettings(margin_ladder=(25.0, 45.0)))
        cost = aggregator.calculate(Loadout("crew", 1.0, employees=(climber_inputs,)))
        assert sorted(cost.billing_rates) == [25.0, 45.0]

    def test_negative_production_rate_rejected(self, loadout_aggregator):
        with pytest.raises(InvalidInputError):
            loadout_aggregator.calculate(Loadout(name="bad", production_rate_pph=-1.0))
