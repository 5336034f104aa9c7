"""
pricing_engine.py — Margin-based cost-to-price conversion.

Margin is always profit ÷ price, never profit ÷ cost:

    price  = cost / (1 - margin%)
    profit = price - cost
    margin = profit / price × 100

A markup formula (cost × (1 + pct)) under-prices every job: at 50 % the
markup price for $246.43/hr is $369.65 instead of $492.86. Nothing in this
module computes markup.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from treeshop.services.errors import InvalidInputError, PricingIntegrityError
from treeshop.services.settings import DEFAULT_SETTINGS, PricingSettings

logger = logging.getLogger("treeshop.pricing")

# Relative tolerance for the margin self-check
_MARGIN_CHECK_TOLERANCE: float = 1e-9

PRICING_METHODS = ("Hourly", "Fixed", "Time & Materials")


@dataclass(frozen=True)
class PricingResult:
    total_cost: float
    total_price: float
    profit: float
    margin_percent: float
    target_margin_percent: float
    billing_rate: Optional[float] = None   # $/hr when priced from an hourly cost
    total_hours: Optional[float] = None
    pricing_method: str = "Hourly"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pricing_method": self.pricing_method,
            "total_hours": self.total_hours,
            "billing_rate": self.billing_rate,
            "total_cost": round(self.total_cost, 2),
            "total_price": round(self.total_price, 2),
            "profit": round(self.profit, 2),
            "margin_percent": round(self.margin_percent, 2),
            "target_margin_percent": self.target_margin_percent,
        }


def _check_margin(target_margin_pct: float) -> float:
    try:
        margin = float(target_margin_pct)
    except (TypeError, ValueError):
        raise InvalidInputError(f"Target margin must be numeric; received {target_margin_pct!r}")
    if math.isnan(margin) or margin < 0.0 or margin >= 100.0:
        raise InvalidInputError(
            f"Target margin must be in [0, 100) percent; received {target_margin_pct}"
        )
    return margin


def _check_cost(cost: float, label: str = "cost") -> float:
    value = float(cost)
    if math.isnan(value) or math.isinf(value) or value < 0.0:
        raise InvalidInputError(f"{label} must be a finite non-negative number; received {cost}")
    return value


def _check_finite(value: float, label: str) -> float:
    if not math.isfinite(value):
        raise InvalidInputError(f"{label} overflowed to {value}; cost is out of range")
    return value


def margin_to_multiplier(margin_pct: float) -> float:
    """50 % margin → 2.0x cost multiplier."""
    return 1.0 / (1.0 - _check_margin(margin_pct) / 100.0)


def multiplier_to_margin(multiplier: float) -> float:
    """2.0x cost multiplier → 50 % margin."""
    if multiplier < 1.0:
        raise InvalidInputError(f"Price multiplier must be >= 1.0; received {multiplier}")
    return (multiplier - 1.0) / multiplier * 100.0


def cost_to_price(cost: float, target_margin_pct: float) -> float:
    """Price that yields ``target_margin_pct`` margin on ``cost``."""
    margin = _check_margin(target_margin_pct)
    return _check_finite(_check_cost(cost) / (1.0 - margin / 100.0), "price")


def derive_margin(cost: float, price: float) -> float:
    """Margin percent achieved when ``cost`` is sold at ``price``."""
    cost = _check_cost(cost)
    if price <= 0:
        raise InvalidInputError(f"Price must be positive to derive a margin; received {price}")
    return (price - cost) / price * 100.0


class MarginPricer:
    """Converts a cost basis into a client price at a target margin."""

    def __init__(self, settings: Optional[PricingSettings] = None) -> None:
        self.settings = settings or DEFAULT_SETTINGS

    def price(
        self,
        cost: float,
        target_margin_pct: float,
        pricing_method: str = "Hourly",
    ) -> PricingResult:
        """
        Price a total cost at the target margin.

        Raises ``InvalidInputError`` for margins outside [0, 100) and
        ``PricingIntegrityError`` if the computed margin does not reproduce
        the target. A cost so large that the price overflows is rejected
        as ``InvalidInputError``.
        """
        margin = _check_margin(target_margin_pct)
        total_cost = _check_cost(cost)
        total_price = total_cost / (1.0 - margin / 100.0)
        return self._finish(total_cost, total_price, margin, pricing_method=pricing_method)

    def price_hours(
        self,
        total_hours: float,
        cost_per_hour: float,
        target_margin_pct: float,
        pricing_method: str = "Hourly",
    ) -> PricingResult:
        """
        Price ``total_hours`` of work at ``cost_per_hour``.

        total_cost = hours × cost/hr; billing rate = cost/hr ÷ (1 - m);
        total_price = hours × billing rate.
        """
        margin = _check_margin(target_margin_pct)
        hours = _check_cost(total_hours, "total_hours")
        hourly = _check_cost(cost_per_hour, "cost_per_hour")
        billing_rate = hourly / (1.0 - margin / 100.0)
        total_cost = hours * hourly
        total_price = hours * billing_rate
        return self._finish(
            total_cost,
            total_price,
            margin,
            billing_rate=billing_rate,
            total_hours=hours,
            pricing_method=pricing_method,
        )

    def billing_rates(self, cost_per_hour: float) -> Dict[float, float]:
        """Billing rate at every margin on the configured ladder."""
        return {m: cost_to_price(cost_per_hour, m) for m in self.settings.margin_ladder}

    def derive_margin(self, cost: float, price: float) -> float:
        return derive_margin(cost, price)

    # ------------------------------------------------------------------

    def _finish(
        self,
        total_cost: float,
        total_price: float,
        margin: float,
        billing_rate: Optional[float] = None,
        total_hours: Optional[float] = None,
        pricing_method: str = "Hourly",
    ) -> PricingResult:
        if pricing_method not in PRICING_METHODS:
            raise InvalidInputError(
                f"Unknown pricing method '{pricing_method}'. Choose from {list(PRICING_METHODS)}"
            )
        _check_finite(total_cost, "total_cost")
        _check_finite(total_price, "total_price")
        profit = _check_finite(total_price - total_cost, "profit")
        if total_price > 0:
            achieved = profit / total_price * 100.0
            # NaN fails this comparison
            if not abs(achieved - margin) <= _MARGIN_CHECK_TOLERANCE * max(1.0, margin):
                raise PricingIntegrityError(
                    f"Margin self-check failed: target {margin}%, achieved {achieved}%"
                )
        else:
            # zero cost prices at zero; the target is reported unchanged
            achieved = margin

        logger.debug(
            "priced cost=%.2f price=%.2f margin=%.2f%%", total_cost, total_price, achieved
        )
        return PricingResult(
            total_cost=total_cost,
            total_price=total_price,
            profit=profit,
            margin_percent=achieved,
            target_margin_percent=margin,
            billing_rate=billing_rate,
            total_hours=total_hours,
            pricing_method=pricing_method,
        )


_default_pricer = MarginPricer()


def price(cost: float, target_margin_pct: float) -> PricingResult:
    """Module-level entry point: ``price(cost, margin) -> PricingResult``."""
    return _default_pricer.price(cost, target_margin_pct)
