"""
estimator_engine.py — Line-item quote: score → hours → price.

Wires the engines in proposal order:

    ScoreResult → TimeEstimator (template or loadout PPH)
               → MarginPricer (hours × cost/hr at target margin)
               → LineItemQuote

A quote priced from a service template is what a proposal locks; a quote
priced from a loadout is the crew-specific view used while estimating.
The quote is frozen and is the only input ``LockedEstimate.from_quote``
needs.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from treeshop.services.errors import InvalidInputError
from treeshop.services.loadout_engine import Loadout, LoadoutCostAggregator
from treeshop.services.pricing_engine import MarginPricer, PricingResult
from treeshop.services.scoring_engine import ScoreResult, ScoringEngine
from treeshop.services.service_templates import ServiceTemplate, ServiceTemplateRegistry
from treeshop.services.settings import DEFAULT_SETTINGS, PricingSettings
from treeshop.services.time_engine import TimeEstimate, TimeEstimator

logger = logging.getLogger("treeshop.estimator")

SOURCE_TEMPLATE = "service_template"
SOURCE_LOADOUT = "loadout"


@dataclass(frozen=True)
class LineItemQuote:
    score: ScoreResult
    time: TimeEstimate
    pricing: PricingResult
    production_rate_pph: float
    cost_per_hour: float
    pricing_source: str
    source_name: str = ""

    @property
    def client_price(self) -> float:
        return self.pricing.total_price

    @property
    def transport_cost(self) -> float:
        """
        Transport hours weighted by the service transport rate, for display.

        Not added to the price: ``pricing.total_cost`` already bills the
        transport hours at the full cost/hr as part of total_estimated_hours.
        """
        return self.time.transport_cost(self.cost_per_hour)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pricing_source": self.pricing_source,
            "source_name": self.source_name,
            "production_rate_pph": self.production_rate_pph,
            "cost_per_hour": round(self.cost_per_hour, 2),
            "transport_cost": round(self.transport_cost, 2),
            "score": self.score.to_dict(),
            "time": self.time.to_dict(),
            "pricing": self.pricing.to_dict(),
        }


class EstimatorEngine:
    """Builds line-item quotes from a score and a pricing basis."""

    def __init__(
        self,
        settings: Optional[PricingSettings] = None,
        registry: Optional[ServiceTemplateRegistry] = None,
    ) -> None:
        self.settings = settings or DEFAULT_SETTINGS
        self.registry = registry if registry is not None else ServiceTemplateRegistry()
        self.scoring = ScoringEngine(self.settings)
        self.time_estimator = TimeEstimator(self.settings)
        self.pricer = MarginPricer(self.settings)
        self.loadouts = LoadoutCostAggregator(self.settings)

    def quote_with_template(
        self,
        score: ScoreResult,
        template: ServiceTemplate,
        drive_time_minutes: float = 0.0,
        line_item_id: Optional[str] = None,
    ) -> LineItemQuote:
        if template.service_type != score.service_type:
            raise InvalidInputError(
                f"Template is for {template.service_type.value}; "
                f"score is for {score.service_type.value}"
            )
        return self._quote(
            score,
            production_rate_pph=template.standard_pph,
            cost_per_hour=template.standard_cost_per_hour,
            target_margin=template.target_margin,
            drive_time_minutes=drive_time_minutes,
            pricing_source=SOURCE_TEMPLATE,
            source_name=template.formula_used,
            line_item_id=line_item_id,
        )

    def quote_with_loadout(
        self,
        score: ScoreResult,
        loadout: Loadout,
        target_margin: float,
        drive_time_minutes: float = 0.0,
        line_item_id: Optional[str] = None,
    ) -> LineItemQuote:
        cost = self.loadouts.calculate(loadout)
        if cost.is_scoring_only:
            raise InvalidInputError(
                f"Loadout '{loadout.name}' has no equipment or crew costs; it can score but not price"
            )
        return self._quote(
            score,
            production_rate_pph=loadout.production_rate_pph,
            cost_per_hour=cost.total_cost_per_hour,
            target_margin=target_margin,
            drive_time_minutes=drive_time_minutes,
            pricing_source=SOURCE_LOADOUT,
            source_name=loadout.name,
            line_item_id=line_item_id,
        )

    def quote_for_service(
        self,
        score: ScoreResult,
        drive_time_minutes: float = 0.0,
        line_item_id: Optional[str] = None,
    ) -> LineItemQuote:
        """Template quote for the score's service; MissingConfigurationError propagates."""
        template = self.registry.get(score.service_type)
        return self.quote_with_template(score, template, drive_time_minutes, line_item_id)

    def _quote(
        self,
        score: ScoreResult,
        production_rate_pph: float,
        cost_per_hour: float,
        target_margin: float,
        drive_time_minutes: float,
        pricing_source: str,
        source_name: str,
        line_item_id: Optional[str],
    ) -> LineItemQuote:
        start = time.perf_counter()
        self.scoring.validate_for_proposal(score)
        estimate = self.time_estimator.estimate_for_service(
            score.service_type, score.adjusted_score, production_rate_pph, drive_time_minutes
        )
        pricing = self.pricer.price_hours(
            estimate.total_estimated_hours, cost_per_hour, target_margin
        )
        quote = LineItemQuote(
            score=score,
            time=estimate,
            pricing=pricing,
            production_rate_pph=production_rate_pph,
            cost_per_hour=cost_per_hour,
            pricing_source=pricing_source,
            source_name=source_name,
        )
        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.info(
            "quoted %s via %s: %.2f h, price %.2f",
            score.service_type.value,
            pricing_source,
            estimate.total_estimated_hours,
            pricing.total_price,
            extra={"line_item_id": line_item_id, "duration_ms": duration_ms},
        )
        return quote
