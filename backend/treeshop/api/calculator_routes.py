"""
Calculator API Routes

GET  /api/afiss/factors           — AFISS catalog (optionally filtered by service)
POST /api/afiss/multiplier        — multiplier from factor ids or raw impacts
POST /api/score                   — TreeShop Score for one work-volume input
POST /api/time-estimate           — production / transport / buffer hours
POST /api/price                   — cost (or hours × cost/hr) → price at margin
POST /api/price/derive-margin     — margin achieved by a cost/price pair
POST /api/line-items/quote        — score → hours → price; the figures a proposal locks
"""
import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException

from treeshop.api.deps import get_estimator, get_settings
from treeshop.models.schemas import (
    AfissRequest,
    DeriveMarginRequest,
    LineItemQuoteRequest,
    PriceRequest,
    ScoreRequest,
    TimeEstimateRequest,
    WorkVolumeRequest,
)
from treeshop.services.afiss_engine import (
    AFISS_FACTORS,
    AfissEngine,
    AfissResult,
    factors_for_service,
)
from treeshop.services.estimator_engine import EstimatorEngine
from treeshop.services.pricing_engine import MarginPricer
from treeshop.services.scoring_engine import ScoreResult, ScoringEngine
from treeshop.services.settings import PricingSettings
from treeshop.services.time_engine import TimeEstimator

router = APIRouter(prefix="/api", tags=["Calculators"])
logger = logging.getLogger("treeshop.api.calculators")


def _score_work(
    work: WorkVolumeRequest, settings: PricingSettings
) -> Tuple[ScoreResult, Optional[AfissResult]]:
    """Resolve the AFISS multiplier for ``work`` and score it."""
    afiss: Optional[AfissResult] = None
    multiplier = 1.0
    explicit = getattr(work, "afiss_multiplier", None)
    factor_ids = getattr(work, "afiss_factor_ids", None)
    if explicit is not None:
        multiplier = explicit
    elif factor_ids:
        afiss = AfissEngine(settings).calculate_from_factor_ids(factor_ids)
        multiplier = afiss.multiplier
    result = ScoringEngine(settings).score(work.to_engine(afiss_multiplier=multiplier))
    return result, afiss


@router.get("/afiss/factors")
async def list_afiss_factors(service_type: Optional[str] = None):
    factors = factors_for_service(service_type) if service_type else list(AFISS_FACTORS)
    return {"count": len(factors), "factors": [f.to_dict() for f in factors]}


@router.post("/afiss/multiplier")
async def afiss_multiplier(
    payload: AfissRequest, settings: PricingSettings = Depends(get_settings)
):
    engine = AfissEngine(settings)
    if payload.impacts is not None:
        return engine.calculate_multiplier(payload.impacts).to_dict()
    return engine.calculate_from_factor_ids(payload.factor_ids).to_dict()


@router.post("/score")
async def score_work(payload: ScoreRequest, settings: PricingSettings = Depends(get_settings)):
    result, afiss = _score_work(payload.work, settings)
    return {
        **result.to_dict(),
        "quotable": result.is_quotable(settings.minimum_acres),
        "afiss": afiss.to_dict() if afiss else None,
    }


@router.post("/time-estimate")
async def time_estimate(
    payload: TimeEstimateRequest, settings: PricingSettings = Depends(get_settings)
):
    transport_rate = payload.transport_rate
    minimum_hours = payload.minimum_hours
    if payload.service_type is not None:
        if transport_rate is None:
            transport_rate = settings.transport_rate_for(payload.service_type)
        if minimum_hours is None:
            minimum_hours = settings.minimum_hours_for(payload.service_type)
    estimate = TimeEstimator(settings).estimate_time(
        payload.adjusted_score,
        payload.production_rate_pph,
        payload.drive_time_minutes,
        transport_rate=transport_rate,
        minimum_hours=minimum_hours,
    )
    return estimate.to_dict()


@router.post("/price")
async def price(payload: PriceRequest, settings: PricingSettings = Depends(get_settings)):
    pricer = MarginPricer(settings)
    if payload.total_hours is not None and payload.cost_per_hour is not None:
        result = pricer.price_hours(
            payload.total_hours,
            payload.cost_per_hour,
            payload.target_margin,
            payload.pricing_method,
        )
    elif payload.cost is not None:
        result = pricer.price(payload.cost, payload.target_margin, payload.pricing_method)
    else:
        raise HTTPException(
            status_code=422, detail="Provide either cost or total_hours with cost_per_hour"
        )
    return result.to_dict()


@router.post("/price/derive-margin")
async def derive_margin(
    payload: DeriveMarginRequest, settings: PricingSettings = Depends(get_settings)
):
    margin = MarginPricer(settings).derive_margin(payload.cost, payload.price)
    return {"cost": payload.cost, "price": payload.price, "margin_percent": round(margin, 4)}


@router.post("/line-items/quote")
async def quote_line_item(
    payload: LineItemQuoteRequest,
    settings: PricingSettings = Depends(get_settings),
    estimator: EstimatorEngine = Depends(get_estimator),
):
    score, afiss = _score_work(payload.work, settings)
    if payload.loadout is not None:
        if payload.target_margin is None:
            raise HTTPException(status_code=422, detail="target_margin is required with a loadout")
        quote = estimator.quote_with_loadout(
            score,
            payload.loadout.to_engine(),
            payload.target_margin,
            payload.drive_time_minutes,
            line_item_id=payload.line_item_id,
        )
    else:
        quote = estimator.quote_for_service(
            score, payload.drive_time_minutes, line_item_id=payload.line_item_id
        )
    body: Dict[str, Any] = quote.to_dict()
    body["line_item_id"] = payload.line_item_id
    body["afiss"] = afiss.to_dict() if afiss else None
    return body
