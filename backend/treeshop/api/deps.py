"""FastAPI dependency injection — pricing settings and engines."""
from functools import lru_cache

from fastapi import Depends

from treeshop.services.estimator_engine import EstimatorEngine
from treeshop.services.service_templates import ServiceTemplateRegistry
from treeshop.services.settings import PricingSettings


@lru_cache(maxsize=1)
def get_settings() -> PricingSettings:
    """Organization settings from TREESHOP_* environment variables (read once)."""
    return PricingSettings.from_env()


@lru_cache(maxsize=1)
def get_template_registry() -> ServiceTemplateRegistry:
    return ServiceTemplateRegistry()


def get_estimator(
    settings: PricingSettings = Depends(get_settings),
    registry: ServiceTemplateRegistry = Depends(get_template_registry),
) -> EstimatorEngine:
    return EstimatorEngine(settings, registry)
