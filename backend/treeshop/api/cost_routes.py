"""
Cost API Routes

POST /api/costs/equipment             — equipment ownership + operating $/hr
POST /api/costs/employee              — employee fully-burdened true cost
GET  /api/costs/employee/premiums     — tier and premium tables for the employee form
POST /api/costs/loadout               — crew $/hr and billing-rate ladder
GET  /api/service-templates/defaults  — company-wide default templates
"""
import logging

from fastapi import APIRouter, Depends

from treeshop.api.deps import get_settings
from treeshop.models.schemas import EmployeeCostRequest, EquipmentCostRequest, LoadoutRequest
from treeshop.services.equipment_cost_engine import EquipmentCostEngine
from treeshop.services.labor_engine import LaborEngine
from treeshop.services.loadout_engine import LoadoutCostAggregator
from treeshop.services.service_templates import DEFAULT_SERVICE_TEMPLATES
from treeshop.services.settings import PricingSettings

router = APIRouter(prefix="/api", tags=["Costs"])
logger = logging.getLogger("treeshop.api.costs")


@router.post("/costs/equipment")
async def equipment_cost(
    payload: EquipmentCostRequest, settings: PricingSettings = Depends(get_settings)
):
    breakdown = EquipmentCostEngine(settings).calculate(payload.to_engine())
    return {"name": payload.name, **breakdown.to_dict()}


@router.post("/costs/employee")
async def employee_cost(
    payload: EmployeeCostRequest, settings: PricingSettings = Depends(get_settings)
):
    breakdown = LaborEngine(settings).calculate(payload.to_engine())
    return {"name": payload.name, **breakdown.to_dict()}


@router.get("/costs/employee/premiums")
async def employee_premiums(settings: PricingSettings = Depends(get_settings)):
    return LaborEngine(settings).premium_catalog()


@router.post("/costs/loadout")
async def loadout_cost(payload: LoadoutRequest, settings: PricingSettings = Depends(get_settings)):
    return LoadoutCostAggregator(settings).calculate(payload.to_engine()).to_dict()


@router.get("/service-templates/defaults")
async def default_service_templates():
    return {"templates": [t.to_dict() for t in DEFAULT_SERVICE_TEMPLATES]}
