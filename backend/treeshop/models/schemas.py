"""
Request models for the pricing API.

Each model converts itself into the engine's frozen dataclass via
``to_engine()`` so routers stay free of field-mapping code.
"""
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field

from treeshop.services.equipment_cost_engine import EquipmentCostInputs
from treeshop.services.labor_engine import EmployeeCompensationInputs
from treeshop.services.loadout_engine import Loadout
from treeshop.services.reconciliation_engine import LockedEstimate, TaskCategory, TimeEntry
from treeshop.services.scoring_engine import (
    LandClearingInput,
    MulchingInput,
    StumpGrindingInput,
    StumpInput,
    TreeInput,
    TreeRemovalInput,
    TreeTrimmingInput,
)
from treeshop.services.settings import ServiceType


# ── Costs ───────────────────────────────────────────────────────────────────

class EquipmentCostRequest(BaseModel):
    name: str = ""
    purchase_price: float = Field(..., ge=0)
    useful_life_years: float = Field(..., description="Straight-line depreciation period")
    finance_rate: float = Field(0.0, ge=0, description="Annual rate as a decimal (0.05 = 5%)")
    insurance_cost: float = Field(0.0, ge=0, description="$/yr")
    registration_cost: float = Field(0.0, ge=0, description="$/yr")
    fuel_consumption_gph: float = Field(0.0, ge=0)
    fuel_price_per_gallon: float = Field(0.0, ge=0)
    maintenance_cost_annual: float = Field(0.0, ge=0)
    repair_cost_annual: float = Field(0.0, ge=0)
    annual_hours: float = Field(..., description="Billable hours per year; must be > 0")

    def to_engine(self) -> EquipmentCostInputs:
        return EquipmentCostInputs.from_dict(self.model_dump())


class EmployeeCostRequest(BaseModel):
    name: str = ""
    base_hourly_rate: float
    tier: int = 1
    leadership: Optional[str] = None
    equipment_certs: List[str] = Field(default_factory=list)
    driver_licenses: List[str] = Field(default_factory=list)
    certifications: List[str] = Field(default_factory=list)

    def to_engine(self) -> EmployeeCompensationInputs:
        return EmployeeCompensationInputs.from_dict(self.model_dump())


class LoadoutRequest(BaseModel):
    name: str
    production_rate_pph: float = Field(0.0, ge=0)
    service_type: Optional[ServiceType] = None
    overhead_cost_per_hour: float = Field(0.0, ge=0)
    equipment: List[EquipmentCostRequest] = Field(default_factory=list)
    employees: List[EmployeeCostRequest] = Field(default_factory=list)

    def to_engine(self) -> Loadout:
        return Loadout(
            name=self.name,
            production_rate_pph=self.production_rate_pph,
            equipment=tuple(e.to_engine() for e in self.equipment),
            employees=tuple(e.to_engine() for e in self.employees),
            service_type=self.service_type.value if self.service_type else None,
            overhead_cost_per_hour=self.overhead_cost_per_hour,
        )


# ── Scoring ─────────────────────────────────────────────────────────────────

class StumpModel(BaseModel):
    diameter_inches: float
    height_above_ft: float = 1.0
    depth_below_ft: float = 1.0
    hardwood: bool = False
    root_flare: bool = False
    rotten: bool = False
    rocks: bool = False
    tight_space: bool = False


class TreeModel(BaseModel):
    height_ft: float
    dbh_inches: float
    canopy_radius_ft: float


class _AfissMixin(BaseModel):
    afiss_multiplier: Optional[float] = Field(
        None, description="Explicit multiplier; overrides afiss_factor_ids when given"
    )
    afiss_factor_ids: List[str] = Field(default_factory=list)


class StumpGrindingRequest(BaseModel):
    service_type: Literal["Stump Grinding"] = "Stump Grinding"
    stumps: List[StumpModel] = Field(default_factory=list)

    def to_engine(self, afiss_multiplier: float = 1.0) -> StumpGrindingInput:
        return StumpGrindingInput(stumps=tuple(StumpInput(**s.model_dump()) for s in self.stumps))


class MulchingRequest(_AfissMixin):
    service_type: Literal["Forestry Mulching"] = "Forestry Mulching"
    acres: float
    dbh_package: float

    def to_engine(self, afiss_multiplier: float = 1.0) -> MulchingInput:
        return MulchingInput(
            acres=self.acres, dbh_package=self.dbh_package, afiss_multiplier=afiss_multiplier
        )


class LandClearingRequest(_AfissMixin):
    service_type: Literal["Land Clearing"] = "Land Clearing"
    acres: float
    density: str = "Average"

    def to_engine(self, afiss_multiplier: float = 1.0) -> LandClearingInput:
        return LandClearingInput(
            acres=self.acres, density=self.density, afiss_multiplier=afiss_multiplier
        )


class TreeRemovalRequest(_AfissMixin):
    service_type: Literal["Tree Removal"] = "Tree Removal"
    trees: List[TreeModel] = Field(default_factory=list)

    def to_engine(self, afiss_multiplier: float = 1.0) -> TreeRemovalInput:
        return TreeRemovalInput(
            trees=tuple(TreeInput(**t.model_dump()) for t in self.trees),
            afiss_multiplier=afiss_multiplier,
        )


class TreeTrimmingRequest(_AfissMixin):
    service_type: Literal["Tree Trimming"] = "Tree Trimming"
    trees: List[TreeModel] = Field(default_factory=list)
    trim_percentage: Union[float, str] = "Medium"

    def to_engine(self, afiss_multiplier: float = 1.0) -> TreeTrimmingInput:
        return TreeTrimmingInput(
            trees=tuple(TreeInput(**t.model_dump()) for t in self.trees),
            trim_percentage=self.trim_percentage,
            afiss_multiplier=afiss_multiplier,
        )


WorkVolumeRequest = Union[
    StumpGrindingRequest,
    MulchingRequest,
    LandClearingRequest,
    TreeRemovalRequest,
    TreeTrimmingRequest,
]


class ScoreRequest(BaseModel):
    work: WorkVolumeRequest = Field(..., discriminator="service_type")


class AfissRequest(BaseModel):
    factor_ids: List[str] = Field(default_factory=list)
    impacts: Optional[List[float]] = Field(
        None, description="Raw signed impacts; used instead of factor_ids when given"
    )


# ── Time and price ──────────────────────────────────────────────────────────

class TimeEstimateRequest(BaseModel):
    adjusted_score: float
    production_rate_pph: float
    drive_time_minutes: float = 0.0
    service_type: Optional[ServiceType] = Field(
        None, description="Fills transport_rate and minimum_hours from settings when they are omitted"
    )
    transport_rate: Optional[float] = None
    minimum_hours: Optional[float] = None


class PriceRequest(BaseModel):
    target_margin: float = Field(..., description="Percent, 0 <= m < 100")
    cost: Optional[float] = Field(None, description="Total cost basis")
    total_hours: Optional[float] = None
    cost_per_hour: Optional[float] = None
    pricing_method: str = "Hourly"


class DeriveMarginRequest(BaseModel):
    cost: float
    price: float


# ── Line items and reconciliation ───────────────────────────────────────────

class LineItemQuoteRequest(ScoreRequest):
    drive_time_minutes: float = 0.0
    line_item_id: Optional[str] = None
    loadout: Optional[LoadoutRequest] = Field(
        None, description="Price with this crew instead of the service template"
    )
    target_margin: Optional[float] = Field(
        None, description="Required with a loadout; templates carry their own"
    )


class LockedEstimateModel(BaseModel):
    client_price: float
    standard_pph: float
    standard_cost_per_hour: float
    adjusted_score: float
    estimated_hours: float
    estimated_cost: float
    estimated_profit: float
    estimated_margin: float
    service_type: Optional[ServiceType] = None

    def to_engine(self) -> LockedEstimate:
        return LockedEstimate(**self.model_dump())


class TimeEntryModel(BaseModel):
    task_name: str
    category: TaskCategory
    duration_hours: float = Field(..., ge=0)
    billable: bool = True
    counts_for_pph: Optional[bool] = None
    labor_cost: float = Field(0.0, ge=0)
    equipment_cost: float = Field(0.0, ge=0)

    def to_engine(self) -> TimeEntry:
        return TimeEntry(**self.model_dump())


class ReconcileRequest(BaseModel):
    locked: LockedEstimateModel
    time_entries: List[TimeEntryModel] = Field(default_factory=list)
    work_order_id: Optional[str] = None
