"""
conftest.py — Shared pytest fixtures for the TreeShop pricing engine test suite.

No database or external service fixtures are defined here. All engine tests
are pure unit tests; the API tests use FastAPI's in-process TestClient.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``treeshop.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any treeshop imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def settings():
    """Company defaults: burden 1.7, buffer 10 %, ladder 30-70 %, AFISS floor 0.5."""
    from treeshop.services.settings import PricingSettings
    return PricingSettings()


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def equipment_engine(settings):
    from treeshop.services.equipment_cost_engine import EquipmentCostEngine
    return EquipmentCostEngine(settings)


@pytest.fixture(scope="session")
def labor_engine(settings):
    from treeshop.services.labor_engine import LaborEngine
    return LaborEngine(settings)


@pytest.fixture(scope="session")
def loadout_aggregator(settings):
    from treeshop.services.loadout_engine import LoadoutCostAggregator
    return LoadoutCostAggregator(settings)


@pytest.fixture(scope="session")
def afiss_engine(settings):
    from treeshop.services.afiss_engine import AfissEngine
    return AfissEngine(settings)


@pytest.fixture(scope="session")
def scoring_engine(settings):
    from treeshop.services.scoring_engine import ScoringEngine
    return ScoringEngine(settings)


@pytest.fixture(scope="session")
def time_estimator(settings):
    from treeshop.services.time_engine import TimeEstimator
    return TimeEstimator(settings)


@pytest.fixture(scope="session")
def pricer(settings):
    from treeshop.services.pricing_engine import MarginPricer
    return MarginPricer(settings)


@pytest.fixture(scope="session")
def reconciler(settings):
    from treeshop.services.reconciliation_engine import JobReconciler
    return JobReconciler(settings)


@pytest.fixture(scope="session")
def estimator(settings):
    from treeshop.services.estimator_engine import EstimatorEngine
    return EstimatorEngine(settings)


# ---------------------------------------------------------------------------
# Sample inputs
# ---------------------------------------------------------------------------

@pytest.fixture
def mulcher_inputs():
    """
    Forestry mulcher, used for hand-checked cost math.

    ownership/yr = 100000/5 + 100000×0.05 + 4000 + 500 = 29500
    operating/yr = 5×4×1000 + 6000 + 4000 = 30000
    per hour (1000 h): ownership 29.50, operating 30.00, total 59.50
    """
    from treeshop.services.equipment_cost_engine import EquipmentCostInputs
    return EquipmentCostInputs(
        purchase_price=100000.0,
        useful_life_years=5.0,
        finance_rate=0.05,
        insurance_cost=4000.0,
        registration_cost=500.0,
        fuel_consumption_gph=5.0,
        fuel_price_per_gallon=4.0,
        maintenance_cost_annual=6000.0,
        repair_cost_annual=4000.0,
        annual_hours=1000.0,
        name="Mulcher",
    )


@pytest.fixture
def climber_inputs():
    """$25/hr, Tier 3 (1.8x), ISA (+$4): total 49.00/hr, true cost 83.30/hr."""
    from treeshop.services.labor_engine import EmployeeCompensationInputs
    return EmployeeCompensationInputs(
        base_hourly_rate=25.0, tier=3, certifications=("ISA",), name="Climber"
    )


@pytest.fixture(scope="session")
def api_client():
    from fastapi.testclient import TestClient
    from treeshop.main import app
    return TestClient(app)
