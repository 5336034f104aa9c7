"""
test_api_routes.py — HTTP surface over the pricing engines.

Uses FastAPI's in-process TestClient; no server, no storage.

Tests cover:
  - /health and the X-Request-ID / X-Process-Time headers
  - Score, price, time-estimate and AFISS endpoints
  - Error mapping: InvalidInputError → 422, MissingConfigurationError → 404
  - Line-item quotes (template and loadout) and reconciliation
  - Cost endpoints and template defaults
"""

import pytest

from treeshop.api.deps import get_settings, get_template_registry
from treeshop.main import app
from treeshop.services.service_templates import ServiceTemplateRegistry
from treeshop.services.settings import PricingSettings

MULCHING = {"service_type": "Forestry Mulching", "acres": 2, "dbh_package": 8, "afiss_multiplier": 1.2}

MULCHER = {
    "name": "Mulcher",
    "purchase_price": 100000,
    "useful_life_years": 5,
    "finance_rate": 0.05,
    "insurance_cost": 4000,
    "registration_cost": 500,
    "fuel_consumption_gph": 5,
    "fuel_price_per_gallon": 4,
    "maintenance_cost_annual": 6000,
    "repair_cost_annual": 4000,
    "annual_hours": 1000,
}


@pytest.fixture
def empty_registry():
    app.dependency_overrides[get_template_registry] = lambda: ServiceTemplateRegistry(templates=[])
    yield
    app.dependency_overrides.pop(get_template_registry, None)


# ===========================================================================
# Class 1: Health and middleware
# ===========================================================================

class TestHealth:

    def test_health(self, api_client):
        response = api_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "active"

    def test_request_id_generated(self, api_client):
        response = api_client.get("/health")
        assert response.headers["X-Request-ID"]
        assert float(response.headers["X-Process-Time"]) >= 0

    def test_request_id_echoed(self, api_client):
        response = api_client.get("/api/afiss/factors", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

    def test_malformed_request_id_replaced(self, api_client):
        response = api_client.get("/health", headers={"X-Request-ID": "bad id;" + "x" * 200})
        assert response.headers["X-Request-ID"] != "bad id;" + "x" * 200
        assert len(response.headers["X-Request-ID"]) == 36


# ===========================================================================
# Class 2: Calculators
# ===========================================================================

class TestCalculatorRoutes:

    def test_score_mulching(self, api_client):
        response = api_client.post("/api/score", json={"work": MULCHING})
        assert response.status_code == 200
        body = response.json()
        assert body["adjusted_score"] == pytest.approx(19.2)
        assert body["formula_used"] == "MulchingScore"
        assert body["quotable"] is True
        assert body["afiss"] is None

    def test_score_with_factor_ids(self, api_client):
        """access_soft_ground 0.15 + access_steep_slope 0.20 → 1.35; 2 × 8 × 1.35 = 21.6."""
        work = {"service_type": "Forestry Mulching", "acres": 2, "dbh_package": 8,
                "afiss_factor_ids": ["access_soft_ground", "access_steep_slope"]}
        body = api_client.post("/api/score", json={"work": work}).json()
        assert body["afiss"]["multiplier"] == pytest.approx(1.35)
        assert body["adjusted_score"] == pytest.approx(21.6)

    def test_score_stumps(self, api_client):
        work = {"service_type": "Stump Grinding", "stumps": [{"diameter_inches": 18, "hardwood": True}]}
        body = api_client.post("/api/score", json={"work": work}).json()
        assert body["adjusted_score"] == pytest.approx(745.2)

    def test_unknown_service_rejected(self, api_client):
        response = api_client.post("/api/score", json={"work": {"service_type": "Snow Removal"}})
        assert response.status_code == 422

    def test_negative_acres_is_invalid_input(self, api_client):
        work = dict(MULCHING, acres=-1)
        response = api_client.post("/api/score", json={"work": work})
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_input"

    def test_price_regression(self, api_client):
        body = api_client.post("/api/price", json={"cost": 246.43, "target_margin": 50}).json()
        assert body["total_price"] == 492.86
        assert body["margin_percent"] == 50.0

    def test_price_from_hours(self, api_client):
        payload = {"total_hours": 2, "cost_per_hour": 165, "target_margin": 45}
        body = api_client.post("/api/price", json=payload).json()
        assert body["total_price"] == pytest.approx(600.0)
        assert body["billing_rate"] == pytest.approx(300.0)

    def test_price_margin_100_rejected(self, api_client):
        response = api_client.post("/api/price", json={"cost": 100, "target_margin": 100})
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_input"

    def test_price_without_basis_rejected(self, api_client):
        assert api_client.post("/api/price", json={"target_margin": 40}).status_code == 422

    def test_derive_margin(self, api_client):
        body = api_client.post("/api/price/derive-margin", json={"cost": 247.5, "price": 450}).json()
        assert body["margin_percent"] == pytest.approx(45.0)

    def test_time_estimate_with_service_defaults(self, api_client):
        payload = {"adjusted_score": 100, "production_rate_pph": 400, "service_type": "Stump Grinding"}
        body = api_client.post("/api/time-estimate", json=payload).json()
        assert body["minimum_applied"] is True
        assert body["total_estimated_hours"] == 2.0

    def test_time_estimate_zero_pph(self, api_client):
        response = api_client.post("/api/time-estimate", json={"adjusted_score": 10, "production_rate_pph": 0})
        assert response.status_code == 422

    def test_afiss_catalog(self, api_client):
        body = api_client.get("/api/afiss/factors").json()
        assert body["count"] == 35
        stump = api_client.get("/api/afiss/factors", params={"service_type": "Stump Grinding"}).json()
        ids = {f["id"] for f in stump["factors"]}
        assert "irregularities_rotten_stump" in ids
        assert "facilities_power_lines_touching" not in ids

    def test_afiss_multiplier_reports_unknown(self, api_client):
        body = api_client.post("/api/afiss/multiplier", json={"factor_ids": ["access_narrow_gate", "dragons"]}).json()
        assert body["multiplier"] == pytest.approx(1.12)
        assert body["unknown_factor_ids"] == ["dragons"]

    def test_afiss_multiplier_from_impacts(self, api_client):
        body = api_client.post("/api/afiss/multiplier", json={"impacts": [0.3, 0.2]}).json()
        assert body["multiplier"] == pytest.approx(1.5)


# ===========================================================================
# Class 3: Line items
# ===========================================================================

class TestLineItemRoutes:

    def test_template_quote(self, api_client):
        payload = {"work": MULCHING, "drive_time_minutes": 30, "line_item_id": "li-1"}
        body = api_client.post("/api/line-items/quote", json=payload).json()
        hours = 19.2 / 1.3 * 1.1 + 1.0
        assert body["pricing_source"] == "service_template"
        assert body["line_item_id"] == "li-1"
        assert body["pricing"]["total_price"] == pytest.approx(hours * 247.5 / 0.55, abs=0.01)
        assert body["pricing"]["margin_percent"] == pytest.approx(45.0)

    def test_loadout_quote(self, api_client):
        loadout = {"name": "Mulcher crew", "production_rate_pph": 1.5, "equipment": [MULCHER]}
        payload = {"work": MULCHING, "loadout": loadout, "target_margin": 50}
        body = api_client.post("/api/line-items/quote", json=payload).json()
        assert body["pricing_source"] == "loadout"
        assert body["cost_per_hour"] == pytest.approx(59.5)
        assert body["pricing"]["billing_rate"] == pytest.approx(119.0)

    def test_loadout_quote_needs_margin(self, api_client):
        loadout = {"name": "Mulcher crew", "production_rate_pph": 1.5, "equipment": [MULCHER]}
        response = api_client.post("/api/line-items/quote", json={"work": MULCHING, "loadout": loadout})
        assert response.status_code == 422

    def test_below_minimum_acres_blocked(self, api_client):
        work = dict(MULCHING, acres=0.4)
        response = api_client.post("/api/line-items/quote", json={"work": work})
        assert response.status_code == 422

    def test_missing_template_is_not_configured(self, api_client, empty_registry):
        response = api_client.post("/api/line-items/quote", json={"work": MULCHING})
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "not_configured"
        assert body["service_type"] == "Forestry Mulching"


# ===========================================================================
# Class 4: Costs and job completion
# ===========================================================================

class TestCostAndJobRoutes:

    def test_equipment_cost(self, api_client):
        body = api_client.post("/api/costs/equipment", json=MULCHER).json()
        assert body["ownership_per_hour"] == pytest.approx(29.5)
        assert body["operating_per_hour"] == pytest.approx(30.0)
        assert body["total_per_hour"] == pytest.approx(59.5)

    def test_equipment_zero_hours_rejected(self, api_client):
        response = api_client.post("/api/costs/equipment", json=dict(MULCHER, annual_hours=0))
        assert response.status_code == 422

    def test_employee_cost(self, api_client):
        payload = {"name": "Climber", "base_hourly_rate": 25, "tier": 3, "certifications": ["ISA"]}
        body = api_client.post("/api/costs/employee", json=payload).json()
        assert body["total_hourly"] == pytest.approx(49.0)
        assert body["true_cost"] == pytest.approx(83.3)

    def test_employee_premiums(self, api_client):
        body = api_client.get("/api/costs/employee/premiums").json()
        assert {"tiers", "leadership", "equipment_certs", "driver_licenses"} <= set(body)

    def test_employee_premiums_use_configured_burden(self, api_client):
        app.dependency_overrides[get_settings] = lambda: PricingSettings(burden_multiplier=2.0)
        try:
            body = api_client.get("/api/costs/employee/premiums").json()
        finally:
            app.dependency_overrides.pop(get_settings, None)
        assert body["burden_multiplier"] == 2.0

    def test_loadout_cost(self, api_client):
        payload = {
            "name": "Mulcher crew",
            "production_rate_pph": 1.5,
            "equipment": [MULCHER],
            "employees": [{"base_hourly_rate": 25, "tier": 3, "certifications": ["ISA"]}],
        }
        body = api_client.post("/api/costs/loadout", json=payload).json()
        assert body["total_cost_per_hour"] == pytest.approx(142.8)
        assert body["billing_rates"]["50"] == pytest.approx(285.6)
        assert body["scoring_only"] is False

    def test_template_defaults(self, api_client):
        templates = api_client.get("/api/service-templates/defaults").json()["templates"]
        assert len(templates) == 5
        mulching = next(t for t in templates if t["service_type"] == "Forestry Mulching")
        assert mulching["standard_pph"] == 1.3

    def test_time_tracking_tasks(self, api_client):
        body = api_client.get("/api/time-tracking/tasks", params={"service_type": "Stump Grinding"}).json()
        names = [t["name"] for t in body["tasks"]]
        assert "Grinding - Production" in names

    def test_reconcile(self, api_client):
        payload = {
            "work_order_id": "wo-7",
            "locked": {
                "client_price": 4500,
                "standard_pph": 1.3,
                "standard_cost_per_hour": 247.5,
                "adjusted_score": 19.2,
                "estimated_hours": 10,
                "estimated_cost": 2475,
                "estimated_profit": 2025,
                "estimated_margin": 45,
                "service_type": "Forestry Mulching",
            },
            "time_entries": [
                {"task_name": "Mulching - Production", "category": "Production Time",
                 "duration_hours": 12, "labor_cost": 1800, "equipment_cost": 900},
                {"task_name": "Transport - To Site", "category": "Transport Time",
                 "duration_hours": 1, "labor_cost": 100, "equipment_cost": 50},
            ],
        }
        response = api_client.post("/api/reconcile", json=payload)
        assert response.status_code == 200
        body = response.json()
        assert body["work_order_id"] == "wo-7"
        assert body["client_price"] == 4500
        assert body["actual_pph"] == pytest.approx(1.6)
        assert body["actual_total_cost"] == pytest.approx(2850.0)
        assert body["profit_variance"] == pytest.approx(375.0)
        assert body["pph_variance_status"] == "favorable"

    def test_reconcile_negative_duration_rejected(self, api_client):
        payload = {
            "locked": {
                "client_price": 1, "standard_pph": 1, "standard_cost_per_hour": 1,
                "adjusted_score": 1, "estimated_hours": 1, "estimated_cost": 1,
                "estimated_profit": 0, "estimated_margin": 0,
            },
            "time_entries": [{"task_name": "x", "category": "Production Time", "duration_hours": -1}],
        }
        assert api_client.post("/api/reconcile", json=payload).status_code == 422
