"""
API tests through FastAPI's TestClient.

The catalog is replaced with the mocked CatalogClient everywhere it is
looked up (routers and the sync base class).
"""

from contextlib import ExitStack
import pytest
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient

from main import app
from elta.services.supplier_client import SupplierClientFactory
from elta.sync import SupplierImport


CATALOG_LOOKUPS = [
    "elta.routers.calculator.get_catalog_client",
    "elta.routers.solar.get_catalog_client",
    "elta.routers.offers.get_catalog_client",
    "elta.routers.estimation.get_catalog_client",
    "elta.routers.suppliers.get_catalog_client",
    "elta.sync.sync_base.get_catalog_client",
]

AO_FILE = (
    "Varenummer;Beskrivelse;Indkøbspris;Vejl. udsalgspris;Varegruppe\n"
    "123;Stikkontakt;45,50;89,00;Kontakter\n"
)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def client(catalog):
    SupplierClientFactory.clear_cache()
    with ExitStack() as stack:
        for target in CATALOG_LOOKUPS:
            stack.enter_context(patch(target, return_value=catalog))
        yield TestClient(app)
    SupplierClientFactory.clear_cache()


# =============================================================================
# HEALTH
# =============================================================================

class TestHealth:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["supabase_configured"] is True
        assert data["sync_enabled"] is False


# =============================================================================
# CALCULATOR
# =============================================================================

class TestCalculatorEndpoints:

    def test_offer_db(self, client):
        response = client.post("/api/calculator/offer-db", json={
            "line_items": [{"quantity": 2, "cost_price": 60, "total": 200}],
        })
        data = response.json()

        assert response.status_code == 200
        assert data["db_amount"] == 80
        assert data["db_percentage"] == 40
        assert data["traffic_light"]["level"] == "green"
        assert data["formatted"]["total_sale"] == "200,00 kr."

    def test_unknown_tier_is_bad_request(self, client):
        response = client.post("/api/calculator/price", json={"cost_price": 100, "customer_tier": "diamond"})
        assert response.status_code == 400

    def test_customer_tier_validation(self, client):
        assert client.get("/api/calculator/customer-tier?annual_purchase=-1").status_code == 422

    def test_kalkia(self, client):
        response = client.post("/api/calculator/kalkia", json={"items": [{
            "node": {"id": "n1", "name": "Tavle", "base_time_seconds": 3600},
            "materials": [{"id": "m1", "quantity": 1, "cost_price": 100}],
        }]})

        assert response.status_code == 200
        assert response.json()["cost_price"] == pytest.approx(713.85)
        assert response.json()["electrical_summary"] is None

    def test_kalkia_catalog_failure(self, client, catalog):
        catalog.get_global_factors.side_effect = Exception("db down")
        response = client.post("/api/calculator/kalkia", json={"items": []})

        assert response.status_code == 500
        assert response.json()["detail"] == "Calculation error: db down"


# =============================================================================
# ELECTRICAL & SOLAR
# =============================================================================

class TestElectricalEndpoints:

    def test_cable_size(self, client):
        data = client.post("/api/electrical/cable-size", json={"power_watts": 2300, "length_meters": 10}).json()
        assert data["recommended_cross_section"] == 1.5
        assert data["cable_designation"] == "PVT 3G1.5"

    @pytest.mark.parametrize("field,value", [
        ("voltage", 0),
        ("power_factor", 0),
        ("power_factor", 1.2),
        ("phase", "2-phase"),
    ])
    def test_cable_size_rejects_invalid_input(self, client, field, value):
        response = client.post("/api/electrical/cable-size", json={
            "power_watts": 2300, "length_meters": 10, field: value,
        })
        assert response.status_code == 422

    def test_breaker(self, client):
        data = client.get("/api/electrical/breaker?current=9.5").json()
        assert data["breaker_rating"] == 10
        assert data["cable_mm2"] == 1.5

    def test_project(self, client):
        response = client.post("/api/electrical/project", json={
            "supply_phase": "1-phase",
            "rooms": [{"name": "Stue", "area_m2": 25, "loads": [
                {"description": "Lamper", "category": "lighting", "rated_power_watts": 50, "quantity": 5},
            ]}],
        })

        assert response.status_code == 200
        assert response.json()["total_cable_meters"] == 13


class TestSolarEndpoints:

    def _request(self, **overrides):
        body = {
            "panel_count": 10,
            "panel_code": "PANEL-STD",
            "inverter_code": "INV-STRING-5KW",
            "mounting_code": "MOUNT-TILE",
            "battery_code": "BAT-NONE",
        }
        body.update(overrides)
        return body

    def test_calculate_with_built_in_products(self, client):
        response = client.post("/api/solar/calculate", json=self._request())
        assert response.status_code == 200
        assert response.json()["total_price"] == 70703

    def test_unknown_product(self, client):
        response = client.post("/api/solar/calculate", json=self._request(inverter_code="INV-NONE"))
        assert response.status_code == 400

    def test_roi(self, client):
        data = client.post("/api/solar/roi", json={
            "investment_amount": 100000, "annual_production": 5000,
            "electricity_price": 2.0, "self_consumption_rate": 50,
        }).json()
        assert data["annual_savings"] == pytest.approx(7000)


# =============================================================================
# OFFERS & ESTIMATION
# =============================================================================

class TestOfferEndpoints:

    def test_quick_risk(self, client):
        data = client.post("/api/offers/risk/quick", json={
            "building_age_years": 65, "margin_percentage": 8, "component_count": 5,
        }).json()
        assert data == {"level": "high", "count": 4, "top_issue": "Kritisk lav margin"}

    def test_texts_from_templates(self, client, catalog):
        catalog.get_offer_text_templates.return_value = [
            {"id": "t1", "template_key": "warranty", "scope_type": "global", "priority": 1,
             "title": "Garanti", "content": "5 års garanti"},
        ]
        data = client.post("/api/offers/texts", json={"room_count": 2}).json()
        assert data["content"]["warranty_notes"] == ["5 års garanti"]

    def test_price_explanation(self, client):
        data = client.post("/api/offers/price-explanation", json={
            "labor_cost": 6000, "material_cost": 3000, "total_price": 10000,
            "components": [{"name": "Stikkontakt", "quantity": 10, "price": 4000}],
        }).json()

        assert data["breakdown"]["categories"][2]["amount"] == 1000
        assert data["breakdown"]["rooms"] is None
        assert data["bullet_summary"][0] == "Samlet pris: 10.000,00 kr. inkl. moms"

    def test_price_explanation_requires_positive_total(self, client):
        response = client.post("/api/offers/price-explanation", json={
            "labor_cost": 100, "material_cost": 100, "total_price": 0,
        })
        assert response.status_code == 422

    def test_price_comparison(self, client):
        data = client.post("/api/offers/price-comparison", json={
            "offer": {"labor_cost": 6000, "material_cost": 3000, "total_price": 10000},
            "upgrades": [{"name": "Intelligent styring", "price_addition": 2500}],
        }).json()
        assert [t["price"] for t in data] == [10000, 12500]


class TestEstimationEndpoints:

    def test_analyze(self, client):
        response = client.post("/api/estimation/analyze", json={
            "description": "Renovering af parcelhus på 140 m2 fra 1965 med køkken og stue. 10 stik og 8 spots.",
            "customer_name": "Jens Hansen",
        })
        data = response.json()

        assert response.status_code == 200
        assert data["success"] is True
        assert data["data"]["interpretation"]["building_size_m2"] == 140

    def test_description_too_short(self, client):
        assert client.post("/api/estimation/analyze", json={"description": "lamper"}).status_code == 422

    def test_feedback_variance(self, client, catalog):
        data = client.post("/api/estimation/feedback", json={
            "calculation_id": "calc-1", "estimated_hours": 10, "actual_hours": 12,
        }).json()

        assert data["id"] == "feedback-1"
        assert data["hours_variance_percentage"] == 20
        assert data["material_variance_percentage"] is None
        catalog.insert_calculation_feedback.assert_awaited_once()

    def test_risk_buffer(self, client):
        data = client.get("/api/estimation/learning/risk-buffer?complexity_score=4").json()
        assert data == {"complexity_score": 4, "risk_buffer_percentage": 10}


# =============================================================================
# SUPPLIERS
# =============================================================================

class TestSupplierEndpoints:

    def test_status_lists_adapters(self, client):
        data = client.get("/api/suppliers/status").json()
        assert [a["code"] for a in data["adapters"]] == ["AO", "LM"]

    def test_import_preview(self, client, catalog, ao_supplier):
        catalog.get_supplier.return_value = ao_supplier
        response = client.post("/api/suppliers/sup-ao/import/preview", content=AO_FILE.encode("iso-8859-1"))

        assert response.status_code == 200
        assert response.json()["total_rows"] == 1
        assert response.json()["new_products"] == 1

    def test_empty_file(self, client):
        assert client.post("/api/suppliers/sup-ao/import", content=b"").status_code == 400

    def test_import_unknown_supplier(self, client):
        response = client.post("/api/suppliers/missing/import", content=AO_FILE.encode("utf-8"))
        assert response.status_code == 404

    def test_import_value_error_is_server_error(self, client):
        with patch.object(SupplierImport, "preview_import", AsyncMock(side_effect=ValueError("Ugyldig kolonne"))):
            response = client.post("/api/suppliers/sup-ao/import/preview", content=AO_FILE.encode("utf-8"))

        assert response.status_code == 500
        assert response.json()["detail"] == "Import error: Ugyldig kolonne"

    def test_sync_failure(self, client):
        assert client.post("/api/suppliers/missing/sync").status_code == 500

    def test_search_lm_catalog(self, client, catalog, lm_supplier):
        catalog.get_supplier.return_value = lm_supplier
        catalog.search_products.return_value = [{"supplier_sku": "1", "supplier_name": "Kabel", "cost_price": 10}]

        data = client.get("/api/suppliers/sup-lm/search?q=kabel").json()
        assert data["products"][0]["sku"] == "1"

    def test_search_unknown_supplier(self, client):
        assert client.get("/api/suppliers/missing/search?q=kabel").status_code == 404

    def test_product_not_found(self, client, catalog, lm_supplier):
        catalog.get_supplier.return_value = lm_supplier
        assert client.get("/api/suppliers/sup-lm/products/999").status_code == 404

    def test_effective_margin(self, client, catalog):
        catalog.get_margin_rules.return_value = [
            {"id": "r-sup", "rule_type": "supplier", "margin_percentage": 20, "is_active": True},
            {"id": "r-cat", "rule_type": "category", "category": "Kabler", "margin_percentage": 30, "is_active": True},
        ]

        data = client.get("/api/suppliers/sup-ao/effective-margin?category=Kabler").json()
        assert data["margin"]["rule_id"] == "r-cat"

        data = client.get("/api/suppliers/sup-ao/effective-margin").json()
        assert data["margin"]["margin_percentage"] == 20

    def test_sale_price_default_margin(self, client):
        data = client.post("/api/suppliers/sup-ao/sale-price", json={"cost_price": 80}).json()
        assert data == {"cost_price": 80, "sale_price": 100, "margin": None}

    def test_margin_rule_summary(self, client, catalog):
        catalog.get_margin_rules.return_value = [
            {"id": "r-sup", "rule_type": "supplier", "margin_percentage": 22, "is_active": True},
        ]
        data = client.get("/api/suppliers/sup-ao/margin-rules/summary").json()
        assert data["default_margin"] == 22
        assert data["rules_by_type"]["supplier"] == 1

    def test_margin_rules_catalog_failure(self, client, catalog):
        catalog.get_margin_rules.side_effect = Exception("timeout")
        assert client.get("/api/suppliers/sup-ao/effective-margin").status_code == 500
