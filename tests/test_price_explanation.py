"""
Tests for customer-facing price explanations and the upsell comparison.
"""

import pytest

from elta.services.price_explanation import (
    PriceExplanationInput,
    generate_price_explanation,
    generate_simple_summary,
    generate_bullet_summary,
    generate_price_comparison,
    payment_terms,
)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def offer():
    return PriceExplanationInput.from_dict({
        "labor_cost": 6000,
        "material_cost": 3000,
        "total_price": 10000,
        "components": [
            {"name": "Stikkontakt", "quantity": 10, "price": 4000, "room": "Køkken"},
            {"name": "Tavle", "quantity": 1, "price": 6000, "room": "Bryggers"},
        ],
        "rooms": ["Køkken", "Bryggers"],
        "project_type": "renovation",
        "building_type": "house",
    })


# =============================================================================
# SECTIONS
# =============================================================================

class TestSections:

    def test_summary(self, offer):
        sections = generate_price_explanation(offer).sections
        assert sections["summary"] == "Tilbuddet dækker renovering i 2 rum med 11 enheder fordelt på 2 typer arbejde."

    def test_single_room_summary(self, offer):
        offer.rooms = ["Køkken"]
        offer.project_type = None
        summary = generate_price_explanation(offer).sections["summary"]
        assert summary.startswith("Tilbuddet dækker el-installation i køkken med")

    def test_labor_and_material(self, offer):
        sections = generate_price_explanation(offer).sections

        assert sections["labor_explanation"] == (
            "Arbejdsløn udgør 6.000,00 kr. (60% af totalprisen). "
            "Prisen er fordelt mellem materialer og kvalificeret installation."
        )
        assert sections["material_explanation"].startswith("Materialer udgør 3.000,00 kr. (30% af totalprisen).")

    def test_included_and_excluded(self, offer):
        sections = generate_price_explanation(offer).sections

        assert sections["whats_included"][:2] == ["10x Stikkontakt", "Tavle"]
        assert "Minimal gene i hjemmet - vi rydder op efter os" in sections["value_propositions"]
        assert len(sections["whats_not_included"]) == 4

    def test_apartment_excludes_shared_panel(self, offer):
        offer.building_type = "apartment"
        excluded = generate_price_explanation(offer).sections["whats_not_included"]
        assert excluded[-1] == "Arbejde på fælles el-tavle (koordineres separat)"

    def test_payment_terms(self):
        assert payment_terms(60000).startswith("Betaling: 30% ved accept")
        assert payment_terms(50000).startswith("Betaling: Faktura fremsendes ved afslutning")


# =============================================================================
# BREAKDOWN
# =============================================================================

class TestBreakdown:

    def test_overhead_category(self, offer):
        categories = generate_price_explanation(offer).breakdown["categories"]

        assert [c["name"] for c in categories] == ["Arbejdsløn", "Materialer", "Administration & garanti"]
        assert categories[2]["amount"] == 1000
        assert categories[2]["percentage"] == 10

    def test_no_overhead_within_one_percent(self, offer):
        offer.total_price = 9050
        categories = generate_price_explanation(offer).breakdown["categories"]
        assert len(categories) == 2

    def test_rooms_sorted_by_amount(self, offer):
        rooms = generate_price_explanation(offer).breakdown["rooms"]

        assert [r["name"] for r in rooms] == ["Bryggers", "Køkken"]
        assert rooms[1] == {"name": "Køkken", "amount": 4000, "component_count": 1}

    def test_zero_total_does_not_divide(self, offer):
        offer.total_price = 0
        result = generate_price_explanation(offer)
        assert result.breakdown["categories"][0]["percentage"] == 0


# =============================================================================
# SUMMARIES & COMPARISON
# =============================================================================

class TestSummaries:

    def test_simple_summary(self, offer):
        summary = generate_simple_summary(offer)

        assert summary.splitlines()[0] == (
            "Den samlede pris på 10.000,00 kr. inkluderer alt: "
            "materialer (40%) og professionel installation (60%)."
        )

    def test_bullet_summary(self, offer):
        bullets = generate_bullet_summary(offer)

        assert bullets[0] == "Samlet pris: 10.000,00 kr. inkl. moms"
        assert bullets[1] == "11 enheder fordelt på 2 typer installation"
        assert bullets[3] == "Installation: 6.000,00 kr. (60%)"

    def test_comparison_with_upgrades(self, offer):
        tiers = generate_price_comparison(offer, [{"name": "Intelligent styring", "price_addition": 2500}])

        assert [t["tier"] for t in tiers] == ["Standard", "Premium"]
        assert tiers[1]["price"] == 12500
        assert tiers[1]["includes"] == ["Stikkontakt", "Tavle", "Intelligent styring"]
        assert tiers[0]["recommended"] is True

    def test_comparison_without_upgrades(self, offer):
        assert len(generate_price_comparison(offer, [])) == 1
