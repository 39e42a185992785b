"""
Tests for the supplier margin rule hierarchy and rule-based sale prices.
"""

import asyncio
from datetime import date
import pytest

from elta.services.margin_rules import (
    EffectiveMargin,
    select_effective_margin,
    apply_margin,
    validate_margin_rule,
    summarize_margin_rules,
    calculate_rule_sale_price,
)


TODAY = date(2025, 3, 1)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def rules():
    return [
        {"id": "r-sup", "rule_type": "supplier", "margin_percentage": 20, "is_active": True, "priority": 0},
        {"id": "r-cat", "rule_type": "category", "category": "Kabler",
         "margin_percentage": 30, "is_active": True, "priority": 0},
        {"id": "r-cat-hi", "rule_type": "category", "category": "Kabler",
         "margin_percentage": 35, "is_active": True, "priority": 5},
        {"id": "r-sub", "rule_type": "subcategory", "category": "Kabler", "sub_category": "Installationskabel",
         "margin_percentage": 28, "is_active": True, "priority": 0},
        {"id": "r-cust", "rule_type": "customer", "customer_id": "c1",
         "margin_percentage": 15, "is_active": True, "priority": 0},
        {"id": "r-prod", "rule_type": "product", "supplier_product_id": "p1",
         "margin_percentage": 40, "fixed_markup": 5, "round_to": 10, "is_active": True, "priority": 0},
        {"id": "r-expired", "rule_type": "product", "supplier_product_id": "p2",
         "margin_percentage": 50, "is_active": True, "valid_to": "2024-12-31"},
        {"id": "r-future", "rule_type": "category", "category": "Belysning",
         "margin_percentage": 45, "is_active": True, "valid_from": "2025-06-01"},
        {"id": "r-off", "rule_type": "customer", "customer_id": "c2", "margin_percentage": 5, "is_active": False},
    ]


def _rule_id(rules, **kwargs):
    margin = select_effective_margin(rules, today=TODAY, **kwargs)
    return margin.rule_id if margin else None


# =============================================================================
# HIERARCHY
# =============================================================================

class TestHierarchy:

    def test_supplier_rule_is_the_fallback(self, rules):
        assert _rule_id(rules) == "r-sup"

    def test_highest_priority_within_type(self, rules):
        assert _rule_id(rules, category="Kabler") == "r-cat-hi"

    def test_subcategory_beats_category(self, rules):
        assert _rule_id(rules, category="Kabler", sub_category="Installationskabel") == "r-sub"

    def test_customer_beats_category(self, rules):
        assert _rule_id(rules, category="Kabler", customer_id="c1") == "r-cust"

    def test_product_beats_everything(self, rules):
        assert _rule_id(rules, supplier_product_id="p1", category="Kabler", customer_id="c1") == "r-prod"

    def test_validity_window_and_inactive_rules(self, rules):
        assert _rule_id(rules, supplier_product_id="p2") == "r-sup"
        assert _rule_id(rules, category="Belysning") == "r-sup"
        assert _rule_id(rules, customer_id="c2") == "r-sup"

    def test_no_rules(self):
        assert select_effective_margin([], today=TODAY) is None


# =============================================================================
# PRICING
# =============================================================================

class TestApplyMargin:

    def test_margin_markup_and_rounding(self):
        margin = EffectiveMargin(margin_percentage=40, fixed_markup=5, round_to=10, rule_type="product", rule_id="r")
        # 100 * 1.4 + 5 = 145 -> nearest 10
        assert apply_margin(100, margin) == 150

    def test_default_material_margin(self):
        assert apply_margin(100, None) == 125

    def test_sale_price_from_catalog(self, catalog, rules):
        catalog.get_margin_rules.return_value = rules

        result = asyncio.run(calculate_rule_sale_price(catalog, 80, "sup-ao", category="Kabler"))

        assert result["sale_price"] == pytest.approx(108)
        assert result["margin"]["rule_id"] == "r-cat-hi"
        catalog.get_margin_rules.assert_awaited_once_with("sup-ao")

    def test_sale_price_without_rules(self, catalog):
        result = asyncio.run(calculate_rule_sale_price(catalog, 80, "sup-ao"))
        assert result == {"cost_price": 80, "sale_price": 100, "margin": None}


# =============================================================================
# VALIDATION & SUMMARY
# =============================================================================

class TestRuleAdministration:

    def test_required_fields_per_type(self):
        assert validate_margin_rule({"rule_type": "category"}) == "Kategori er påkrævet for kategori-regler"
        assert validate_margin_rule({"rule_type": "subcategory", "category": "Kabler"}) == \
            "Kategori og underkategori er påkrævet"
        assert validate_margin_rule({"rule_type": "product"}) == "Produkt er påkrævet for produkt-regler"
        assert validate_margin_rule({"rule_type": "customer"}) == "Kunde er påkrævet for kunde-regler"
        assert validate_margin_rule({"rule_type": "unknown"}) == "Ugyldig regeltype"
        assert validate_margin_rule({"rule_type": "supplier"}) is None

    def test_summary(self, rules):
        summary = summarize_margin_rules(rules)

        assert summary["total_rules"] == 9
        assert summary["active_rules"] == 8
        assert summary["default_margin"] == 20
        assert summary["rules_by_type"] == {
            "product": 2, "customer": 2, "subcategory": 1, "category": 3, "supplier": 1,
        }
