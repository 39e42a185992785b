"""
Tests for the customer price engine: tiers, volume brackets, supplier
comparison, margin analytics and price suggestions.
"""

import pytest

from elta.services.price_engine import (
    classify_customer_tier,
    get_volume_discount,
    calculate_price,
    compare_supplier_prices,
    analyze_margins,
    suggest_price,
)


class TestCustomerTiers:

    def test_classification(self):
        assert classify_customer_tier(0) == "standard"
        assert classify_customer_tier(150000) == "silver"
        assert classify_customer_tier(500000) == "gold"
        assert classify_customer_tier(2000000) == "platinum"


class TestVolumeDiscount:

    def test_single_items(self):
        assert get_volume_discount(5)["discount_percent"] == 0

    def test_bracket_boundaries(self):
        assert get_volume_discount(10) == {"discount_percent": 3, "bracket_label": "10+ stk"}
        assert get_volume_discount(49)["discount_percent"] == 5
        assert get_volume_discount(150)["discount_percent"] == 12


class TestCalculatePrice:

    def test_standard_customer(self):
        result = calculate_price(100, 1, 25)
        assert result.unit_sale_price == 125
        assert result.total_profit == 25
        assert result.effective_margin_percent == 20
        assert result.total_discount_percent == 0

    def test_tier_and_volume_discounts_stack(self):
        result = calculate_price(100, 10, 25, customer_tier="gold")
        assert result.tier_discount_percent == 10
        assert result.volume_discount_percent == 3
        assert result.effective_cost_price == 87.3
        assert result.total_discount_percent == 12.7

    def test_tier_volume_addon_needs_order_total(self):
        without = calculate_price(100, 1, 25, customer_tier="gold", order_total_dkk=50000)
        with_total = calculate_price(100, 1, 25, customer_tier="gold", order_total_dkk=100000)
        assert without.tier_discount_percent == 10
        assert with_total.tier_discount_percent == 13

    def test_round_to_nearest(self):
        assert calculate_price(100, 1, 23, round_to=10).unit_sale_price == 120

    def test_breakdown_starts_with_cost(self):
        result = calculate_price(100, 1, 25, fixed_markup=5)
        steps = [b["step"] for b in result.breakdown]
        assert steps[0] == "Indkøbspris"
        assert steps[-1].startswith("Fast tillæg")
        assert result.unit_sale_price == 130

    def test_unknown_tier(self):
        with pytest.raises(ValueError):
            calculate_price(100, 1, 25, customer_tier="diamond")


class TestSupplierComparison:

    def test_cheapest_available_is_recommended(self):
        products = [
            {"supplier_id": "a", "supplier_name": "AO", "cost_price": 80, "is_available": False},
            {"supplier_id": "b", "supplier_name": "LM", "cost_price": 100},
            {"supplier_id": "c", "supplier_name": "Solar", "cost_price": 120},
        ]
        result = compare_supplier_prices(products, 1, 25)

        assert result["cheapest_supplier"] == "AO"
        assert result["most_expensive_supplier"] == "Solar"
        assert result["price_spread_percent"] == 50
        recommended = [s for s in result["suppliers"] if s["is_recommended"]]
        assert [s["supplier_name"] for s in recommended] == ["LM"]

    def test_no_products(self):
        result = compare_supplier_prices([], 1, 25)
        assert result["suppliers"] == []
        assert result["price_spread_percent"] == 0


class TestMarginAnalysis:

    def test_flags_weak_lines(self):
        items = [
            {"description": "Kabel", "cost": 50, "sale": 100},
            {"description": "Stikkontakt", "cost": 95, "sale": 100},
        ]
        result = analyze_margins(items)

        assert result["below_minimum_count"] == 1
        assert result["weakest_item"] == "Stikkontakt"
        assert result["strongest_item"] == "Kabel"
        assert result["overall_margin_percent"] == 27.5
        assert result["warnings"][0].startswith("1 af 2 linjer")

    def test_negative_margin_warning(self):
        result = analyze_margins([{"description": "Tab", "cost": 120, "sale": 100}])
        assert any("negativ margin" in w for w in result["warnings"])


class TestSuggestPrice:

    def test_target_margin_only(self):
        suggestions = suggest_price(100, 25)
        assert len(suggestions) == 1
        assert suggestions[0]["suggested_price"] == 125

    def test_history_needs_three_prices(self):
        assert len(suggest_price(100, 25, historical_prices=[130, 140])) == 1
        suggestions = suggest_price(100, 25, historical_prices=[130, 140, 150])
        assert suggestions[1]["suggested_price"] == 140
        assert suggestions[1]["confidence"] == "medium"

    def test_competitor_price_skipped_when_margin_too_low(self):
        assert len(suggest_price(100, 25, competitor_prices=[105])) == 1
        suggestions = suggest_price(100, 25, competitor_prices=[200])
        assert suggestions[-1]["suggested_price"] == 190
