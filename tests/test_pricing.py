"""
Tests for the pricing service: rounding, Danish formatting, sale price,
DB percentage and the offer traffic light.
"""

from elta.services.pricing import (
    round_half_up,
    format_number,
    format_dkk,
    calculate_sale_price,
    calculate_db_percentage,
    calculate_margin_from_prices,
    get_db_level,
    get_traffic_light,
    is_db_below_send_threshold,
    compute_offer_db,
    calculate_line,
    get_line_item_margin,
    resolve_margin,
)


# =============================================================================
# ROUNDING & FORMATTING
# =============================================================================

class TestRounding:

    def test_half_goes_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4

    def test_negative_half_goes_toward_zero(self):
        assert round_half_up(-2.5) == -2
        assert round_half_up(-2.6) == -3
        assert round_half_up(-1.005, 2) == -1.0

    def test_whole_numbers_are_ints(self):
        assert isinstance(round_half_up(2.4), int)

    def test_decimal_places(self):
        assert round_half_up(1.005, 2) == 1.01
        assert round_half_up(12.344, 2) == 12.34


class TestFormatting:

    def test_thousands_and_decimal_separators(self):
        assert format_number(1234567) == "1.234.567"
        assert format_number(1234.5, 2) == "1.234,50"

    def test_dkk(self):
        assert format_dkk(1234.56) == "1.234,56 kr."

    def test_negative(self):
        assert format_dkk(-50) == "-50,00 kr."


# =============================================================================
# SALE PRICE & DB
# =============================================================================

class TestSalePrice:

    def test_margin_only(self):
        assert calculate_sale_price(100, 25) == 125.0

    def test_fixed_markup_added_after_margin(self):
        assert calculate_sale_price(100, 25, fixed_markup=10) == 135.0

    def test_round_to_rounds_up(self):
        assert calculate_sale_price(100, 23, round_to=10) == 130

    def test_customer_discount_reduces_cost_first(self):
        assert calculate_sale_price(100, 25, customer_discount=10) == 112.5


class TestDB:

    def test_db_percentage(self):
        assert calculate_db_percentage(75, 100) == 25

    def test_no_sale_gives_zero(self):
        assert calculate_db_percentage(50, 0) == 0

    def test_margin_from_prices(self):
        assert calculate_margin_from_prices(100, 125) == 25
        assert calculate_margin_from_prices(0, 125) is None

    def test_levels(self):
        assert get_db_level(40) == "green"
        assert get_db_level(25) == "yellow"
        assert get_db_level(15) == "red"

    def test_send_threshold(self):
        assert is_db_below_send_threshold(5) is True
        assert is_db_below_send_threshold(10) is False

    def test_traffic_light(self):
        light = get_traffic_light(15)
        assert light["level"] == "red"
        assert light["can_send"] is True

    def test_custom_thresholds(self):
        thresholds = {"green": 50, "yellow": 30, "red": 15}
        assert get_db_level(40, thresholds) == "yellow"
        assert is_db_below_send_threshold(12, thresholds) is True


# =============================================================================
# OFFER AGGREGATION
# =============================================================================

class TestOfferDB:

    def test_uses_supplier_cost_as_fallback(self):
        items = [
            {"quantity": 2, "total": 250, "cost_price": 100},
            {"quantity": 1, "total": 50, "supplier_cost_price_at_creation": 30},
        ]
        db = compute_offer_db(items)

        assert db.total_cost == 230
        assert db.total_sale == 300
        assert db.db_amount == 70
        assert db.db_percentage == 23
        assert db.has_any_cost is True

    def test_empty_offer(self):
        db = compute_offer_db([])
        assert db.total_sale == 0
        assert db.db_percentage == 0
        assert db.has_any_cost is False

    def test_line_calculation(self):
        line = calculate_line(100, 25, 2)
        assert line.sale_price == 125
        assert line.total == 250
        assert line.db_percentage == 20
        assert line.traffic_light == "yellow"

    def test_line_item_margin_prefers_stored_value(self):
        assert get_line_item_margin({"supplier_margin_applied": 18, "cost_price": 100, "unit_price": 150}) == 18
        assert get_line_item_margin({"cost_price": 100, "unit_price": 150}) == 50
        assert get_line_item_margin({"unit_price": 150}) is None


class TestResolveMargin:

    def test_custom_wins(self):
        assert resolve_margin(12, 30) == 12

    def test_product_margin_next(self):
        assert resolve_margin(None, 30) == 30

    def test_defaults(self):
        assert resolve_margin() == 20
        assert resolve_margin(fallback="materials") == 25
