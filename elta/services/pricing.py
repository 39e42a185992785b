"""
Pricing Service

Single source of truth for price, margin and DB (dækningsbidrag) math used
by calculations, offers and projects.

Rules:
- Sale price = net price * (1 + margin / 100) + fixed markup
- DB% = (sale - cost) / sale * 100
- Margins fall back to the defaults in models.constants
"""

import math
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP, ROUND_HALF_DOWN
from typing import Any, Dict, List, Optional

from elta.models.constants import MARGINS
from elta.models.enums import DBLevel


DEFAULT_DB_THRESHOLDS = {
    "green": 35,   # >= green is green
    "yellow": 20,  # >= yellow is yellow
    "red": 10,     # < red blocks sending
}


# ============== Rounding & Formatting ==============

def round_half_up(value: float, decimals: int = 0) -> float:
    """Round halves toward +infinity: 2.5 -> 3, -2.5 -> -2."""
    quantum = Decimal(1).scaleb(-decimals)
    rounding = ROUND_HALF_UP if value >= 0 else ROUND_HALF_DOWN
    rounded = Decimal(str(value)).quantize(quantum, rounding=rounding)
    return int(rounded) if decimals == 0 else float(rounded)


def format_number(value: float, decimals: int = 0) -> str:
    """Danish number format: 1.234.567,89"""
    formatted = f"{abs(value):,.{decimals}f}"
    formatted = formatted.replace(",", "X").replace(".", ",").replace("X", ".")
    return f"-{formatted}" if value < 0 else formatted


def format_dkk(amount: float, decimals: int = 2) -> str:
    """Format an amount as Danish kroner, e.g. '1.234,56 kr.'"""
    return f"{format_number(amount, decimals)} kr."


def format_percent(value: float, decimals: int = 1) -> str:
    return f"{format_number(value, decimals)} %"


# ============== Core Price Calculations ==============

def calculate_sale_price(
    cost_price: float,
    margin_percentage: float,
    fixed_markup: float = 0,
    round_to: Optional[float] = None,
    customer_discount: float = 0,
) -> float:
    """Calculate sale price from cost price and margin percentage"""
    effective_cost = cost_price
    if customer_discount and customer_discount > 0:
        effective_cost = cost_price * (1 - customer_discount / 100)

    price = effective_cost * (1 + margin_percentage / 100)

    if fixed_markup:
        price += fixed_markup

    if round_to and round_to > 0:
        price = math.ceil(price / round_to) * round_to

    return round_half_up(price, 2)


def calculate_line_total(quantity: float, unit_price: float, discount_percentage: float = 0) -> float:
    return quantity * unit_price * (1 - discount_percentage / 100)


def calculate_db_percentage(total_cost: float, total_sale: float) -> int:
    """DB% rounded to whole percent, 0 when there is no sale"""
    if total_sale <= 0:
        return 0
    return round_half_up((total_sale - total_cost) / total_sale * 100)


def calculate_db_amount(total_cost: float, total_sale: float) -> float:
    return total_sale - total_cost


def calculate_margin_from_prices(cost_price: Optional[float], sale_price: float) -> Optional[int]:
    """Markup percentage between cost and sale price (per unit)"""
    if not cost_price or cost_price <= 0:
        return None
    return round_half_up((sale_price / cost_price - 1) * 100)


# ============== DB Traffic Light ==============

def get_db_level(percentage: float, thresholds: Optional[Dict[str, float]] = None) -> str:
    t = thresholds or DEFAULT_DB_THRESHOLDS
    if percentage >= t["green"]:
        return DBLevel.GREEN.value
    if percentage >= t["yellow"]:
        return DBLevel.YELLOW.value
    return DBLevel.RED.value


def get_db_label(percentage: float, thresholds: Optional[Dict[str, float]] = None) -> str:
    return DBLevel.to_label(get_db_level(percentage, thresholds))


def is_db_below_send_threshold(percentage: float, thresholds: Optional[Dict[str, float]] = None) -> bool:
    """Whether this DB% blocks sending the offer"""
    t = thresholds or DEFAULT_DB_THRESHOLDS
    return percentage < t["red"]


def get_traffic_light(percentage: float, thresholds: Optional[Dict[str, float]] = None) -> Dict[str, Any]:
    return {
        "level": get_db_level(percentage, thresholds),
        "label": get_db_label(percentage, thresholds),
        "can_send": not is_db_below_send_threshold(percentage, thresholds),
    }


# ============== Line Item Aggregation ==============

@dataclass
class OfferDB:
    """Offer-level DB summary"""
    total_cost: float
    total_sale: float
    db_amount: float
    db_percentage: int
    has_any_cost: bool


@dataclass
class LineCalculation:
    """Everything for a single offer line"""
    sale_price: float
    total: float
    db_amount: float
    db_percentage: int
    traffic_light: str


def _line_cost(item: Dict[str, Any]) -> float:
    return item.get("cost_price") or item.get("supplier_cost_price_at_creation") or 0


def compute_offer_db(line_items: List[Dict[str, Any]]) -> OfferDB:
    """
    Compute offer-level DB from line items.

    Line cost uses the stored cost price, falling back to the supplier cost
    captured when the line was created.
    """
    total_cost = sum(_line_cost(item) * item.get("quantity", 0) for item in line_items)
    total_sale = sum(item.get("total", 0) for item in line_items)
    has_any_cost = any(_line_cost(item) for item in line_items)

    return OfferDB(
        total_cost=total_cost,
        total_sale=total_sale,
        db_amount=calculate_db_amount(total_cost, total_sale),
        db_percentage=calculate_db_percentage(total_cost, total_sale),
        has_any_cost=has_any_cost,
    )


def get_line_item_margin(item: Dict[str, Any]) -> Optional[float]:
    """Effective margin for a line item (stored value or computed)"""
    if item.get("supplier_margin_applied"):
        return item["supplier_margin_applied"]
    cost = _line_cost(item)
    if cost and cost > 0:
        return calculate_margin_from_prices(cost, item.get("unit_price", 0))
    return None


def calculate_line(
    cost_price: float,
    margin_percentage: float,
    quantity: float,
    thresholds: Optional[Dict[str, float]] = None,
) -> LineCalculation:
    sale_price = calculate_sale_price(cost_price, margin_percentage)
    total = calculate_line_total(quantity, sale_price)
    total_cost = cost_price * quantity
    db_percentage = calculate_db_percentage(total_cost, total)

    return LineCalculation(
        sale_price=sale_price,
        total=total,
        db_amount=calculate_db_amount(total_cost, total),
        db_percentage=db_percentage,
        traffic_light=get_db_level(db_percentage, thresholds),
    )


# ============== Margin Resolution ==============

def resolve_margin(
    custom_margin: Optional[float] = None,
    product_margin: Optional[float] = None,
    fallback: str = "products",
) -> float:
    """Resolve effective margin: custom -> product -> default for the fallback group"""
    if custom_margin is not None and custom_margin >= 0:
        return custom_margin
    if product_margin is not None and product_margin >= 0:
        return product_margin
    return MARGINS["products"] if fallback == "products" else MARGINS["materials"]


def to_dict(obj) -> Dict[str, Any]:
    """Convert a result dataclass to a dict for JSON responses"""
    return asdict(obj)
