"""
Price Engine Service

Customer tier and volume pricing on top of the basic pricing rules:
- Customer tier classification (Standard, Sølv, Guld, Platin)
- Volume-based pricing brackets
- Multi-supplier price comparison
- Margin analytics and price suggestions

Discounts are applied to the cost price in a fixed order:
tier discount -> volume discount -> customer override -> margin -> markup -> rounding
"""

from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field

from elta.services.pricing import round_half_up


# ============== Customer Tiers ==============

CUSTOMER_TIERS: Dict[str, Dict[str, Any]] = {
    "standard": {
        "label": "Standard",
        "description": "Standardkunde - ingen rabataftale",
        "base_discount_percent": 0,
        "volume_discount_percent": 0,
        "volume_threshold_dkk": 0,
        "min_annual_purchase_dkk": 0,
        "max_discount_percent": 5,
    },
    "silver": {
        "label": "Sølv",
        "description": "Fast kunde med basisrabat",
        "base_discount_percent": 5,
        "volume_discount_percent": 2,
        "volume_threshold_dkk": 50000,
        "min_annual_purchase_dkk": 100000,
        "max_discount_percent": 10,
    },
    "gold": {
        "label": "Guld",
        "description": "Vigtig kunde med udvidet rabat",
        "base_discount_percent": 10,
        "volume_discount_percent": 3,
        "volume_threshold_dkk": 100000,
        "min_annual_purchase_dkk": 500000,
        "max_discount_percent": 18,
    },
    "platinum": {
        "label": "Platin",
        "description": "Strategisk samarbejdspartner",
        "base_discount_percent": 15,
        "volume_discount_percent": 5,
        "volume_threshold_dkk": 200000,
        "min_annual_purchase_dkk": 1000000,
        "max_discount_percent": 25,
    },
}


def classify_customer_tier(annual_purchase_dkk: float) -> str:
    """Highest tier whose annual purchase requirement is met"""
    tier = "standard"
    for name, config in CUSTOMER_TIERS.items():
        if annual_purchase_dkk >= config["min_annual_purchase_dkk"]:
            tier = name
    return tier


# ============== Volume Pricing ==============

@dataclass
class VolumeBracket:
    min_quantity: int
    max_quantity: Optional[int]  # None = unlimited
    discount_percent: float
    label: str


DEFAULT_VOLUME_BRACKETS: List[VolumeBracket] = [
    VolumeBracket(1, 9, 0, "Enkelt"),
    VolumeBracket(10, 24, 3, "10+ stk"),
    VolumeBracket(25, 49, 5, "25+ stk"),
    VolumeBracket(50, 99, 8, "50+ stk"),
    VolumeBracket(100, None, 12, "100+ stk"),
]


def get_volume_discount(quantity: float, brackets: Optional[List[VolumeBracket]] = None) -> Dict[str, Any]:
    """Volume discount for a quantity; the highest bracket reached wins"""
    for bracket in reversed(brackets or DEFAULT_VOLUME_BRACKETS):
        if quantity >= bracket.min_quantity:
            return {"discount_percent": bracket.discount_percent, "bracket_label": bracket.label}
    return {"discount_percent": 0, "bracket_label": "Enkelt"}


# ============== Price Calculation ==============

@dataclass
class PriceCalculationResult:
    """Detailed price calculation result"""
    unit_cost_price: float
    effective_cost_price: float
    unit_sale_price: float
    total_cost: float
    total_sale: float
    total_profit: float
    effective_margin_percent: float
    tier_discount_percent: float
    volume_discount_percent: float
    customer_override_percent: float
    total_discount_percent: float
    breakdown: List[Dict[str, Any]] = field(default_factory=list)


def calculate_price(
    cost_price: float,
    quantity: float,
    margin_percent: float,
    customer_tier: str = "standard",
    customer_discount_override: Optional[float] = None,
    fixed_markup: Optional[float] = None,
    round_to: Optional[float] = None,
    volume_brackets: Optional[List[VolumeBracket]] = None,
    order_total_dkk: Optional[float] = None,
) -> PriceCalculationResult:
    """
    Calculate a complete price with all factors.

    The tier discount includes the tier's volume add-on when the order total
    reaches the tier threshold, and is capped at the tier maximum.
    """
    tier = CUSTOMER_TIERS.get(customer_tier)
    if tier is None:
        raise ValueError(f"Unknown customer tier: {customer_tier}")

    breakdown = []

    effective_cost = cost_price
    breakdown.append({"step": "Indkøbspris", "value": effective_cost})

    tier_discount = tier["base_discount_percent"]
    if order_total_dkk and order_total_dkk >= tier["volume_threshold_dkk"]:
        tier_discount += tier["volume_discount_percent"]
    tier_discount = min(tier_discount, tier["max_discount_percent"])

    if tier_discount > 0:
        effective_cost *= (1 - tier_discount / 100)
        breakdown.append({
            "step": f"Kundetrin rabat ({tier['label']}: {tier_discount}%)",
            "value": effective_cost,
        })

    volume = get_volume_discount(quantity, volume_brackets)
    volume_discount = volume["discount_percent"]
    if volume_discount > 0:
        effective_cost *= (1 - volume_discount / 100)
        breakdown.append({
            "step": f"Mængderabat ({volume['bracket_label']}: {volume_discount}%)",
            "value": effective_cost,
        })

    customer_override = customer_discount_override or 0
    if customer_override > 0:
        effective_cost *= (1 - customer_override / 100)
        breakdown.append({"step": f"Kundeaftale rabat ({customer_override}%)", "value": effective_cost})

    total_discount_percent = (
        (cost_price - effective_cost) / cost_price * 100 if cost_price > 0 else 0
    )

    sale_price = effective_cost * (1 + margin_percent / 100)
    breakdown.append({"step": f"Avance ({margin_percent}%)", "value": sale_price})

    if fixed_markup and fixed_markup > 0:
        sale_price += fixed_markup
        breakdown.append({"step": f"Fast tillæg ({fixed_markup} DKK)", "value": sale_price})

    if round_to and round_to > 0:
        sale_price = round_half_up(sale_price / round_to) * round_to
        breakdown.append({"step": f"Afrunding til {round_to} DKK", "value": sale_price})

    total_cost = effective_cost * quantity
    total_sale = sale_price * quantity
    total_profit = total_sale - total_cost
    effective_margin = total_profit / total_sale * 100 if total_sale > 0 else 0

    return PriceCalculationResult(
        unit_cost_price=round_half_up(cost_price, 2),
        effective_cost_price=round_half_up(effective_cost, 2),
        unit_sale_price=round_half_up(sale_price, 2),
        total_cost=round_half_up(total_cost, 2),
        total_sale=round_half_up(total_sale, 2),
        total_profit=round_half_up(total_profit, 2),
        effective_margin_percent=round_half_up(effective_margin, 1),
        tier_discount_percent=tier_discount,
        volume_discount_percent=volume_discount,
        customer_override_percent=customer_override,
        total_discount_percent=round_half_up(total_discount_percent, 1),
        breakdown=breakdown,
    )


# ============== Multi-Supplier Comparison ==============

def compare_supplier_prices(
    products: List[Dict[str, Any]],
    quantity: float,
    margin_percent: float,
    customer_tier: str = "standard",
) -> Dict[str, Any]:
    """
    Compare prices across suppliers for one product.

    The cheapest available supplier is marked cheapest and recommended.
    """
    if not products:
        return {
            "product_description": "",
            "quantity": quantity,
            "suppliers": [],
            "cheapest_supplier": "",
            "most_expensive_supplier": "",
            "price_spread_percent": 0,
        }

    priced = []
    for p in products:
        calc = calculate_price(
            cost_price=p["cost_price"],
            quantity=quantity,
            margin_percent=margin_percent,
            customer_tier=customer_tier,
        )
        priced.append({
            "supplier_id": p.get("supplier_id"),
            "supplier_name": p.get("supplier_name", ""),
            "sku": p.get("sku", ""),
            "unit_cost": calc.effective_cost_price,
            "unit_sale": calc.unit_sale_price,
            "total_cost": calc.total_cost,
            "total_sale": calc.total_sale,
            "margin_percent": calc.effective_margin_percent,
            "is_available": p.get("is_available", True),
            "lead_time_days": p.get("lead_time_days"),
            "is_cheapest": False,
            "is_recommended": False,
            "savings_vs_most_expensive": 0,
        })

    priced.sort(key=lambda x: x["total_cost"])

    cheapest_available = next((p for p in priced if p["is_available"]), None)
    if cheapest_available:
        cheapest_available["is_cheapest"] = True
        cheapest_available["is_recommended"] = True

    max_cost = max(p["total_cost"] for p in priced)
    for p in priced:
        p["savings_vs_most_expensive"] = round_half_up(max_cost - p["total_cost"], 2)

    cheapest = priced[0]
    most_expensive = priced[-1]
    spread = (
        (most_expensive["total_cost"] - cheapest["total_cost"]) / cheapest["total_cost"] * 100
        if cheapest["total_cost"] > 0 else 0
    )

    return {
        "product_description": products[0].get("product_name", ""),
        "quantity": quantity,
        "suppliers": priced,
        "cheapest_supplier": cheapest["supplier_name"],
        "most_expensive_supplier": most_expensive["supplier_name"],
        "price_spread_percent": round_half_up(spread, 1),
    }


# ============== Margin Analytics ==============

def analyze_margins(items: List[Dict[str, Any]], minimum_margin_percent: float = 15) -> Dict[str, Any]:
    """Analyze margins across line items and flag weak spots"""
    warnings = []
    total_cost = 0.0
    total_sale = 0.0
    below_min_count = 0
    weakest_margin = float("inf")
    strongest_margin = float("-inf")
    weakest_item = None
    strongest_item = None
    analyzed = []

    for item in items:
        cost = item.get("cost", 0)
        sale = item.get("sale", 0)
        profit = sale - cost
        margin = profit / sale * 100 if sale > 0 else 0
        is_below_min = margin < minimum_margin_percent

        total_cost += cost
        total_sale += sale
        if is_below_min:
            below_min_count += 1

        if margin < weakest_margin:
            weakest_margin = margin
            weakest_item = item.get("description")
        if margin > strongest_margin:
            strongest_margin = margin
            strongest_item = item.get("description")

        analyzed.append({
            "description": item.get("description"),
            "cost": round_half_up(cost, 2),
            "sale": round_half_up(sale, 2),
            "profit": round_half_up(profit, 2),
            "margin_percent": round_half_up(margin, 1),
            "is_below_minimum": is_below_min,
        })

    total_profit = total_sale - total_cost
    overall_margin = total_profit / total_sale * 100 if total_sale > 0 else 0
    avg_margin = sum(i["margin_percent"] for i in analyzed) / len(analyzed) if analyzed else 0

    if below_min_count > 0:
        warnings.append(
            f"{below_min_count} af {len(items)} linjer har margin under {minimum_margin_percent}%"
        )
    if overall_margin < minimum_margin_percent:
        warnings.append(
            f"Samlet margin {overall_margin:.1f}% er under minimumskravet på {minimum_margin_percent}%"
        )
    if weakest_margin < 0:
        warnings.append(
            f'"{weakest_item}" har negativ margin ({weakest_margin:.1f}%) - tab på denne linje'
        )

    return {
        "total_cost": round_half_up(total_cost, 2),
        "total_sale": round_half_up(total_sale, 2),
        "total_profit": round_half_up(total_profit, 2),
        "overall_margin_percent": round_half_up(overall_margin, 1),
        "items": analyzed,
        "warnings": warnings,
        "below_minimum_count": below_min_count,
        "average_margin_percent": round_half_up(avg_margin, 1),
        "weakest_item": weakest_item,
        "strongest_item": strongest_item,
    }


# ============== Price Suggestions ==============

def suggest_price(
    cost_price: float,
    target_margin: float,
    historical_prices: Optional[List[float]] = None,
    competitor_prices: Optional[List[float]] = None,
) -> List[Dict[str, Any]]:
    """
    Suggest sale prices from target margin, price history and competitors.

    History needs at least 3 prices. A competitor-based price (5% under the
    competitor average) is only suggested when it keeps margin above 10%.
    """
    historical_prices = historical_prices or []
    competitor_prices = competitor_prices or []
    suggestions = []

    target_price = cost_price * (1 + target_margin / 100)
    suggestions.append({
        "suggested_price": round_half_up(target_price, 2),
        "reason": f"Målmargin på {target_margin}%",
        "confidence": "high",
        "based_on": "Beregnet fra kostpris og målmargin",
    })

    if len(historical_prices) >= 3:
        avg_historical = sum(historical_prices) / len(historical_prices)
        historical_margin = (avg_historical - cost_price) / avg_historical * 100 if avg_historical > 0 else 0
        suggestions.append({
            "suggested_price": round_half_up(avg_historical, 2),
            "reason": f"Historisk gennemsnitspris (margin: {historical_margin:.1f}%)",
            "confidence": "high" if len(historical_prices) >= 10 else "medium",
            "based_on": f"Baseret på {len(historical_prices)} tidligere tilbud",
        })

    if competitor_prices:
        avg_competitor = sum(competitor_prices) / len(competitor_prices)
        competitive_price = avg_competitor * 0.95
        competitive_margin = (
            (competitive_price - cost_price) / competitive_price * 100 if competitive_price > 0 else 0
        )
        if competitive_margin > 10:
            suggestions.append({
                "suggested_price": round_half_up(competitive_price, 2),
                "reason": f"5% under konkurrentens gennemsnitspris (margin: {competitive_margin:.1f}%)",
                "confidence": "medium",
                "based_on": f"Baseret på {len(competitor_prices)} konkurrentpriser",
            })

    return suggestions
