"""
Supplier Margin Rules

Resolves the margin that applies to a supplier product from the
supplier_margin_rules table and prices products with it.

Hierarchy, most specific first:
    product -> customer -> subcategory -> category -> supplier
Within one rule type the highest priority wins. Only active rules inside
their valid_from/valid_to window are considered.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import date
from typing import Optional, Dict, List, Any

from elta.models.constants import MARGINS
from elta.services.pricing import round_half_up

logger = logging.getLogger(__name__)

RULE_TYPE_ORDER = ["product", "customer", "subcategory", "category", "supplier"]


@dataclass
class EffectiveMargin:
    margin_percentage: float
    fixed_markup: float
    round_to: Optional[float]
    rule_type: str
    rule_id: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _as_date(value) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def is_rule_active(rule: Dict[str, Any], today: Optional[date] = None) -> bool:
    today = today or date.today()
    if rule.get("is_active") is False:
        return False
    valid_from = _as_date(rule.get("valid_from"))
    valid_to = _as_date(rule.get("valid_to"))
    if valid_from and valid_from > today:
        return False
    if valid_to and valid_to < today:
        return False
    return True


def rule_matches(
    rule: Dict[str, Any],
    supplier_product_id: Optional[str] = None,
    category: Optional[str] = None,
    sub_category: Optional[str] = None,
    customer_id: Optional[str] = None,
) -> bool:
    rule_type = rule.get("rule_type")
    if rule_type == "product":
        return supplier_product_id is not None and rule.get("supplier_product_id") == supplier_product_id
    if rule_type == "customer":
        return customer_id is not None and rule.get("customer_id") == customer_id
    if rule_type == "subcategory":
        return (
            category is not None and sub_category is not None
            and rule.get("category") == category
            and rule.get("sub_category") == sub_category
        )
    if rule_type == "category":
        return category is not None and rule.get("category") == category
    return rule_type == "supplier"


def select_effective_margin(
    rules: List[Dict[str, Any]],
    supplier_product_id: Optional[str] = None,
    category: Optional[str] = None,
    sub_category: Optional[str] = None,
    customer_id: Optional[str] = None,
    today: Optional[date] = None,
) -> Optional[EffectiveMargin]:
    """The most specific matching rule, None when no rule applies"""
    candidates = [
        r for r in rules
        if r.get("rule_type") in RULE_TYPE_ORDER
        and is_rule_active(r, today)
        and rule_matches(r, supplier_product_id, category, sub_category, customer_id)
    ]
    if not candidates:
        return None

    best = min(candidates, key=lambda r: (RULE_TYPE_ORDER.index(r["rule_type"]), -(r.get("priority") or 0)))
    return EffectiveMargin(
        margin_percentage=best["margin_percentage"],
        fixed_markup=best.get("fixed_markup") or 0,
        round_to=best.get("round_to"),
        rule_type=best["rule_type"],
        rule_id=best.get("id"),
    )


def apply_margin(cost_price: float, margin: Optional[EffectiveMargin]) -> float:
    """
    Sale price from cost: margin, then fixed markup, then rounding to the
    nearest round_to. Without a rule the default material margin is used.
    """
    if margin is None:
        return round_half_up(cost_price * (1 + MARGINS["materials"] / 100), 2)

    price = cost_price * (1 + margin.margin_percentage / 100) + (margin.fixed_markup or 0)
    if margin.round_to and margin.round_to > 0:
        price = round_half_up(price / margin.round_to) * margin.round_to
    return round_half_up(price, 2)


def validate_margin_rule(rule: Dict[str, Any]) -> Optional[str]:
    """Danish error for a rule missing the field its type needs"""
    rule_type = rule.get("rule_type")
    if rule_type not in RULE_TYPE_ORDER:
        return "Ugyldig regeltype"
    if rule_type == "category" and not rule.get("category"):
        return "Kategori er påkrævet for kategori-regler"
    if rule_type == "subcategory" and not (rule.get("category") and rule.get("sub_category")):
        return "Kategori og underkategori er påkrævet"
    if rule_type == "product" and not rule.get("supplier_product_id"):
        return "Produkt er påkrævet for produkt-regler"
    if rule_type == "customer" and not rule.get("customer_id"):
        return "Kunde er påkrævet for kunde-regler"
    return None


def summarize_margin_rules(rules: List[Dict[str, Any]]) -> Dict[str, Any]:
    by_type = {rule_type: 0 for rule_type in RULE_TYPE_ORDER}
    default_margin = None

    for rule in rules:
        if rule.get("rule_type") in by_type:
            by_type[rule["rule_type"]] += 1
        if rule.get("rule_type") == "supplier" and rule.get("is_active"):
            default_margin = rule.get("margin_percentage")

    return {
        "total_rules": len(rules),
        "active_rules": len([r for r in rules if r.get("is_active")]),
        "default_margin": default_margin,
        "rules_by_type": by_type,
    }


# ============== Catalog ==============

async def get_effective_margin(
    catalog,
    supplier_id: str,
    supplier_product_id: Optional[str] = None,
    category: Optional[str] = None,
    sub_category: Optional[str] = None,
    customer_id: Optional[str] = None,
) -> Optional[EffectiveMargin]:
    rules = await catalog.get_margin_rules(supplier_id)
    margin = select_effective_margin(rules, supplier_product_id, category, sub_category, customer_id)
    if margin:
        logger.debug(f"[MarginRules] {supplier_id}: {margin.rule_type} rule, {margin.margin_percentage}%")
    return margin


async def calculate_rule_sale_price(
    catalog,
    cost_price: float,
    supplier_id: str,
    supplier_product_id: Optional[str] = None,
    category: Optional[str] = None,
    sub_category: Optional[str] = None,
    customer_id: Optional[str] = None,
) -> Dict[str, Any]:
    margin = await get_effective_margin(
        catalog, supplier_id, supplier_product_id, category, sub_category, customer_id
    )
    return {
        "cost_price": cost_price,
        "sale_price": apply_margin(cost_price, margin),
        "margin": margin.to_dict() if margin else None,
    }
