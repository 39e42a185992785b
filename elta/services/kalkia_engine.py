"""
Kalkia Calculation Engine

Job-costing calculator: nodes (work items) with variants, materials and
conditional rules become time, cost and a full price breakdown.

Pricing model:
  direct time + indirect time + personal time  -> labor cost
  materials + waste + labor                     -> cost price
  cost price + overhead + risk                  -> sales basis
  sales basis + margin - discount               -> net price
  net price + VAT                               -> final amount

Nodes, variants, materials, rules, building profiles and global factors are
plain dicts as loaded from the kalkia_* tables.
"""

import logging
from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, List, Any
from dataclasses import dataclass, field, asdict

from elta.models.constants import MARGINS, SYNC_STALE_WARNING_DAYS
from elta.services.pricing import calculate_sale_price, round_half_up
from elta.services.electrical_engine import calculate_cable_size, CableSizingResult

logger = logging.getLogger(__name__)


# ============== Defaults ==============

DEFAULT_HOURLY_RATE = 495
DEFAULT_INDIRECT_TIME_FACTOR = 0.15
DEFAULT_PERSONAL_TIME_FACTOR = 0.08
DEFAULT_OVERHEAD_FACTOR = 0.12
DEFAULT_MATERIAL_WASTE_FACTOR = 0.05
DEFAULT_VAT_RATE = 0.25

# Over 16A on a single phase is treated as a 3-phase load
SINGLE_PHASE_MAX_WATTS = 3680


# ============== Data Classes ==============

@dataclass
class SupplierPrice:
    """Live supplier price for a variant material"""
    material_id: str
    supplier_product_id: str
    supplier_name: str
    supplier_sku: str
    base_cost_price: float
    effective_cost_price: float
    effective_sale_price: float
    discount_percentage: float
    margin_percentage: float
    price_source: str  # standard, customer_product, customer_supplier
    is_stale: bool
    last_synced_at: Optional[str] = None


@dataclass
class CalculationContext:
    building_profile: Optional[Dict] = None
    global_factors: List[Dict] = field(default_factory=list)
    hourly_rate: float = DEFAULT_HOURLY_RATE
    supplier_prices: Dict[str, SupplierPrice] = field(default_factory=dict)


@dataclass
class CalculatedItem:
    node_id: str
    variant_id: Optional[str]
    quantity: float
    description: str
    unit: str
    base_time_seconds: float
    adjusted_time_seconds: float
    rules_applied: List[str]
    material_cost: float
    material_waste: float
    labor_cost: float
    total_cost: float
    sale_price: float
    total_sale: float
    conditions: Dict[str, Any] = field(default_factory=dict)
    supplier_prices_used: int = 0
    cable_sizing: Optional[CableSizingResult] = None
    electrical_warnings: List[str] = field(default_factory=list)


@dataclass
class CalculationResult:
    # Time
    total_direct_time_seconds: float
    total_indirect_time_seconds: int
    total_personal_time_seconds: int
    total_labor_time_seconds: float
    total_labor_hours: float

    # Cost
    total_material_cost: float
    total_material_waste: float
    total_labor_cost: float
    total_other_costs: float
    cost_price: float

    # Pricing breakdown
    overhead_amount: float
    risk_amount: float
    sales_basis: float
    margin_amount: float
    sale_price_excl_vat: float
    discount_amount: float
    net_price: float
    vat_amount: float
    final_amount: float

    # Key metrics
    db_amount: float
    db_percentage: float
    db_per_hour: float
    coverage_ratio: float

    factors_used: Dict[str, float] = field(default_factory=dict)
    electrical_summary: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============== Helpers ==============

def get_factor_value(factors: List[Dict], key: str, default_value: float) -> float:
    """Active global factor by key, percentage values as decimals"""
    factor = next(
        (f for f in factors if f.get("factor_key") == key and f.get("is_active", True)),
        None,
    )
    if not factor:
        return default_value
    if factor.get("value_type") == "percentage":
        return factor["value"] / 100
    return factor["value"]


def _within(value: float, low: Optional[float], high: Optional[float]) -> bool:
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


def is_condition_met(rule: Dict, conditions: Dict[str, Any]) -> bool:
    """Whether a rule's condition matches the item conditions"""
    condition = rule.get("condition") or {}
    rule_type = rule.get("rule_type")

    if rule_type == "height":
        if conditions.get("height") is None:
            return False
        return _within(conditions["height"], condition.get("min_height"), condition.get("max_height"))

    if rule_type == "quantity":
        if conditions.get("quantity") is None:
            return False
        return _within(conditions["quantity"], condition.get("min_quantity"), condition.get("max_quantity"))

    if rule_type == "access":
        if conditions.get("access") is None:
            return False
        return condition.get("type") == conditions["access"]

    if rule_type == "distance":
        if conditions.get("distance") is None:
            return False
        return _within(conditions["distance"], condition.get("min_distance"), condition.get("max_distance"))

    if rule_type == "custom":
        custom = conditions.get("custom")
        if not custom:
            return False
        return all(custom.get(key) == value for key, value in condition.items())

    return False


# ============== Engine ==============

class KalkiaCalculationEngine:
    """Calculates items and final pricing for one calculation context"""

    def __init__(self, context: CalculationContext):
        self.context = context

        factors = context.global_factors
        self.indirect_time_factor = get_factor_value(factors, "indirect_time", DEFAULT_INDIRECT_TIME_FACTOR)
        self.personal_time_factor = get_factor_value(factors, "personal_time", DEFAULT_PERSONAL_TIME_FACTOR)
        self.overhead_factor = get_factor_value(factors, "overhead", DEFAULT_OVERHEAD_FACTOR)
        self.material_waste_factor = get_factor_value(factors, "material_waste", DEFAULT_MATERIAL_WASTE_FACTOR)

        profile = context.building_profile or {}
        self.profile_multipliers = {
            "time": profile.get("time_multiplier") or 1,
            "difficulty": profile.get("difficulty_multiplier") or 1,
            "waste": profile.get("material_waste_multiplier") or 1,
            "overhead": profile.get("overhead_multiplier") or 1,
        }

    @property
    def hourly_rate(self) -> float:
        return self.context.hourly_rate or DEFAULT_HOURLY_RATE

    def calculate_node_time(
        self,
        node: Dict,
        variant: Optional[Dict],
        quantity: float,
        conditions: Dict[str, Any],
        rules: List[Dict],
    ) -> Dict[str, Any]:
        """
        Time for a node with variant adjustments and rules.

        Rules that target the node or the variant are applied in ascending
        priority, then the building profile time multiplier, then quantity.
        """
        base_time = node.get("base_time_seconds", 0)

        if variant:
            base_time = round_half_up(
                base_time * variant.get("time_multiplier", 1)
                + variant.get("extra_time_seconds", 0)
                + variant.get("base_time_seconds", 0)
            )

        adjusted_time = base_time
        rules_applied = []

        variant_id = variant.get("id") if variant else None
        applicable = sorted(
            (r for r in rules
             if r.get("is_active", True)
             and (r.get("node_id") == node.get("id") or (variant_id and r.get("variant_id") == variant_id))),
            key=lambda r: r.get("priority", 0),
        )

        for rule in applicable:
            if is_condition_met(rule, conditions):
                adjusted_time = round_half_up(
                    adjusted_time * rule.get("time_multiplier", 1) + rule.get("extra_time_seconds", 0)
                )
                rules_applied.append(rule.get("rule_name", ""))

        adjusted_time = round_half_up(adjusted_time * self.profile_multipliers["time"])

        return {
            "base_time_seconds": base_time * quantity,
            "adjusted_time_seconds": adjusted_time * quantity,
            "rules_applied": rules_applied,
        }

    def calculate_material_cost(
        self,
        materials: List[Dict],
        quantity: float,
        waste_percentage: float = 0,
    ) -> Dict[str, float]:
        """
        Material cost and waste for a variant.

        Live supplier prices win over stored material prices unless stale.
        """
        total_cost = 0.0
        supplier_prices_used = 0

        for material in materials:
            material_qty = material.get("quantity", 0) * quantity
            supplier_price = self.context.supplier_prices.get(material.get("id"))

            if supplier_price and not supplier_price.is_stale:
                price = supplier_price.effective_cost_price
                supplier_prices_used += 1
            else:
                price = material.get("cost_price")
                if price is None:
                    price = material.get("sale_price") or 0

            total_cost += material_qty * price

        effective_waste = waste_percentage / 100 + self.material_waste_factor
        effective_waste *= self.profile_multipliers["waste"]

        return {
            "material_cost": total_cost,
            "material_waste": total_cost * effective_waste,
            "supplier_prices_used": supplier_prices_used,
        }

    def calculate_labor_cost(self, time_seconds: float) -> float:
        return time_seconds / 3600 * self.hourly_rate

    def calculate_item(
        self,
        node: Dict,
        variant: Optional[Dict],
        materials: List[Dict],
        rules: List[Dict],
        quantity: float,
        conditions: Optional[Dict[str, Any]] = None,
    ) -> CalculatedItem:
        conditions = conditions or {}

        time_result = self.calculate_node_time(node, variant, quantity, conditions, rules)
        material_result = self.calculate_material_cost(
            materials, quantity, (variant or {}).get("waste_percentage") or 0
        )
        labor_cost = self.calculate_labor_cost(time_result["adjusted_time_seconds"])

        total_cost = material_result["material_cost"] + material_result["material_waste"] + labor_cost

        sale_price = (node.get("default_sale_price") or 0) * quantity
        if variant:
            sale_price *= variant.get("price_multiplier", 1)
        if sale_price == 0:
            sale_price = calculate_sale_price(total_cost, MARGINS["default_db_target"])

        return CalculatedItem(
            node_id=node.get("id"),
            variant_id=variant.get("id") if variant else None,
            quantity=quantity,
            description=f"{node.get('name')} - {variant.get('name')}" if variant else node.get("name"),
            unit="stk",
            base_time_seconds=time_result["base_time_seconds"],
            adjusted_time_seconds=time_result["adjusted_time_seconds"],
            rules_applied=time_result["rules_applied"],
            material_cost=material_result["material_cost"],
            material_waste=material_result["material_waste"],
            labor_cost=labor_cost,
            total_cost=total_cost,
            sale_price=sale_price,
            total_sale=sale_price,
            conditions=conditions,
            supplier_prices_used=material_result["supplier_prices_used"],
        )

    def calculate_final_pricing(
        self,
        items: List[CalculatedItem],
        margin_percentage: float = 0,
        discount_percentage: float = 0,
        vat_percentage: float = 25,
        risk_percentage: float = 0,
    ) -> CalculationResult:
        total_direct = sum(item.adjusted_time_seconds for item in items)
        total_material = sum(item.material_cost for item in items)
        total_waste = sum(item.material_waste for item in items)

        total_indirect = round_half_up(total_direct * self.indirect_time_factor)
        total_personal = round_half_up(total_direct * self.personal_time_factor)
        total_labor_time = total_direct + total_indirect + total_personal
        total_labor_hours = total_labor_time / 3600

        total_labor_cost = total_labor_hours * self.hourly_rate
        total_other = 0
        cost_price = total_material + total_waste + total_labor_cost + total_other

        effective_overhead = self.overhead_factor * self.profile_multipliers["overhead"]
        overhead_amount = cost_price * effective_overhead
        risk_amount = cost_price * (risk_percentage / 100)
        sales_basis = cost_price + overhead_amount + risk_amount

        margin_amount = sales_basis * (margin_percentage / 100)
        sale_price_excl_vat = sales_basis + margin_amount

        discount_amount = sale_price_excl_vat * (discount_percentage / 100)
        net_price = sale_price_excl_vat - discount_amount

        vat_amount = net_price * (vat_percentage / 100)
        final_amount = net_price + vat_amount

        metrics = calculate_db_metrics(net_price, cost_price, total_labor_hours)

        return CalculationResult(
            total_direct_time_seconds=total_direct,
            total_indirect_time_seconds=total_indirect,
            total_personal_time_seconds=total_personal,
            total_labor_time_seconds=total_labor_time,
            total_labor_hours=total_labor_hours,
            total_material_cost=total_material,
            total_material_waste=total_waste,
            total_labor_cost=total_labor_cost,
            total_other_costs=total_other,
            cost_price=cost_price,
            overhead_amount=overhead_amount,
            risk_amount=risk_amount,
            sales_basis=sales_basis,
            margin_amount=margin_amount,
            sale_price_excl_vat=sale_price_excl_vat,
            discount_amount=discount_amount,
            net_price=net_price,
            vat_amount=vat_amount,
            final_amount=final_amount,
            db_amount=metrics["db_amount"],
            db_percentage=metrics["db_percentage"],
            db_per_hour=metrics["db_per_hour"],
            coverage_ratio=metrics["db_percentage"],
            factors_used={
                "indirect_time_factor": self.indirect_time_factor,
                "personal_time_factor": self.personal_time_factor,
                "overhead_factor": effective_overhead,
                "material_waste_factor": self.material_waste_factor,
            },
        )

    # ============== Electrical Enrichment ==============

    def enrich_with_cable_sizing(
        self,
        item: CalculatedItem,
        power_watts: float,
        cable_length: float,
        installation_method: str = "B2",
    ) -> CalculatedItem:
        """Add cable sizing and its cable cost to an item"""
        if power_watts <= 0 or cable_length <= 0:
            return item

        is_3phase = power_watts > SINGLE_PHASE_MAX_WATTS
        sizing = calculate_cable_size(
            power_watts=power_watts,
            length_meters=cable_length,
            voltage=400 if is_3phase else 230,
            phase="3-phase" if is_3phase else "1-phase",
            power_factor=1.0,
            installation_method=installation_method,
            core_count=3,
            cable_type="PVT",
        )

        item.material_cost += sizing.total_cable_cost
        item.total_cost += sizing.total_cable_cost
        item.cable_sizing = sizing
        item.electrical_warnings = list(sizing.warnings)
        return item

    def calculate_final_pricing_with_electrical(
        self,
        items: List[CalculatedItem],
        margin_percentage: float = 0,
        discount_percentage: float = 0,
        vat_percentage: float = 25,
        risk_percentage: float = 0,
    ) -> CalculationResult:
        result = self.calculate_final_pricing(
            items, margin_percentage, discount_percentage, vat_percentage, risk_percentage
        )

        with_cable = [i for i in items if i.cable_sizing]
        if not with_cable:
            return result

        total_cable_cost = sum(i.cable_sizing.total_cable_cost for i in with_cable)
        # Length is not stored on the sizing, derive it from cost
        total_cable_meters = sum(
            i.cable_sizing.total_cable_cost / i.cable_sizing.cost_per_meter
            for i in with_cable if i.cable_sizing.cost_per_meter > 0
        )
        warnings = [w for i in with_cable for w in i.electrical_warnings]

        result.electrical_summary = {
            "total_cable_cost": round_half_up(total_cable_cost, 2),
            "total_cable_meters": round_half_up(total_cable_meters, 2),
            "cable_types": list(dict.fromkeys(i.cable_sizing.cable_designation for i in with_cable)),
            "warnings": list(dict.fromkeys(warnings)),
            "all_compliant": all(i.cable_sizing.compliant for i in with_cable),
        }
        return result


# ============== Standalone Helpers ==============

def seconds_to_hours(seconds: float) -> float:
    return round_half_up(seconds / 3600, 2)


def minutes_to_seconds(minutes: float) -> float:
    return minutes * 60


def hours_to_seconds(hours: float) -> float:
    return hours * 3600


def format_time_seconds(seconds: float) -> str:
    """e.g. 5400 -> '1t 30m'"""
    total_minutes = round_half_up(seconds / 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours and minutes:
        return f"{hours}t {minutes}m"
    if hours:
        return f"{hours}t"
    return f"{minutes}m"


def format_percentage(value: float, decimals: int = 1) -> str:
    return f"{value:.{decimals}f}%"


def calculate_db_metrics(net_price: float, cost_price: float, labor_hours: float) -> Dict[str, float]:
    db_amount = net_price - cost_price
    return {
        "db_amount": db_amount,
        "db_percentage": db_amount / net_price * 100 if net_price > 0 else 0,
        "db_per_hour": db_amount / labor_hours if labor_hours > 0 else 0,
    }


def create_default_context(
    hourly_rate: float = DEFAULT_HOURLY_RATE,
    building_profile: Optional[Dict] = None,
    global_factors: Optional[List[Dict]] = None,
) -> CalculationContext:
    return CalculationContext(
        building_profile=building_profile,
        global_factors=global_factors or [],
        hourly_rate=hourly_rate,
    )


# ============== Context Loading ==============

def _is_stale(last_synced_at: Optional[str], now: Optional[datetime] = None) -> bool:
    if not last_synced_at:
        return True
    now = now or datetime.now(timezone.utc)
    synced = datetime.fromisoformat(last_synced_at.replace("Z", "+00:00"))
    return now - synced > timedelta(days=SYNC_STALE_WARNING_DAYS)


def build_supplier_prices(
    materials: List[Dict],
    supplier_products: List[Dict],
    now: Optional[datetime] = None,
    customer_product_prices: Optional[List[Dict]] = None,
    customer_supplier_prices: Optional[List[Dict]] = None,
) -> Dict[str, SupplierPrice]:
    """
    Map material id -> live supplier price for linked materials.

    A customer product price wins over a customer supplier agreement; a
    product price discount is taken off the base cost and replaces any
    custom cost. A supplier agreement gives a discount and may override
    the margin.
    """
    products = {p["id"]: p for p in supplier_products}
    product_overrides = {p["supplier_product_id"]: p for p in customer_product_prices or []}
    supplier_agreements = {s["supplier_id"]: s for s in customer_supplier_prices or []}
    prices: Dict[str, SupplierPrice] = {}

    for material in materials:
        product = products.get(material.get("supplier_product_id"))
        if not product or not product.get("cost_price"):
            continue

        base_cost = product["cost_price"]
        cost = base_cost
        discount = 0
        margin = (
            product.get("margin_percentage")
            or product.get("default_margin_percentage")
            or MARGINS["materials"]
        )
        source = "standard"

        override = product_overrides.get(product["id"])
        agreement = supplier_agreements.get(product.get("supplier_id"))
        if override:
            source = "customer_product"
            if override.get("custom_cost_price") is not None:
                cost = override["custom_cost_price"]
            if override.get("custom_discount_percentage") is not None:
                discount = override["custom_discount_percentage"]
                cost = base_cost * (1 - discount / 100)
        elif agreement:
            source = "customer_supplier"
            discount = agreement.get("discount_percentage") or 0
            cost = base_cost * (1 - discount / 100)
            if agreement.get("custom_margin_percentage") is not None:
                margin = agreement["custom_margin_percentage"]

        prices[material["id"]] = SupplierPrice(
            material_id=material["id"],
            supplier_product_id=product["id"],
            supplier_name=product.get("supplier_name") or "",
            supplier_sku=product.get("supplier_sku") or "",
            base_cost_price=base_cost,
            effective_cost_price=cost,
            effective_sale_price=calculate_sale_price(cost, margin),
            discount_percentage=discount,
            margin_percentage=margin,
            price_source=source,
            is_stale=_is_stale(product.get("last_synced_at"), now),
            last_synced_at=product.get("last_synced_at"),
        )

    return prices


async def load_calculation_context(
    client,
    building_profile_id: Optional[str] = None,
    variant_ids: Optional[List[str]] = None,
    hourly_rate: float = DEFAULT_HOURLY_RATE,
    customer_id: Optional[str] = None,
) -> CalculationContext:
    """
    Load global factors, building profile and supplier prices.

    client is a CatalogClient (or anything with the same async methods).
    With a customer_id the customer's product prices and supplier
    agreements are applied to the supplier prices.
    """
    global_factors = await client.get_global_factors()

    building_profile = None
    if building_profile_id:
        building_profile = await client.get_building_profile(building_profile_id)
        if not building_profile:
            logger.warning(f"[Kalkia] Building profile {building_profile_id} not found, using defaults")

    supplier_prices: Dict[str, SupplierPrice] = {}
    if variant_ids:
        materials = await client.get_linked_materials(variant_ids)
        product_ids = list({m["supplier_product_id"] for m in materials if m.get("supplier_product_id")})
        products = await client.get_supplier_products_by_ids(product_ids)

        product_overrides, supplier_agreements = [], []
        if customer_id:
            supplier_agreements = await client.get_customer_supplier_prices(customer_id)
            product_overrides = await client.get_customer_product_prices(customer_id, product_ids)

        supplier_prices = build_supplier_prices(
            materials,
            products,
            customer_product_prices=product_overrides,
            customer_supplier_prices=supplier_agreements,
        )
        logger.info(f"[Kalkia] Loaded {len(supplier_prices)} supplier prices for {len(variant_ids)} variants")

    return CalculationContext(
        building_profile=building_profile,
        global_factors=global_factors,
        hourly_rate=hourly_rate,
        supplier_prices=supplier_prices,
    )
