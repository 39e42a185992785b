"""
Solar Calculator

Product-driven solar system calculation: price build-up, 25-year production
and savings projection, payback and CO2. Also the small ROI and job
estimate helpers used by the quick calculators.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, List, Any

from elta.services.pricing import round_half_up

logger = logging.getLogger(__name__)


VAT_RATE = 0.25

DEFAULT_SOLAR_ASSUMPTIONS = {
    "annual_sun_hours": 1000,
    "annual_degradation": 0.005,
    "electricity_price": 2.5,  # DKK/kWh
    "electricity_price_increase": 0.03,
    "feed_in_tariff": 0.8,  # DKK/kWh for exported power
    "self_consumption_ratio": 0.3,
    "self_consumption_ratio_with_battery": 0.7,
    "labor_cost_per_hour": 450,
    "base_installation_cost": 15000,
    "system_lifetime": 25,
    "co2_factor": 0.4,  # kg CO2 per kWh
}

# Built-in catalog, used when no solar_products rows are available
DEFAULT_SOLAR_PRODUCTS = {
    "panels": [
        {"code": "PANEL-STD", "name": "Standard (400W)", "price": 1200,
         "specifications": {"wattage": 400, "efficiency": 0.20}},
        {"code": "PANEL-PREMIUM", "name": "Premium (450W)", "price": 1600,
         "specifications": {"wattage": 450, "efficiency": 0.22}},
        {"code": "PANEL-HIGH-EFF", "name": "High Efficiency (500W)", "price": 2200,
         "specifications": {"wattage": 500, "efficiency": 0.24}},
    ],
    "inverters": [
        {"code": "INV-STRING-3KW", "name": "String Inverter 3kW", "price": 8000,
         "specifications": {"capacity": 3, "efficiency": 0.97, "inverter_type": "string"}},
        {"code": "INV-STRING-5KW", "name": "String Inverter 5kW", "price": 12000,
         "specifications": {"capacity": 5, "efficiency": 0.97, "inverter_type": "string"}},
        {"code": "INV-STRING-8KW", "name": "String Inverter 8kW", "price": 18000,
         "specifications": {"capacity": 8, "efficiency": 0.97, "inverter_type": "string"}},
        {"code": "INV-STRING-10KW", "name": "String Inverter 10kW", "price": 22000,
         "specifications": {"capacity": 10, "efficiency": 0.97, "inverter_type": "string"}},
        {"code": "INV-HYBRID-5KW", "name": "Hybrid Inverter 5kW", "price": 18000,
         "specifications": {"capacity": 5, "efficiency": 0.96, "inverter_type": "hybrid"}},
        {"code": "INV-HYBRID-10KW", "name": "Hybrid Inverter 10kW", "price": 32000,
         "specifications": {"capacity": 10, "efficiency": 0.96, "inverter_type": "hybrid"}},
    ],
    "mountings": [
        {"code": "MOUNT-TILE", "name": "Tegltag", "price": 0,
         "specifications": {"price_per_panel": 400, "labor_hours_per_panel": 0.5}},
        {"code": "MOUNT-FLAT", "name": "Fladt tag", "price": 0,
         "specifications": {"price_per_panel": 600, "labor_hours_per_panel": 0.6}},
        {"code": "MOUNT-METAL", "name": "Metaltag", "price": 0,
         "specifications": {"price_per_panel": 350, "labor_hours_per_panel": 0.4}},
        {"code": "MOUNT-GROUND", "name": "Jordmontering", "price": 0,
         "specifications": {"price_per_panel": 800, "labor_hours_per_panel": 0.8}},
    ],
    "batteries": [
        {"code": "BAT-NONE", "name": "Ingen batteri", "price": 0, "specifications": {"capacity": 0}},
        {"code": "BAT-5KWH", "name": "5 kWh batteri", "price": 35000, "specifications": {"capacity": 5}},
        {"code": "BAT-10KWH", "name": "10 kWh batteri", "price": 60000, "specifications": {"capacity": 10}},
        {"code": "BAT-15KWH", "name": "15 kWh batteri", "price": 85000, "specifications": {"capacity": 15}},
    ],
}


@dataclass
class SolarCalculatorContext:
    assumptions: Dict[str, float]
    panel: Dict[str, Any]
    inverter: Dict[str, Any]
    mounting: Dict[str, Any]
    battery: Dict[str, Any]


@dataclass
class YearlyProjection:
    year: int
    production: int
    savings: int
    cumulative_savings: int
    system_value: int


@dataclass
class SolarCalculationResult:
    system_size: float  # kWp
    annual_production: int  # kWh, first year
    panels_cost: float
    inverter_cost: float
    mounting_cost: float
    battery_cost: float
    labor_cost: int
    installation_cost: float
    subtotal: float
    margin: int
    discount: int
    total_before_vat: int
    vat: int
    total_price: int
    price_per_wp: float
    annual_savings: int
    self_consumption_savings: int
    feed_in_income: int
    payback_years: int
    roi_25_years: int
    co2_savings_per_year: int
    yearly_projections: List[YearlyProjection] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def group_solar_products(rows: List[Dict]) -> Dict[str, List[Dict]]:
    """Group solar_products rows by product_type"""
    grouped = {"panels": [], "inverters": [], "mountings": [], "batteries": []}
    type_map = {"panel": "panels", "inverter": "inverters", "mounting": "mountings", "battery": "batteries"}
    for row in rows:
        key = type_map.get(row.get("product_type"))
        if key:
            grouped[key].append(row)
    return grouped


def build_calculator_context(
    products_by_type: Dict[str, List[Dict]],
    selections: Dict[str, str],
    assumptions: Optional[Dict[str, float]] = None,
) -> Optional[SolarCalculatorContext]:
    """
    Resolve the selected product codes.

    Returns None when any of panel, inverter, mounting or battery is missing.
    """
    def find(group: str, code_key: str) -> Optional[Dict]:
        code = selections.get(code_key)
        return next((p for p in products_by_type.get(group, []) if p.get("code") == code), None)

    panel = find("panels", "panel_code")
    inverter = find("inverters", "inverter_code")
    mounting = find("mountings", "mounting_code")
    battery = find("batteries", "battery_code")

    if not panel or not inverter or not mounting or not battery:
        logger.error(
            f"[Solar] Missing products for calculator context: panel={selections.get('panel_code')} "
            f"inverter={selections.get('inverter_code')} mounting={selections.get('mounting_code')} "
            f"battery={selections.get('battery_code')}"
        )
        return None

    return SolarCalculatorContext(
        assumptions={**DEFAULT_SOLAR_ASSUMPTIONS, **(assumptions or {})},
        panel=panel,
        inverter=inverter,
        mounting=mounting,
        battery=battery,
    )


def calculate_solar_system(
    panel_count: int,
    context: SolarCalculatorContext,
    margin: float = 0.25,
    discount: float = 0,
    include_vat: bool = True,
) -> SolarCalculationResult:
    """
    Calculate price and 25-year projection for a solar installation.

    margin and discount are fractions (0.25 = 25 %). Production uses the
    panel wattage as the rated output, derated by the inverter efficiency.
    """
    a = context.assumptions
    panel_specs = context.panel.get("specifications", {})
    inverter_specs = context.inverter.get("specifications", {})
    mounting_specs = context.mounting.get("specifications", {})
    battery_specs = context.battery.get("specifications", {})

    system_size = panel_specs.get("wattage", 0) * panel_count / 1000
    base_production = system_size * a["annual_sun_hours"] * inverter_specs.get("efficiency", 1)

    panels_cost = context.panel.get("price", 0) * panel_count
    inverter_cost = context.inverter.get("price", 0)
    mounting_cost = mounting_specs.get("price_per_panel", 0) * panel_count
    battery_cost = context.battery.get("price", 0)
    labor_hours = mounting_specs.get("labor_hours_per_panel", 0) * panel_count
    labor_cost = labor_hours * a["labor_cost_per_hour"]
    installation_cost = a["base_installation_cost"]

    subtotal = panels_cost + inverter_cost + mounting_cost + battery_cost + labor_cost + installation_cost

    margin_amount = subtotal * margin
    discount_amount = (subtotal + margin_amount) * discount
    total_before_vat = subtotal + margin_amount - discount_amount
    vat_amount = total_before_vat * VAT_RATE if include_vat else 0
    total_price = total_before_vat + vat_amount
    price_per_wp = total_price / (system_size * 1000) if system_size > 0 else 0

    if battery_specs.get("capacity", 0) > 0:
        self_consumption = a["self_consumption_ratio_with_battery"]
    else:
        self_consumption = a["self_consumption_ratio"]

    lifetime = int(a["system_lifetime"])
    projections: List[YearlyProjection] = []
    cumulative = 0.0

    for year in range(1, lifetime + 1):
        production = base_production * (1 - a["annual_degradation"]) ** (year - 1)
        electricity_price = a["electricity_price"] * (1 + a["electricity_price_increase"]) ** (year - 1)

        year_savings = (
            production * self_consumption * electricity_price
            + production * (1 - self_consumption) * a["feed_in_tariff"]
        )
        cumulative += year_savings

        projections.append(YearlyProjection(
            year=year,
            production=round_half_up(production),
            savings=round_half_up(year_savings),
            cumulative_savings=round_half_up(cumulative),
            system_value=round_half_up(total_price * (1 - year / lifetime)),
        ))

    annual_production = projections[0].production if projections else 0
    annual_savings = projections[0].savings if projections else 0

    self_consumption_savings = annual_production * self_consumption * a["electricity_price"]
    feed_in_income = annual_production * (1 - self_consumption) * a["feed_in_tariff"]

    payback_years = next(
        (p.year for p in projections if p.cumulative_savings >= total_price),
        lifetime,
    )
    roi = 0
    if projections and total_price > 0:
        roi = (projections[-1].cumulative_savings - total_price) / total_price * 100

    return SolarCalculationResult(
        system_size=round_half_up(system_size, 2),
        annual_production=round_half_up(annual_production),
        panels_cost=panels_cost,
        inverter_cost=inverter_cost,
        mounting_cost=mounting_cost,
        battery_cost=battery_cost,
        labor_cost=round_half_up(labor_cost),
        installation_cost=installation_cost,
        subtotal=subtotal,
        margin=round_half_up(margin_amount),
        discount=round_half_up(discount_amount),
        total_before_vat=round_half_up(total_before_vat),
        vat=round_half_up(vat_amount),
        total_price=round_half_up(total_price),
        price_per_wp=round_half_up(price_per_wp, 2),
        annual_savings=round_half_up(annual_savings),
        self_consumption_savings=round_half_up(self_consumption_savings),
        feed_in_income=round_half_up(feed_in_income),
        payback_years=payback_years,
        roi_25_years=round_half_up(roi),
        co2_savings_per_year=round_half_up(annual_production * a["co2_factor"]),
        yearly_projections=projections,
    )


# ============== ROI & Quick Estimates ==============

def calculate_roi(investment_amount: float, annual_benefit: float, project_life_years: int = 25) -> Dict[str, float]:
    payback_years = investment_amount / annual_benefit if annual_benefit > 0 else 0
    total_benefit = annual_benefit * project_life_years
    simple_roi = (total_benefit - investment_amount) / investment_amount * 100 if investment_amount > 0 else 0

    return {
        "investment_amount": investment_amount,
        "payback_years": payback_years,
        "simple_roi": simple_roi,
        "estimated_annual_benefit": annual_benefit,
        "project_life_years": project_life_years,
    }


def calculate_solar_roi(
    investment_amount: float,
    annual_production: float,
    electricity_price: float,
    self_consumption_rate: float = 30,
) -> Dict[str, float]:
    """Solar ROI where exported power earns 40 % of the retail price"""
    self_consumed = annual_production * (self_consumption_rate / 100)
    exported = annual_production - self_consumed
    spot_price = electricity_price * 0.4
    annual_savings = self_consumed * electricity_price + exported * spot_price

    result = calculate_roi(investment_amount, annual_savings, 25)
    result.update({
        "annual_production": annual_production,
        "self_consumption_rate": self_consumption_rate,
        "annual_savings": annual_savings,
        "total_savings_25_years": annual_savings * 25,
        "co2_reduction": annual_production * 0.3,  # kg, ~300 g/kWh in Denmark
    })
    return result


def calculate_electrician_job(
    hours: float,
    hourly_rate: float,
    materials_cost: float,
    materials_markup: float,
) -> Dict[str, float]:
    labor_total = hours * hourly_rate
    materials_total = materials_cost * (1 + materials_markup / 100)
    return {
        "labor_total": labor_total,
        "materials_total": materials_total,
        "grand_total": labor_total + materials_total,
    }


def calculate_contribution_margin(revenue: float, variable_costs: float) -> Dict[str, float]:
    contribution_margin = revenue - variable_costs
    ratio = contribution_margin / revenue * 100 if revenue > 0 else 0
    return {"contribution_margin": contribution_margin, "contribution_margin_ratio": ratio}


def calculate_gross_profit(revenue: float, total_costs: float) -> Dict[str, float]:
    gross_profit = revenue - total_costs
    margin = gross_profit / revenue * 100 if revenue > 0 else 0
    return {"gross_profit": gross_profit, "gross_profit_margin": margin}
