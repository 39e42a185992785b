"""
Auto-Project Calculation Engine

Time and price for an interpreted project:
- Base time from matched components, grouped by category
- Complexity, size and accessibility multipliers
- Material and labor cost, margin and risk buffer
"""

import math
from dataclasses import dataclass, field, asdict, replace
from typing import Optional, Dict, List, Any

from elta.estimation.interpreter import ProjectInterpretation
from elta.services.pricing import round_half_up, format_dkk


CALCULATION_VERSION = "v2.0"

DEFAULT_HOURLY_RATE = 450
DEFAULT_MARGIN_PERCENTAGE = 25
DEFAULT_RISK_BUFFER_PERCENTAGE = 5
HOURS_PER_WORKDAY = 7.5

# (max m², factor)
SIZE_FACTORS = [
    (50, 0.9),
    (100, 1.0),
    (150, 1.05),
    (200, 1.1),
    (300, 1.15),
    (math.inf, 1.2),
]

COMPLEXITY_WEIGHTS = {
    "material": 0.5,
    "building": 0.3,
    "access": 0.15,
    "electrical": 0.05,
}

CATEGORY_NAMES = {
    "outlet": "Stikkontakter",
    "switch": "Afbrydere",
    "lighting": "Belysning",
    "power": "Kraftinstallation",
    "data": "Data/TV",
    "panel": "Tavlearbejde",
}


@dataclass
class TimeCalculation:
    base_hours: float
    complexity_multiplier: float
    size_multiplier: float
    accessibility_multiplier: float
    total_hours: float
    breakdown: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class PriceCalculation:
    material_cost: float
    labor_cost: float
    subtotal: float
    margin_percentage: float
    margin_amount: float
    risk_buffer_percentage: float
    risk_buffer_amount: float
    total_price: float
    hourly_rate: float
    discount_percentage: Optional[float] = None
    discount_amount: Optional[float] = None
    final_price: Optional[float] = None


@dataclass
class AutoCalculation:
    interpretation_id: Optional[str]
    components: List[Dict[str, Any]]
    materials: List[Dict[str, Any]]
    time: TimeCalculation
    price: PriceCalculation
    calculation_version: str = CALCULATION_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _r2(value: float) -> float:
    return round_half_up(value, 2)


# ============== Time ==============

def calculate_size_multiplier(size_m2: Optional[float]) -> float:
    size = size_m2 or 100
    for max_size, factor in SIZE_FACTORS:
        if size <= max_size:
            return factor
    return 1.2


def calculate_complexity_multiplier(factors: List[Dict[str, Any]]) -> float:
    """
    Weighted average of the highest multiplier per category. Only 80% of
    the deviation from 1.0 is applied.
    """
    if not factors:
        return 1.0

    by_category: Dict[str, List[float]] = {}
    for factor in factors:
        by_category.setdefault(factor.get("category") or "other", []).append(factor["multiplier"])

    total_weight = 0.0
    weighted_sum = 0.0
    for category, multipliers in by_category.items():
        weight = COMPLEXITY_WEIGHTS.get(category, 0.1)
        total_weight += weight
        weighted_sum += weight * max(multipliers)

    if total_weight == 0:
        return 1.0

    deviation = weighted_sum / total_weight - 1.0
    return 1.0 + deviation * 0.8


def calculate_accessibility_multiplier(factors: List[Dict[str, Any]]) -> float:
    """Access factors stack at 70% each, capped at 1.5"""
    multiplier = 1.0
    for factor in factors:
        if factor.get("category") == "access":
            multiplier += (factor["multiplier"] - 1.0) * 0.7
    return min(multiplier, 1.5)


def calculate_base_hours(components: List[Dict[str, Any]]):
    category_minutes: Dict[str, float] = {}
    for component in components:
        category = component.get("category") or "other"
        category_minutes[category] = category_minutes.get(category, 0) + component["time_minutes"]

    breakdown = [
        {
            "category": category,
            "hours": _r2(minutes / 60),
            "description": CATEGORY_NAMES.get(category, category),
        }
        for category, minutes in category_minutes.items()
    ]
    return sum(category_minutes.values()) / 60, breakdown


def calculate_time(components: List[Dict[str, Any]], interpretation: ProjectInterpretation) -> TimeCalculation:
    base_hours, breakdown = calculate_base_hours(components)

    complexity = calculate_complexity_multiplier(interpretation.complexity_factors)
    size = calculate_size_multiplier(interpretation.building_size_m2)
    accessibility = calculate_accessibility_multiplier(interpretation.complexity_factors)

    return TimeCalculation(
        base_hours=_r2(base_hours),
        complexity_multiplier=_r2(complexity),
        size_multiplier=_r2(size),
        accessibility_multiplier=_r2(accessibility),
        total_hours=_r2(base_hours * complexity * size * accessibility),
        breakdown=breakdown,
    )


# ============== Price ==============

def calculate_price(
    materials: List[Dict[str, Any]],
    time: TimeCalculation,
    hourly_rate: Optional[float] = None,
    margin_percentage: Optional[float] = None,
    risk_buffer_percentage: Optional[float] = None
) -> PriceCalculation:
    """Margin and risk buffer are both taken on material cost + labor"""
    hourly_rate = hourly_rate or DEFAULT_HOURLY_RATE
    margin_percentage = margin_percentage or DEFAULT_MARGIN_PERCENTAGE
    risk_buffer_percentage = risk_buffer_percentage or DEFAULT_RISK_BUFFER_PERCENTAGE

    material_cost = sum(m["total_cost"] for m in materials)
    labor_cost = time.total_hours * hourly_rate
    subtotal = material_cost + labor_cost
    margin_amount = subtotal * margin_percentage / 100
    risk_buffer_amount = subtotal * risk_buffer_percentage / 100

    return PriceCalculation(
        material_cost=_r2(material_cost),
        labor_cost=_r2(labor_cost),
        subtotal=_r2(subtotal),
        margin_percentage=margin_percentage,
        margin_amount=_r2(margin_amount),
        risk_buffer_percentage=risk_buffer_percentage,
        risk_buffer_amount=_r2(risk_buffer_amount),
        total_price=_r2(subtotal + margin_amount + risk_buffer_amount),
        hourly_rate=hourly_rate,
    )


def calculate_project(
    components: List[Dict[str, Any]],
    materials: List[Dict[str, Any]],
    interpretation: ProjectInterpretation,
    interpretation_id: Optional[str] = None,
    hourly_rate: Optional[float] = None,
    margin_percentage: Optional[float] = None,
    risk_buffer_percentage: Optional[float] = None
) -> AutoCalculation:
    time = calculate_time(components, interpretation)
    price = calculate_price(materials, time, hourly_rate, margin_percentage, risk_buffer_percentage)
    return AutoCalculation(
        interpretation_id=interpretation_id,
        components=components,
        materials=materials,
        time=time,
        price=price,
    )


def adjust_price_for_risk(price: PriceCalculation, risk_score: int) -> PriceCalculation:
    """Risk buffer grows 2.5% per risk point above 1"""
    adjusted_buffer = price.risk_buffer_percentage * (1 + (risk_score - 1) * 0.025)

    subtotal = price.material_cost + price.labor_cost
    margin_amount = subtotal * price.margin_percentage / 100
    risk_buffer_amount = subtotal * adjusted_buffer / 100

    return replace(
        price,
        risk_buffer_percentage=_r2(adjusted_buffer),
        risk_buffer_amount=_r2(risk_buffer_amount),
        total_price=_r2(subtotal + margin_amount + risk_buffer_amount),
    )


def apply_discount(price: PriceCalculation, discount_percentage: float) -> PriceCalculation:
    discount_amount = price.total_price * discount_percentage / 100
    return replace(
        price,
        discount_percentage=discount_percentage,
        discount_amount=_r2(discount_amount),
        final_price=_r2(price.total_price - discount_amount),
    )


# ============== Formatting ==============

def format_currency(amount: float) -> str:
    return format_dkk(amount, 0)


def format_hours(hours: float) -> str:
    if hours < 1:
        return f"{round_half_up(hours * 60)} min"

    whole_hours = math.floor(hours)
    minutes = round_half_up((hours - whole_hours) * 60)
    if minutes == 0:
        return f"{whole_hours} timer"
    return f"{whole_hours}t {minutes}min"


def estimate_workdays(hours: float, hours_per_day: float = HOURS_PER_WORKDAY) -> int:
    return math.ceil(hours / hours_per_day)
