"""
Learning Engine

Calibration from calculation feedback (estimated vs actual hours and
material cost, offer outcome, profitability, satisfaction):
- Accuracy and success metrics
- Component time calibration
- Suggested risk buffer per complexity score
- Auto-calibration candidates

The analysis functions are pure; the load_* helpers fetch rows through
the catalog client.
"""

import logging
from datetime import datetime, timezone
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, List, Any

from elta.models.constants import (
    LEARNING_MIN_SAMPLE_SIZE,
    LEARNING_HIGH_CONFIDENCE,
    LEARNING_SIGNIFICANT_VARIANCE_PERCENT,
)
from elta.services.pricing import round_half_up

logger = logging.getLogger(__name__)

# Indexed by complexity score 0-5
DEFAULT_RISK_BUFFERS = [0, 3, 5, 7.5, 10, 15]
DEFAULT_RISK_BUFFER = 5
MIN_FEEDBACK_FOR_BUFFER = 5
CALIBRATION_VARIANCE_PERCENT = 10
FULL_CONFIDENCE_SAMPLES = 10


@dataclass
class Adjustment:
    type: str  # time, material, margin, risk_buffer, complexity
    old_value: float
    new_value: float
    reason: str
    applied_at: str
    component: Optional[str] = None
    factor: Optional[str] = None


@dataclass
class LearningMetrics:
    total_calculations: int = 0
    completed_projects: int = 0
    avg_hours_variance: float = 0
    avg_material_variance: float = 0
    avg_price_accuracy: float = 100
    offer_acceptance_rate: float = 0
    project_profitability_rate: float = 0
    avg_customer_satisfaction: float = 0
    improving: bool = True
    recent_adjustments: List[Adjustment] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ComponentCalibration:
    code: str
    suggested_time_minutes: int
    current_time_minutes: int
    variance_percentage: float
    sample_size: int
    confidence: float


def _r1(value: float) -> float:
    return round_half_up(value, 1)


def _has(row: Dict[str, Any], *keys: str) -> bool:
    return all(row.get(k) is not None for k in keys)


def _variance(actual: float, estimated: float) -> float:
    return (actual - estimated) / estimated * 100


def _avg_abs_hours_variance(rows: List[Dict[str, Any]], default: float) -> float:
    if not rows:
        return default
    total = sum(abs(r["hours_variance_percentage"]) for r in rows if r.get("hours_variance_percentage") is not None)
    return total / len(rows)


# ============== Metrics ==============

def analyze_learning_metrics(
    feedback: List[Dict[str, Any]],
    recent_adjustments: Optional[List[Adjustment]] = None
) -> LearningMetrics:
    if not feedback:
        return LearningMetrics()

    with_hours = [f for f in feedback if _has(f, "actual_hours", "estimated_hours") and f["estimated_hours"]]
    with_materials = [
        f for f in feedback
        if _has(f, "actual_material_cost", "estimated_material_cost") and f["estimated_material_cost"]
    ]
    with_outcome = [f for f in feedback if f.get("offer_accepted") is not None]
    with_profit = [f for f in feedback if f.get("project_profitable") is not None]
    with_satisfaction = [f for f in feedback if f.get("customer_satisfaction") is not None]

    hours_variance = (
        sum(_variance(f["actual_hours"], f["estimated_hours"]) for f in with_hours) / len(with_hours)
        if with_hours else 0
    )
    material_variance = (
        sum(_variance(f["actual_material_cost"], f["estimated_material_cost"]) for f in with_materials)
        / len(with_materials)
        if with_materials else 0
    )
    acceptance_rate = (
        len([f for f in with_outcome if f["offer_accepted"]]) / len(with_outcome) * 100
        if with_outcome else 0
    )
    profitability_rate = (
        len([f for f in with_profit if f["project_profitable"]]) / len(with_profit) * 100
        if with_profit else 0
    )
    satisfaction = (
        sum(f["customer_satisfaction"] for f in with_satisfaction) / len(with_satisfaction)
        if with_satisfaction else 0
    )

    price_accuracy = 100 - abs(hours_variance) - abs(material_variance) / 2

    # Last 10 vs the 10 before
    ordered = sorted(feedback, key=lambda f: f.get("created_at") or "", reverse=True)
    recent_accuracy = _avg_abs_hours_variance(ordered[:10], 100)
    previous_accuracy = _avg_abs_hours_variance(ordered[10:20], 100)

    return LearningMetrics(
        total_calculations=len(feedback),
        completed_projects=len(with_hours),
        avg_hours_variance=_r1(hours_variance),
        avg_material_variance=_r1(material_variance),
        avg_price_accuracy=_r1(price_accuracy),
        offer_acceptance_rate=_r1(acceptance_rate),
        project_profitability_rate=_r1(profitability_rate),
        avg_customer_satisfaction=_r1(satisfaction),
        improving=recent_accuracy < previous_accuracy,
        recent_adjustments=recent_adjustments or [],
    )


def extract_adjustments(rows: List[Dict[str, Any]], limit: int = 10) -> List[Adjustment]:
    """Adjustments stored as adjustment_suggestions on feedback rows"""
    adjustments = []
    for row in rows[:limit]:
        suggestions = row.get("adjustment_suggestions")
        if not isinstance(suggestions, list):
            continue
        for s in suggestions:
            adjustments.append(Adjustment(
                type=s["type"],
                component=s.get("component"),
                factor=s.get("factor"),
                old_value=s["old_value"],
                new_value=s["new_value"],
                reason=s["reason"],
                applied_at=s.get("applied_at") or row.get("created_at"),
            ))
    return adjustments


# ============== Component Calibration ==============

def analyze_component_calibration(calculations: List[Dict[str, Any]]) -> List[ComponentCalibration]:
    """
    Spread each project's actual/estimated hours ratio over its components
    and suggest new per-unit times where the variance exceeds 10%.

    Each calculation needs: components, total_hours, actual_hours.
    """
    data: Dict[str, Dict[str, float]] = {}

    for calc in calculations:
        actual_hours = calc.get("actual_hours")
        estimated_hours = calc.get("total_hours")
        if not actual_hours or not estimated_hours:
            continue
        ratio = actual_hours / estimated_hours

        for component in calc.get("components") or []:
            estimated_minutes = component.get("time_minutes") or 30
            entry = data.setdefault(component["code"], {
                "total_estimated": 0,
                "total_actual": 0,
                "count": 0,
                "current_time": estimated_minutes / (component.get("quantity") or 1),
            })
            entry["total_estimated"] += estimated_minutes
            entry["total_actual"] += estimated_minutes * ratio
            entry["count"] += 1

    calibrations = []
    for code, entry in data.items():
        if entry["count"] < LEARNING_MIN_SAMPLE_SIZE:
            continue

        variance = _variance(entry["total_actual"], entry["total_estimated"])
        if abs(variance) > CALIBRATION_VARIANCE_PERCENT:
            calibrations.append(ComponentCalibration(
                code=code,
                suggested_time_minutes=round_half_up(entry["current_time"] * (1 + variance / 100)),
                current_time_minutes=round_half_up(entry["current_time"]),
                variance_percentage=_r1(variance),
                sample_size=int(entry["count"]),
                confidence=min(entry["count"] / FULL_CONFIDENCE_SAMPLES, 1),
            ))

    return sorted(calibrations, key=lambda c: abs(c.variance_percentage), reverse=True)


# ============== Risk Buffer ==============

def get_default_risk_buffer(complexity_score: int) -> float:
    if 0 <= complexity_score < len(DEFAULT_RISK_BUFFERS):
        return DEFAULT_RISK_BUFFERS[complexity_score] or DEFAULT_RISK_BUFFER
    return DEFAULT_RISK_BUFFER


def get_suggested_risk_buffer(complexity_score: int, feedback: List[Dict[str, Any]]) -> float:
    """
    Buffer covering 80% of historic overruns, scaled 10% per complexity
    point away from 3. Falls back to per-complexity defaults with fewer
    than 5 feedback rows.
    """
    rows = [f for f in feedback if f.get("hours_variance_percentage") is not None]
    if len(rows) < MIN_FEEDBACK_FOR_BUFFER:
        return get_default_risk_buffer(complexity_score)

    overruns = sorted(
        v for v in (
            max(f.get("hours_variance_percentage") or 0, f.get("material_variance_percentage") or 0)
            for f in rows
        )
        if v > 0
    )
    if not overruns:
        return DEFAULT_RISK_BUFFER

    p80 = overruns[int(len(overruns) * 0.8)]
    complexity_factor = 1 + (complexity_score - 3) * 0.1

    return _r1(p80 * complexity_factor)


# ============== Auto-Calibration ==============

def auto_calibrate(calibrations: List[ComponentCalibration]) -> List[Adjustment]:
    """Time adjustments for confident calibrations with >15% variance"""
    now = datetime.now(timezone.utc).isoformat()
    adjustments = []

    for cal in calibrations:
        if cal.confidence >= LEARNING_HIGH_CONFIDENCE and abs(cal.variance_percentage) > LEARNING_SIGNIFICANT_VARIANCE_PERCENT:
            direction = "underestimering" if cal.variance_percentage > 0 else "overestimering"
            adjustments.append(Adjustment(
                type="time",
                component=cal.code,
                old_value=cal.current_time_minutes,
                new_value=cal.suggested_time_minutes,
                reason=f"{cal.sample_size} projekter viste {direction} på {abs(cal.variance_percentage)}%",
                applied_at=now,
            ))

    for adjustment in adjustments:
        record_adjustment(adjustment)
    return adjustments


def record_adjustment(adjustment: Adjustment) -> None:
    logger.info(f"[Learning] Calibration adjustment: {adjustment.type} {adjustment.component or adjustment.factor}")


# ============== Loading ==============

async def load_learning_metrics(client) -> LearningMetrics:
    feedback = await client.get_calculation_feedback()
    adjustments = extract_adjustments([f for f in feedback if f.get("adjustment_suggestions")])
    return analyze_learning_metrics(feedback, adjustments)


async def load_component_calibration(client) -> List[ComponentCalibration]:
    calculations = await client.get_calculations_with_feedback()
    return analyze_component_calibration(calculations)


async def load_suggested_risk_buffer(client, complexity_score: int) -> float:
    feedback = await client.get_calculation_feedback()
    return get_suggested_risk_buffer(complexity_score, feedback)
