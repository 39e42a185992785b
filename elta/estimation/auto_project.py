"""
Auto Project Engine

Runs the full estimation pipeline for a project description:
interpret -> match components -> calculate -> analyze risks -> offer text.
"""

import time
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Callable

from elta.estimation.interpreter import interpret_project
from elta.estimation.component_matcher import (
    match_components,
    fetch_database_components,
    to_calculation_components,
    to_calculation_materials,
)
from elta.estimation.calculation_engine import calculate_project, adjust_price_for_risk
from elta.estimation.risk_analysis import analyze_risks
from elta.estimation.offer_generator import generate_offer_text

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_THRESHOLD = 0.4
LOW_MATCH_CONFIDENCE_THRESHOLD = 0.5
RISK_ADJUSTMENT_SCORE = 4

ProgressCallback = Callable[[Dict[str, Any]], None]


def report_progress(callback: Optional[ProgressCallback], stage: str, progress: int, message: str) -> None:
    if callback:
        callback({"stage": stage, "progress": progress, "message": message})


def _stamp(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}"


async def analyze_project(
    description: str,
    client=None,
    hourly_rate: Optional[float] = None,
    margin_percentage: Optional[float] = None,
    risk_buffer_percentage: Optional[float] = None,
    customer_name: Optional[str] = None,
    project_address: Optional[str] = None,
    on_progress: Optional[ProgressCallback] = None
) -> Dict[str, Any]:
    """
    Analyze a project description end to end.

    When a catalog client is given, calc_components rows override the
    built-in component prices and times.

    Returns:
        {success, data, error, warnings, processing_time_ms}
    """
    started = time.monotonic()
    warnings = []

    try:
        report_progress(on_progress, "interpreting", 10, "Analyserer projektbeskrivelse...")
        interpreted = interpret_project(description)
        interpretation = interpreted.interpretation
        warnings.extend(interpreted.warnings)

        if interpreted.confidence < LOW_CONFIDENCE_THRESHOLD:
            warnings.append("Lav fortolkningssikkerhed. Resultatet kan være upræcist.")

        interpretation_id = _stamp("temp")

        report_progress(on_progress, "matching", 30, "Finder komponenter og materialer...")
        db_components = await fetch_database_components(client) if client is not None else {}
        match = match_components(interpretation, db_components)
        components = to_calculation_components(match.components)
        materials = to_calculation_materials(match.materials)

        if match.match_confidence < LOW_MATCH_CONFIDENCE_THRESHOLD:
            warnings.append("Mange komponenter blev estimeret. Tjek priser manuelt.")

        report_progress(on_progress, "calculating", 50, "Beregner tid og pris...")
        calculation = calculate_project(
            components,
            materials,
            interpretation,
            interpretation_id=interpretation_id,
            hourly_rate=hourly_rate,
            margin_percentage=margin_percentage,
            risk_buffer_percentage=risk_buffer_percentage,
        )
        calculation_id = _stamp("calc")

        report_progress(on_progress, "analyzing_risks", 70, "Analyserer risici...")
        risk_analysis = analyze_risks(interpretation, calculation.price)

        if risk_analysis.overall_score >= RISK_ADJUSTMENT_SCORE:
            calculation.price = adjust_price_for_risk(calculation.price, risk_analysis.overall_score)
            warnings.append("Pris justeret opad pga. forhøjet risikoniveau.")

        report_progress(on_progress, "generating_text", 85, "Genererer tilbudstekst...")
        offer_text = generate_offer_text(
            interpretation,
            calculation,
            risk_analysis,
            customer_name=customer_name,
            project_address=project_address,
            calculation_id=calculation_id,
        )

        report_progress(on_progress, "complete", 100, "Analyse fuldført!")

        now = datetime.now(timezone.utc).isoformat()
        return {
            "success": True,
            "data": {
                "interpretation": {**interpretation.to_dict(), "id": interpretation_id, "created_at": now},
                "calculation": {**calculation.to_dict(), "id": calculation_id, "calculated_at": now},
                "risks": risk_analysis.risks,
                "risk_analysis": risk_analysis.to_dict(),
                "offer_text": {**offer_text.to_dict(), "id": _stamp("offer"), "generated_at": now},
            },
            "error": None,
            "warnings": warnings,
            "processing_time_ms": int((time.monotonic() - started) * 1000),
        }

    except Exception as e:
        logger.error(f"[AutoProject] Analysis failed: {e}", exc_info=True)
        return {
            "success": False,
            "data": None,
            "error": str(e) or "Ukendt fejl under analyse",
            "warnings": warnings,
            "processing_time_ms": int((time.monotonic() - started) * 1000),
        }


async def quick_analyze(description: str, client=None) -> Dict[str, Any]:
    """Headline numbers without risk analysis or offer text"""
    interpretation = interpret_project(description).interpretation

    db_components = await fetch_database_components(client) if client is not None else {}
    match = match_components(interpretation, db_components)
    calculation = calculate_project(
        to_calculation_components(match.components),
        to_calculation_materials(match.materials),
        interpretation,
        interpretation_id="quick",
    )

    return {
        "building_type": interpretation.building_type,
        "size_m2": interpretation.building_size_m2,
        "total_points": sum(v or 0 for v in interpretation.electrical_points.values()),
        "estimated_hours": calculation.time.total_hours,
        "estimated_price": calculation.price.total_price,
        "complexity_score": interpretation.complexity_score,
        "risk_score": interpretation.risk_score,
    }
