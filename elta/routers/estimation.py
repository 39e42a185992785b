"""
Estimation Endpoints

Auto-project analysis from a free-text description, and the learning
loop over calculation feedback.
"""

import logging
from dataclasses import asdict
from typing import Optional
from fastapi import APIRouter, HTTPException, Query

from elta.models.schemas import AnalyzeProjectRequest, QuickAnalyzeRequest, CalculationFeedbackRequest
from elta.estimation import analyze_project, quick_analyze
from elta.estimation.learning_engine import (
    load_learning_metrics,
    load_component_calibration,
    load_suggested_risk_buffer,
    auto_calibrate,
)
from elta.sync.catalog_client import CatalogClient, get_catalog_client

logger = logging.getLogger(__name__)

router = APIRouter()


def _optional_catalog() -> Optional[CatalogClient]:
    """Catalog for component prices; the analysis falls back to defaults without it"""
    try:
        return get_catalog_client()
    except ValueError as e:
        logger.warning(f"[Estimation] Catalog unavailable, using default components: {e}")
        return None


def _variance(actual: Optional[float], estimated: Optional[float]) -> Optional[float]:
    if actual is None or not estimated:
        return None
    return round((actual - estimated) / estimated * 100, 1)


@router.post("/analyze")
async def analyze(request: AnalyzeProjectRequest):
    """
    Full analysis: interpretation, components, time and price, risks and
    a generated offer text.
    """
    result = await analyze_project(
        request.description,
        client=_optional_catalog(),
        hourly_rate=request.hourly_rate,
        margin_percentage=request.margin_percentage,
        risk_buffer_percentage=request.risk_buffer_percentage,
        customer_name=request.customer_name,
        project_address=request.project_address,
    )
    if not result["success"]:
        raise HTTPException(status_code=500, detail=result["error"])
    return result


@router.post("/quick")
async def quick(request: QuickAnalyzeRequest):
    """Headline numbers only"""
    try:
        return await quick_analyze(request.description, client=_optional_catalog())
    except Exception as e:
        logger.error(f"Quick analysis error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Analysis error: {str(e)}")


@router.get("/learning/metrics")
async def learning_metrics():
    try:
        metrics = await load_learning_metrics(get_catalog_client())
        return metrics.to_dict()
    except Exception as e:
        logger.error(f"Learning metrics error: {e}")
        raise HTTPException(status_code=500, detail=f"Learning error: {str(e)}")


@router.get("/learning/calibration")
async def learning_calibration(
    apply: bool = Query(default=False, description="Return auto-calibration adjustments too")
):
    """Components whose estimated time deviates from actual time"""
    try:
        calibrations = await load_component_calibration(get_catalog_client())
        response = {"calibrations": [asdict(c) for c in calibrations]}
        if apply:
            response["adjustments"] = [asdict(a) for a in auto_calibrate(calibrations)]
        return response
    except Exception as e:
        logger.error(f"Calibration error: {e}")
        raise HTTPException(status_code=500, detail=f"Learning error: {str(e)}")


@router.get("/learning/risk-buffer")
async def learning_risk_buffer(
    complexity_score: int = Query(..., ge=0, le=5, description="Project complexity 0-5")
):
    try:
        buffer = await load_suggested_risk_buffer(get_catalog_client(), complexity_score)
        return {"complexity_score": complexity_score, "risk_buffer_percentage": buffer}
    except Exception as e:
        logger.error(f"Risk buffer error: {e}")
        raise HTTPException(status_code=500, detail=f"Learning error: {str(e)}")


@router.post("/feedback")
async def calculation_feedback(request: CalculationFeedbackRequest):
    """Record how a project actually went"""
    data = request.model_dump()
    data["hours_variance_percentage"] = _variance(request.actual_hours, request.estimated_hours)
    data["material_variance_percentage"] = _variance(request.actual_material_cost, request.estimated_material_cost)

    try:
        feedback_id = await get_catalog_client().insert_calculation_feedback(data)
        return {"id": feedback_id, **data}
    except Exception as e:
        logger.error(f"Feedback error: {e}")
        raise HTTPException(status_code=500, detail=f"Database error: {str(e)}")
