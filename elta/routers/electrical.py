"""
Electrical Endpoints

Cable sizing, load analysis, panel configuration and full project
calculation to DS/HD 60364.
"""

import logging
from dataclasses import asdict
from fastapi import APIRouter, HTTPException, Query

from elta.models.schemas import CableSizeRequest, LoadRequest, ElectricalProjectRequest
from elta.services.electrical_engine import (
    calculate_cable_size,
    calculate_load,
    configure_panel_from_loads,
    calculate_electrical_project,
    select_breaker_rating,
    select_cable_for_breaker,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/cable-size")
async def cable_size(request: CableSizeRequest):
    """Minimum cross-section by current capacity and voltage drop"""
    return asdict(calculate_cable_size(**request.model_dump()))


@router.get("/breaker")
async def breaker_for_current(
    current: float = Query(..., gt=0, description="Design current in A")
):
    """Standard breaker rating and matching cable for a design current"""
    rating = select_breaker_rating(current)
    return {"current": current, "breaker_rating": rating, "cable_mm2": select_cable_for_breaker(rating)}


@router.post("/load")
async def load_analysis(request: LoadRequest):
    """Connected and demand load, phase balance and supply fuse"""
    return asdict(calculate_load(
        [load.model_dump() for load in request.loads],
        request.phase,
        request.building_type,
    ))


@router.post("/panel")
async def panel_configuration(request: ElectricalProjectRequest):
    """Circuits, RCD groups and panel components from room loads"""
    rooms = [room.model_dump() for room in request.rooms]
    return asdict(configure_panel_from_loads(rooms, request.supply_phase, request.is_renovation))


@router.post("/project")
async def electrical_project(request: ElectricalProjectRequest):
    """Load analysis, panel, cable sizing and compliance for a whole project"""
    try:
        result = calculate_electrical_project(
            rooms=[room.model_dump() for room in request.rooms],
            supply_phase=request.supply_phase,
            building_type=request.building_type,
            is_renovation=request.is_renovation,
            existing_main_fuse_a=request.existing_main_fuse_a,
            default_installation_method=request.default_installation_method,
            max_cable_run_m=request.max_cable_run_m,
        )
        return asdict(result)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Electrical project error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Calculation error: {str(e)}")
