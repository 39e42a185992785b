"""
Solar Endpoints

Solar system pricing and production, ROI and simple electrician job
calculations.
"""

import logging
from fastapi import APIRouter, HTTPException

from elta.models.schemas import SolarCalculationRequest, SolarROIRequest, ElectricianJobRequest
from elta.services.solar_calculator import (
    DEFAULT_SOLAR_PRODUCTS,
    group_solar_products,
    build_calculator_context,
    calculate_solar_system,
    calculate_solar_roi,
    calculate_electrician_job,
)
from elta.sync.catalog_client import get_catalog_client

logger = logging.getLogger(__name__)

router = APIRouter()


async def _products():
    """Catalog rows grouped by type, the built-in products when the table is empty"""
    rows = await get_catalog_client().get_solar_products()
    return group_solar_products(rows) if rows else DEFAULT_SOLAR_PRODUCTS


@router.get("/products")
async def solar_products():
    """Active solar products grouped by type"""
    try:
        return await _products()
    except Exception as e:
        logger.error(f"Solar products error: {e}")
        raise HTTPException(status_code=500, detail=f"Database error: {str(e)}")


@router.post("/calculate")
async def solar_calculation(request: SolarCalculationRequest):
    """
    Price, production and payback for a solar system.

    The panel, inverter, mounting and battery codes must exist among the
    active solar products.
    """
    try:
        context = build_calculator_context(
            await _products(),
            {
                "panel_code": request.panel_code,
                "inverter_code": request.inverter_code,
                "mounting_code": request.mounting_code,
                "battery_code": request.battery_code,
            },
            request.assumptions,
        )
        if context is None:
            raise HTTPException(status_code=400, detail="Ukendt panel, inverter, montering eller batteri")

        result = calculate_solar_system(
            request.panel_count,
            context,
            margin=request.margin,
            discount=request.discount,
            include_vat=request.include_vat,
        )
        return result.to_dict()

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Solar calculation error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Calculation error: {str(e)}")


@router.post("/roi")
async def solar_roi(request: SolarROIRequest):
    return calculate_solar_roi(
        request.investment_amount,
        request.annual_production,
        request.electricity_price,
        request.self_consumption_rate,
    )


@router.post("/electrician-job")
async def electrician_job(request: ElectricianJobRequest):
    return calculate_electrician_job(
        request.hours, request.hourly_rate, request.materials_cost, request.materials_markup
    )
