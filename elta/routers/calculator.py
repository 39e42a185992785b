"""
Calculator Endpoints

Offer pricing, contribution margin (DB), customer price engine and the
Kalkia node/variant calculation.
"""

import logging
from fastapi import APIRouter, HTTPException, Query

from elta.models.schemas import (
    OfferDBRequest,
    LinePriceRequest,
    PriceRequest,
    ComparePricesRequest,
    MarginAnalysisRequest,
    SuggestPriceRequest,
    KalkiaRequest,
)
from elta.services.pricing import compute_offer_db, calculate_line, get_traffic_light, format_dkk, to_dict
from elta.services.price_engine import (
    calculate_price,
    classify_customer_tier,
    compare_supplier_prices,
    analyze_margins,
    suggest_price,
)
from elta.services.kalkia_engine import KalkiaCalculationEngine, load_calculation_context
from elta.sync.catalog_client import get_catalog_client

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/offer-db")
async def offer_db(request: OfferDBRequest):
    """
    Offer-level DB (daekningsbidrag) from line items.

    Returns totals, DB amount/percentage and the traffic light used to
    decide whether the offer can be sent.
    """
    db = compute_offer_db([item.model_dump() for item in request.line_items])
    return {
        **to_dict(db),
        "traffic_light": get_traffic_light(db.db_percentage),
        "formatted": {
            "total_cost": format_dkk(db.total_cost),
            "total_sale": format_dkk(db.total_sale),
            "db_amount": format_dkk(db.db_amount),
        },
    }


@router.post("/line")
async def line_price(request: LinePriceRequest):
    """Sale price, total and DB for one offer line"""
    return to_dict(calculate_line(request.cost_price, request.margin_percentage, request.quantity))


@router.post("/price")
async def customer_price(request: PriceRequest):
    """Customer price with tier discount, volume discount and rounding"""
    try:
        result = calculate_price(
            cost_price=request.cost_price,
            quantity=request.quantity,
            margin_percent=request.margin_percent,
            customer_tier=request.customer_tier,
            customer_discount_override=request.customer_discount_override,
            fixed_markup=request.fixed_markup,
            round_to=request.round_to,
            order_total_dkk=request.order_total_dkk,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return to_dict(result)


@router.get("/customer-tier")
async def customer_tier(
    annual_purchase: float = Query(..., ge=0, description="Annual purchase in DKK")
):
    return {"annual_purchase": annual_purchase, "tier": classify_customer_tier(annual_purchase)}


@router.post("/compare-suppliers")
async def compare_suppliers(request: ComparePricesRequest):
    """Cheapest and recommended supplier for one product"""
    return compare_supplier_prices(
        [p.model_dump() for p in request.products],
        request.quantity,
        request.margin_percent,
        request.customer_tier,
    )


@router.post("/margins")
async def margins(request: MarginAnalysisRequest):
    return analyze_margins([i.model_dump() for i in request.items], request.minimum_margin_percent)


@router.post("/suggest-price")
async def price_suggestions(request: SuggestPriceRequest):
    return suggest_price(
        request.cost_price,
        request.target_margin,
        request.historical_prices,
        request.competitor_prices,
    )


@router.post("/kalkia")
async def kalkia_calculation(request: KalkiaRequest):
    """
    Calculate a Kalkia estimate.

    Loads global factors, the building profile and linked supplier prices,
    calculates each item (with cable sizing when a load and cable length
    are given) and applies the final pricing chain.
    """
    try:
        variant_ids = [item.variant["id"] for item in request.items if item.variant and item.variant.get("id")]
        kwargs = {"hourly_rate": request.hourly_rate} if request.hourly_rate else {}
        context = await load_calculation_context(
            get_catalog_client(),
            building_profile_id=request.building_profile_id,
            variant_ids=variant_ids,
            customer_id=request.customer_id,
            **kwargs,
        )

        engine = KalkiaCalculationEngine(context)
        items = []
        for item in request.items:
            calculated = engine.calculate_item(
                item.node, item.variant, item.materials, item.rules, item.quantity, item.conditions
            )
            if item.power_watts and item.cable_length:
                calculated = engine.enrich_with_cable_sizing(
                    calculated, item.power_watts, item.cable_length, item.installation_method
                )
            items.append(calculated)

        result = engine.calculate_final_pricing_with_electrical(
            items,
            margin_percentage=request.margin_percentage,
            discount_percentage=request.discount_percentage,
            vat_percentage=request.vat_percentage,
            risk_percentage=request.risk_percentage,
        )
        return result.to_dict()

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Kalkia calculation error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Calculation error: {str(e)}")
