"""
Offer Endpoints

Offer risk assessment, template-based offer texts and customer-facing
price explanations.
"""

import logging
from fastapi import APIRouter, HTTPException

from elta.models.schemas import RiskContext, OfferTextRequest, PriceExplanationRequest, PriceComparisonRequest
from elta.services.risk_engine import (
    assess_risk,
    quick_risk_check,
    get_offer_obs_points,
    get_recommended_margin,
    get_risk_rules,
)
from elta.services.offer_text_engine import (
    OfferTextContext,
    assemble_offer_texts,
    generate_offer_content,
    merge_offer_texts,
)
from elta.services.price_explanation import (
    PriceExplanationInput,
    generate_price_explanation,
    generate_simple_summary,
    generate_bullet_summary,
    generate_price_comparison,
)
from elta.sync.catalog_client import get_catalog_client

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/risk")
async def offer_risk(request: RiskContext):
    """All matching risk rules, overall level and recommendations"""
    context = request.model_dump()
    result = assess_risk(context)
    return {
        **result.to_dict(),
        "obs_points": get_offer_obs_points(context),
        "recommended_margin": get_recommended_margin(context),
    }


@router.post("/risk/quick")
async def offer_risk_quick(request: RiskContext):
    return quick_risk_check(request.model_dump())


@router.get("/risk/rules")
async def offer_risk_rules():
    return get_risk_rules()


@router.post("/texts")
async def offer_texts(request: OfferTextRequest):
    """
    Offer texts assembled from the active templates.

    Sections already filled in `existing` are kept as they are.
    """
    try:
        templates = await get_catalog_client().get_offer_text_templates()
        context = OfferTextContext(**request.model_dump(exclude={"existing"}))

        assembled = assemble_offer_texts(templates, context)
        content = merge_offer_texts(request.existing, generate_offer_content(templates, context))
        logger.info(f"[OfferTexts] {len(assembled.all_texts)} templates matched")

        return {
            "content": content,
            "installation_notes": assembled.installation_notes,
            "terms": assembled.terms,
            "texts": assembled.all_texts,
        }
    except Exception as e:
        logger.error(f"Offer text error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Offer text error: {str(e)}")


@router.post("/price-explanation")
async def price_explanation(request: PriceExplanationRequest):
    """Sections, breakdown and short summaries explaining an offer price"""
    data = PriceExplanationInput.from_dict(request.model_dump())
    return {
        **generate_price_explanation(data).to_dict(),
        "simple_summary": generate_simple_summary(data),
        "bullet_summary": generate_bullet_summary(data),
    }


@router.post("/price-comparison")
async def price_comparison(request: PriceComparisonRequest):
    """Standard and Premium tiers for upselling"""
    data = PriceExplanationInput.from_dict(request.offer.model_dump())
    return generate_price_comparison(data, [u.model_dump() for u in request.upgrades])
