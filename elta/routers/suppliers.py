"""
Supplier Endpoints

Price file import (preview and execute), API price sync, margin rules and
live product lookups for the wholesalers (AO, Lemvigh-Müller).

Import endpoints take the raw file as the request body.
"""

import os
import logging
from dataclasses import asdict
from typing import Optional
from fastapi import APIRouter, HTTPException, Query, Request

from elta.models.schemas import SupplierSyncRequest, SupplierCredentialsTest, SalePriceRequest
from elta.services.margin_rules import get_effective_margin, calculate_rule_sale_price, summarize_margin_rules
from elta.services.supplier_client import SupplierClientFactory, AOAPIClient, SupplierAPIError
from elta.sync import (
    adapter_registry,
    get_catalog_client,
    SupplierImport,
    SupplierNotFoundError,
    sync_supplier_prices,
    sync_all_suppliers,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _supplier_client(supplier_id: str):
    catalog = get_catalog_client()
    supplier = await catalog.get_supplier(supplier_id)
    if not supplier:
        raise HTTPException(status_code=404, detail="Leverandør ikke fundet")

    client = await SupplierClientFactory.get_client(supplier_id, supplier.get("code") or "", catalog=catalog)
    if client is None:
        raise HTTPException(status_code=400, detail=f"API integration ikke tilgængelig for {supplier.get('name')}")
    return client


@router.get("/status")
async def supplier_sync_status():
    """Sync configuration and registered file adapters"""
    return {
        "status": "ok",
        "has_service_key": bool(os.getenv("SUPABASE_SERVICE_KEY")),
        "ao_credentials_in_env": bool(os.getenv("AO_USERNAME") and os.getenv("AO_PASSWORD")),
        "scheduler": {
            "enabled": os.getenv("SYNC_ENABLED", "true").lower() == "true",
            "supplier_sync_hour": int(os.getenv("SUPPLIER_SYNC_HOUR", "3")),
            "stale_check_interval_hours": int(os.getenv("SUPPLIER_SYNC_INTERVAL_HOURS", "6")),
        },
        "adapters": [asdict(info) for info in adapter_registry.all_info()],
    }


@router.post("/{supplier_id}/import/preview")
async def import_preview(supplier_id: str, request: Request):
    """
    Parse and validate a price file without writing anything.

    Returns headers, detected column mappings, counts, errors, price
    changes and sample rows.
    """
    content = await request.body()
    if not content:
        raise HTTPException(status_code=400, detail="Filen er tom")

    try:
        return await SupplierImport().preview_import(supplier_id, content)
    except SupplierNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Import preview error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Import error: {str(e)}")


@router.post("/{supplier_id}/import")
async def import_execute(
    supplier_id: str,
    request: Request,
    filename: str = Query(default="import.csv"),
    dry_run: bool = Query(default=False, description="Report changes without writing products")
):
    """Import a price file into the supplier catalog"""
    content = await request.body()
    if not content:
        raise HTTPException(status_code=400, detail="Filen er tom")

    try:
        result = await SupplierImport().execute_import(
            supplier_id, content, filename=filename, dry_run=dry_run
        )
        return asdict(result)
    except SupplierNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Import error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Import error: {str(e)}")


@router.post("/sync")
async def trigger_sync_all():
    """Sync prices for all active suppliers now"""
    try:
        return {"results": await sync_all_suppliers(trigger_type="manual")}
    except Exception as e:
        logger.error(f"Supplier sync error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Sync error: {str(e)}")


@router.post("/{supplier_id}/sync")
async def trigger_sync(supplier_id: str, request: Optional[SupplierSyncRequest] = None):
    """Sync prices for one supplier, optionally only some SKUs"""
    try:
        result = await sync_supplier_prices(supplier_id, skus=request.skus if request else None)
        if result["status"] == "failed":
            raise HTTPException(status_code=500, detail=result.get("error", "Synkronisering fejlede"))
        return result
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Supplier sync error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Sync error: {str(e)}")


@router.get("/{supplier_id}/search")
async def search_products(
    supplier_id: str,
    q: str = Query(..., min_length=1, description="Search text or SKU"),
    limit: int = Query(default=25, ge=1, le=100),
    offset: int = Query(default=0, ge=0)
):
    """Live search with fallback to the cached catalog"""
    client = await _supplier_client(supplier_id)
    try:
        result = await client.search_products(query=q, limit=limit, offset=offset)
        return asdict(result)
    except SupplierAPIError as e:
        raise HTTPException(status_code=e.status_code or 502, detail=e.message)


@router.get("/{supplier_id}/products/{sku}")
async def product_price(supplier_id: str, sku: str):
    client = await _supplier_client(supplier_id)
    try:
        price = await client.get_product_price(sku)
    except SupplierAPIError as e:
        raise HTTPException(status_code=e.status_code or 502, detail=e.message)

    if price is None:
        raise HTTPException(status_code=404, detail=f"Produkt {sku} ikke fundet")
    return asdict(price)


@router.post("/{supplier_id}/test-connection")
async def test_connection(supplier_id: str, request: Optional[SupplierCredentialsTest] = None):
    """Test login, optionally with credentials that are not saved yet"""
    client = await _supplier_client(supplier_id)
    if not (request and request.username and request.password and isinstance(client, AOAPIClient)):
        return await client.test_connection()

    # Separate client for unsaved credentials
    trial = AOAPIClient(supplier_id, catalog=get_catalog_client())
    trial.set_credentials(request.username, request.password)
    try:
        return await trial.test_connection()
    finally:
        await trial.close()


@router.get("/{supplier_id}/margin-rules/summary")
async def margin_rule_summary(supplier_id: str):
    """Rule counts per type and the supplier-level default margin"""
    try:
        rules = await get_catalog_client().get_margin_rules(supplier_id)
        return summarize_margin_rules(rules)
    except Exception as e:
        logger.error(f"Margin rule summary error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Database error: {str(e)}")


@router.get("/{supplier_id}/effective-margin")
async def effective_margin(
    supplier_id: str,
    supplier_product_id: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    sub_category: Optional[str] = Query(default=None),
    customer_id: Optional[str] = Query(default=None)
):
    """Most specific active margin rule, null when none applies"""
    try:
        margin = await get_effective_margin(
            get_catalog_client(), supplier_id, supplier_product_id, category, sub_category, customer_id
        )
        return {"supplier_id": supplier_id, "margin": margin.to_dict() if margin else None}
    except Exception as e:
        logger.error(f"Effective margin error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Database error: {str(e)}")


@router.post("/{supplier_id}/sale-price")
async def rule_sale_price(supplier_id: str, request: SalePriceRequest):
    """Sale price for a cost price using the supplier's margin rules"""
    try:
        return await calculate_rule_sale_price(
            get_catalog_client(),
            request.cost_price,
            supplier_id,
            supplier_product_id=request.supplier_product_id,
            category=request.category,
            sub_category=request.sub_category,
            customer_id=request.customer_id,
        )
    except Exception as e:
        logger.error(f"Sale price error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Calculation error: {str(e)}")
