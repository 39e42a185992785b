"""
Supplier Price Sync

Refreshes supplier_products prices from the supplier APIs.
Runs nightly for every active supplier, on demand from the suppliers
router, and for products whose prices have gone stale.
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional, Dict, List, Any

from elta.models.constants import (
    SUPPLIER_SYNC_BATCH_SIZE,
    STALE_PRODUCT_DAYS,
    STALE_PRODUCT_MIN_COUNT,
)
from elta.models.enums import SyncStatus
from elta.services.supplier_client import BaseSupplierAPIClient, SupplierClientFactory
from elta.sync.catalog_client import CatalogClient
from elta.sync.import_engine import calculate_price_change
from elta.sync.sync_base import SyncBase

logger = logging.getLogger(__name__)


async def sync_supplier_prices(
    supplier_id: str,
    skus: Optional[List[str]] = None,
    trigger_type: str = "manual",
    batch_size: int = SUPPLIER_SYNC_BATCH_SIZE,
    catalog: Optional[CatalogClient] = None
) -> Dict[str, Any]:
    """
    Sync prices for one supplier.

    Args:
        supplier_id: Supplier UUID
        skus: Only these SKUs (all catalog SKUs when empty)
        trigger_type: manual, scheduled or stale_check
        batch_size: SKUs per API price request

    Returns:
        Dict with sync results
    """
    sync = SyncBase(catalog)

    try:
        supplier = await sync.init_supplier(supplier_id)
    except ValueError as e:
        return {"status": SyncStatus.FAILED.value, "supplier_id": supplier_id, "error": str(e)}

    client = await SupplierClientFactory.get_client(supplier_id, supplier.get("code") or "", catalog=sync.catalog)
    if client is None:
        return {
            "status": "skipped",
            "supplier_id": supplier_id,
            "error": f"API integration ikke tilgængelig for {supplier.get('name')}",
        }

    try:
        skus = skus or await sync.catalog.get_supplier_skus(supplier_id)
        if not skus:
            return {
                "status": SyncStatus.COMPLETED.value,
                "supplier_id": supplier_id,
                "total": 0,
                "updated": 0,
                "price_changes": 0,
                "errors": [],
            }

        await sync.start_sync("price_update", trigger_type, total_items=len(skus))
        batch_errors: List[str] = []

        for start in range(0, len(skus), batch_size):
            batch = skus[start:start + batch_size]
            try:
                await _sync_batch(sync, client, supplier_id, batch)
            except Exception as e:
                message = f"Batch {start // batch_size + 1}: {e}"
                batch_errors.append(message)
                sync.stats.add_error("batch", start // batch_size + 1, str(e))
                logger.warning(f"[SupplierSync] {supplier['code']} {message}")

        status = SyncStatus.COMPLETED.value if not batch_errors else SyncStatus.PARTIAL.value
        await sync.complete_sync(status=status, error_message="; ".join(batch_errors) or None)

        logger.info(
            f"[SupplierSync] {supplier['code']}: {sync.stats.updated}/{len(skus)} updated, "
            f"{sync.stats.price_changes} price changes"
        )
        return {
            "status": status,
            "supplier_id": supplier_id,
            "total": len(skus),
            "updated": sync.stats.updated,
            "price_changes": sync.stats.price_changes,
            "errors": batch_errors,
        }

    except Exception as e:
        logger.error(f"[SupplierSync] Sync failed for {supplier.get('code')}: {e}")
        await sync.fail_sync(str(e))
        return {"status": SyncStatus.FAILED.value, "supplier_id": supplier_id, "error": str(e)}


async def _sync_batch(sync: SyncBase, client: BaseSupplierAPIClient, supplier_id: str, skus: List[str]):
    prices = await client.get_product_prices(skus)
    existing = {p["supplier_sku"]: p for p in await sync.catalog.get_products_by_skus(supplier_id, list(prices))}

    now = datetime.now(timezone.utc).isoformat()
    history = []

    for sku, price in prices.items():
        product = existing.get(sku)
        if not product:
            continue

        update = {
            "is_available": price.is_available,
            "lead_time_days": price.lead_time_days,
            "last_synced_at": now,
        }
        old_price = product.get("cost_price")
        if old_price != price.cost_price:
            update["cost_price"] = price.cost_price
            update["list_price"] = price.list_price
            history.append({
                "supplier_product_id": product["id"],
                "old_cost_price": old_price,
                "new_cost_price": price.cost_price,
                "old_list_price": product.get("list_price"),
                "new_list_price": price.list_price,
                "change_percentage": round(calculate_price_change(old_price, price.cost_price), 2),
                "change_source": "api_sync",
            })

        await sync.catalog.update_product(product["id"], update)
        sync.stats.updated += 1
        sync.stats.processed += 1

    await sync.catalog.insert_price_history(history)
    sync.stats.price_changes += len(history)


async def sync_all_suppliers(trigger_type: str = "scheduled", catalog: Optional[CatalogClient] = None) -> List[Dict[str, Any]]:
    """Nightly sync of every active supplier"""
    base = SyncBase(catalog)
    suppliers = await base.catalog.get_active_suppliers()
    results = []

    for supplier in suppliers:
        result = await sync_supplier_prices(supplier["id"], trigger_type=trigger_type, catalog=base.catalog)
        result["supplier_code"] = supplier.get("code")
        results.append(result)

    return results


async def sync_stale_prices(
    stale_days: int = STALE_PRODUCT_DAYS,
    min_count: int = STALE_PRODUCT_MIN_COUNT,
    catalog: Optional[CatalogClient] = None
) -> List[Dict[str, Any]]:
    """Resync suppliers with at least min_count products older than stale_days"""
    base = SyncBase(catalog)
    stale = await base.catalog.get_stale_products(stale_days)

    by_supplier: Dict[str, List[str]] = defaultdict(list)
    for product in stale:
        by_supplier[product["supplier_id"]].append(product["supplier_sku"])

    results = []
    for supplier_id, skus in by_supplier.items():
        if len(skus) < min_count:
            continue
        logger.info(f"[SupplierSync] {len(skus)} stale products for supplier {supplier_id}")
        results.append(await sync_supplier_prices(
            supplier_id, skus=skus, trigger_type="stale_check", catalog=base.catalog
        ))

    return results
