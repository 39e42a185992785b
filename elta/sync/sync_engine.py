"""
Supplier File Import

Imports a supplier price file into supplier_products:
parse (supplier adapter) -> validate against existing SKUs -> price
changes -> update/insert in batches -> price history -> import batch and
sync log.

Supports dry runs that report what would change without writing products.
"""

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Union

from elta.models.constants import (
    IMPORT_BATCH_SIZE,
    IMPORT_PREVIEW_LIMIT,
    PRICE_CHANGE_OFFER_THRESHOLD,
    PRICE_CRITICAL_CHANGE_THRESHOLD,
)
from elta.models.enums import SyncStatus
from elta.sync.import_engine import (
    ImportConfig,
    ImportEngine,
    ParsedRow,
    PriceChange,
    ImportResult,
    create_import_result,
    calculate_price_change,
    decode_file_content,
)
from elta.sync.supplier_adapters import adapter_registry, BaseSupplierAdapter
from elta.sync.sync_base import SyncBase
from elta.sync.catalog_client import CatalogClient

logger = logging.getLogger(__name__)


def calculate_price_changes(rows: List[ParsedRow], existing_prices: Dict[str, Dict[str, Any]]) -> List[PriceChange]:
    """Cost price changes for rows that update an existing product"""
    changes = []
    for row in rows:
        if not row.is_update or row.parsed.get("cost_price") is None:
            continue
        existing = existing_prices.get(row.parsed["sku"])
        if not existing:
            continue

        old_price = existing.get("cost_price")
        new_price = row.parsed["cost_price"]
        if old_price is not None and old_price != new_price:
            changes.append(PriceChange(
                supplier_product_id=row.existing_product_id,
                sku=row.parsed["sku"],
                product_name=row.parsed["name"],
                old_cost_price=old_price,
                new_cost_price=new_price,
                old_list_price=existing.get("list_price"),
                new_list_price=row.parsed.get("list_price"),
                change_percentage=calculate_price_change(old_price, new_price),
            ))
    return changes


def flag_price_changes(changes: List[PriceChange]) -> Dict[str, List[PriceChange]]:
    """Split into changes worth reviewing (>= 5%) and critical ones (>= 20%)"""
    significant = [c for c in changes if abs(c.change_percentage) >= PRICE_CHANGE_OFFER_THRESHOLD]
    critical = [c for c in significant if abs(c.change_percentage) >= PRICE_CRITICAL_CHANGE_THRESHOLD]
    return {"significant": significant, "critical": critical}


def _product_fields(parsed: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "supplier_name": parsed["name"],
        "cost_price": parsed.get("cost_price"),
        "list_price": parsed.get("list_price"),
        "unit": parsed.get("unit"),
        "category": parsed.get("category"),
        "sub_category": parsed.get("sub_category"),
        "manufacturer": parsed.get("manufacturer"),
        "ean": parsed.get("ean"),
        "min_order_quantity": parsed.get("min_order_quantity"),
    }


class SupplierImport(SyncBase):
    """File import for one supplier"""

    def __init__(self, catalog: Optional[CatalogClient] = None):
        super().__init__(catalog)
        self.adapter: Optional[BaseSupplierAdapter] = None

    async def _load(self, supplier_id: str) -> Dict[str, Any]:
        supplier = await self.init_supplier(supplier_id)
        self.adapter = adapter_registry.get(supplier.get("code"))
        return await self.catalog.get_supplier_settings(supplier_id) or {}

    def build_config(self, settings: Dict[str, Any], custom_mappings: Optional[Dict[str, Any]] = None) -> ImportConfig:
        """Custom mappings > supplier settings > adapter defaults"""
        base = self.adapter.get_default_config() if self.adapter else ImportConfig()
        return ImportConfig(
            column_mappings=custom_mappings or settings.get("column_mappings") or base.column_mappings,
            delimiter=settings.get("csv_delimiter") or base.delimiter,
            encoding=settings.get("csv_encoding") or base.encoding,
        )

    def parse(self, content: Union[bytes, str], config: ImportConfig) -> List[ParsedRow]:
        if self.adapter:
            overrides = {
                "column_mappings": config.column_mappings,
                "delimiter": config.delimiter,
                "encoding": config.encoding,
            }
            rows = self.adapter.parse_file(content, overrides)
            for row in rows:
                row.errors.extend(e for e in self.adapter.validate_row(row) if e not in row.errors)
            return rows

        if isinstance(content, bytes):
            content = decode_file_content(content, config.encoding)
        return ImportEngine(config).parse_csv(content)

    async def _validate(self, supplier_id: str, rows: List[ParsedRow]):
        skus = [r.parsed["sku"] for r in rows if r.parsed.get("sku")]
        existing = await self.catalog.get_products_by_skus(supplier_id, skus)
        existing_prices = {p["supplier_sku"]: p for p in existing}
        ImportEngine(ImportConfig()).validate_rows(rows, {sku: p["id"] for sku, p in existing_prices.items()})
        return existing_prices

    async def preview_import(
        self,
        supplier_id: str,
        content: Union[bytes, str],
        custom_mappings: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Parse and validate without writing anything"""
        settings = await self._load(supplier_id)
        config = self.build_config(settings, custom_mappings)
        rows = self.parse(content, config)
        existing_prices = await self._validate(supplier_id, rows)

        text = decode_file_content(content, config.encoding) if isinstance(content, bytes) else content
        headers = ImportEngine(config).get_headers(text)
        detected = custom_mappings or (
            self.adapter.detect_mappings(headers) if self.adapter else {}
        )

        result = create_import_result(None, rows, calculate_price_changes(rows, existing_prices), "preview")
        return {
            "headers": headers,
            "detected_mappings": detected,
            "total_rows": result.total_rows,
            "new_products": result.new_products,
            "updated_products": result.updated_products,
            "skipped_rows": result.skipped_rows,
            "errors": result.errors[:IMPORT_PREVIEW_LIMIT],
            "price_changes": [asdict(c) for c in result.price_changes[:IMPORT_PREVIEW_LIMIT]],
            "sample_rows": [asdict(r) for r in rows[:10]],
        }

    async def execute_import(
        self,
        supplier_id: str,
        content: Union[bytes, str],
        filename: str = "import.csv",
        dry_run: bool = False,
        custom_mappings: Optional[Dict[str, Any]] = None,
        trigger_type: str = "manual"
    ) -> ImportResult:
        settings = await self._load(supplier_id)
        size = len(content) if isinstance(content, bytes) else len(content.encode("utf-8"))
        batch_id = await self.catalog.create_import_batch(supplier_id, filename, size, dry_run=dry_run)

        try:
            config = self.build_config(settings, custom_mappings)
            rows = self.parse(content, config)
            existing_prices = await self._validate(supplier_id, rows)

            if dry_run:
                result = create_import_result(
                    batch_id, rows, calculate_price_changes(rows, existing_prices), "dry_run"
                )
                await self.catalog.update_import_batch(batch_id, self._batch_update(result))
                logger.info(f"[Import] Dry run for {self.supplier['code']}: {result.total_rows} rows")
                return result

            await self.start_sync("file_import", trigger_type, total_items=len(rows))
            valid_rows = [r for r in rows if r.is_valid]
            price_changes = await self._write_rows(supplier_id, batch_id, valid_rows, existing_prices)

            self.stats.failed += len(rows) - len(valid_rows)
            await self.catalog.touch_last_import(supplier_id)

            result = create_import_result(batch_id, rows, price_changes, self.final_status())
            result.new_products = self.stats.created
            result.updated_products = self.stats.updated

            await self.catalog.update_import_batch(batch_id, self._batch_update(result))
            await self.complete_sync()

            flags = flag_price_changes(price_changes)
            if flags["critical"]:
                logger.warning(
                    f"[Import] {len(flags['critical'])} critical price changes (>= {PRICE_CRITICAL_CHANGE_THRESHOLD}%) "
                    f"for {self.supplier['code']}"
                )
            logger.info(
                f"[Import] {self.supplier['code']}: {result.new_products} new, "
                f"{result.updated_products} updated, {result.skipped_rows} skipped"
            )
            return result

        except Exception as e:
            logger.error(f"[Import] Import failed for supplier {supplier_id}: {e}")
            await self.catalog.update_import_batch(batch_id, {
                "status": SyncStatus.FAILED.value,
                "errors": [{"row": 0, "message": str(e)}],
            })
            await self.fail_sync(str(e))
            raise

    async def _write_rows(
        self,
        supplier_id: str,
        batch_id: str,
        rows: List[ParsedRow],
        existing_prices: Dict[str, Dict[str, Any]]
    ) -> List[PriceChange]:
        price_changes: List[PriceChange] = []

        for start in range(0, len(rows), IMPORT_BATCH_SIZE):
            chunk = rows[start:start + IMPORT_BATCH_SIZE]
            now = datetime.now(timezone.utc).isoformat()
            history = []

            for row in chunk:
                if not row.existing_product_id:
                    continue
                try:
                    await self.catalog.update_product(
                        row.existing_product_id,
                        {**_product_fields(row.parsed), "last_synced_at": now},
                    )
                except Exception as e:
                    self.stats.add_error("supplier_product", row.parsed["sku"], str(e))
                    continue

                self.stats.updated += 1
                self.stats.processed += 1
                for change in calculate_price_changes([row], existing_prices):
                    price_changes.append(change)
                    history.append({
                        "supplier_product_id": change.supplier_product_id,
                        "old_cost_price": change.old_cost_price,
                        "new_cost_price": change.new_cost_price,
                        "old_list_price": change.old_list_price,
                        "new_list_price": change.new_list_price,
                        "change_percentage": change.change_percentage,
                        "change_source": "import",
                        "import_batch_id": batch_id,
                    })

            await self.catalog.insert_price_history(history)

            inserts = [
                {
                    "supplier_id": supplier_id,
                    "supplier_sku": row.parsed["sku"],
                    **_product_fields(row.parsed),
                    "is_available": True,
                    "last_synced_at": now,
                }
                for row in chunk if not row.existing_product_id
            ]
            if inserts:
                try:
                    inserted = await self.catalog.insert_products(inserts)
                    self.stats.created += inserted
                    self.stats.processed += inserted
                except Exception as e:
                    for item in inserts:
                        self.stats.add_error("supplier_product", item["supplier_sku"], str(e))

        self.stats.price_changes = len(price_changes)
        return price_changes

    def _batch_update(self, result: ImportResult) -> Dict[str, Any]:
        return {
            "total_rows": result.total_rows,
            "processed_rows": result.total_rows,
            "new_products": result.new_products,
            "updated_products": result.updated_products,
            "skipped_rows": result.skipped_rows,
            "errors": result.errors,
            "status": result.status,
        }


async def import_supplier_file(
    supplier_id: str,
    content: Union[bytes, str],
    filename: str = "import.csv",
    dry_run: bool = False,
    custom_mappings: Optional[Dict[str, Any]] = None
) -> ImportResult:
    """Convenience wrapper for one import"""
    return await SupplierImport().execute_import(
        supplier_id, content, filename=filename, dry_run=dry_run, custom_mappings=custom_mappings
    )
