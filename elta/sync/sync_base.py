"""
Base class for supplier sync operations

Provides common functionality for file imports and API price syncs:
- Sync log management
- Item statistics
- Error tracking
"""

from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from dataclasses import dataclass, field

from elta.models.enums import SyncStatus
from elta.sync.catalog_client import CatalogClient, get_catalog_client


class SupplierNotFoundError(ValueError):
    """No supplier row for the given id"""


@dataclass
class SyncStats:
    """Track sync operation statistics"""
    total: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    price_changes: int = 0
    errors: List[Dict] = field(default_factory=list)

    def add_error(self, entity_type: str, entity_id: Any, error: str):
        self.failed += 1
        self.errors.append({
            "entity_type": entity_type,
            "entity_id": entity_id,
            "error": str(error),
            "timestamp": datetime.now(timezone.utc).isoformat()
        })


class SyncBase:
    """Base class for supplier sync operations"""

    def __init__(self, catalog: Optional[CatalogClient] = None):
        self.catalog = catalog or get_catalog_client()
        self.stats = SyncStats()
        self.log_id: Optional[str] = None
        self.supplier: Optional[Dict] = None

    async def init_supplier(self, supplier_id: str) -> Dict:
        """Load supplier context, returns the supplier row"""
        self.supplier = await self.catalog.get_supplier(supplier_id)
        if not self.supplier:
            raise SupplierNotFoundError(f"Leverandøren blev ikke fundet: {supplier_id}")
        return self.supplier

    async def start_sync(self, job_type: str, trigger_type: str = "manual", total_items: int = 0) -> str:
        """Start a sync operation, returns log ID"""
        if not self.supplier:
            raise ValueError("Supplier not initialized. Call init_supplier() first.")

        self.stats = SyncStats(total=total_items)
        self.log_id = await self.catalog.create_sync_log(
            supplier_id=self.supplier["id"],
            job_type=job_type,
            trigger_type=trigger_type,
            total_items=total_items,
        )
        return self.log_id

    def final_status(self) -> str:
        """Partial when some but not all items failed"""
        if self.stats.failed and self.stats.failed >= self.stats.total:
            return SyncStatus.FAILED.value
        if self.stats.failed:
            return SyncStatus.PARTIAL.value
        return SyncStatus.COMPLETED.value

    async def complete_sync(self, status: Optional[str] = None, error_message: Optional[str] = None) -> None:
        """Complete sync operation with final stats"""
        if not self.log_id:
            return

        await self.catalog.update_sync_log(
            log_id=self.log_id,
            status=status or self.final_status(),
            total_items=self.stats.total,
            processed_items=self.stats.processed,
            new_items=self.stats.created,
            updated_items=self.stats.updated,
            failed_items=self.stats.failed,
            price_changes_count=self.stats.price_changes,
            error_message=error_message,
        )

    async def fail_sync(self, error: str) -> None:
        """Mark sync as failed"""
        self.stats.add_error("sync", None, error)
        await self.complete_sync(status=SyncStatus.FAILED.value, error_message=error)
