"""
Supplier Catalog Sync Module

File imports and API price syncs into the supplier_products catalog.
"""

from .catalog_client import get_catalog_client, CatalogClient
from .sync_base import SyncBase, SupplierNotFoundError
from .import_engine import ImportConfig, ImportEngine, ImportResult
from .supplier_adapters import adapter_registry, AOAdapter, LMAdapter
from .sync_engine import SupplierImport, import_supplier_file
from .sync_supplier_prices import sync_supplier_prices, sync_all_suppliers, sync_stale_prices

__all__ = [
    "get_catalog_client",
    "CatalogClient",
    "SyncBase",
    "SupplierNotFoundError",
    "ImportConfig",
    "ImportEngine",
    "ImportResult",
    "adapter_registry",
    "AOAdapter",
    "LMAdapter",
    "SupplierImport",
    "import_supplier_file",
    "sync_supplier_prices",
    "sync_all_suppliers",
    "sync_stale_prices",
]
