"""
Catalog Client for Supabase

Uses service_role key for full access to supplier catalog, price history,
sync log and calculation tables.
"""

import os
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone, timedelta
from supabase import create_client, Client


class CatalogClient:
    """Client for catalog and calculation database operations"""

    def __init__(self):
        supabase_url = os.getenv("SUPABASE_URL")
        # Service role key bypasses RLS
        supabase_key = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_KEY")

        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")

        self.supabase: Client = create_client(supabase_url, supabase_key)
        self._supplier_cache: Dict[str, Dict] = {}

    # =========================================================================
    # Suppliers
    # =========================================================================

    async def get_supplier(self, supplier_id: str) -> Optional[Dict]:
        """Get supplier row (id, code, name)"""
        if supplier_id in self._supplier_cache:
            return self._supplier_cache[supplier_id]

        result = self.supabase.table("suppliers") \
            .select("id, code, name, is_active") \
            .eq("id", supplier_id) \
            .limit(1) \
            .execute()

        if result.data and len(result.data) > 0:
            self._supplier_cache[supplier_id] = result.data[0]
            return result.data[0]
        return None

    async def get_active_suppliers(self) -> List[Dict]:
        """Suppliers that take part in scheduled price sync"""
        result = self.supabase.table("suppliers") \
            .select("id, code, name") \
            .eq("is_active", True) \
            .execute()
        return result.data or []

    async def get_supplier_credentials(self, supplier_id: str) -> Optional[Dict]:
        result = self.supabase.table("supplier_credentials") \
            .select("credential_type, api_endpoint, username, password, is_active") \
            .eq("supplier_id", supplier_id) \
            .eq("is_active", True) \
            .limit(1) \
            .execute()

        if result.data and len(result.data) > 0:
            return result.data[0]
        return None

    async def update_credential_status(self, supplier_id: str, status: str, error: Optional[str] = None) -> None:
        """Record the outcome of a connection test"""
        self.supabase.table("supplier_credentials") \
            .update({
                "last_test_at": datetime.now(timezone.utc).isoformat(),
                "last_test_status": status,
                "last_test_error": error,
            }) \
            .eq("supplier_id", supplier_id) \
            .eq("is_active", True) \
            .execute()

    async def get_supplier_settings(self, supplier_id: str) -> Optional[Dict]:
        result = self.supabase.table("supplier_settings") \
            .select("*") \
            .eq("supplier_id", supplier_id) \
            .limit(1) \
            .execute()

        if result.data and len(result.data) > 0:
            return result.data[0]
        return None

    async def touch_last_import(self, supplier_id: str) -> None:
        self.supabase.table("supplier_settings") \
            .upsert({
                "supplier_id": supplier_id,
                "last_import_at": datetime.now(timezone.utc).isoformat(),
            }, on_conflict="supplier_id") \
            .execute()

    # =========================================================================
    # Supplier Products
    # =========================================================================

    async def get_supplier_skus(self, supplier_id: str) -> List[str]:
        result = self.supabase.table("supplier_products") \
            .select("supplier_sku") \
            .eq("supplier_id", supplier_id) \
            .execute()
        return [row["supplier_sku"] for row in (result.data or []) if row.get("supplier_sku")]

    async def get_products_by_skus(self, supplier_id: str, skus: List[str]) -> List[Dict]:
        """Existing catalog rows for the given SKUs"""
        if not skus:
            return []

        result = self.supabase.table("supplier_products") \
            .select("id, supplier_sku, supplier_name, cost_price, list_price, unit, "
                    "is_available, lead_time_days, last_synced_at") \
            .eq("supplier_id", supplier_id) \
            .in_("supplier_sku", skus) \
            .execute()
        return result.data or []

    async def search_products(self, supplier_id: str, query: str, limit: int = 20) -> List[Dict]:
        """Search cached catalog rows by SKU or name"""
        result = self.supabase.table("supplier_products") \
            .select("id, supplier_sku, supplier_name, cost_price, list_price, unit, "
                    "is_available, lead_time_days, last_synced_at") \
            .eq("supplier_id", supplier_id) \
            .or_(f"supplier_sku.ilike.%{query}%,supplier_name.ilike.%{query}%") \
            .limit(limit) \
            .execute()
        return result.data or []

    async def count_products(self, supplier_id: str) -> int:
        result = self.supabase.table("supplier_products") \
            .select("id", count="exact") \
            .eq("supplier_id", supplier_id) \
            .limit(1) \
            .execute()
        return result.count or 0

    async def update_product(self, product_id: str, data: Dict[str, Any]) -> None:
        self.supabase.table("supplier_products") \
            .update(data) \
            .eq("id", product_id) \
            .execute()

    async def insert_products(self, rows: List[Dict[str, Any]]) -> int:
        """Insert new catalog rows, returns number inserted"""
        if not rows:
            return 0
        result = self.supabase.table("supplier_products") \
            .insert(rows) \
            .execute()
        return len(result.data or [])

    async def insert_price_history(self, records: List[Dict[str, Any]]) -> None:
        if not records:
            return
        self.supabase.table("price_history") \
            .insert(records) \
            .execute()

    async def get_stale_products(self, stale_days: int, limit: int = 500) -> List[Dict]:
        """Products not synced within stale_days"""
        cutoff = (datetime.now(timezone.utc) - timedelta(days=stale_days)).isoformat()
        result = self.supabase.table("supplier_products") \
            .select("id, supplier_id, supplier_sku, last_synced_at") \
            .lt("last_synced_at", cutoff) \
            .limit(limit) \
            .execute()
        return result.data or []

    # =========================================================================
    # Import Batches & Sync Log
    # =========================================================================

    async def create_import_batch(
        self,
        supplier_id: str,
        filename: str,
        file_size_bytes: int,
        dry_run: bool = False
    ) -> str:
        data = {
            "supplier_id": supplier_id,
            "filename": filename,
            "file_size_bytes": file_size_bytes,
            "status": "dry_run" if dry_run else "processing",
            "is_dry_run": dry_run,
            "started_at": datetime.now(timezone.utc).isoformat(),
        }
        result = self.supabase.table("import_batches") \
            .insert(data) \
            .execute()
        return result.data[0]["id"]

    async def update_import_batch(self, batch_id: str, data: Dict[str, Any]) -> None:
        data = {**data, "completed_at": datetime.now(timezone.utc).isoformat()}
        self.supabase.table("import_batches") \
            .update(data) \
            .eq("id", batch_id) \
            .execute()

    async def get_latest_import(self, supplier_id: str) -> Optional[Dict]:
        result = self.supabase.table("import_batches") \
            .select("created_at, total_rows, new_products, updated_products") \
            .eq("supplier_id", supplier_id) \
            .eq("status", "completed") \
            .order("created_at", desc=True) \
            .limit(1) \
            .execute()

        if result.data and len(result.data) > 0:
            return result.data[0]
        return None

    async def create_sync_log(
        self,
        supplier_id: str,
        job_type: str,
        trigger_type: str = "scheduled",
        total_items: int = 0
    ) -> str:
        """Create a running sync log entry, returns the log ID"""
        data = {
            "supplier_id": supplier_id,
            "job_type": job_type,
            "trigger_type": trigger_type,
            "status": "running",
            "total_items": total_items,
            "started_at": datetime.now(timezone.utc).isoformat(),
        }
        result = self.supabase.table("supplier_sync_logs") \
            .insert(data) \
            .execute()
        return result.data[0]["id"]

    async def update_sync_log(
        self,
        log_id: str,
        status: str,
        total_items: int = 0,
        processed_items: int = 0,
        new_items: int = 0,
        updated_items: int = 0,
        failed_items: int = 0,
        price_changes_count: int = 0,
        error_message: Optional[str] = None
    ) -> None:
        """Finish a sync log entry with results and duration"""
        started_at = self.supabase.table("supplier_sync_logs") \
            .select("started_at") \
            .eq("id", log_id) \
            .limit(1) \
            .execute()

        now = datetime.now(timezone.utc)
        duration_ms = None
        if started_at.data:
            started = datetime.fromisoformat(started_at.data[0]["started_at"].replace("Z", "+00:00"))
            duration_ms = int((now - started).total_seconds() * 1000)

        data = {
            "status": status,
            "completed_at": now.isoformat(),
            "duration_ms": duration_ms,
            "total_items": total_items,
            "processed_items": processed_items,
            "new_items": new_items,
            "updated_items": updated_items,
            "failed_items": failed_items,
            "price_changes_count": price_changes_count,
            "error_message": error_message,
        }

        self.supabase.table("supplier_sync_logs") \
            .update(data) \
            .eq("id", log_id) \
            .execute()

    async def get_last_sync(self, supplier_id: str) -> Optional[Dict]:
        result = self.supabase.table("supplier_sync_logs") \
            .select("*") \
            .eq("supplier_id", supplier_id) \
            .order("started_at", desc=True) \
            .limit(1) \
            .execute()

        if result.data and len(result.data) > 0:
            return result.data[0]
        return None

    # =========================================================================
    # Kalkia Calculation Data
    # =========================================================================

    async def get_global_factors(self) -> List[Dict]:
        result = self.supabase.table("kalkia_global_factors") \
            .select("factor_key, value, value_type, is_active") \
            .eq("is_active", True) \
            .execute()
        return result.data or []

    async def get_building_profile(self, profile_id: str) -> Optional[Dict]:
        result = self.supabase.table("kalkia_building_profiles") \
            .select("*") \
            .eq("id", profile_id) \
            .limit(1) \
            .execute()

        if result.data and len(result.data) > 0:
            return result.data[0]
        return None

    async def get_linked_materials(self, variant_ids: List[str]) -> List[Dict]:
        """Variant materials that are linked to a supplier product"""
        if not variant_ids:
            return []
        result = self.supabase.table("kalkia_variant_materials") \
            .select("id, variant_id, supplier_product_id, cost_price, sale_price") \
            .in_("variant_id", variant_ids) \
            .not_.is_("supplier_product_id", "null") \
            .execute()
        return result.data or []

    async def get_supplier_products_by_ids(self, product_ids: List[str]) -> List[Dict]:
        if not product_ids:
            return []
        result = self.supabase.table("v_supplier_products_with_supplier") \
            .select("*") \
            .in_("id", product_ids) \
            .execute()
        return result.data or []

    async def get_customer_supplier_prices(self, customer_id: str) -> List[Dict]:
        """Active customer agreements per supplier (discount and optional margin)"""
        result = self.supabase.table("customer_supplier_prices") \
            .select("supplier_id, discount_percentage, custom_margin_percentage") \
            .eq("customer_id", customer_id) \
            .eq("is_active", True) \
            .execute()
        return result.data or []

    async def get_customer_product_prices(self, customer_id: str, product_ids: List[str]) -> List[Dict]:
        if not product_ids:
            return []
        result = self.supabase.table("customer_product_prices") \
            .select("supplier_product_id, custom_cost_price, custom_list_price, custom_discount_percentage") \
            .eq("customer_id", customer_id) \
            .eq("is_active", True) \
            .in_("supplier_product_id", product_ids) \
            .execute()
        return result.data or []

    async def get_margin_rules(self, supplier_id: str) -> List[Dict]:
        result = self.supabase.table("supplier_margin_rules") \
            .select("*") \
            .eq("supplier_id", supplier_id) \
            .order("priority", desc=True) \
            .execute()
        return result.data or []

    async def get_solar_products(self) -> List[Dict]:
        result = self.supabase.table("solar_products") \
            .select("id, product_type, code, name, price, specifications") \
            .eq("is_active", True) \
            .order("sort_order") \
            .execute()
        return result.data or []

    async def get_offer_text_templates(self) -> List[Dict]:
        result = self.supabase.table("offer_text_templates") \
            .select("*") \
            .eq("is_active", True) \
            .execute()
        return result.data or []

    async def get_calc_components(self) -> List[Dict]:
        result = self.supabase.table("calc_components") \
            .select("id, name, code, price, time_estimate, unit, category") \
            .eq("is_active", True) \
            .execute()
        return result.data or []

    # =========================================================================
    # Learning Feedback
    # =========================================================================

    async def get_calculation_feedback(self) -> List[Dict]:
        result = self.supabase.table("calculation_feedback") \
            .select("*") \
            .not_.is_("actual_hours", "null") \
            .order("created_at", desc=True) \
            .execute()
        return result.data or []

    async def get_calculations_with_feedback(self) -> List[Dict]:
        """Auto calculations flattened with their actual hours"""
        result = self.supabase.table("auto_calculations") \
            .select("id, components, total_hours, calculation_feedback(actual_hours)") \
            .not_.is_("calculation_feedback.actual_hours", "null") \
            .execute()

        rows = []
        for row in result.data or []:
            feedback = row.get("calculation_feedback") or []
            if feedback and feedback[0].get("actual_hours"):
                rows.append({
                    "id": row["id"],
                    "components": row.get("components") or [],
                    "total_hours": row.get("total_hours"),
                    "actual_hours": feedback[0]["actual_hours"],
                })
        return rows

    async def insert_calculation_feedback(self, data: Dict[str, Any]) -> str:
        result = self.supabase.table("calculation_feedback") \
            .insert(data) \
            .execute()
        return result.data[0]["id"]


# Singleton
_catalog_client: Optional[CatalogClient] = None


def get_catalog_client() -> CatalogClient:
    """Get or create catalog client instance"""
    global _catalog_client
    if _catalog_client is None:
        _catalog_client = CatalogClient()
    return _catalog_client
