"""
Tests for supplier file imports and API price syncs.

Covers Danish CSV parsing, column detection, the AO and Lemvigh-Müller
adapters, SupplierImport (preview, dry run, write) and the price sync
jobs. The catalog and supplier API clients are mocked.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from elta.sync.import_engine import (
    ImportConfig,
    ImportEngine,
    ParsedRow,
    parse_danish_number,
    parse_csv_line,
    detect_column_mappings,
    calculate_price_change,
    create_import_result,
)
from elta.sync.supplier_adapters import AOAdapter, LMAdapter, adapter_registry
from elta.sync.sync_engine import SupplierImport, flag_price_changes, calculate_price_changes
from elta.sync.sync_supplier_prices import sync_supplier_prices, sync_all_suppliers, sync_stale_prices
from elta.services.supplier_client import ProductPrice, SupplierClientFactory


AO_FILE = (
    "Varenummer;Beskrivelse;Indkøbspris;Vejl. udsalgspris;Varegruppe\n"
    "AO-00123;Stikkontakt;45,50;89,00;Kontakter\n"
    "456;Afbryder;20,00;35,00;Afbrydere\n"
    ";Uden nummer;10,00;;\n"
)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def import_catalog(catalog, ao_supplier):
    catalog.get_supplier.return_value = ao_supplier
    catalog.get_products_by_skus.return_value = [
        {"id": "p1", "supplier_sku": "123", "cost_price": 40.0, "list_price": 80.0},
    ]
    catalog.insert_products.return_value = 1
    return catalog


@pytest.fixture
def api_client():
    client = MagicMock()
    client.get_product_prices = AsyncMock(return_value={
        "A1": ProductPrice(sku="A1", name="Kabel", cost_price=12.0, list_price=20.0, lead_time_days=2),
    })
    return client


@pytest.fixture
def price_catalog(catalog, lm_supplier):
    catalog.get_supplier.return_value = lm_supplier
    catalog.get_supplier_skus.return_value = ["A1", "A2"]
    catalog.get_products_by_skus.return_value = [
        {"id": "p1", "supplier_sku": "A1", "cost_price": 10.0, "list_price": 18.0},
    ]
    return catalog


@pytest.fixture(autouse=True)
def clear_client_cache():
    SupplierClientFactory.clear_cache()
    yield
    SupplierClientFactory.clear_cache()


# =============================================================================
# PARSING
# =============================================================================

class TestParsing:

    def test_danish_numbers(self):
        assert parse_danish_number("1.234,56") == 1234.56
        assert parse_danish_number("12.5") == 12.5
        assert parse_danish_number("12,5 kr") == 12.5
        assert parse_danish_number("") is None
        assert parse_danish_number("abc") is None

    def test_quoted_csv_line(self):
        assert parse_csv_line('a;"b;c";"d ""e"""') == ["a", "b;c", 'd "e"']

    def test_detect_common_headers(self):
        mappings = detect_column_mappings(["Varenr", "Beskrivelse", "Netto", "Enhed"])
        assert mappings == {"sku": 0, "name": 1, "cost_price": 2, "unit": 3}

    def test_price_change(self):
        assert calculate_price_change(None, 5) == 0
        assert calculate_price_change(100, 110) == pytest.approx(10)


class TestImportEngine:

    def _engine(self):
        return ImportEngine(ImportConfig(column_mappings={
            "sku": "Varenr", "name": "Navn", "gross_price": "Brutto", "discount_pct": "Rabat",
        }))

    def test_net_price_from_gross_and_discount(self):
        rows = self._engine().parse_csv("Varenr;Navn;Brutto;Rabat\n123;Kabel;100,00;25\n")
        assert rows[0].row_number == 2
        assert rows[0].parsed["cost_price"] == 75
        assert rows[0].parsed["unit"] == "stk"
        assert rows[0].errors == []

    def test_invalid_rows_are_skipped(self):
        engine = self._engine()
        rows = engine.parse_csv("Varenr;Navn;Brutto;Rabat\n123;Kabel;100,00;25\n;Uden;10;0\n")
        engine.validate_rows(rows, {"123": "p1"})
        result = create_import_result("batch-1", rows, [], "preview")

        assert rows[0].is_update is True
        assert result.total_rows == 2
        assert result.updated_products == 1
        assert result.new_products == 0
        assert result.skipped_rows == 1
        assert result.errors == [{"row": 3, "message": "Ugyldigt varenummer"}]


# =============================================================================
# ADAPTERS
# =============================================================================

class TestAOAdapter:

    def test_sku_normalization(self):
        adapter = AOAdapter()
        assert adapter.normalize_sku(" AO-000123 ") == "123"
        assert adapter.normalize_sku("0000") == "0"

    def test_category_mapping(self):
        adapter = AOAdapter()
        assert adapter.map_category("Spots") == "Belysning"
        assert adapter.map_category("Ukendt gruppe") == "Ukendt gruppe"
        assert adapter.map_category(None) == "Andet"

    def test_parse_latin1_file(self):
        rows = AOAdapter().parse_file(AO_FILE.encode("iso-8859-1"))
        parsed = rows[0].parsed

        assert parsed["sku"] == "123"
        assert parsed["cost_price"] == 45.5
        assert parsed["list_price"] == 89
        assert parsed["category"] == "Kontakter"

    def test_utf8_bom_file(self):
        rows = AOAdapter().parse_file(AO_FILE.encode("utf-8-sig"))
        assert rows[0].parsed["sku"] == "123"
        assert rows[0].parsed["name"] == "Stikkontakt"

    def test_gross_only_warns(self):
        rows = AOAdapter().parse_file("Varenummer;Beskrivelse;Bruttopris\n1;Kabel;100,00\n")
        assert any("Kun bruttopris" in w for w in rows[0].warnings)

    def test_validate_row(self):
        row = ParsedRow(row_number=2, raw={}, parsed={"sku": "12/34", "name": "Kabel", "cost_price": 0})
        assert AOAdapter().validate_row(row) == ["Ugyldigt AO varenummer-format"]
        assert any("Kostpris er 0" in w for w in row.warnings)


class TestLMAdapter:

    def test_sku_normalization(self):
        assert LMAdapter().normalize_sku("LM- 12 345") == "12345"

    def test_utf8_bom_file(self):
        content = "Artikelnr;Artikelbenævnelse;Nettopris;Enhed\n1234;Kabel;12,50;m\n".encode("utf-8-sig")
        row = LMAdapter().parse_file(content)[0]

        assert row.parsed["sku"] == "1234"
        assert row.parsed["cost_price"] == 12.5
        assert row.errors == []

    def test_category_falls_back_to_subgroup(self):
        adapter = LMAdapter()
        assert adapter.map_category("El-installation") == "Installation"
        assert adapter.map_category("Diverse", "Kabler") == "Kabler"

    def test_long_sku_rejected(self):
        row = ParsedRow(row_number=2, raw={}, parsed={"sku": "X" * 21, "name": "Kabel"})
        assert LMAdapter().validate_row(row) == ["Artikelnummer er for langt (max 20 tegn)"]


class TestRegistry:

    def test_lookup_is_case_insensitive(self):
        assert isinstance(adapter_registry.get("ao"), AOAdapter)
        assert isinstance(adapter_registry.get("LM"), LMAdapter)
        assert adapter_registry.get("XX") is None
        assert adapter_registry.codes() == ["AO", "LM"]


# =============================================================================
# FILE IMPORT
# =============================================================================

class TestSupplierImport:

    def test_preview(self, import_catalog):
        preview = asyncio.run(SupplierImport(import_catalog).preview_import("sup-ao", AO_FILE))

        assert preview["headers"][0] == "Varenummer"
        assert preview["detected_mappings"]["cost_price"] == 2
        assert preview["total_rows"] == 3
        assert preview["new_products"] == 1
        assert preview["updated_products"] == 1
        assert preview["skipped_rows"] == 1
        assert len(preview["price_changes"]) == 1
        import_catalog.update_product.assert_not_awaited()

    def test_dry_run_writes_nothing(self, import_catalog):
        result = asyncio.run(SupplierImport(import_catalog).execute_import("sup-ao", AO_FILE, dry_run=True))

        assert result.status == "dry_run"
        assert result.batch_id == "batch-1"
        import_catalog.update_product.assert_not_awaited()
        import_catalog.insert_products.assert_not_awaited()
        import_catalog.create_sync_log.assert_not_awaited()

    def test_import_updates_and_inserts(self, import_catalog):
        result = asyncio.run(SupplierImport(import_catalog).execute_import("sup-ao", AO_FILE))

        assert result.status == "partial"
        assert result.new_products == 1
        assert result.updated_products == 1
        assert result.skipped_rows == 1
        assert result.price_changes[0].change_percentage == pytest.approx(13.75)

        product_id, update = import_catalog.update_product.await_args.args
        assert product_id == "p1"
        assert update["cost_price"] == 45.5

        inserted = import_catalog.insert_products.await_args.args[0]
        assert [row["supplier_sku"] for row in inserted] == ["456"]

        history = import_catalog.insert_price_history.await_args_list[0].args[0]
        assert history[0]["change_source"] == "import"
        assert history[0]["import_batch_id"] == "batch-1"

        assert import_catalog.update_sync_log.await_args.kwargs["status"] == "partial"
        import_catalog.touch_last_import.assert_awaited_once_with("sup-ao")

    def test_clean_file_completes(self, import_catalog):
        content = "\n".join(AO_FILE.splitlines()[:3]) + "\n"
        result = asyncio.run(SupplierImport(import_catalog).execute_import("sup-ao", content))

        assert result.status == "completed"
        assert import_catalog.update_sync_log.await_args.kwargs["status"] == "completed"

    def test_failed_product_write_is_partial(self, import_catalog):
        import_catalog.update_product.side_effect = Exception("write failed")
        content = "\n".join(AO_FILE.splitlines()[:3]) + "\n"

        result = asyncio.run(SupplierImport(import_catalog).execute_import("sup-ao", content))

        assert result.status == "partial"
        assert result.updated_products == 0
        assert import_catalog.update_import_batch.await_args.args[1]["status"] == "partial"

    def test_unknown_supplier(self, catalog):
        with pytest.raises(ValueError):
            asyncio.run(SupplierImport(catalog).execute_import("missing", AO_FILE))

    def test_failure_marks_batch_failed(self, import_catalog):
        import_catalog.get_products_by_skus.side_effect = Exception("db down")

        with pytest.raises(Exception, match="db down"):
            asyncio.run(SupplierImport(import_catalog).execute_import("sup-ao", AO_FILE))

        batch_id, update = import_catalog.update_import_batch.await_args.args
        assert batch_id == "batch-1"
        assert update["status"] == "failed"

    def test_flag_price_changes(self):
        rows = [
            ParsedRow(2, {}, {"sku": "A", "name": "A", "cost_price": 104}, is_update=True, existing_product_id="pa"),
            ParsedRow(3, {}, {"sku": "B", "name": "B", "cost_price": 110}, is_update=True, existing_product_id="pb"),
            ParsedRow(4, {}, {"sku": "C", "name": "C", "cost_price": 150}, is_update=True, existing_product_id="pc"),
        ]
        existing = {sku: {"cost_price": 100} for sku in "ABC"}
        flags = flag_price_changes(calculate_price_changes(rows, existing))

        assert [c.sku for c in flags["significant"]] == ["B", "C"]
        assert [c.sku for c in flags["critical"]] == ["C"]


# =============================================================================
# PRICE SYNC
# =============================================================================

class TestPriceSync:

    def test_unknown_supplier(self, catalog):
        result = asyncio.run(sync_supplier_prices("missing", catalog=catalog))
        assert result["status"] == "failed"

    def test_supplier_without_api(self, catalog):
        catalog.get_supplier.return_value = {"id": "sup-x", "name": "Solar", "code": "XX"}
        result = asyncio.run(sync_supplier_prices("sup-x", catalog=catalog))
        assert result["status"] == "skipped"

    def test_updates_changed_prices(self, price_catalog, api_client):
        with patch.object(SupplierClientFactory, "get_client", AsyncMock(return_value=api_client)):
            result = asyncio.run(sync_supplier_prices("sup-lm", catalog=price_catalog))

        assert result["status"] == "completed"
        assert result["total"] == 2
        assert result["updated"] == 1
        assert result["price_changes"] == 1

        product_id, update = price_catalog.update_product.await_args.args
        assert product_id == "p1"
        assert update["cost_price"] == 12.0
        assert update["lead_time_days"] == 2

        history = price_catalog.insert_price_history.await_args.args[0]
        assert history[0]["change_percentage"] == 20
        assert history[0]["change_source"] == "api_sync"

    def test_failed_batch_is_partial(self, price_catalog, api_client):
        api_client.get_product_prices.side_effect = Exception("timeout")
        with patch.object(SupplierClientFactory, "get_client", AsyncMock(return_value=api_client)):
            result = asyncio.run(sync_supplier_prices("sup-lm", catalog=price_catalog))

        assert result["status"] == "partial"
        assert result["errors"] == ["Batch 1: timeout"]

    def test_no_skus(self, catalog, lm_supplier):
        catalog.get_supplier.return_value = lm_supplier
        result = asyncio.run(sync_supplier_prices("sup-lm", catalog=catalog))
        assert result["status"] == "completed"
        assert result["total"] == 0

    def test_sync_all_suppliers(self, catalog, ao_supplier):
        catalog.get_active_suppliers.return_value = [ao_supplier]
        with patch(
            "elta.sync.sync_supplier_prices.sync_supplier_prices",
            AsyncMock(return_value={"status": "completed"}),
        ) as sync:
            results = asyncio.run(sync_all_suppliers(catalog=catalog))

        assert results == [{"status": "completed", "supplier_code": "AO"}]
        assert sync.await_args.kwargs["trigger_type"] == "scheduled"

    def test_stale_sync_needs_minimum(self, catalog):
        catalog.get_stale_products.return_value = [
            {"supplier_id": "sup-a", "supplier_sku": "1"},
            {"supplier_id": "sup-a", "supplier_sku": "2"},
            {"supplier_id": "sup-b", "supplier_sku": "3"},
        ]
        with patch(
            "elta.sync.sync_supplier_prices.sync_supplier_prices",
            AsyncMock(return_value={"status": "completed"}),
        ) as sync:
            results = asyncio.run(sync_stale_prices(min_count=2, catalog=catalog))

        assert len(results) == 1
        assert sync.await_args.args == ("sup-a",)
        assert sync.await_args.kwargs["skus"] == ["1", "2"]
        assert sync.await_args.kwargs["trigger_type"] == "stale_check"
