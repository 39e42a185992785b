"""
Shared fixtures for the Elta CRM backend tests.

Environment is set before any app module is imported so the scheduler
stays off and the Supabase settings resolve to dummies.
"""

import os
import pytest
from unittest.mock import MagicMock

os.environ["SYNC_ENABLED"] = "false"
os.environ["SUPABASE_URL"] = "https://test.supabase.co"
os.environ["SUPABASE_SERVICE_KEY"] = "test-key"

from elta.sync.catalog_client import CatalogClient


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def catalog():
    """CatalogClient double; every async method is an AsyncMock with empty results."""
    mock = MagicMock(spec=CatalogClient)

    mock.get_supplier.return_value = None
    mock.get_active_suppliers.return_value = []
    mock.get_supplier_credentials.return_value = None
    mock.get_supplier_settings.return_value = None
    mock.get_supplier_skus.return_value = []
    mock.get_products_by_skus.return_value = []
    mock.search_products.return_value = []
    mock.count_products.return_value = 0
    mock.insert_products.return_value = 0
    mock.get_stale_products.return_value = []
    mock.create_import_batch.return_value = "batch-1"
    mock.get_latest_import.return_value = None
    mock.create_sync_log.return_value = "log-1"
    mock.get_last_sync.return_value = None
    mock.get_global_factors.return_value = []
    mock.get_building_profile.return_value = None
    mock.get_linked_materials.return_value = []
    mock.get_supplier_products_by_ids.return_value = []
    mock.get_customer_supplier_prices.return_value = []
    mock.get_customer_product_prices.return_value = []
    mock.get_margin_rules.return_value = []
    mock.get_solar_products.return_value = []
    mock.get_offer_text_templates.return_value = []
    mock.get_calc_components.return_value = []
    mock.get_calculation_feedback.return_value = []
    mock.get_calculations_with_feedback.return_value = []
    mock.insert_calculation_feedback.return_value = "feedback-1"

    return mock


@pytest.fixture
def ao_supplier():
    return {"id": "sup-ao", "name": "AO", "code": "AO", "is_active": True}


@pytest.fixture
def lm_supplier():
    return {"id": "sup-lm", "name": "Lemvigh-Müller", "code": "LM", "is_active": True}
