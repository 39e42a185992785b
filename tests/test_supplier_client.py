"""
Tests for the supplier API clients.

AO requests go through an httpx.MockTransport; the catalog is mocked.
Each test runs its client inside a single event loop.
"""

import json
import asyncio
import httpx
import pytest
from unittest.mock import AsyncMock, patch

from elta.services.supplier_client import (
    AOAPIClient,
    LMClassicClient,
    SupplierAPIError,
    SupplierClientFactory,
)


# =============================================================================
# FIXTURES
# =============================================================================

class FakeAO:
    """Minimal ao.dk: login, search, single product and account prices"""

    def __init__(self, login_ok=True, search_status=200, search_failures=0, search_replies=None):
        self.login_ok = login_ok
        self.search_status = search_status
        self.search_failures = search_failures
        self.search_replies = list(search_replies or [])
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)

        if path == "/kunde/log-ind-side":
            return httpx.Response(200, text="<html></html>")
        if path == "/api/bruger/ValiderBruger":
            if self.login_ok:
                return httpx.Response(200, json={"Status": True})
            return httpx.Response(200, json={"Status": False, "Message": "Forkert adgangskode"})
        if path == "/api/bruger/GetLoggedInUsernameAndPriceAccount":
            return httpx.Response(200, json={"Username": "elta", "PriceAccount": "12345"})
        if path == "/api/Soeg/QuickSearch":
            if self.search_replies:
                reply = self.search_replies.pop(0)
                if isinstance(reply, Exception):
                    raise reply
                return reply
            if self.search_failures > 0:
                self.search_failures -= 1
                return httpx.Response(503)
            if self.search_status != 200:
                return httpx.Response(self.search_status)
            return httpx.Response(200, json={
                "Produkter": [{"Varenr": "100", "Name": "Stikkontakt", "Maalingsenhed": "STK", "Livscyklus": "A"}],
                "Count": 1,
            })
        if path == "/api/Pris/HentPriserForKonto":
            skus = json.loads(request.content)
            return httpx.Response(200, json=[
                {"Varenr": sku, "DinPris": 45.5, "Listepris": 89.0} for sku in skus
            ])
        return httpx.Response(404)


def _ao(catalog, fake, **kwargs):
    client = AOAPIClient("sup-ao", catalog=catalog, transport=httpx.MockTransport(fake), retry_delay=0, **kwargs)
    client.set_credentials("elta", "hemmelig")
    return client


async def _run(client, call):
    try:
        return await call(client)
    finally:
        await client.close()


@pytest.fixture(autouse=True)
def clear_client_cache():
    SupplierClientFactory.clear_cache()
    yield
    SupplierClientFactory.clear_cache()


@pytest.fixture
def no_env_login(monkeypatch):
    monkeypatch.delenv("AO_USERNAME", raising=False)
    monkeypatch.delenv("AO_PASSWORD", raising=False)


# =============================================================================
# AO
# =============================================================================

class TestAOAuthentication:

    def test_login_sets_price_account(self, catalog):
        client = _ao(catalog, FakeAO())
        assert asyncio.run(_run(client, lambda c: c.authenticate())) is True
        assert client.price_account == "12345"
        assert client.is_authenticated() is True

    def test_rejected_login(self, catalog):
        client = _ao(catalog, FakeAO(login_ok=False))
        assert asyncio.run(_run(client, lambda c: c.authenticate())) is False
        assert client.last_auth_detail == "AO afviste login: Forkert adgangskode"

    def test_missing_credentials(self, catalog, no_env_login):
        client = AOAPIClient("sup-ao", catalog=catalog, transport=httpx.MockTransport(FakeAO()))
        assert asyncio.run(_run(client, lambda c: c.authenticate())) is False
        assert client.last_auth_detail == "Manglende brugernavn eller adgangskode"

    def test_connection_success_is_stored(self, catalog):
        catalog.get_supplier_credentials.return_value = {"username": "elta", "password": "hemmelig"}
        client = AOAPIClient("sup-ao", catalog=catalog, transport=httpx.MockTransport(FakeAO()))

        result = asyncio.run(_run(client, lambda c: c.test_connection()))

        assert result == {"success": True, "message": "Forbindelse til AO er aktiv"}
        catalog.update_credential_status.assert_awaited_once_with("sup-ao", "success", None)

    def test_connection_without_credentials(self, catalog, no_env_login):
        client = AOAPIClient("sup-ao", catalog=catalog, transport=httpx.MockTransport(FakeAO()))

        result = asyncio.run(_run(client, lambda c: c.test_connection()))

        assert result["success"] is False
        assert result["error"] == "NO_CREDENTIALS"
        catalog.update_credential_status.assert_awaited_once_with(
            "sup-ao", "failed", "Ingen aktive API-loginoplysninger fundet"
        )


class TestAOProducts:

    def test_search_with_account_prices(self, catalog):
        client = _ao(catalog, FakeAO())
        result = asyncio.run(_run(client, lambda c: c.search_products("stikkontakt")))

        product = result.products[0]
        assert product.sku == "100"
        assert product.cost_price == 45.5
        assert product.list_price == 89.0
        assert product.is_available is True
        assert result.total_count == 1
        assert result.has_more is False

    def test_server_errors_are_retried(self, catalog):
        fake = FakeAO(search_failures=2)
        client = _ao(catalog, fake)
        result = asyncio.run(_run(client, lambda c: c.search_products("stik")))

        assert result.products[0].sku == "100"
        assert fake.calls.count("/api/Soeg/QuickSearch") == 3

    def test_client_errors_fail_fast(self, catalog):
        fake = FakeAO(search_status=404)
        client = _ao(catalog, fake)

        async def call(c):
            await c.authenticate()
            return await c._request("GET", "/api/Soeg/QuickSearch")

        with pytest.raises(SupplierAPIError) as exc:
            asyncio.run(_run(client, call))

        assert exc.value.status_code == 404
        assert exc.value.retryable is False
        assert fake.calls.count("/api/Soeg/QuickSearch") == 1

    def test_search_falls_back_to_catalog(self, catalog):
        catalog.search_products.return_value = [
            {"supplier_sku": "100", "supplier_name": "Stikkontakt", "cost_price": 40.0},
        ]
        client = _ao(catalog, FakeAO(search_status=404))
        result = asyncio.run(_run(client, lambda c: c.search_products("stik")))

        assert result.products[0].cost_price == 40.0
        catalog.search_products.assert_awaited_once_with("sup-ao", "stik", limit=25)

    def test_product_prices_merge_catalog_info(self, catalog):
        catalog.get_products_by_skus.return_value = [
            {"supplier_sku": "100", "supplier_name": "Stikkontakt", "cost_price": 40.0, "unit": "STK"},
        ]
        client = _ao(catalog, FakeAO())
        prices = asyncio.run(_run(client, lambda c: c.get_product_prices(["100", "200"])))

        assert set(prices) == {"100"}
        assert prices["100"].cost_price == 45.5
        assert prices["100"].name == "Stikkontakt"


class TestRequestRetries:

    async def _search(self, client):
        await client.authenticate()
        return await client._request("GET", "/api/Soeg/QuickSearch")

    def test_unauthorized_reauthenticates(self, catalog):
        fake = FakeAO(search_replies=[httpx.Response(401)])
        client = _ao(catalog, fake)

        data = asyncio.run(_run(client, self._search))

        assert data["Count"] == 1
        assert fake.calls.count("/api/bruger/ValiderBruger") == 2
        assert fake.calls.count("/api/Soeg/QuickSearch") == 2

    def test_rate_limited_waits_for_retry_after(self, catalog):
        fake = FakeAO(search_replies=[httpx.Response(429, headers={"Retry-After": "7"})])
        client = _ao(catalog, fake)

        with patch("elta.services.supplier_client.asyncio.sleep", new_callable=AsyncMock) as sleep:
            data = asyncio.run(_run(client, self._search))

        assert data["Count"] == 1
        sleep.assert_awaited_once_with(7.0)

    def test_rate_limited_until_retries_run_out(self, catalog):
        fake = FakeAO(search_replies=[httpx.Response(429) for _ in range(3)])
        client = _ao(catalog, fake)

        with patch("elta.services.supplier_client.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(SupplierAPIError) as exc:
                asyncio.run(_run(client, self._search))

        assert exc.value.status_code == 429
        assert exc.value.retryable is True

    def test_timeout(self, catalog):
        fake = FakeAO(search_replies=[httpx.ReadTimeout("too slow")])
        client = _ao(catalog, fake)

        with pytest.raises(SupplierAPIError) as exc:
            asyncio.run(_run(client, self._search))

        assert exc.value.retryable is True
        assert exc.value.message.startswith("Request timeout after")
        assert fake.calls.count("/api/Soeg/QuickSearch") == 1


class TestRequestHelpers:

    def test_rate_limit_headers(self, catalog):
        client = AOAPIClient("sup-ao", catalog=catalog)
        client._update_rate_limit(httpx.Headers({"X-RateLimit-Remaining": "5", "X-RateLimit-Reset": "1700000000"}))
        assert client.rate_limit.remaining == 5
        assert client.rate_limit.reset_at == 1700000000

    def test_backoff_is_capped(self, catalog):
        client = AOAPIClient("sup-ao", catalog=catalog, retry_delay=100)
        assert client._backoff(3) == 60


# =============================================================================
# LEMVIGH-MÜLLER
# =============================================================================

class TestLMClassicClient:

    def test_connection_without_imports(self, catalog):
        result = asyncio.run(LMClassicClient("sup-lm", catalog=catalog).test_connection())
        assert result["success"] is False
        assert result["error"] == "NO_PRODUCTS"

    def test_connection_reports_latest_import(self, catalog):
        catalog.count_products.return_value = 1234
        catalog.get_latest_import.return_value = {"created_at": "2025-03-01T10:00:00Z"}

        result = asyncio.run(LMClassicClient("sup-lm", catalog=catalog).test_connection())

        assert result["success"] is True
        assert result["message"] == "LM Classic: 1.234 produkter importeret. Seneste import: 01.03.2025"

    def test_search_reads_catalog(self, catalog):
        catalog.search_products.return_value = [
            {"supplier_sku": "1", "supplier_name": "Kabel"},
            {"supplier_sku": "2", "supplier_name": "Rør"},
        ]
        result = asyncio.run(LMClassicClient("sup-lm", catalog=catalog).search_products("kabel", limit=2))

        assert [p.sku for p in result.products] == ["1", "2"]
        assert result.has_more is True


# =============================================================================
# FACTORY
# =============================================================================

class TestFactory:

    def test_clients_by_code(self, catalog):
        async def build():
            ao = await SupplierClientFactory.get_client("sup-ao", "AO", catalog=catalog)
            again = await SupplierClientFactory.get_client("sup-ao", "AO", catalog=catalog)
            lm = await SupplierClientFactory.get_client("sup-lm", "lemvigh", catalog=catalog)
            other = await SupplierClientFactory.get_client("sup-x", "XX", catalog=catalog)
            return ao, again, lm, other

        ao, again, lm, other = asyncio.run(build())

        assert isinstance(ao, AOAPIClient)
        assert again is ao
        assert isinstance(lm, LMClassicClient)
        assert other is None
        catalog.get_supplier_credentials.assert_awaited_once_with("sup-ao")
