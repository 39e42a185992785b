"""
Supplier API Client

Live price lookups against wholesaler APIs with authentication, retries,
rate limiting and fallback to the cached supplier_products catalog.

AO is reached through its website JSON API with a cookie session.
Lemvigh-Müller has no live API; its client reads the catalog populated by
CSV imports.
"""

import os
import time
import random
import asyncio
import logging
import httpx
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple

from elta.models import constants
from elta.sync.catalog_client import CatalogClient, get_catalog_client

logger = logging.getLogger(__name__)

AO_BASE_URL = os.getenv("AO_BASE_URL", constants.AO_BASE_URL)
LM_BASE_URL = os.getenv("LM_BASE_URL", constants.LM_BASE_URL)
SUPPLIER_TIMEOUT_SECONDS = float(os.getenv("SUPPLIER_TIMEOUT_SECONDS", str(constants.SUPPLIER_TIMEOUT_SECONDS)))
SUPPLIER_MAX_RETRIES = int(os.getenv("SUPPLIER_MAX_RETRIES", str(constants.SUPPLIER_RETRY_ATTEMPTS)))
AO_LOGIN_TIMEOUT_SECONDS = 10.0


class SupplierAPIError(Exception):
    """HTTP or protocol failure talking to a supplier"""

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retryable = retryable


@dataclass
class ProductPrice:
    sku: str
    name: str
    cost_price: float
    list_price: Optional[float] = None
    currency: str = "DKK"
    unit: str = "STK"
    is_available: bool = True
    stock_quantity: Optional[int] = None
    lead_time_days: Optional[int] = None
    image_url: Optional[str] = None

    @classmethod
    def from_catalog_row(cls, row: Dict[str, Any]) -> "ProductPrice":
        return cls(
            sku=row["supplier_sku"],
            name=row.get("supplier_name") or "",
            cost_price=row.get("cost_price") or 0,
            list_price=row.get("list_price"),
            unit=row.get("unit") or "STK",
            is_available=row.get("is_available", True),
            lead_time_days=row.get("lead_time_days"),
        )


@dataclass
class ProductSearchResult:
    products: List[ProductPrice] = field(default_factory=list)
    total_count: int = 0
    has_more: bool = False


@dataclass
class RateLimitInfo:
    remaining: int
    reset_at: float


class BaseSupplierAPIClient:
    """Shared auth state, request retries and catalog fallback"""

    supplier_code = ""
    supplier_name = ""

    def __init__(
        self,
        supplier_id: str,
        base_url: str,
        catalog: Optional[CatalogClient] = None,
        timeout: float = SUPPLIER_TIMEOUT_SECONDS,
        retry_attempts: int = SUPPLIER_MAX_RETRIES,
        retry_delay: float = constants.SUPPLIER_RETRY_DELAY_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.supplier_id = supplier_id
        self.base_url = base_url
        self._catalog = catalog
        self.timeout = timeout
        self.retry_attempts = max(retry_attempts, 1)
        self.retry_delay = retry_delay
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

        self.credentials: Optional[Dict[str, Any]] = None
        self.access_token: Optional[str] = None
        self.auth_expires_at: Optional[float] = None
        self.rate_limit: Optional[RateLimitInfo] = None
        self.last_credential_error: Optional[str] = None

    @property
    def catalog(self) -> CatalogClient:
        if self._catalog is None:
            self._catalog = get_catalog_client()
        return self._catalog

    def _client(self) -> httpx.AsyncClient:
        # One client per supplier so session cookies survive between calls
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._http

    async def close(self):
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # ============== Credentials & Auth ==============

    async def load_credentials(self) -> bool:
        """Load the active API credentials for this supplier"""
        try:
            credentials = await self.catalog.get_supplier_credentials(self.supplier_id)
        except Exception as e:
            self.last_credential_error = str(e) or "Krypteringsfejl"
            logger.error(f"[{self.supplier_code}] Credential loading error: {e}")
            return False

        if not credentials:
            self.last_credential_error = "Ingen aktive API-loginoplysninger fundet"
            logger.info(f"[{self.supplier_code}] No credentials for supplier {self.supplier_id}")
            return False

        self.credentials = credentials
        self.last_credential_error = None
        if credentials.get("api_endpoint"):
            self.base_url = credentials["api_endpoint"]
        return True

    def set_credentials(self, username: str, password: str):
        """Use credentials directly, e.g. to test before saving them"""
        self.credentials = {"username": username, "password": password}

    async def authenticate(self) -> bool:
        raise NotImplementedError

    async def test_connection(self) -> Dict[str, Any]:
        raise NotImplementedError

    async def search_products(
        self,
        query: str = "",
        sku: Optional[str] = None,
        limit: int = 25,
        offset: int = 0
    ) -> ProductSearchResult:
        raise NotImplementedError

    async def get_product_price(self, sku: str) -> Optional[ProductPrice]:
        raise NotImplementedError

    async def get_product_prices(self, skus: List[str]) -> Dict[str, ProductPrice]:
        raise NotImplementedError

    def mark_authenticated(self, token: str = "session"):
        self.access_token = token
        self.auth_expires_at = time.time() + constants.SUPPLIER_AUTH_TTL_SECONDS

    def is_authenticated(self) -> bool:
        return self.auth_expires_at is not None and time.time() < self.auth_expires_at

    async def ensure_authenticated(self):
        if not self.is_authenticated():
            if not await self.authenticate():
                raise SupplierAPIError(f"Authentication failed for {self.supplier_name}", status_code=401)

    async def update_credential_status(self, status: str, error: Optional[str] = None):
        try:
            await self.catalog.update_credential_status(self.supplier_id, status, error)
        except Exception as e:
            logger.warning(f"[{self.supplier_code}] Could not store connection test result: {e}")

    # ============== Requests ==============

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.access_token and self.access_token != "session":
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _backoff(self, attempt: int) -> float:
        """Exponential backoff with jitter, capped"""
        delay = self.retry_delay * (2 ** attempt) + random.random() * self.retry_delay
        return min(delay, constants.SUPPLIER_MAX_BACKOFF_SECONDS)

    def _update_rate_limit(self, headers: httpx.Headers):
        remaining = headers.get("X-RateLimit-Remaining") or headers.get("RateLimit-Remaining")
        reset = headers.get("X-RateLimit-Reset") or headers.get("RateLimit-Reset")
        if remaining is None or not remaining.strip().isdigit():
            return

        reset_at = float(reset) if reset and reset.strip().isdigit() else time.time() + 60
        self.rate_limit = RateLimitInfo(remaining=int(remaining), reset_at=reset_at)

    def _retry_after(self, response: httpx.Response) -> Optional[float]:
        value = response.headers.get("Retry-After")
        if value and value.strip().isdigit() and int(value) > 0:
            return float(value)
        return None

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None
    ) -> Any:
        """Request with retries, 401 re-auth, 429 handling and rate limit waits"""
        last_error: Optional[SupplierAPIError] = None

        for attempt in range(self.retry_attempts):
            if self.rate_limit and self.rate_limit.remaining == 0:
                wait = self.rate_limit.reset_at - time.time()
                if wait > 0:
                    await asyncio.sleep(min(wait, constants.SUPPLIER_MAX_BACKOFF_SECONDS))

            try:
                response = await self._client().request(
                    method, path, params=params, json=json, headers=self._headers()
                )
            except httpx.TimeoutException:
                raise SupplierAPIError(f"Request timeout after {self.timeout}s", retryable=True)
            except httpx.HTTPError as e:
                last_error = SupplierAPIError(f"Network error: {e}", retryable=True)
            else:
                self._update_rate_limit(response.headers)

                if response.status_code == 401 and attempt == 0:
                    logger.info(f"[{self.supplier_code}] 401 from {path}, re-authenticating")
                    self.auth_expires_at = None
                    await self.authenticate()
                    continue

                if response.status_code == 429:
                    last_error = SupplierAPIError("Rate limited", status_code=429, retryable=True)
                    await asyncio.sleep(self._retry_after(response) or self._backoff(attempt))
                    continue

                if response.is_success:
                    return response.json()

                last_error = SupplierAPIError(
                    f"HTTP {response.status_code}: {response.reason_phrase}",
                    status_code=response.status_code,
                    retryable=response.status_code >= 500,
                )
                if not last_error.retryable:
                    raise last_error

            if attempt < self.retry_attempts - 1:
                await asyncio.sleep(self._backoff(attempt))

        raise last_error or SupplierAPIError("Request failed after retries")

    # ============== Catalog Fallback ==============

    async def cached_search(self, query: str = "", sku: Optional[str] = None, limit: int = 50) -> ProductSearchResult:
        if sku:
            rows = await self.catalog.get_products_by_skus(self.supplier_id, [sku])
        else:
            rows = await self.catalog.search_products(self.supplier_id, query, limit=limit)
        products = [ProductPrice.from_catalog_row(row) for row in rows]
        return ProductSearchResult(products=products, total_count=len(products), has_more=False)

    async def cached_prices(self, skus: List[str]) -> Dict[str, ProductPrice]:
        if not skus:
            return {}
        rows = await self.catalog.get_products_by_skus(self.supplier_id, skus)
        return {row["supplier_sku"]: ProductPrice.from_catalog_row(row) for row in rows}


class AOAPIClient(BaseSupplierAPIClient):
    """AO (ao.dk) through the website JSON API with a login cookie session"""

    supplier_code = "AO"
    supplier_name = "AO"

    def __init__(self, supplier_id: str, base_url: str = AO_BASE_URL, **kwargs):
        super().__init__(supplier_id, base_url, **kwargs)
        self.price_account: Optional[str] = None
        self.last_auth_detail = ""

    def _headers(self) -> Dict[str, str]:
        return {**super()._headers(), "X-Requested-With": "XMLHttpRequest"}

    def _login(self) -> Tuple[Optional[str], Optional[str]]:
        credentials = self.credentials or {}
        return (
            credentials.get("username") or os.getenv("AO_USERNAME"),
            credentials.get("password") or os.getenv("AO_PASSWORD"),
        )

    async def authenticate(self) -> bool:
        """Log in: session cookie, ValiderBruger, then look up the price account"""
        self.last_auth_detail = ""
        username, password = self._login()
        if not username or not password:
            self.last_auth_detail = "Manglende brugernavn eller adgangskode"
            return False

        client = self._client()
        try:
            await client.get("/kunde/log-ind-side", timeout=AO_LOGIN_TIMEOUT_SECONDS)

            response = await client.post(
                "/api/bruger/ValiderBruger",
                json={
                    "Brugernavn": username,
                    "Password": password,
                    "HuskLogin": True,
                    "LoginKanal": "Web",
                },
                headers=self._headers(),
            )
            response.raise_for_status()
            result = response.json()

            if not result.get("Status"):
                message = result.get("Message")
                self.last_auth_detail = (
                    f"AO afviste login: {message}" if message
                    else "AO afviste login: brugernavn eller adgangskode er forkert"
                )
                return False

            response = await client.get("/api/bruger/GetLoggedInUsernameAndPriceAccount", headers=self._headers())
            response.raise_for_status()
            self.price_account = response.json().get("PriceAccount")

            self.mark_authenticated()
            logger.info(f"[AO] Logged in, price account {self.price_account}")
            return True

        except httpx.TimeoutException:
            self.last_auth_detail = "Timeout: ao.dk svarede ikke inden for 10 sekunder"
        except httpx.HTTPStatusError as e:
            self.last_auth_detail = f"Uventet fejl: HTTP {e.response.status_code}"
        except httpx.HTTPError:
            self.last_auth_detail = "Netværksfejl: kunne ikke nå ao.dk. Tjek netværk."
        except ValueError as e:
            self.last_auth_detail = f"Uventet fejl: {e}"

        logger.error(f"[AO] Login failed: {self.last_auth_detail}")
        return False

    async def test_connection(self) -> Dict[str, Any]:
        try:
            if not self.credentials and not await self.load_credentials():
                username, password = self._login()
                if not username or not password:
                    reason = self.last_credential_error or "Ingen aktive API-loginoplysninger fundet for AO"
                    await self.update_credential_status("failed", reason)
                    return {"success": False, "message": reason, "error": "NO_CREDENTIALS"}

            username, password = self._login()
            if not username or not password:
                message = "Manglende brugernavn eller adgangskode. Udfyld felterne og gem først."
                await self.update_credential_status("failed", message)
                return {"success": False, "message": message, "error": "MISSING_CREDENTIALS"}

            if not await self.authenticate():
                message = self.last_auth_detail or "Kunne ikke logge ind på AO. Tjek brugernavn og adgangskode."
                await self.update_credential_status("invalid_credentials", message)
                return {"success": False, "message": message, "error": "AUTH_FAILED"}

            await self.update_credential_status("success")
            return {"success": True, "message": "Forbindelse til AO er aktiv"}

        except Exception as e:
            await self.update_credential_status("failed", str(e))
            return {"success": False, "message": f"Forbindelsesfejl: {e}", "error": str(e)}

    def _to_price(self, product: Dict[str, Any], price: Optional[Dict[str, Any]]) -> ProductPrice:
        return ProductPrice(
            sku=product["Varenr"],
            name=product.get("Name") or "",
            cost_price=(price or {}).get("DinPris") or 0,
            list_price=(price or {}).get("Listepris"),
            unit=product.get("Maalingsenhed") or "STK",
            is_available=product.get("Livscyklus") == "A",
            image_url=product.get("ImageUrlMedium") or None,
        )

    async def fetch_prices(self, skus: List[str]) -> Dict[str, Dict[str, Any]]:
        """Net prices for the price account, in batches"""
        result: Dict[str, Dict[str, Any]] = {}
        if not self.price_account or not skus:
            return result

        batch_size = constants.SUPPLIER_SYNC_BATCH_SIZE
        try:
            for start in range(0, len(skus), batch_size):
                prices = await self._request(
                    "POST",
                    "/api/Pris/HentPriserForKonto",
                    params={"kontonummer": self.price_account},
                    json=skus[start:start + batch_size],
                )
                if isinstance(prices, list):
                    for price in prices:
                        result[price["Varenr"]] = price
        except SupplierAPIError as e:
            logger.error(f"[AO] Price fetch failed after {len(result)} prices: {e}")

        return result

    async def search_products(
        self,
        query: str = "",
        sku: Optional[str] = None,
        limit: int = 25,
        offset: int = 0
    ) -> ProductSearchResult:
        await self.ensure_authenticated()

        start = offset + 1
        stop = start + limit - 1
        try:
            data = await self._request(
                "GET",
                "/api/Soeg/QuickSearch",
                params={"q": query or sku or "", "a": "", "start": start, "stop": stop},
            )
            found = data.get("Produkter") or []
            prices = await self.fetch_prices([p["Varenr"] for p in found])
            products = [self._to_price(p, prices.get(p["Varenr"])) for p in found]
            total = data.get("Count", len(products))

            return ProductSearchResult(products=products, total_count=total, has_more=stop < total)

        except (SupplierAPIError, KeyError, AttributeError) as e:
            logger.error(f"[AO] Search failed, falling back to catalog: {e}")
            return await self.cached_search(query, sku, limit)

    async def get_product_price(self, sku: str) -> Optional[ProductPrice]:
        await self.ensure_authenticated()
        try:
            product = await self._request("GET", "/api/Soeg/EnkeltProdukt", params={"varenr": sku})
            prices = await self.fetch_prices([sku])
            return self._to_price(product, prices.get(sku))
        except (SupplierAPIError, KeyError, AttributeError) as e:
            logger.warning(f"[AO] Lookup of {sku} failed, using catalog: {e}")
            cached = await self.cached_prices([sku])
            return cached.get(sku)

    async def get_product_prices(self, skus: List[str]) -> Dict[str, ProductPrice]:
        """Live prices merged onto catalog product info"""
        await self.ensure_authenticated()
        prices = await self.fetch_prices(skus)
        rows = await self.catalog.get_products_by_skus(self.supplier_id, skus)

        result = {}
        for row in rows:
            price = prices.get(row["supplier_sku"])
            if not price:
                continue
            product = ProductPrice.from_catalog_row(row)
            product.cost_price = price.get("DinPris") or 0
            product.list_price = price.get("Listepris")
            result[row["supplier_sku"]] = product
        return result


class LMClassicClient(BaseSupplierAPIClient):
    """Lemvigh-Müller: no live API, reads the catalog filled by CSV imports"""

    supplier_code = "LM"
    supplier_name = "Lemvigh-Müller"

    def __init__(self, supplier_id: str, base_url: str = LM_BASE_URL, **kwargs):
        super().__init__(supplier_id, base_url, **kwargs)

    async def load_credentials(self) -> bool:
        return True

    async def authenticate(self) -> bool:
        return True

    async def test_connection(self) -> Dict[str, Any]:
        try:
            count = await self.catalog.count_products(self.supplier_id)
            latest = await self.catalog.get_latest_import(self.supplier_id)
        except Exception as e:
            return {"success": False, "message": f"Fejl: {e}", "error": str(e)}

        if count == 0 and not latest:
            return {
                "success": False,
                "message": "Ingen produkter importeret endnu. Upload en CSV-prisliste fra classic.lemu.dk.",
                "error": "NO_PRODUCTS",
            }

        last_date = "ukendt"
        if latest and latest.get("created_at"):
            created = datetime.fromisoformat(latest["created_at"].replace("Z", "+00:00"))
            last_date = created.strftime("%d.%m.%Y")

        count_text = f"{count:,}".replace(",", ".")
        return {
            "success": True,
            "message": f"LM Classic: {count_text} produkter importeret. Seneste import: {last_date}",
        }

    async def search_products(
        self,
        query: str = "",
        sku: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> ProductSearchResult:
        result = await self.cached_search(query, sku, limit)
        result.has_more = len(result.products) == limit
        return result

    async def get_product_price(self, sku: str) -> Optional[ProductPrice]:
        return (await self.cached_prices([sku])).get(sku)

    async def get_product_prices(self, skus: List[str]) -> Dict[str, ProductPrice]:
        return await self.cached_prices(skus)


class SupplierClientFactory:
    """Creates and caches one client per supplier"""

    _clients: Dict[str, BaseSupplierAPIClient] = {}

    @classmethod
    async def get_client(
        cls,
        supplier_id: str,
        supplier_code: str,
        catalog: Optional[CatalogClient] = None
    ) -> Optional[BaseSupplierAPIClient]:
        key = f"{supplier_id}:{supplier_code}"
        if key in cls._clients:
            return cls._clients[key]

        code = (supplier_code or "").upper()
        if code == "AO":
            client: BaseSupplierAPIClient = AOAPIClient(supplier_id, catalog=catalog)
            await client.load_credentials()
        elif code in ("LM", "LEMVIGH"):
            client = LMClassicClient(supplier_id, catalog=catalog)
        else:
            return None

        cls._clients[key] = client
        return client

    @classmethod
    def clear_cache(cls):
        cls._clients.clear()
