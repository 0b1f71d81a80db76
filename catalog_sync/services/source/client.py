import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import httpx

from catalog_sync.core.config import get_settings
from catalog_sync.core.exceptions import SourceAuthError, SourceFetchError
from catalog_sync.services.source.token_manager import SourceTokenManager

logger = logging.getLogger(__name__)

VARIATIONS = "/rest/items/variations"
CATEGORIES = "/rest/categories"
ATTRIBUTES = "/rest/items/attributes"
SALES_PRICES = "/rest/items/sales_prices"
MANUFACTURERS = "/rest/items/manufacturers"
UNITS = "/rest/items/units"
PROPERTIES = "/rest/properties"
STOCK_MANAGEMENT = "/rest/stockmanagement/stock"

DEFAULT_VARIATION_RELATIONS = [
    "variationSalesPrices",
    "variationBarcodes",
    "variationAttributeValues",
    "variationCategories",
    "variationProperties",
    "variationTexts",
    "stock",
]


def filter_properties(
    properties: List[Dict[str, Any]],
    referrer_ids: Iterable[str],
    client_ids: Optional[Iterable[str]] = None,
) -> List[Dict[str, Any]]:
    """
    Keep only properties visible for one of the given referrers and, when
    client_ids is given, one of the given clients.
    """
    referrer_ids = {str(r) for r in referrer_ids}
    client_ids = {str(c) for c in client_ids} if client_ids is not None else None

    def option_values(prop: Dict[str, Any], identifier: str) -> set:
        values = set()
        for option in prop.get("options") or []:
            if option.get("typeOptionIdentifier") != identifier:
                continue
            for value in option.get("propertyOptionValues") or []:
                values.add(str(value.get("value")))
        return values

    kept = []
    for prop in properties:
        if not option_values(prop, "referrers") & referrer_ids:
            continue
        if client_ids is not None and not option_values(prop, "clients") & client_ids:
            continue
        kept.append(prop)
    return kept


class SourceClient:
    """
    Asynchronous client for the source ERP REST API.

    Functionality:
        - Login with username/password; the bearer token is held by a
          SourceTokenManager and refreshed 5 minutes before it expires, or
          immediately when a request comes back 401.
        - Bounded retries per request (_make_request): increasing delay
          between attempts, no retry on 4xx other than 429, Retry-After
          honoured on 429.
        - Pagination (fetch_all) by walking pages until isLastPage, with a
          short pause between pages.
        - Delta fetches (fetch_delta) through the updatedBetween filter,
          expressed in epoch seconds.
        - Helpers for the resources the sync needs: variations, categories,
          attributes, sales prices, manufacturers, units, properties, item
          images and stock.

    Any request that is still failing after the last attempt raises
    SourceFetchError; a failed login raises SourceAuthError.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        *,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay_ms: Optional[int] = None,
        page_delay_ms: Optional[int] = None,
        rate_limit_wait: Optional[int] = None,
        items_per_page: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        settings = get_settings()
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.timeout = timeout if timeout is not None else settings.SOURCE_TIMEOUT
        self.max_retries = max_retries if max_retries is not None else settings.SOURCE_MAX_RETRIES
        self.retry_delay_ms = retry_delay_ms if retry_delay_ms is not None else settings.SOURCE_RETRY_DELAY_MS
        self.page_delay_ms = page_delay_ms if page_delay_ms is not None else settings.SOURCE_PAGE_DELAY_MS
        self.rate_limit_wait = rate_limit_wait if rate_limit_wait is not None else settings.SOURCE_RATE_LIMIT_WAIT
        self.items_per_page = items_per_page or settings.SOURCE_ITEMS_PER_PAGE
        self.token_manager = SourceTokenManager()
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_credentials(cls, base_url: str, credentials: Dict[str, str], **kwargs) -> "SourceClient":
        return cls(base_url, credentials.get("username", ""), credentials.get("password", ""), **kwargs)

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        token = self.token_manager.get_access_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    # Authentication

    async def authenticate(self) -> None:
        """
        Log in and store the access token.

        Raises:
            SourceAuthError: network failure or non-2xx response from /rest/login
        """
        url = f"{self.base_url}/rest/login"
        logger.info(f"Authenticating with source API at {self.base_url}")
        try:
            async with self._http() as client:
                response = await client.post(
                    url,
                    json={"username": self.username, "password": self.password},
                    headers={"Content-Type": "application/json", "Accept": "application/json"},
                )
        except httpx.RequestError as e:
            logger.error(f"Source authentication network error: {str(e)}")
            raise SourceAuthError(f"Source authentication failed: {str(e)}") from e

        if response.status_code not in (200, 201):
            excerpt = response.text[:500]
            logger.error(f"Source authentication failed ({response.status_code}): {excerpt}")
            raise SourceAuthError(
                f"Source authentication failed with status {response.status_code}",
                status_code=response.status_code,
                response_excerpt=excerpt,
            )

        data = response.json()
        token = data.get("accessToken") or data.get("access_token")
        if not token:
            raise SourceAuthError("Source authentication response did not contain a token")
        self.token_manager.save_access_token(token, int(data.get("expiresIn") or data.get("expires_in") or 3600))

    async def _ensure_authenticated(self) -> None:
        if not self.token_manager.get_access_token():
            await self.authenticate()

    # Core request

    def _retry_after_seconds(self, response: httpx.Response) -> float:
        value = response.headers.get("retry-after")
        try:
            return float(value) if value is not None else float(self.rate_limit_wait)
        except ValueError:
            return float(self.rate_limit_wait)

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Make a request to the source API with retries.

        Args:
            method: HTTP method
            endpoint: API path, e.g. /rest/items/variations
            params: Query parameters
            data: JSON body

        Returns:
            Decoded JSON body ({} for empty responses)

        Raises:
            SourceFetchError: non-retryable 4xx, or retries exhausted
            SourceAuthError: re-authentication after a 401 failed
        """
        await self._ensure_authenticated()

        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        last_error: Optional[SourceFetchError] = None
        reauthenticated = False
        attempt = 0

        while attempt < self.max_retries:
            attempt += 1
            logger.debug(f"{method} {url} params={params} (attempt {attempt}/{self.max_retries})")
            try:
                async with self._http() as client:
                    response = await client.request(
                        method=method,
                        url=url,
                        headers=self._get_headers(),
                        params=params,
                        json=data,
                    )
            except httpx.TimeoutException as e:
                logger.warning(f"Source request timed out (attempt {attempt}): {str(e)}")
                last_error = SourceFetchError(f"Request timed out: {str(e)}")
            except httpx.RequestError as e:
                logger.warning(f"Source network error (attempt {attempt}): {str(e)}")
                last_error = SourceFetchError(f"Network error: {str(e)}")
            else:
                status = response.status_code
                if 200 <= status < 300:
                    if status == 204 or not response.content:
                        return {}
                    return response.json()

                excerpt = response.text[:500]

                if status == 401 and not reauthenticated:
                    # 401: log in again, not counted as an attempt
                    logger.warning("Source token rejected, re-authenticating")
                    reauthenticated = True
                    self.token_manager.clear_tokens()
                    await self.authenticate()
                    attempt -= 1
                    continue

                last_error = SourceFetchError(
                    f"Request to {endpoint} failed with status {status}: {excerpt}",
                    status_code=status,
                    response_excerpt=excerpt,
                )

                if 400 <= status < 500 and status != 429:
                    logger.error(f"Source API error {status} on {endpoint}: {excerpt}")
                    raise last_error

                if status == 429:
                    if attempt >= self.max_retries:
                        logger.error(f"Rate limited by source API on {endpoint}, no attempts left")
                        break
                    wait = self._retry_after_seconds(response)
                    logger.warning(f"Rate limited by source API, waiting {wait}s (attempt {attempt})")
                    await self._sleep(wait)
                    continue

                logger.warning(f"Source API error {status} on {endpoint} (attempt {attempt}/{self.max_retries})")

            if attempt < self.max_retries:
                await self._sleep(self.retry_delay_ms * attempt / 1000)

        logger.error(f"Source request to {endpoint} failed after {self.max_retries} attempts")
        raise last_error or SourceFetchError(f"Request to {endpoint} failed after max retries")

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self._make_request("GET", endpoint, params=params)

    # Pagination

    async def fetch_page(self, resource: str, filters: Optional[Dict[str, Any]] = None, page: int = 1,
                         items_per_page: Optional[int] = None) -> Dict[str, Any]:
        """Fetch one page; returns the {page, totalsCount, isLastPage, lastPageNumber, entries} envelope."""
        params = dict(filters or {})
        params["page"] = page
        params.setdefault("itemsPerPage", items_per_page or self.items_per_page)
        data = await self.get(resource, params)
        if isinstance(data, list):
            # Some endpoints answer with a bare list; treat it as the only page
            return {"page": 1, "totalsCount": len(data), "isLastPage": True, "lastPageNumber": 1, "entries": data}
        return data

    async def fetch_all(
        self,
        resource: str,
        filters: Optional[Dict[str, Any]] = None,
        items_per_page: Optional[int] = None,
        on_page: Optional[Callable[[int, int], None]] = None,
    ) -> List[Dict[str, Any]]:
        """Walk every page of a resource sequentially and return all entries."""
        entries: List[Dict[str, Any]] = []
        page = 1
        while True:
            data = await self.fetch_page(resource, filters, page=page, items_per_page=items_per_page)
            entries.extend(data.get("entries") or [])
            if on_page:
                on_page(page, data.get("lastPageNumber") or page)
            if data.get("isLastPage", True):
                break
            page += 1
            await self._sleep(self.page_delay_ms / 1000)

        logger.info(f"Fetched {len(entries)} entries from {resource} in {page} page(s)")
        return entries

    async def fetch_delta(
        self,
        resource: str,
        since: datetime,
        with_relations: Optional[List[str]] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch everything updated since the watermark."""
        params = dict(filters or {})
        params["updatedBetween"] = int(since.timestamp())
        if with_relations:
            params["with"] = ",".join(with_relations)
        logger.info(f"Delta fetch of {resource} since {since.isoformat()}")
        return await self.fetch_all(resource, params)

    # Resources

    async def get_all_variations(self, with_relations: Optional[List[str]] = None,
                                 filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        params = dict(filters or {})
        params["with"] = ",".join(with_relations or DEFAULT_VARIATION_RELATIONS)
        return await self.fetch_all(VARIATIONS, params)

    async def get_variations_delta(self, since: datetime,
                                   with_relations: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        return await self.fetch_delta(VARIATIONS, since, with_relations or DEFAULT_VARIATION_RELATIONS)

    async def get_all_categories(self) -> List[Dict[str, Any]]:
        return await self.fetch_all(CATEGORIES, {"with": "details", "type": "item"})

    async def get_all_attributes(self) -> List[Dict[str, Any]]:
        return await self.fetch_all(ATTRIBUTES, {"with": "names,values"}, items_per_page=250)

    async def get_all_sales_prices(self) -> List[Dict[str, Any]]:
        return await self.fetch_all(SALES_PRICES, {"with": "names"})

    async def get_all_manufacturers(self) -> List[Dict[str, Any]]:
        return await self.fetch_all(MANUFACTURERS)

    async def get_all_units(self) -> List[Dict[str, Any]]:
        return await self.fetch_all(UNITS, {"with": "names"})

    async def get_all_properties(self, type_identifier: str = "item") -> List[Dict[str, Any]]:
        return await self.fetch_all(PROPERTIES, {"typeIdentifier": type_identifier, "with": "names,options,selections"})

    async def get_item_images(self, item_id: int) -> List[Dict[str, Any]]:
        """
        Images of an item, with names. Images only decorate a product, so a
        failure here is logged and treated as "no images".
        """
        try:
            images = await self.get(f"/rest/items/{item_id}/images", {"with": "names"})
        except SourceFetchError as e:
            logger.warning(f"Failed to fetch images for item {item_id}: {str(e)}")
            return []
        return images if isinstance(images, list) else (images or {}).get("entries", [])

    async def get_stock_management(self, items_per_page: int = 20000) -> List[Dict[str, Any]]:
        """Warehouse stock rows; the endpoint has no updated-since filter."""
        return await self.fetch_all(STOCK_MANAGEMENT, items_per_page=items_per_page)

    async def test_connection(self) -> bool:
        try:
            await self.authenticate()
            await self.fetch_page(CATEGORIES, {"type": "item"}, items_per_page=1)
            return True
        except (SourceAuthError, SourceFetchError) as e:
            logger.error(f"Source connection test failed: {str(e)}")
            return False
