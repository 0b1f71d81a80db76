import logging
import mimetypes
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

from catalog_sync.core.config import get_settings
from catalog_sync.core.enums import SyncAction
from catalog_sync.core.exceptions import DestinationAPIError
from catalog_sync.core.utils import new_dest_id
from catalog_sync.integrations.base import DestinationClient, DestinationResult, StockUpdate

logger = logging.getLogger(__name__)

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:500] or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        errors = data.get("errors") or []
        if errors and isinstance(errors, list) and isinstance(errors[0], dict) and errors[0].get("detail"):
            return errors[0]["detail"]
        if data.get("message"):
            return data["message"]
    return response.text[:500]


class RemoteDestinationClient(DestinationClient):
    """
    Client for the destination storefront's Admin API (OAuth2 client
    credentials). Tokens are refreshed a minute before expiry and once more
    when a call comes back 401.
    """

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout or get_settings().DESTINATION_TIMEOUT
        self._transport = transport
        self._access_token: Optional[str] = None
        self._expires_at: Optional[datetime] = None

    @classmethod
    def from_credentials(cls, base_url: str, credentials: Dict[str, str], **kwargs) -> "RemoteDestinationClient":
        return cls(
            base_url,
            credentials.get("clientId") or credentials.get("client_id", ""),
            credentials.get("clientSecret") or credentials.get("client_secret", ""),
            **kwargs,
        )

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def is_authenticated(self) -> bool:
        return bool(self._access_token and self._expires_at and self._expires_at > datetime.now(timezone.utc))

    async def authenticate(self) -> None:
        logger.info(f"Authenticating with destination API at {self.base_url}")
        try:
            async with self._http() as client:
                response = await client.post(
                    f"{self.base_url}/api/oauth/token",
                    json={
                        "grant_type": "client_credentials",
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                    },
                    headers={"Content-Type": "application/json", "Accept": "application/json"},
                )
        except httpx.RequestError as e:
            raise DestinationAPIError(f"Destination authentication failed: {str(e)}") from e

        if response.status_code != 200:
            message = _error_message(response)
            logger.error(f"Destination authentication failed ({response.status_code}): {message}")
            raise DestinationAPIError(f"Destination authentication failed: {message}")

        data = response.json()
        self._access_token = data.get("access_token")
        expires_in = int(data.get("expires_in") or 600)
        self._expires_at = datetime.now(timezone.utc) + timedelta(seconds=max(expires_in - 60, 0))
        logger.info(f"Destination authentication successful (expires in {expires_in}s)")

    def _get_headers(self, content_type: str = "application/json") -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": content_type,
            "Accept": "application/json",
        }

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        content: Optional[bytes] = None,
        content_type: str = "application/json",
    ) -> httpx.Response:
        """
        Make a request to the Admin API.

        Raises:
            DestinationAPIError: network failure or non-2xx response
        """
        if not self.is_authenticated():
            await self.authenticate()

        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        for retried in (False, True):
            try:
                async with self._http() as client:
                    response = await client.request(
                        method=method,
                        url=url,
                        headers=self._get_headers(content_type),
                        json=data if content is None else None,
                        params=params,
                        content=content,
                    )
            except httpx.RequestError as e:
                raise DestinationAPIError(f"Request to {endpoint} failed: {str(e)}") from e

            if response.status_code == 401 and not retried:
                logger.warning("Destination token rejected, re-authenticating")
                self._access_token = None
                await self.authenticate()
                continue
            break

        if response.status_code >= 400:
            message = _error_message(response)
            logger.debug(f"Destination API error {response.status_code} on {endpoint}: {message}")
            raise DestinationAPIError(message)
        return response

    @staticmethod
    def _created_id(response: httpx.Response, fallback: str) -> str:
        location = response.headers.get("location")
        if location:
            return location.rstrip("/").split("/")[-1]
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                nested = body.get("data") if isinstance(body.get("data"), dict) else body
                if nested.get("id"):
                    return nested["id"]
        return fallback

    async def _create(self, entity: str, payload: Dict[str, Any], label: str) -> DestinationResult:
        payload = dict(payload)
        payload.setdefault("id", new_dest_id())
        try:
            response = await self._make_request("POST", f"/api/{entity}", data=payload)
        except DestinationAPIError as e:
            logger.error(f"Failed to create {entity} '{label}': {str(e)}")
            return DestinationResult.failed(str(e))
        created_id = self._created_id(response, payload["id"])
        logger.info(f"Created {entity} '{label}' ({created_id})")
        return DestinationResult.ok(created_id, SyncAction.CREATE)

    # Products

    async def create_product(self, product: Dict[str, Any]) -> DestinationResult:
        number = product.get("productNumber")
        result = await self._create("product", product, number)
        result.product_number = number
        return result

    async def update_product(self, product_id: str, product: Dict[str, Any]) -> DestinationResult:
        payload = {k: v for k, v in product.items() if k != "id"}
        try:
            await self._make_request("PATCH", f"/api/product/{product_id}", data=payload)
        except DestinationAPIError as e:
            logger.error(f"Failed to update product {product_id}: {str(e)}")
            return DestinationResult.failed(str(e), id=product_id, product_number=product.get("productNumber"))
        return DestinationResult.ok(product_id, SyncAction.UPDATE, product_number=product.get("productNumber"))

    async def update_product_by_sku(self, sku: str, product: Dict[str, Any]) -> DestinationResult:
        try:
            existing = await self.get_product_by_sku(sku)
        except DestinationAPIError as e:
            return DestinationResult.failed(str(e), product_number=sku)
        if not existing or not existing.get("id"):
            return DestinationResult.failed("Product not found", product_number=sku)
        return await self.update_product(existing["id"], product)

    async def get_product_by_sku(self, sku: str) -> Optional[Dict[str, Any]]:
        """
        Raises:
            DestinationAPIError: the lookup failed; absence is only reported as None
        """
        try:
            response = await self._make_request("POST", "/api/search/product", data={
                "filter": [{"type": "equals", "field": "productNumber", "value": sku}],
                "limit": 1,
            })
        except DestinationAPIError as e:
            logger.error(f"Failed to look up product {sku}: {str(e)}")
            raise
        rows = (response.json() or {}).get("data") or []
        return rows[0] if rows else None

    async def update_stock(self, product_id: str, stock: int) -> DestinationResult:
        try:
            await self._make_request("PATCH", f"/api/product/{product_id}", data={"stock": stock})
        except DestinationAPIError as e:
            return DestinationResult.failed(str(e), id=product_id)
        return DestinationResult.ok(product_id, SyncAction.UPDATE)

    async def batch_update_stock(self, updates: List[StockUpdate]) -> List[DestinationResult]:
        if not updates:
            return []
        logger.info(f"Batch updating stock for {len(updates)} products")
        try:
            await self._make_request("POST", "/api/_action/sync", data={
                "update-stock": {
                    "entity": "product",
                    "action": "upsert",
                    "payload": [{"id": u.id, "stock": u.stock} for u in updates],
                }
            })
        except DestinationAPIError as e:
            logger.error(f"Batch stock update failed: {str(e)}")
            return [DestinationResult.failed(str(e), id=u.id, product_number=u.product_number) for u in updates]
        return [DestinationResult.ok(u.id, SyncAction.UPDATE, product_number=u.product_number) for u in updates]

    # Auxiliary entities

    async def create_category(self, category: Dict[str, Any]) -> DestinationResult:
        return await self._create("category", category, category.get("name"))

    async def create_manufacturer(self, manufacturer: Dict[str, Any]) -> DestinationResult:
        return await self._create("product-manufacturer", manufacturer, manufacturer.get("name"))

    async def create_unit(self, unit: Dict[str, Any]) -> DestinationResult:
        return await self._create("unit", unit, unit.get("name"))

    async def create_property_group(self, group: Dict[str, Any]) -> DestinationResult:
        return await self._create("property-group", group, group.get("name"))

    async def create_property_option(self, option: Dict[str, Any]) -> DestinationResult:
        if not option.get("groupId"):
            return DestinationResult.failed("Property option needs a groupId")
        return await self._create("property-group-option", option, option.get("name"))

    # Media

    async def create_media_from_url(
        self,
        source_url: str,
        file_name: str,
        folder_id: Optional[str] = None,
        title: Optional[str] = None,
        alt: Optional[str] = None,
    ) -> DestinationResult:
        try:
            async with self._http() as client:
                download = await client.get(source_url, follow_redirects=True)
            download.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to download image {source_url}: {str(e)}")
            return DestinationResult.failed(f"Failed to download image: {str(e)}")

        body = download.content
        content_type = download.headers.get("content-type", "application/octet-stream").split(";")[0].strip()
        stem, ext = os.path.splitext(file_name)
        extension = ext.lstrip(".").lower() or MIME_EXTENSIONS.get(content_type, "jpg")

        payload: Dict[str, Any] = {"id": new_dest_id()}
        if folder_id:
            payload["mediaFolderId"] = folder_id
        if title:
            payload["title"] = title
        if alt:
            payload["alt"] = alt

        try:
            response = await self._make_request("POST", "/api/media", data=payload)
        except DestinationAPIError as e:
            return DestinationResult.failed(f"Failed to create media entity: {str(e)}")
        media_id = self._created_id(response, payload["id"])

        try:
            await self._make_request(
                "POST",
                f"/api/_action/media/{media_id}/upload",
                params={"extension": extension, "fileName": stem},
                content=body,
                content_type=content_type,
            )
        except DestinationAPIError as e:
            logger.error(f"Failed to upload file to media {media_id} ({file_name}): {str(e)}")
            return DestinationResult.failed(f"Failed to upload file: {str(e)}", id=media_id)

        logger.info(f"Media created and uploaded ({media_id}, {file_name})")
        return DestinationResult.ok(
            media_id,
            SyncAction.CREATE,
            mime_type=content_type or mimetypes.guess_type(file_name)[0],
            file_size=len(body),
        )

    async def get_or_create_media_folder(self, folder_name: str) -> DestinationResult:
        try:
            response = await self._make_request("POST", "/api/search/media-folder", data={
                "filter": [{"type": "equals", "field": "name", "value": folder_name}],
                "limit": 1,
            })
            rows = (response.json() or {}).get("data") or []
            if rows:
                return DestinationResult.ok(rows[0]["id"], SyncAction.SKIP)

            folder_id = new_dest_id()
            response = await self._make_request("POST", "/api/media-folder", data={
                "id": folder_id,
                "name": folder_name,
                "configuration": {
                    "id": new_dest_id(),
                    "createThumbnails": True,
                    "keepAspectRatio": True,
                    "thumbnailQuality": 80,
                },
            })
        except DestinationAPIError as e:
            logger.error(f"Failed to get or create media folder '{folder_name}': {str(e)}")
            return DestinationResult.failed(str(e))
        return DestinationResult.ok(self._created_id(response, folder_id), SyncAction.CREATE)

    async def test_connection(self) -> bool:
        try:
            await self.authenticate()
            await self._make_request("GET", "/api/_info/version")
            return True
        except DestinationAPIError as e:
            logger.error(f"Destination connection test failed: {str(e)}")
            return False

