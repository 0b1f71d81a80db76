from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from catalog_sync.core.enums import SyncAction


class DestinationResult(BaseModel):
    """Outcome of one destination call. Implementations return this instead of raising."""
    id: str = ""
    success: bool
    error: Optional[str] = None
    action: Optional[SyncAction] = None
    product_number: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None

    @classmethod
    def ok(cls, id: str, action: SyncAction = SyncAction.CREATE, **kwargs) -> "DestinationResult":
        return cls(id=id or "", success=True, action=action, **kwargs)

    @classmethod
    def failed(cls, error: str, id: str = "", **kwargs) -> "DestinationResult":
        return cls(id=id or "", success=False, error=error, action=SyncAction.ERROR, **kwargs)


class StockUpdate(BaseModel):
    id: str
    stock: int
    product_number: Optional[str] = None
    variation_id: Optional[str] = None


class DestinationClient(ABC):
    """
    Everything the sync engine needs from the destination storefront.

    Payloads are plain dicts in the destination's own shape (productNumber,
    translations keyed by locale, ...). Apart from authenticate(), no method
    raises for API-level failures; they report them through DestinationResult.
    """

    @abstractmethod
    async def authenticate(self) -> None:
        """Obtain credentials for subsequent calls; raises DestinationAPIError on failure"""
        pass

    # Products

    @abstractmethod
    async def create_product(self, product: Dict[str, Any]) -> DestinationResult:
        pass

    @abstractmethod
    async def update_product(self, product_id: str, product: Dict[str, Any]) -> DestinationResult:
        pass

    @abstractmethod
    async def update_product_by_sku(self, sku: str, product: Dict[str, Any]) -> DestinationResult:
        pass

    @abstractmethod
    async def get_product_by_sku(self, sku: str) -> Optional[Dict[str, Any]]:
        pass

    async def product_exists(self, sku: str) -> bool:
        return await self.get_product_by_sku(sku) is not None

    @abstractmethod
    async def update_stock(self, product_id: str, stock: int) -> DestinationResult:
        pass

    @abstractmethod
    async def batch_update_stock(self, updates: List[StockUpdate]) -> List[DestinationResult]:
        """One result per update, in input order"""
        pass

    # Auxiliary entities

    @abstractmethod
    async def create_category(self, category: Dict[str, Any]) -> DestinationResult:
        pass

    @abstractmethod
    async def create_manufacturer(self, manufacturer: Dict[str, Any]) -> DestinationResult:
        pass

    @abstractmethod
    async def create_unit(self, unit: Dict[str, Any]) -> DestinationResult:
        pass

    @abstractmethod
    async def create_property_group(self, group: Dict[str, Any]) -> DestinationResult:
        pass

    @abstractmethod
    async def create_property_option(self, option: Dict[str, Any]) -> DestinationResult:
        """option must carry the destination groupId"""
        pass

    # Media

    @abstractmethod
    async def create_media_from_url(
        self,
        source_url: str,
        file_name: str,
        folder_id: Optional[str] = None,
        title: Optional[str] = None,
        alt: Optional[str] = None,
    ) -> DestinationResult:
        pass

    @abstractmethod
    async def get_or_create_media_folder(self, folder_name: str) -> DestinationResult:
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        pass
