"""
Persistence-backed destination. Implements the same contract as the remote
Admin API client on top of the standin_* tables, so a tenant without a
reachable storefront (and the test suite) runs the whole pipeline.
"""
import logging
import mimetypes
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import SyncAction
from catalog_sync.core.utils import new_dest_id
from catalog_sync.integrations.base import DestinationClient, DestinationResult, StockUpdate
from catalog_sync.models.standin import StandInEntity, StandInProduct

logger = logging.getLogger(__name__)

PRODUCT_COLUMNS = ("productNumber", "parentId", "name", "stock", "active")


class StandInDestinationClient(DestinationClient):

    def __init__(self, db: AsyncSession, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id

    async def authenticate(self) -> None:
        logger.debug(f"Stand-in destination ready for tenant {self.tenant_id}")

    async def _commit(self, what: str) -> Optional[str]:
        """Commit; returns an error message instead of raising."""
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Stand-in destination failed to store {what}: {str(e)}")
            return str(e)
        return None

    # Products

    async def _find_product(self, sku: str) -> Optional[StandInProduct]:
        result = await self.db.execute(
            select(StandInProduct).where(
                StandInProduct.tenant_id == self.tenant_id,
                StandInProduct.product_number == sku,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _apply(row: StandInProduct, product: Dict[str, Any]) -> None:
        if "productNumber" in product:
            row.product_number = product["productNumber"]
        if "parentId" in product:
            row.parent_id = product["parentId"]
        if "name" in product:
            row.name = product["name"]
        if "stock" in product:
            row.stock = int(product["stock"] or 0)
        if "active" in product:
            row.active = bool(product["active"])
        payload = dict(row.payload or {})
        payload.update({k: v for k, v in product.items() if k not in PRODUCT_COLUMNS and k != "id"})
        row.payload = payload

    async def create_product(self, product: Dict[str, Any]) -> DestinationResult:
        number = product.get("productNumber")
        if not number:
            return DestinationResult.failed("productNumber is required")
        if await self._find_product(number) is not None:
            return DestinationResult.failed(f"Product number {number} already exists", product_number=number)

        row = StandInProduct(id=product.get("id") or new_dest_id(), tenant_id=self.tenant_id, product_number=number)
        self._apply(row, product)
        self.db.add(row)
        error = await self._commit(f"product {number}")
        if error:
            return DestinationResult.failed(error, product_number=number)
        return DestinationResult.ok(row.id, SyncAction.CREATE, product_number=number)

    async def update_product(self, product_id: str, product: Dict[str, Any]) -> DestinationResult:
        row = await self.db.get(StandInProduct, product_id)
        if row is None or row.tenant_id != self.tenant_id:
            return DestinationResult.failed("Product not found", id=product_id)
        self._apply(row, product)
        error = await self._commit(f"product {product_id}")
        if error:
            return DestinationResult.failed(error, id=product_id)
        return DestinationResult.ok(row.id, SyncAction.UPDATE, product_number=row.product_number)

    async def update_product_by_sku(self, sku: str, product: Dict[str, Any]) -> DestinationResult:
        row = await self._find_product(sku)
        if row is None:
            return DestinationResult.failed("Product not found", product_number=sku)
        return await self.update_product(row.id, product)

    async def get_product_by_sku(self, sku: str) -> Optional[Dict[str, Any]]:
        row = await self._find_product(sku)
        if row is None:
            return None
        return {
            **(row.payload or {}),
            "id": row.id,
            "productNumber": row.product_number,
            "parentId": row.parent_id,
            "name": row.name,
            "stock": row.stock,
            "active": row.active,
        }

    async def update_stock(self, product_id: str, stock: int) -> DestinationResult:
        return await self.update_product(product_id, {"stock": stock})

    async def batch_update_stock(self, updates: List[StockUpdate]) -> List[DestinationResult]:
        if not updates:
            return []
        ids = [u.id for u in updates]
        result = await self.db.execute(
            select(StandInProduct).where(StandInProduct.tenant_id == self.tenant_id, StandInProduct.id.in_(ids))
        )
        rows = {row.id: row for row in result.scalars().all()}

        results = []
        for update in updates:
            row = rows.get(update.id)
            if row is None:
                results.append(DestinationResult.failed("Product not found", id=update.id,
                                                        product_number=update.product_number))
                continue
            row.stock = update.stock
            results.append(DestinationResult.ok(update.id, SyncAction.UPDATE, product_number=update.product_number))

        error = await self._commit(f"{len(updates)} stock updates")
        if error:
            return [DestinationResult.failed(error, id=u.id, product_number=u.product_number) for u in updates]
        return results

    # Auxiliary entities

    async def _create_entity(self, entity_type: str, payload: Dict[str, Any],
                             parent_id: Optional[str] = None) -> DestinationResult:
        row = StandInEntity(
            id=payload.get("id") or new_dest_id(),
            tenant_id=self.tenant_id,
            entity_type=entity_type,
            name=payload.get("name"),
            parent_id=parent_id,
            payload={k: v for k, v in payload.items() if k != "id"},
        )
        self.db.add(row)
        error = await self._commit(f"{entity_type} '{row.name}'")
        if error:
            return DestinationResult.failed(error)
        return DestinationResult.ok(row.id, SyncAction.CREATE)

    async def create_category(self, category: Dict[str, Any]) -> DestinationResult:
        return await self._create_entity("category", category, category.get("parentId"))

    async def create_manufacturer(self, manufacturer: Dict[str, Any]) -> DestinationResult:
        return await self._create_entity("manufacturer", manufacturer)

    async def create_unit(self, unit: Dict[str, Any]) -> DestinationResult:
        return await self._create_entity("unit", unit)

    async def create_property_group(self, group: Dict[str, Any]) -> DestinationResult:
        return await self._create_entity("property_group", group)

    async def create_property_option(self, option: Dict[str, Any]) -> DestinationResult:
        if not option.get("groupId"):
            return DestinationResult.failed("Property option needs a groupId")
        return await self._create_entity("property_option", option, option["groupId"])

    async def create_media_from_url(
        self,
        source_url: str,
        file_name: str,
        folder_id: Optional[str] = None,
        title: Optional[str] = None,
        alt: Optional[str] = None,
    ) -> DestinationResult:
        result = await self._create_entity(
            "media",
            {"name": file_name, "sourceUrl": source_url, "title": title, "alt": alt},
            folder_id,
        )
        if result.success:
            result.mime_type = mimetypes.guess_type(file_name)[0]
        return result

    async def get_or_create_media_folder(self, folder_name: str) -> DestinationResult:
        found = await self.db.execute(
            select(StandInEntity).where(
                StandInEntity.tenant_id == self.tenant_id,
                StandInEntity.entity_type == "media_folder",
                StandInEntity.name == folder_name,
            )
        )
        row = found.scalars().first()
        if row is not None:
            return DestinationResult.ok(row.id, SyncAction.SKIP)
        return await self._create_entity("media_folder", {"name": folder_name})

    async def test_connection(self) -> bool:
        return True
