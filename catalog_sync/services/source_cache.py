"""
Purpose: Local replica of the source ERP's configuration entities.

Functionality: Converts raw source records into cache rows (names rebuilt
from the detail records on every write, never merged), upserts them per
tenant and serves them back to the resolvers and the transformer.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Type

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.exceptions import DatabaseError
from catalog_sync.core.utils import chunked, dedupe, utcnow
from catalog_sync.models.source_cache import (
    CachedAttribute,
    CachedCategory,
    CachedManufacturer,
    CachedProperty,
    CachedSalesPrice,
    CachedUnit,
)
from catalog_sync.transformers.localization import extract_names

logger = logging.getLogger(__name__)


def _flag(value: Any) -> bool:
    # The source sends "Y"/"N" for some booleans
    return value is True or value == "Y"


def category_columns(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "parent_id": raw.get("parentCategoryId"),
        "level": raw.get("level") or 0,
        "type": raw.get("type"),
        "linklist": _flag(raw.get("linklist")),
        "sitemap": _flag(raw.get("sitemap")),
        "has_children": bool(raw.get("hasChildren")),
        "names": extract_names(raw.get("details")),
    }


def attribute_columns(raw: Dict[str, Any]) -> Dict[str, Any]:
    values = []
    for value in raw.get("values") or raw.get("attributeValues") or []:
        values.append({
            "id": value.get("id"),
            "backendName": value.get("backendName"),
            "position": value.get("position") or 0,
            "image": value.get("image"),
            "names": extract_names(value.get("valueNames") or value.get("names")),
        })
    return {
        "backend_name": raw.get("backendName"),
        "position": raw.get("position") or 0,
        "display_type": raw.get("typeOfSelectionInOnlineStore"),
        "values": values,
        "names": extract_names(raw.get("attributeNames")),
    }


def sales_price_columns(raw: Dict[str, Any]) -> Dict[str, Any]:
    currencies = raw.get("currencies") or []
    names = extract_names(raw.get("names"), value_key="nameInternal") or \
        extract_names(raw.get("names"), value_key="nameExternal")
    return {
        "type": raw.get("type"),
        "position": raw.get("position") or 0,
        "currency": currencies[0].get("currency") if currencies else None,
        "names": names,
    }


def manufacturer_columns(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": raw.get("name") or raw.get("externalName") or f"Manufacturer {raw.get('id')}",
        "external_name": raw.get("externalName"),
        "logo": raw.get("logo") or None,
        "url": raw.get("url") or None,
        "position": raw.get("position") or 0,
        "names": {},
    }


def unit_columns(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "unit_of_measurement": raw.get("unitOfMeasurement"),
        "position": raw.get("position") or 0,
        "names": extract_names(raw.get("names")),
    }


def property_columns(raw: Dict[str, Any]) -> Dict[str, Any]:
    selections = []
    for selection in raw.get("selections") or []:
        relation = selection.get("relation") or {}
        selections.append({
            "id": selection.get("id"),
            "position": selection.get("position") or 0,
            "names": extract_names(relation.get("relationValues"), value_key="value"),
        })
    return {
        "cast": raw.get("cast"),
        "type_identifier": raw.get("typeIdentifier"),
        "position": raw.get("position") or 0,
        "property_group_id": raw.get("propertyGroupId"),
        "selections": selections,
        "names": extract_names(raw.get("names")),
    }


@dataclass
class CacheWriteResult:
    created: int = 0
    updated: int = 0
    errors: int = 0

    @property
    def synced(self) -> int:
        return self.created + self.updated


CACHE_KINDS = {
    "categories": (CachedCategory, category_columns),
    "attributes": (CachedAttribute, attribute_columns),
    "sales_prices": (CachedSalesPrice, sales_price_columns),
    "manufacturers": (CachedManufacturer, manufacturer_columns),
    "units": (CachedUnit, unit_columns),
    "properties": (CachedProperty, property_columns),
}


class SourceCacheRepository:
    """Reads and writes the cached source entities of one tenant."""

    def __init__(self, db: AsyncSession, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id

    async def _load(self, model: Type, ids: Optional[Iterable[Any]] = None) -> Dict[int, Any]:
        if ids is None:
            result = await self.db.execute(select(model).where(model.tenant_id == self.tenant_id))
            return {row.source_id: row for row in result.scalars().all()}
        rows = {}
        for chunk in chunked(dedupe(int(i) for i in ids), 500):
            result = await self.db.execute(
                select(model).where(model.tenant_id == self.tenant_id, model.source_id.in_(chunk))
            )
            for row in result.scalars().all():
                rows[row.source_id] = row
        return rows

    async def upsert(self, kind: str, records: List[Dict[str, Any]]) -> CacheWriteResult:
        """
        Write raw source records of one kind. A record that cannot be
        converted is counted as an error and skipped; a database failure
        rolls back the whole kind and raises DatabaseError.
        """
        model, to_columns = CACHE_KINDS[kind]
        outcome = CacheWriteResult()
        if not records:
            return outcome

        now = utcnow()
        try:
            existing = await self._load(model, [r["id"] for r in records if r.get("id") is not None])
            for raw in records:
                source_id = raw.get("id")
                if source_id is None:
                    outcome.errors += 1
                    continue
                try:
                    columns = to_columns(raw)
                except (TypeError, ValueError, AttributeError) as e:
                    logger.warning(f"Skipping malformed {kind} record {source_id}: {str(e)}")
                    outcome.errors += 1
                    continue

                row = existing.get(int(source_id))
                if row is None:
                    row = model(tenant_id=self.tenant_id, source_id=int(source_id))
                    self.db.add(row)
                    existing[int(source_id)] = row
                    outcome.created += 1
                else:
                    outcome.updated += 1
                for name, value in columns.items():
                    setattr(row, name, value)
                row.raw_data = raw
                row.synced_at = now
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to cache {kind} for tenant {self.tenant_id}: {str(e)}", exc_info=True)
            raise DatabaseError(f"Failed to cache {kind}: {str(e)}") from e
        return outcome

    async def get_categories(self, ids: Optional[Iterable[Any]] = None) -> Dict[int, CachedCategory]:
        return await self._load(CachedCategory, ids)

    async def get_attributes(self, ids: Optional[Iterable[Any]] = None) -> Dict[int, CachedAttribute]:
        return await self._load(CachedAttribute, ids)

    async def get_sales_prices(self) -> Dict[int, CachedSalesPrice]:
        return await self._load(CachedSalesPrice)

    async def get_manufacturers(self, ids: Optional[Iterable[Any]] = None) -> Dict[int, CachedManufacturer]:
        return await self._load(CachedManufacturer, ids)

    async def get_units(self, ids: Optional[Iterable[Any]] = None) -> Dict[int, CachedUnit]:
        return await self._load(CachedUnit, ids)

    async def get_properties(self, ids: Optional[Iterable[Any]] = None) -> Dict[int, CachedProperty]:
        return await self._load(CachedProperty, ids)

    async def attribute_values_index(self) -> Dict[int, Dict[str, Any]]:
        """{valueId: {"attribute": CachedAttribute, "value": value dict}} over all cached attributes."""
        index = {}
        for attribute in (await self.get_attributes()).values():
            for value in attribute.values or []:
                if value.get("id") is not None:
                    index[int(value["id"])] = {"attribute": attribute, "value": value}
        return index
