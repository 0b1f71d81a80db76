"""
Purpose: Persists source id -> destination id correspondences per tenant and
entity kind, so every logical source entity is created at the destination
exactly once across runs.

Functionality: Batched lookups (get_batch), transactional batched upserts
(upsert_batch), lifecycle transitions ACTIVE <-> ORPHANED (mark_orphaned,
reactivate, reconcile_seen) and the administrative delete. The store itself
refuses AUTO writes over MANUAL rows, and refuses child-kind rows (attribute
values, property selections and values) without a parent destination id.

Role: The only state shared between concurrently running jobs. Resolvers and
orchestrators read it before creating anything at the destination.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import MappingKind, MappingStatus, MappingType, SyncAction
from catalog_sync.core.exceptions import DatabaseError, MappingError
from catalog_sync.core.utils import chunked, dedupe, md5_hex, utcnow
from catalog_sync.models.mappings import CHILD_KINDS, MAPPING_MODELS, MediaMapping

logger = logging.getLogger(__name__)

# Max ids per IN (...) clause
LOOKUP_CHUNK_SIZE = 500


@dataclass
class MappingEntry:
    """Read-side view of a mapping row."""
    source_id: str
    dest_id: str
    mapping_type: str
    status: str
    parent_source_id: Optional[str] = None
    parent_dest_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_manual(self) -> bool:
        return self.mapping_type == MappingType.MANUAL.value

    @property
    def is_active(self) -> bool:
        return self.status == MappingStatus.ACTIVE.value


@dataclass
class MappingRecord:
    """Write-side record for upsert_batch."""
    source_id: Any
    dest_id: str
    action: SyncAction = SyncAction.CREATE
    mapping_type: MappingType = MappingType.AUTO
    parent_source_id: Optional[Any] = None
    parent_dest_id: Optional[str] = None
    # kind-specific columns, e.g. source_item_id / dest_product_number for products
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UpsertSummary:
    created: int = 0
    updated: int = 0
    skipped: int = 0

    @property
    def written(self) -> int:
        return self.created + self.updated


def hash_url(url: str) -> str:
    """Dedup key of a media URL."""
    return md5_hex(url.strip())


def upsert_insert(db: AsyncSession, table):
    """INSERT ... ON CONFLICT for the session's dialect (PostgreSQL, or SQLite in tests)."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert(table)
    return pg_insert(table)


class MappingStore:
    """Mapping table access for one (tenant, kind)."""

    def __init__(self, db: AsyncSession, tenant_id: str, kind: MappingKind):
        if kind not in MAPPING_MODELS:
            raise MappingError(f"Unknown mapping kind: {kind}")
        self.db = db
        self.tenant_id = tenant_id
        self.kind = kind
        self.model = MAPPING_MODELS[kind]
        self.is_child_kind = kind in CHILD_KINDS
        self._extra_columns = [
            c.name for c in self.model.__table__.columns
            if c.name in ("source_group_id", "original_value", "source_item_id", "dest_product_number")
        ]

    def _to_entry(self, row) -> MappingEntry:
        return MappingEntry(
            source_id=row.source_id,
            dest_id=row.dest_id,
            mapping_type=row.mapping_type,
            status=row.status,
            parent_source_id=getattr(row, "parent_source_id", None),
            parent_dest_id=getattr(row, "parent_dest_id", None),
            extra={name: getattr(row, name) for name in self._extra_columns},
        )

    async def _rows_for(self, source_ids: List[str]) -> Dict[str, Any]:
        rows = {}
        for chunk in chunked(source_ids, LOOKUP_CHUNK_SIZE):
            stmt = select(self.model).where(
                self.model.tenant_id == self.tenant_id,
                self.model.source_id.in_(chunk),
            ).execution_options(populate_existing=True)
            result = await self.db.execute(stmt)
            for row in result.scalars().all():
                rows[row.source_id] = row
        return rows

    async def get_batch(self, source_ids: Iterable[Any]) -> Dict[str, MappingEntry]:
        """
        Look up mappings for many source ids at once.

        Returns:
            {source_id: MappingEntry}; ids without a row are simply absent.
            Keys are the string form of the source id.
        """
        ids = dedupe(str(i) for i in source_ids if i is not None)
        if not ids:
            return {}
        rows = await self._rows_for(ids)
        return {source_id: self._to_entry(row) for source_id, row in rows.items()}

    async def get(self, source_id: Any) -> Optional[MappingEntry]:
        found = await self.get_batch([source_id])
        return found.get(str(source_id))

    async def count(self, status: Optional[MappingStatus] = None) -> int:
        stmt = select(func.count(self.model.id)).where(self.model.tenant_id == self.tenant_id)
        if status is not None:
            stmt = stmt.where(self.model.status == status.value)
        result = await self.db.execute(stmt)
        return result.scalar() or 0

    async def get_manual(self) -> Dict[str, MappingEntry]:
        stmt = select(self.model).where(
            self.model.tenant_id == self.tenant_id,
            self.model.mapping_type == MappingType.MANUAL.value,
        )
        result = await self.db.execute(stmt)
        return {row.source_id: self._to_entry(row) for row in result.scalars().all()}

    async def active_source_ids(self) -> Set[str]:
        stmt = select(self.model.source_id).where(
            self.model.tenant_id == self.tenant_id,
            self.model.status == MappingStatus.ACTIVE.value,
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def upsert_batch(self, records: List[MappingRecord]) -> UpsertSummary:
        """
        Insert or update many mappings in one transaction, keyed by
        (tenant, source_id).

        Existing MANUAL rows are left untouched by AUTO records. Child kinds
        need parent_dest_id; a record without one is rejected with
        MappingError before anything is written.

        Raises:
            MappingError: child record without a parent destination id
            DatabaseError: the transaction failed and was rolled back
        """
        summary = UpsertSummary()
        if not records:
            return summary

        if self.is_child_kind:
            orphans = [r.source_id for r in records if not r.parent_dest_id]
            if orphans:
                raise MappingError(
                    f"{self.kind.value} mappings need a parent destination id (source ids: {orphans[:10]})"
                )

        # Last record wins within a batch
        by_id: Dict[str, MappingRecord] = {}
        for record in records:
            by_id[str(record.source_id)] = record

        table = self.model.__table__
        now = utcnow()
        try:
            existing = await self._rows_for(list(by_id.keys()))
            for source_id, record in by_id.items():
                values = self._row_values(source_id, record, now)
                stmt = upsert_insert(self.db, table).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[table.c.tenant_id, table.c.source_id],
                    set_={
                        **{name: stmt.excluded[name] for name in values if name not in ("tenant_id", "source_id")},
                        "updated_at": func.now(),
                    },
                    # MANUAL rows only take MANUAL writes
                    where=or_(
                        table.c.mapping_type != MappingType.MANUAL.value,
                        stmt.excluded.mapping_type == MappingType.MANUAL.value,
                    ),
                )
                result = await self.db.execute(stmt)

                if result.rowcount == 0:
                    logger.info(
                        f"Ignoring automatic {self.kind.value} mapping for source id {source_id}: "
                        f"manual mapping exists"
                    )
                    summary.skipped += 1
                elif source_id in existing:
                    summary.updated += 1
                else:
                    summary.created += 1

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to upsert {self.kind.value} mappings: {str(e)}", exc_info=True)
            raise DatabaseError(f"Failed to upsert {self.kind.value} mappings: {str(e)}") from e

        logger.debug(
            f"Upserted {self.kind.value} mappings for tenant {self.tenant_id}: "
            f"{summary.created} created, {summary.updated} updated, {summary.skipped} skipped"
        )
        return summary

    def _row_values(self, source_id: str, record: MappingRecord, now) -> Dict[str, Any]:
        values = {
            "tenant_id": self.tenant_id,
            "source_id": source_id,
            "dest_id": record.dest_id,
            "mapping_type": MappingType(record.mapping_type).value,
            "status": MappingStatus.ACTIVE.value,
            "last_sync_action": SyncAction(record.action).value,
            "last_synced_at": now,
            "last_seen_at": now,
        }
        if self.is_child_kind:
            values["parent_source_id"] = str(record.parent_source_id) if record.parent_source_id is not None else ""
            values["parent_dest_id"] = record.parent_dest_id
        for name in self._extra_columns:
            if name in record.extra:
                value = record.extra[name]
                values[name] = str(value) if value is not None and name != "original_value" else value
        return values

    async def _set_status(self, source_ids: Iterable[Any], from_status: MappingStatus,
                          to_status: MappingStatus, touch_seen: bool) -> int:
        ids = dedupe(str(i) for i in source_ids)
        if not ids:
            return 0
        values = {"status": to_status.value}
        if touch_seen:
            values["last_seen_at"] = utcnow()
        changed = 0
        try:
            for chunk in chunked(ids, LOOKUP_CHUNK_SIZE):
                stmt = (
                    update(self.model)
                    .where(
                        self.model.tenant_id == self.tenant_id,
                        self.model.source_id.in_(chunk),
                        self.model.status == from_status.value,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                result = await self.db.execute(stmt)
                changed += result.rowcount or 0
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError(f"Failed to update {self.kind.value} mapping status: {str(e)}") from e
        return changed

    async def mark_orphaned(self, source_ids: Iterable[Any]) -> int:
        count = await self._set_status(source_ids, MappingStatus.ACTIVE, MappingStatus.ORPHANED, touch_seen=False)
        if count:
            logger.info(f"Marked {count} {self.kind.value} mappings as orphaned for tenant {self.tenant_id}")
        return count

    async def reactivate(self, source_ids: Iterable[Any]) -> int:
        count = await self._set_status(source_ids, MappingStatus.ORPHANED, MappingStatus.ACTIVE, touch_seen=True)
        if count:
            logger.info(f"Reactivated {count} {self.kind.value} mappings for tenant {self.tenant_id}")
        return count

    async def reconcile_seen(self, seen_ids: Iterable[Any]) -> Tuple[int, int]:
        """
        Align mapping status with the ids seen in a complete source fetch.

        ACTIVE rows not seen become ORPHANED; ORPHANED rows seen again become
        ACTIVE. Only call this after a full fetch, never after a delta.

        Returns:
            (orphaned, reactivated)
        """
        seen = {str(i) for i in seen_ids if i is not None}
        active = await self.active_source_ids()
        orphaned = await self.mark_orphaned(active - seen)
        reactivated = await self.reactivate(seen - active)
        return orphaned, reactivated

    async def delete(self, source_ids: Iterable[Any]) -> int:
        """Hard delete. Administrative use only; syncs never call this."""
        ids = dedupe(str(i) for i in source_ids)
        if not ids:
            return 0
        try:
            stmt = delete(self.model).where(
                self.model.tenant_id == self.tenant_id,
                self.model.source_id.in_(ids),
            )
            result = await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError(f"Failed to delete {self.kind.value} mappings: {str(e)}") from e
        logger.warning(f"Deleted {result.rowcount} {self.kind.value} mappings for tenant {self.tenant_id}")
        return result.rowcount or 0


@dataclass
class MediaRecord:
    source_url: str
    dest_id: str
    source_type: str
    source_entity_id: Optional[Any] = None
    dest_folder_id: Optional[str] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None
    action: SyncAction = SyncAction.CREATE
    mapping_type: MappingType = MappingType.AUTO


class MediaMappingStore:
    """Same contract as MappingStore, keyed by hash_url(source_url)."""

    def __init__(self, db: AsyncSession, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id

    async def _rows_for(self, hashes: List[str]) -> Dict[str, MediaMapping]:
        rows = {}
        for chunk in chunked(hashes, LOOKUP_CHUNK_SIZE):
            stmt = select(MediaMapping).where(
                MediaMapping.tenant_id == self.tenant_id,
                MediaMapping.url_hash.in_(chunk),
            ).execution_options(populate_existing=True)
            result = await self.db.execute(stmt)
            for row in result.scalars().all():
                rows[row.url_hash] = row
        return rows

    async def get_batch(self, urls: Iterable[str]) -> Dict[str, MediaMapping]:
        """Returns {url: MediaMapping} for URLs that already have destination media."""
        urls = dedupe(u for u in urls if u)
        if not urls:
            return {}
        by_hash = {hash_url(u): u for u in urls}
        rows = await self._rows_for(list(by_hash.keys()))
        return {by_hash[h]: row for h, row in rows.items()}

    async def get(self, url: str) -> Optional[MediaMapping]:
        found = await self.get_batch([url])
        return found.get(url)

    async def count(self) -> int:
        stmt = select(func.count(MediaMapping.id)).where(MediaMapping.tenant_id == self.tenant_id)
        result = await self.db.execute(stmt)
        return result.scalar() or 0

    async def upsert_batch(self, records: List[MediaRecord]) -> UpsertSummary:
        summary = UpsertSummary()
        if not records:
            return summary

        by_hash = {hash_url(r.source_url): r for r in records}
        table = MediaMapping.__table__
        now = utcnow()
        try:
            existing = await self._rows_for(list(by_hash.keys()))
            for url_hash, record in by_hash.items():
                values = {
                    "tenant_id": self.tenant_id,
                    "url_hash": url_hash,
                    "source_url": record.source_url,
                    "dest_id": record.dest_id,
                    "source_type": record.source_type,
                    "source_entity_id": str(record.source_entity_id) if record.source_entity_id is not None else None,
                    "dest_folder_id": record.dest_folder_id,
                    "file_name": record.file_name,
                    "mime_type": record.mime_type,
                    "file_size": record.file_size,
                    "mapping_type": MappingType(record.mapping_type).value,
                    "status": MappingStatus.ACTIVE.value,
                    "last_sync_action": SyncAction(record.action).value,
                    "last_synced_at": now,
                }
                stmt = upsert_insert(self.db, table).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[table.c.tenant_id, table.c.url_hash],
                    set_={name: stmt.excluded[name] for name in values if name not in ("tenant_id", "url_hash")},
                    where=or_(
                        table.c.mapping_type != MappingType.MANUAL.value,
                        stmt.excluded.mapping_type == MappingType.MANUAL.value,
                    ),
                )
                result = await self.db.execute(stmt)

                if result.rowcount == 0:
                    summary.skipped += 1
                elif url_hash in existing:
                    summary.updated += 1
                else:
                    summary.created += 1
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError(f"Failed to upsert media mappings: {str(e)}") from e
        return summary

    async def delete(self, urls: Iterable[str]) -> int:
        hashes = [hash_url(u) for u in dedupe(urls)]
        if not hashes:
            return 0
        try:
            result = await self.db.execute(
                delete(MediaMapping).where(
                    MediaMapping.tenant_id == self.tenant_id,
                    MediaMapping.url_hash.in_(hashes),
                )
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError(f"Failed to delete media mappings: {str(e)}") from e
        return result.rowcount or 0
