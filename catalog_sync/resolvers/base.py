"""
Purpose: Make sure auxiliary entities referenced by a source item exist at
the destination before the item itself is written.

Functionality: Every resolver follows the same steps. Deduplicate the
referenced source ids, batch-load their mappings, and for each unmapped id
read the cached source record, build the destination payload and create
it. New mappings are then persisted in one batch. A run-local lookup means
later items never query again for ids already resolved (or already failed)
in this run.

Failures are isolated per entity: a failed create is logged, remembered
for the rest of the run and simply missing from the returned lookup, so
the referencing field is left unset while the item still syncs.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import MappingKind, MappingType, SyncAction
from catalog_sync.core.exceptions import DatabaseError, MappingError
from catalog_sync.core.utils import dedupe
from catalog_sync.integrations.base import DestinationClient
from catalog_sync.services.mapping_store import MappingRecord, MappingStore
from catalog_sync.services.source_cache import SourceCacheRepository
from catalog_sync.services.tenant_config_service import TenantConfigService

logger = logging.getLogger(__name__)


@dataclass
class ResolverStats:
    reused: int = 0
    created: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"reused": self.reused, "created": self.created, "failed": self.failed}


class ResolverContext:
    """Collaborators shared by the resolvers of one orchestrator run."""

    def __init__(
        self,
        db: AsyncSession,
        tenant_id: str,
        destination: DestinationClient,
        cache: Optional[SourceCacheRepository] = None,
        config: Optional[TenantConfigService] = None,
    ):
        self.db = db
        self.tenant_id = tenant_id
        self.destination = destination
        self.cache = cache or SourceCacheRepository(db, tenant_id)
        self.config = config or TenantConfigService(db, tenant_id)


class BaseResolver(ABC):
    kind: MappingKind
    label: str = "entity"

    def __init__(self, context: ResolverContext):
        self.context = context
        self.tenant_id = context.tenant_id
        self.destination = context.destination
        self.store = MappingStore(context.db, context.tenant_id, self.kind)
        self.lookup: Dict[str, str] = {}
        self.failed_ids: Set[str] = set()
        self.stats = ResolverStats()

    @abstractmethod
    async def load_sources(self, source_ids: List[str]) -> Dict[str, Any]:
        """Cached source records for the given ids, keyed by string id"""
        pass

    @abstractmethod
    async def build_payload(self, source_id: str, source: Any) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def create(self, payload: Dict[str, Any]):
        """Destination create call returning a DestinationResult"""
        pass

    def _pending(self, source_ids: Iterable[Any]) -> List[str]:
        return [
            i for i in dedupe(str(s) for s in source_ids if s is not None)
            if i not in self.lookup and i not in self.failed_ids
        ]

    async def preload(self, source_ids: Iterable[Any]) -> List[str]:
        """Fill the lookup from stored mappings; returns the ids still unmapped."""
        pending = self._pending(source_ids)
        if not pending:
            return []
        existing = await self.store.get_batch(pending)
        for source_id, entry in existing.items():
            self.lookup[source_id] = entry.dest_id
        self.stats.reused += len(existing)
        return [i for i in pending if i not in existing]

    def _fail(self, source_id: str, message: str) -> None:
        self.failed_ids.add(source_id)
        self.stats.failed += 1
        logger.warning(f"Could not resolve {self.label} {source_id} for tenant {self.tenant_id}: {message}")

    async def create_one(self, source_id: str, source: Any) -> Optional[str]:
        try:
            payload = await self.build_payload(source_id, source)
        except (MappingError, KeyError, TypeError, ValueError) as e:
            self._fail(source_id, f"cannot build payload: {str(e)}")
            return None

        result = await self.create(payload)
        if not result.success or not result.id:
            self._fail(source_id, result.error or "destination returned no id")
            return None

        self.lookup[source_id] = result.id
        self.stats.created += 1
        logger.info(f"Created {self.label} {source_id} -> {result.id}")
        return result.id

    def mapping_record(self, source_id: str, dest_id: str, source: Any) -> MappingRecord:
        return MappingRecord(source_id, dest_id, SyncAction.CREATE, MappingType.AUTO)

    async def persist(self, records: List[MappingRecord]) -> None:
        if not records:
            return
        try:
            await self.store.upsert_batch(records)
        except (MappingError, DatabaseError) as e:
            logger.error(f"Failed to store {len(records)} new {self.label} mappings: {str(e)}")
            raise

    async def resolve(self, source_ids: Iterable[Any]) -> Dict[str, str]:
        """
        Ensure every id exists at the destination.

        Returns:
            {source_id: dest_id} for the ids that are mapped after this call
        """
        source_ids = [str(s) for s in source_ids if s is not None]
        unmapped = await self.preload(source_ids)
        if unmapped:
            sources = await self.load_sources(unmapped)
            records = []
            for source_id in unmapped:
                source = sources.get(source_id)
                if source is None:
                    self._fail(source_id, "not found in the local source cache")
                    continue
                dest_id = await self.create_one(source_id, source)
                if dest_id:
                    records.append(self.mapping_record(source_id, dest_id, source))
            await self.persist(records)
        return {i: self.lookup[i] for i in dedupe(source_ids) if i in self.lookup}

    async def resolve_one(self, source_id: Any) -> Optional[str]:
        if source_id is None:
            return None
        return (await self.resolve([source_id])).get(str(source_id))


class ChildResolver(BaseResolver):
    """
    Resolver for options that live inside a destination group. The groups
    are resolved first; options whose group stays unmapped are skipped.
    """

    def __init__(self, context: ResolverContext, groups: BaseResolver):
        super().__init__(context)
        self.groups = groups

    @abstractmethod
    def parent_source_id(self, source: Any) -> str:
        pass

    def group_id_for(self, source: Any) -> Optional[str]:
        return self.groups.lookup.get(self.parent_source_id(source))

    def mapping_record(self, source_id: str, dest_id: str, source: Any) -> MappingRecord:
        return MappingRecord(
            source_id, dest_id, SyncAction.CREATE, MappingType.AUTO,
            parent_source_id=self.parent_source_id(source),
            parent_dest_id=self.group_id_for(source),
        )

    async def resolve(self, source_ids: Iterable[Any]) -> Dict[str, str]:
        source_ids = [str(s) for s in source_ids if s is not None]
        unmapped = await self.preload(source_ids)
        if unmapped:
            sources = await self.load_sources(unmapped)
            for source_id in unmapped:
                if source_id not in sources:
                    self._fail(source_id, "not found in the local source cache")

            await self.groups.resolve(dedupe(self.parent_source_id(s) for s in sources.values()))

            records = []
            for source_id, source in sources.items():
                if not self.group_id_for(source):
                    self._fail(source_id, f"group {self.parent_source_id(source)} is not mapped")
                    continue
                dest_id = await self.create_one(source_id, source)
                if dest_id:
                    records.append(self.mapping_record(source_id, dest_id, source))
            await self.persist(records)
        return {i: self.lookup[i] for i in dedupe(source_ids) if i in self.lookup}
