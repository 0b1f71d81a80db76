"""Loads and maintains the tenant's field mapping rules."""

import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import FieldTransform, SyncType
from catalog_sync.models.field_mapping import FieldMappingRule
from catalog_sync.transformers.field_mapping import CompiledRule, compile_rules

logger = logging.getLogger(__name__)


class FieldMappingService:
    def __init__(self, db: AsyncSession, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id

    async def get_rules(self, entity_type: Union[SyncType, str], include_inactive: bool = False) -> List[FieldMappingRule]:
        entity_type = getattr(entity_type, "value", entity_type)
        stmt = select(FieldMappingRule).where(
            FieldMappingRule.tenant_id == self.tenant_id,
            FieldMappingRule.entity_type == entity_type,
        )
        if not include_inactive:
            stmt = stmt.where(FieldMappingRule.is_active.is_(True))
        stmt = stmt.order_by(FieldMappingRule.position.asc(), FieldMappingRule.id.asc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_compiled_rules(self, entity_type: Union[SyncType, str]) -> List[CompiledRule]:
        rules = compile_rules(await self.get_rules(entity_type))
        if rules:
            logger.debug(f"Loaded {len(rules)} field mapping rules for tenant {self.tenant_id}")
        return rules

    async def add_rule(
        self,
        entity_type: Union[SyncType, str],
        source_path: str,
        dest_path: str,
        transform_type: FieldTransform = FieldTransform.DIRECT,
        transform_params: Optional[Dict[str, Any]] = None,
        is_required: bool = False,
        default_value: Any = None,
        position: int = 0,
    ) -> FieldMappingRule:
        # Malformed rules raise here
        CompiledRule.from_dict({
            "source_path": source_path,
            "dest_path": dest_path,
            "transform_type": FieldTransform(transform_type).value,
        })
        rule = FieldMappingRule(
            tenant_id=self.tenant_id,
            entity_type=getattr(entity_type, "value", entity_type),
            source_path=source_path,
            dest_path=dest_path,
            transform_type=FieldTransform(transform_type).value,
            transform_params=transform_params,
            is_required=is_required,
            default_value=default_value,
            position=position,
            is_active=True,
        )
        self.db.add(rule)
        await self.db.commit()
        return rule

    async def deactivate_rule(self, rule_id: int) -> bool:
        rule = await self.db.get(FieldMappingRule, rule_id)
        if rule is None or rule.tenant_id != self.tenant_id:
            return False
        rule.is_active = False
        await self.db.commit()
        return True
