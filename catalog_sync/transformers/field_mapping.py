"""
Tenant-defined field copy rules applied on top of the standard product
transform. Rules are compiled once (paths parsed, transform validated) and
then applied to every item of a run.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from catalog_sync.core.enums import FieldTransform
from catalog_sync.core.exceptions import TransformationError
from catalog_sync.transformers.field_paths import MISSING, FieldPath

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class CompiledRule:
    source_path: FieldPath
    dest_path: FieldPath
    transform: FieldTransform = FieldTransform.DIRECT
    params: Dict[str, Any] = field(default_factory=dict)
    required: bool = False
    default_value: Any = None
    position: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompiledRule":
        """Accepts both the table's snake_case columns and the camelCase job options form."""
        source = data.get("source_path") or data.get("sourcePath")
        dest = data.get("dest_path") or data.get("destPath") or data.get("destinationPath")
        transform = data.get("transform_type") or data.get("transform") or FieldTransform.DIRECT.value
        params = dict(data.get("transform_params") or data.get("params") or {})
        # Short form: {"transform": "multiply", "factor": 2}
        for key in ("factor", "divisor", "mapping", "defaultValue"):
            if key in data and key not in params:
                params[key] = data[key]
        return cls(
            source_path=FieldPath(source),
            dest_path=FieldPath(dest),
            transform=FieldTransform(transform),
            params=params,
            required=bool(data.get("is_required", data.get("required", False))),
            default_value=data.get("default_value", data.get("default")),
            position=int(data.get("position") or 0),
        )

    @classmethod
    def from_model(cls, rule) -> "CompiledRule":
        return cls(
            source_path=FieldPath(rule.source_path),
            dest_path=FieldPath(rule.dest_path),
            transform=FieldTransform(rule.transform_type or FieldTransform.DIRECT.value),
            params=dict(rule.transform_params or {}),
            required=bool(rule.is_required),
            default_value=rule.default_value,
            position=rule.position or 0,
        )

    def transform_value(self, value: Any) -> Any:
        if self.transform == FieldTransform.DIRECT:
            return value

        if self.transform == FieldTransform.MULTIPLY:
            factor = self.params.get("factor")
            if _is_number(value) and _is_number(factor):
                return value * factor
            return value

        if self.transform == FieldTransform.DIVIDE:
            divisor = self.params.get("divisor")
            if _is_number(value) and _is_number(divisor) and divisor != 0:
                return value / divisor
            return value

        if self.transform == FieldTransform.MAP:
            mapping = self.params.get("mapping") or {}
            if isinstance(value, str) and mapping:
                if value in mapping:
                    return mapping[value]
                return self.params.get("defaultValue", value)
            return value

        return value

    def apply(self, source: Dict[str, Any], target: Dict[str, Any]) -> bool:
        """
        Copy one value. Returns False when nothing was written.

        Raises:
            TransformationError: required rule with no source value and no default
        """
        value = self.source_path.get(source, MISSING)
        if value is MISSING or value is None:
            if self.default_value is not None:
                self.dest_path.set(target, self.default_value)
                return True
            if self.required:
                raise TransformationError(f"Required field '{self.source_path.raw}' is missing")
            return False
        self.dest_path.set(target, self.transform_value(value))
        return True


def compile_rules(raw_rules: List[Any]) -> List[CompiledRule]:
    """
    Compile rules from dicts or FieldMappingRule rows, ordered by position.
    Invalid rules are logged and left out.
    """
    compiled = []
    for raw in raw_rules or []:
        try:
            rule = CompiledRule.from_dict(raw) if isinstance(raw, dict) else CompiledRule.from_model(raw)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring invalid field mapping rule {raw!r}: {str(e)}")
            continue
        compiled.append(rule)
    compiled.sort(key=lambda r: r.position)
    return compiled


def apply_rules(rules: List[CompiledRule], source: Dict[str, Any], target: Dict[str, Any],
                item_ref: Optional[Any] = None) -> List[str]:
    """
    Apply every rule in order; one failing rule never stops the others.

    Returns:
        Error messages of the rules that failed
    """
    failures = []
    for rule in rules:
        try:
            rule.apply(source, target)
        except (TransformationError, TypeError, ValueError, KeyError, IndexError, AttributeError) as e:
            message = f"{rule.source_path.raw} -> {rule.dest_path.raw}: {str(e)}"
            logger.warning(f"Failed to apply field mapping for item {item_ref}: {message}")
            failures.append(message)
    return failures
