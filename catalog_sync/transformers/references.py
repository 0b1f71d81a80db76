"""
Extraction of the auxiliary entity ids a source variation refers to.

Shared by the resolvers (which make sure the ids are mapped) and the product
transformer (which turns them into destination ids), so both read a
variation the same way.
"""
from typing import Any, Dict, List, Optional, Tuple

from catalog_sync.core.utils import dedupe, md5_hex
from catalog_sync.transformers.localization import DEFAULT_LANGUAGE_PREFERENCE

SELECTION_CASTS = ("selection", "multiSelection")


def category_ids(variation: Dict[str, Any]) -> List[int]:
    return dedupe(vc.get("categoryId") for vc in variation.get("variationCategories") or [])


def attribute_value_ids(variation: Dict[str, Any]) -> List[int]:
    return dedupe(
        vav.get("valueId") if vav.get("valueId") is not None else vav.get("attributeValueId")
        for vav in variation.get("variationAttributeValues") or []
    )


def property_selection_ids(variation: Dict[str, Any]) -> List[int]:
    return dedupe(vp.get("propertySelectionId") for vp in variation.get("variationProperties") or [])


def selection_property_ids(variation: Dict[str, Any]) -> List[int]:
    """Properties referenced through a selection."""
    return dedupe(
        vp.get("propertyId") for vp in variation.get("variationProperties") or []
        if vp.get("propertySelectionId") is not None
    )


def manufacturer_id(variation: Dict[str, Any]) -> Optional[int]:
    item = variation.get("item") or {}
    value = item.get("manufacturerId")
    return value if value else None


def unit_id(variation: Dict[str, Any]) -> Optional[int]:
    unit = variation.get("unit") or {}
    return unit.get("unitId") or None


def property_value_hash(property_id: Any, value: str) -> str:
    """Key of a free-text property value; equal values of one property share an option."""
    return md5_hex(f"{property_id}:{value}")


def raw_relation_value(relation_values: Optional[List[Dict[str, Any]]]) -> Tuple[Optional[str], str]:
    """(value, lang) of an item property's relation values, preferring de, then en."""
    values = relation_values or []
    for lang in DEFAULT_LANGUAGE_PREFERENCE:
        for entry in values:
            if (entry.get("lang") or "").lower() == lang and entry.get("value"):
                return str(entry["value"]), lang
    if values and values[0].get("value"):
        return str(values[0]["value"]), values[0].get("lang") or "de"
    return None, "de"


def free_text_properties(variation: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Item properties that are not bound to a selection relation."""
    return [
        prop for prop in variation.get("properties") or []
        if prop.get("selectionRelationId") is None and prop.get("propertyId") is not None
    ]


def property_value(prop: Dict[str, Any], cached_property: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Display value of an item property. For selection casts the raw value is a
    selection id and is replaced by the selection's name.
    """
    raw, lang = raw_relation_value(prop.get("relationValues"))
    if not raw:
        return None
    if cached_property and cached_property.get("cast") in SELECTION_CASTS:
        try:
            selection_id = int(raw)
        except ValueError:
            return raw
        for selection in cached_property.get("selections") or []:
            if selection.get("id") == selection_id:
                names = selection.get("names") or {}
                name = names.get(lang) or names.get("de") or names.get("en") or next(iter(names.values()), None)
                if name:
                    return name
    return raw


def image_url(image: Dict[str, Any]) -> Optional[str]:
    return image.get("url") or image.get("urlMiddle") or image.get("urlPreview")
