"""
Localized text helpers shared by the transformer and the resolvers.

Source records carry translations as lists of {"lang": "de", "name": ...}
entries; the destination wants {"de-DE": {"name": ...}} maps.
"""
from typing import Any, Dict, Iterable, List, Optional, Sequence

DEFAULT_LANGUAGE_PREFERENCE = ("de", "en")

# Source language code -> destination locale
LOCALE_MAP = {
    "de": "de-DE",
    "en": "en-GB",
    "fr": "fr-FR",
    "it": "it-IT",
    "es": "es-ES",
    "nl": "nl-NL",
    "pl": "pl-PL",
    "cz": "cs-CZ",
    "pt": "pt-PT",
    "da": "da-DK",
    "sv": "sv-SE",
    "no": "nb-NO",
    "fi": "fi-FI",
    "ro": "ro-RO",
    "ru": "ru-RU",
    "tr": "tr-TR",
}


def to_locale(lang: str) -> str:
    lang = (lang or "").lower()
    return LOCALE_MAP.get(lang, f"{lang}-{lang.upper()}")


def extract_names(entries: Optional[Iterable[Dict[str, Any]]], value_key: str = "name",
                  lang_key: str = "lang") -> Dict[str, str]:
    """
    Collapse per-language records into a {lang: value} dict.
    Empty values are dropped; a later record for the same language wins.
    """
    names: Dict[str, str] = {}
    for entry in entries or []:
        lang = entry.get(lang_key)
        value = entry.get(value_key)
        if lang and value:
            names[lang] = value
    return names


def pick_name(names: Optional[Dict[str, str]], preference: Sequence[str] = DEFAULT_LANGUAGE_PREFERENCE,
              fallback: str = "") -> str:
    """Preferred language first, then whatever comes first, then fallback."""
    if not names:
        return fallback
    for lang in preference:
        if names.get(lang):
            return names[lang]
    for value in names.values():
        if value:
            return value
    return fallback


def _pick_record(records: List[Dict[str, Any]], field: str,
                 preference: Sequence[str]) -> Optional[Dict[str, Any]]:
    for lang in preference:
        for record in records:
            if record.get("lang") == lang and record.get(field):
                return record
    for record in records:
        if record.get(field):
            return record
    return None


def resolve_text(texts: Optional[List[Dict[str, Any]]], field: str = "name",
                 preference: Sequence[str] = DEFAULT_LANGUAGE_PREFERENCE,
                 parent_texts: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """
    Pick the text record to use for `field`.

    Order: the first preferred language that has the field, then the first
    record that has it, then the same search over parent_texts (the item's
    texts for a variation). Returns {} when nothing matches.
    """
    for records in (texts or [], parent_texts or []):
        record = _pick_record(records, field, preference)
        if record is not None:
            return record
    return {}


def build_translations(names: Optional[Dict[str, str]], field: str = "name") -> Dict[str, Dict[str, str]]:
    """{"de": "Rot"} -> {"de-DE": {"name": "Rot"}}"""
    return {to_locale(lang): {field: value} for lang, value in (names or {}).items() if value}


def build_text_translations(texts: Optional[List[Dict[str, Any]]]) -> Dict[str, Dict[str, Any]]:
    """Product translations from full text records (name, description, meta fields)."""
    translations: Dict[str, Dict[str, Any]] = {}
    for text in texts or []:
        lang = text.get("lang")
        if not lang:
            continue
        translation = {"name": text.get("name") or ""}
        description = text.get("description") or text.get("shortDescription")
        if description:
            translation["description"] = description
        if text.get("metaDescription"):
            translation["metaDescription"] = text["metaDescription"]
        if text.get("metaKeywords"):
            translation["keywords"] = text["metaKeywords"]
        translations[to_locale(lang)] = translation
    return translations
