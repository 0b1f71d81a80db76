from catalog_sync.transformers.localization import (
    build_text_translations,
    build_translations,
    extract_names,
    pick_name,
    resolve_text,
    to_locale,
)


def test_resolve_text_falls_back_to_next_preferred_language():
    """No German text: English wins over a French record listed first"""
    texts = [{"lang": "fr", "name": "Guitare"}, {"lang": "en", "name": "Guitar"}]

    assert resolve_text(texts, "name", ("de", "en"))["name"] == "Guitar"


def test_resolve_text_uses_first_record_when_no_preferred_language():
    texts = [{"lang": "fr", "name": "Guitare"}, {"lang": "it", "name": "Chitarra"}]

    assert resolve_text(texts, "name")["lang"] == "fr"


def test_resolve_text_falls_back_to_parent_texts():
    variation_texts = [{"lang": "de", "name": ""}]
    item_texts = [{"lang": "en", "name": "Item name"}]

    assert resolve_text(variation_texts, "name", parent_texts=item_texts)["name"] == "Item name"
    assert resolve_text([], "name") == {}


def test_pick_name():
    assert pick_name({"en": "Red", "de": "Rot"}) == "Rot"
    assert pick_name({"fr": "Rouge"}) == "Rouge"
    assert pick_name({}, fallback="Unnamed") == "Unnamed"


def test_extract_names_drops_empty_values():
    entries = [{"lang": "de", "name": "Rot"}, {"lang": "en", "name": ""}, {"lang": "fr"}]

    assert extract_names(entries) == {"de": "Rot"}


def test_locales():
    assert to_locale("de") == "de-DE"
    assert to_locale("EN") == "en-GB"
    assert to_locale("cz") == "cs-CZ"
    assert to_locale("xx") == "xx-XX"


def test_build_translations():
    assert build_translations({"de": "Rot", "en": "Red"}) == {"de-DE": {"name": "Rot"}, "en-GB": {"name": "Red"}}


def test_build_text_translations_maps_meta_fields():
    texts = [
        {"lang": "de", "name": "Gitarre", "shortDescription": "Kurz", "metaDescription": "Meta",
         "metaKeywords": "gitarre,holz"},
        {"name": "no language"},
    ]

    assert build_text_translations(texts) == {
        "de-DE": {"name": "Gitarre", "description": "Kurz", "metaDescription": "Meta", "keywords": "gitarre,holz"},
    }
