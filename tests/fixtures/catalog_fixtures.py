"""
Sample source ERP records shaped like the REST API responses the sync reads.
"""
import copy
from typing import Any, Dict, List, Optional


def _names(de: str, en: Optional[str] = None, key: str = "name") -> List[Dict[str, str]]:
    names = [{"lang": "de", key: de}]
    if en:
        names.append({"lang": "en", key: en})
    return names


CATEGORIES = [
    {"id": 1, "parentCategoryId": None, "level": 1, "type": "item", "details": _names("Instrumente", "Instruments")},
    {"id": 2, "parentCategoryId": 1, "level": 2, "type": "item", "details": _names("Gitarren", "Guitars")},
    {"id": 3, "parentCategoryId": 2, "level": 3, "type": "item", "details": _names("E-Gitarren", "Electric Guitars")},
]

ATTRIBUTES = [
    {
        "id": 5,
        "backendName": "Farbe",
        "position": 1,
        "typeOfSelectionInOnlineStore": "dropdown",
        "attributeNames": _names("Farbe", "Colour"),
        "values": [
            {"id": 100, "backendName": "rot", "position": 1, "valueNames": _names("Rot", "Red")},
            {"id": 101, "backendName": "blau", "position": 2, "valueNames": _names("Blau", "Blue")},
        ],
    },
    {
        "id": 6,
        "backendName": "Muster",
        "position": 2,
        "typeOfSelectionInOnlineStore": "image",
        "attributeNames": _names("Muster"),
        "values": [
            {"id": 110, "backendName": "sunburst", "position": 1, "image": "sunburst.png",
             "valueNames": _names("Sunburst")},
        ],
    },
]

SALES_PRICES = [
    {"id": 1, "type": "default", "position": 1, "currencies": [{"currency": "EUR"}],
     "names": _names("Verkaufspreis", "Sales price", key="nameInternal")},
    {"id": 2, "type": "rrp", "position": 2, "currencies": [{"currency": "EUR"}],
     "names": _names("UVP", "RRP", key="nameInternal")},
]

MANUFACTURERS = [
    {"id": 20, "name": "Fender", "externalName": "Fender Musical Instruments", "url": "https://www.fender.com",
     "comment": "Since 1946", "position": 0},
]

UNITS = [
    {"id": 1, "unitOfMeasurement": "C62", "position": 0, "names": _names("Stück", "Piece")},
]


def _referrers(*values: str) -> Dict[str, Any]:
    return {"typeOptionIdentifier": "referrers", "propertyOptionValues": [{"value": v} for v in values]}


PROPERTIES = [
    {"id": 7, "cast": "shortText", "typeIdentifier": "item", "position": 1, "propertyGroupId": 3,
     "names": _names("Material", "Material"), "options": [_referrers("1.00")], "selections": []},
    {"id": 8, "cast": "selection", "typeIdentifier": "item", "position": 2, "propertyGroupId": 3,
     "names": _names("Holzart", "Wood"), "options": [_referrers("1.00", "2.00")],
     "selections": [
         {"id": 80, "position": 1, "relation": {"relationValues": [{"lang": "de", "value": "Erle"},
                                                                    {"lang": "en", "value": "Alder"}]}},
         {"id": 81, "position": 2, "relation": {"relationValues": [{"lang": "de", "value": "Esche"}]}},
     ]},
]

# Only visible for the marketplace referrer, never for the webshop
HIDDEN_PROPERTY = {
    "id": 9, "cast": "shortText", "typeIdentifier": "item", "position": 3,
    "names": _names("Intern"), "options": [_referrers("4.00")], "selections": [],
}


def source_config() -> Dict[str, List[Dict[str, Any]]]:
    """Every config kind, keyed the way the source cache names them"""
    return copy.deepcopy({
        "categories": CATEGORIES,
        "attributes": ATTRIBUTES,
        "sales_prices": SALES_PRICES,
        "manufacturers": MANUFACTURERS,
        "units": UNITS,
        "properties": PROPERTIES,
    })


def main_variation(variation_id: int = 1, item_id: int = 1000, number: str = "GTR-1", **overrides) -> Dict[str, Any]:
    variation = {
        "id": variation_id,
        "itemId": item_id,
        "isMain": True,
        "mainVariationId": None,
        "number": number,
        "isActive": True,
        "vatId": 0,
        "weightG": 3500,
        "variationSalesPrices": [
            {"salesPriceId": 1, "price": 119.0},
            {"salesPriceId": 2, "price": 149.0},
        ],
        "variationBarcodes": [{"code": "4006381333931"}],
        "variationAttributeValues": [{"attributeId": 5, "valueId": 100}],
        "variationCategories": [{"categoryId": 3}],
        "variationProperties": [{"propertyId": 8, "propertySelectionId": 80}],
        "properties": [
            {"propertyId": 7, "selectionRelationId": None, "relationValues": [{"lang": "de", "value": "Mahagoni"}]},
        ],
        "variationTexts": [
            {"lang": "de", "name": "E-Gitarre", "description": "Eine E-Gitarre"},
            {"lang": "en", "name": "Electric Guitar", "description": "An electric guitar"},
        ],
        "stock": [{"warehouseId": 1, "netStock": 3}, {"warehouseId": 2, "netStock": 2}],
        "item": {"id": item_id, "manufacturerId": 20},
        "unit": {"unitId": 1},
    }
    variation.update(overrides)
    return variation


def child_variation(variation_id: int = 2, main_id: int = 1, item_id: int = 1000, number: str = "GTR-1-BLUE",
                    value_id: int = 101, **overrides) -> Dict[str, Any]:
    variation = main_variation(variation_id, item_id, number)
    variation.update({
        "isMain": False,
        "mainVariationId": main_id,
        "variationAttributeValues": [{"attributeId": 5, "valueId": value_id}],
        "stock": [{"warehouseId": 1, "netStock": 1}],
    })
    variation.update(overrides)
    return variation


def item_images(item_id: int = 1000) -> List[Dict[str, Any]]:
    return [
        {"id": 1, "itemId": item_id, "position": 0, "url": f"https://erp.example.com/item/images/{item_id}/front.jpg",
         "names": [{"lang": "de", "name": "Vorderseite", "alternate": "Vorderansicht"}]},
        {"id": 2, "itemId": item_id, "position": 1, "url": f"https://erp.example.com/item/images/{item_id}/back",
         "names": []},
    ]


def stock_rows() -> List[Dict[str, Any]]:
    return [
        {"variationId": 1, "warehouseId": 1, "stockNet": 3},
        {"variationId": 1, "warehouseId": 2, "stockNet": 4},
        {"variationId": 2, "warehouseId": 1, "stockNet": 0},
        {"variationId": 99, "warehouseId": 1, "stockNet": 12},
    ]
