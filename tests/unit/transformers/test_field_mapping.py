import pytest

from catalog_sync.core.enums import FieldTransform
from catalog_sync.core.exceptions import TransformationError
from catalog_sync.transformers.field_mapping import CompiledRule, apply_rules, compile_rules
from catalog_sync.transformers.field_paths import MISSING, FieldPath

"""
1. Field Path Tests
"""

def test_field_path_reads_nested_lists():
    data = {"variationSalesPrices": [{"price": 10}, {"price": 12}]}

    assert FieldPath("variationSalesPrices.1.price").get(data) == 12
    assert FieldPath("variationSalesPrices.5.price").get(data) is MISSING
    assert FieldPath("missing.path").get(data, None) is None


def test_field_path_write_creates_containers():
    target = {}

    FieldPath("customFields.prices.1.gross").set(target, 9.5)

    assert target == {"customFields": {"prices": [None, {"gross": 9.5}]}}


@pytest.mark.parametrize("raw", ["", "   ", "a..b", ".a"])
def test_invalid_field_paths(raw):
    with pytest.raises(ValueError):
        FieldPath(raw)


"""
2. Transform Tests
"""

def test_multiply_rule():
    rule = CompiledRule.from_dict({"sourcePath": "price", "destPath": "price", "transform": "multiply", "factor": 2})
    target = {}

    rule.apply({"price": 10}, target)

    assert target["price"] == 20


def test_divide_by_zero_keeps_value():
    rule = CompiledRule.from_dict({
        "source_path": "weightG", "dest_path": "weight",
        "transform_type": "divide", "transform_params": {"divisor": 0},
    })
    target = {}

    rule.apply({"weightG": 500}, target)

    assert target["weight"] == 500


def test_map_rule_with_default():
    rule = CompiledRule(
        source_path=FieldPath("condition"),
        dest_path=FieldPath("customFields.condition"),
        transform=FieldTransform.MAP,
        params={"mapping": {"N": "new"}, "defaultValue": "used"},
    )
    target = {}

    rule.apply({"condition": "N"}, target)
    assert target["customFields"]["condition"] == "new"

    rule.apply({"condition": "B"}, target)
    assert target["customFields"]["condition"] == "used"


def test_default_value_when_source_missing():
    rule = CompiledRule.from_dict({"sourcePath": "isbn", "destPath": "customFields.isbn", "default": "n/a"})
    target = {}

    assert rule.apply({}, target) is True
    assert target == {"customFields": {"isbn": "n/a"}}


def test_required_rule_without_value_raises():
    rule = CompiledRule.from_dict({"sourcePath": "ean", "destPath": "ean", "required": True})

    with pytest.raises(TransformationError):
        rule.apply({}, {})


"""
3. Rule Set Tests
"""

def test_failing_rule_does_not_stop_the_others():
    rules = compile_rules([
        {"sourcePath": "ean", "destPath": "ean", "required": True, "position": 1},
        {"sourcePath": "number", "destPath": "customFields.sku", "position": 2},
    ])
    target = {}

    failures = apply_rules(rules, {"number": "GTR-1"}, target, item_ref=1)

    assert len(failures) == 1
    assert "ean" in failures[0]
    assert target == {"customFields": {"sku": "GTR-1"}}


def test_compile_rules_skips_invalid_and_sorts_by_position():
    rules = compile_rules([
        {"sourcePath": "b", "destPath": "b", "position": 5},
        {"sourcePath": "", "destPath": "x"},
        {"sourcePath": "c", "destPath": "c", "transform": "explode"},
        {"sourcePath": "a", "destPath": "a", "position": 1},
    ])

    assert [r.source_path.raw for r in rules] == ["a", "b"]
