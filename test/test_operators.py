import pytest

from condql.filter.errors import InvalidOperator, MalformedRangeValue
from condql.filter.onto import FilterOperator
from condql.filter.operators import (
    OPERATOR_REGISTRY,
    get_operator,
    get_operators_for_type,
    is_range_operator,
    map_date_operator,
    split_range_value,
    supports,
)


@pytest.mark.parametrize(
    "operator, expected",
    [
        ("before", "lt"),
        ("beforeOrOn", "lte"),
        ("after", "gt"),
        ("afterOrOn", "gte"),
        ("during", "eq"),
        ("eq", "eq"),
        ("contains", "contains"),
        ("somethingElse", "somethingElse"),
    ],
)
def test_map_date_operator(operator, expected):
    assert map_date_operator(operator) == expected


def test_range_operators():
    ranged = {op for op in FilterOperator if is_range_operator(op)}
    assert ranged == {"between", "notBetween", "during"}
    assert not is_range_operator("gte")
    assert not is_range_operator("unknown")


def test_every_operator_registered():
    assert set(OPERATOR_REGISTRY) == set(FilterOperator)


def test_registry_is_read_only():
    with pytest.raises(TypeError):
        OPERATOR_REGISTRY["eq"] = None


def test_get_operator():
    assert get_operator("neq").sql == "!="
    assert get_operator(FilterOperator.NOT_NULL).sql == "IS NOT NULL"
    with pytest.raises(InvalidOperator):
        get_operator("like")


@pytest.mark.parametrize(
    "operator, semantic_type, expected",
    [
        ("eq", "boolean", True),
        ("lt", "boolean", False),
        ("gt", "date", True),
        ("contains", "number", False),
        ("contains", "text", True),
        ("hasKey", "json", True),
        ("eq", "json", False),
        ("isNull", "json", True),
        ("in", "identifier", True),
        ("arrayContains", "text", False),
        ("nonsense", "text", False),
    ],
)
def test_supports(operator, semantic_type, expected):
    assert supports(operator, semantic_type) is expected


def test_operators_for_boolean():
    assert set(get_operators_for_type("boolean")) == {"eq", "neq", "isNull", "notNull"}


def test_operators_for_declared_data_type():
    ops = get_operators_for_type("timestamp with time zone")
    assert "before" in ops
    assert "during" in ops
    assert "contains" not in ops


def test_array_operators_not_served_by_default():
    for semantic_type in ("text", "number", "date", "json", "identifier", "boolean"):
        assert "overlaps" not in get_operators_for_type(semantic_type)


def test_split_range_pair():
    assert split_range_value("between", [1, 5]) == (1, 5)
    assert split_range_value("between", ("a", "b")) == ("a", "b")


def test_split_range_comma_string():
    assert split_range_value("between", " 10 , 20 ") == ("10", "20")


@pytest.mark.parametrize("value", ["10", "1,2,3", "1,", [1], [1, 2, 3], [None, 2], 7, None])
def test_split_range_malformed(value):
    with pytest.raises(MalformedRangeValue):
        split_range_value("between", value)
