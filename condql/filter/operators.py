"""Operator registry and operator mapping.

The registry lists, for every ``FilterOperator``, its SQL form and the
semantic types a default handler accepts it for. Date aliases
(``before``, ``after``, ...) are mapped onto plain comparisons before
rendering.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, NamedTuple

from condql.architecture.column import infer_semantic_type
from condql.filter.errors import InvalidOperator, MalformedRangeValue
from condql.filter.onto import FilterOperator
from condql.onto import SemanticType


class OperatorDefinition(NamedTuple):
    key: FilterOperator
    sql: str
    supported_types: frozenset[SemanticType]


_ALL = frozenset(SemanticType)
_EQUALITY = frozenset(
    {SemanticType.TEXT, SemanticType.NUMBER, SemanticType.DATE, SemanticType.IDENTIFIER}
)
_ORDERED = frozenset({SemanticType.NUMBER, SemanticType.DATE})
_TEXT = frozenset({SemanticType.TEXT})
_DATE = frozenset({SemanticType.DATE})
_JSON = frozenset({SemanticType.JSON})


def _define(key: FilterOperator, sql: str, types: frozenset) -> OperatorDefinition:
    return OperatorDefinition(key=key, sql=sql, supported_types=types)


OPERATOR_REGISTRY: MappingProxyType[FilterOperator, OperatorDefinition] = (
    MappingProxyType(
        {
            d.key: d
            for d in (
                _define(FilterOperator.EQ, "=", _EQUALITY | {SemanticType.BOOLEAN}),
                _define(FilterOperator.NEQ, "!=", _EQUALITY | {SemanticType.BOOLEAN}),
                _define(FilterOperator.LT, "<", _ORDERED),
                _define(FilterOperator.LTE, "<=", _ORDERED),
                _define(FilterOperator.GT, ">", _ORDERED),
                _define(FilterOperator.GTE, ">=", _ORDERED),
                _define(FilterOperator.BETWEEN, "BETWEEN", _ORDERED),
                _define(FilterOperator.NOT_BETWEEN, "NOT BETWEEN", _ORDERED),
                _define(FilterOperator.CONTAINS, "ILIKE", _TEXT),
                _define(FilterOperator.STARTS_WITH, "ILIKE", _TEXT),
                _define(FilterOperator.ENDS_WITH, "ILIKE", _TEXT),
                _define(FilterOperator.IN, "IN", _EQUALITY),
                _define(FilterOperator.NOT_IN, "NOT IN", _EQUALITY),
                _define(FilterOperator.IS_NULL, "IS NULL", _ALL),
                _define(FilterOperator.NOT_NULL, "IS NOT NULL", _ALL),
                _define(FilterOperator.BEFORE, "<", _DATE),
                _define(FilterOperator.BEFORE_OR_ON, "<=", _DATE),
                _define(FilterOperator.AFTER, ">", _DATE),
                _define(FilterOperator.AFTER_OR_ON, ">=", _DATE),
                _define(FilterOperator.DURING, "BETWEEN", _DATE),
                _define(FilterOperator.CONTAINS_TEXT, "ILIKE", _JSON),
                _define(FilterOperator.HAS_KEY, "?", _JSON),
                _define(FilterOperator.KEY_EQUALS, "@>", _JSON),
                _define(FilterOperator.PATH_EXISTS, "#>", _JSON),
                _define(FilterOperator.ARRAY_CONTAINS, "@>", frozenset()),
                _define(FilterOperator.ARRAY_CONTAINED_BY, "<@", frozenset()),
                _define(FilterOperator.OVERLAPS, "&&", frozenset()),
            )
        }
    )
)

DATE_OPERATOR_MAPPING: MappingProxyType[str, str] = MappingProxyType(
    {
        FilterOperator.BEFORE: FilterOperator.LT,
        FilterOperator.BEFORE_OR_ON: FilterOperator.LTE,
        FilterOperator.AFTER: FilterOperator.GT,
        FilterOperator.AFTER_OR_ON: FilterOperator.GTE,
        FilterOperator.DURING: FilterOperator.EQ,
    }
)

RANGE_OPERATORS = frozenset(
    {FilterOperator.BETWEEN, FilterOperator.NOT_BETWEEN, FilterOperator.DURING}
)


def map_date_operator(operator: str) -> str:
    """Map a date alias onto its comparison; other operators pass through."""
    mapped = DATE_OPERATOR_MAPPING.get(operator)
    return str(mapped) if mapped is not None else operator


def is_range_operator(operator: str) -> bool:
    return operator in RANGE_OPERATORS


def get_operator(key: str) -> OperatorDefinition:
    """Look up an operator definition.

    Raises:
        InvalidOperator: If the key is not a known operator
    """
    if key not in FilterOperator:
        raise InvalidOperator(key)
    return OPERATOR_REGISTRY[FilterOperator(key)]


def supports(operator: str, semantic_type: SemanticType | str) -> bool:
    if operator not in FilterOperator:
        return False
    return SemanticType(semantic_type) in get_operator(operator).supported_types


def get_operators_for_type(data_type: SemanticType | str) -> list[FilterOperator]:
    """Operators available for a semantic type or a declared SQL data type."""
    if data_type in SemanticType:
        semantic_type = SemanticType(data_type)
    else:
        semantic_type = infer_semantic_type(data_type)
    return [
        op
        for op, definition in OPERATOR_REGISTRY.items()
        if semantic_type in definition.supported_types
    ]


def split_range_value(operator: str, value: Any) -> tuple[Any, Any]:
    """Split a range value into its start and end.

    Accepts a two-element sequence or a ``"start,end"`` string with a single
    comma and two non-empty parts.

    Raises:
        MalformedRangeValue: For any other shape
    """
    if isinstance(value, (list, tuple)):
        if len(value) != 2 or any(v is None or str(v).strip() == "" for v in value):
            raise MalformedRangeValue(operator, value)
        return value[0], value[1]
    if isinstance(value, str):
        parts = value.split(",")
        if len(parts) != 2 or not all(p.strip() for p in parts):
            raise MalformedRangeValue(operator, value)
        return parts[0].strip(), parts[1].strip()
    raise MalformedRangeValue(operator, value)
