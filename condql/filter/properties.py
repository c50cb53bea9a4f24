"""Parse ``{"column.operator": value}`` mappings into filter conditions.

This is the flat shape filters take in URLs and saved views, e.g.
``{"status": "active", "amount.greaterThan": "100"}``.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from condql.architecture.column import ColumnMetadata
from condql.filter.errors import ColumnNotFound, InvalidOperator
from condql.filter.handlers import split_list_value
from condql.filter.onto import FilterCondition, FilterOperator
from condql.filter.operators import is_range_operator, split_range_value

logger = logging.getLogger(__name__)

# keys are lower-case; lookup is case-insensitive
OPERATOR_ALIASES: MappingProxyType[str, FilterOperator] = MappingProxyType(
    {
        "equals": FilterOperator.EQ,
        "notequals": FilterOperator.NEQ,
        "ne": FilterOperator.NEQ,
        "greaterthan": FilterOperator.GT,
        "greaterthanorequal": FilterOperator.GTE,
        "lessthan": FilterOperator.LT,
        "lessthanorequal": FilterOperator.LTE,
        "like": FilterOperator.CONTAINS,
        "ilike": FilterOperator.CONTAINS,
        "isnotnull": FilterOperator.NOT_NULL,
        **{op.value.lower(): op for op in FilterOperator},
    }
)

SKIPPED_KEYS = frozenset({"columns"})


def normalize_operator(name: str | None) -> FilterOperator:
    """Resolve an operator name or alias; a missing name means ``eq``.

    Raises:
        InvalidOperator: If the name is not a known operator or alias
    """
    if not name:
        return FilterOperator.EQ
    operator = OPERATOR_ALIASES.get(name.lower())
    if operator is None:
        raise InvalidOperator(name)
    return operator


def process_value(value: Any, operator: FilterOperator | str) -> Any:
    """Shape a raw property value for its operator."""
    if operator in (FilterOperator.IS_NULL, FilterOperator.NOT_NULL):
        if isinstance(value, str) and value.lower() == "true":
            return True
        return value
    if is_range_operator(operator):
        if isinstance(value, str) and "," in value:
            return split_range_value(operator, value)
        return value
    if operator in (FilterOperator.IN, FilterOperator.NOT_IN):
        return split_list_value(value)
    return value


def parse_properties_to_filters(
    properties: Mapping[str, Any] | None,
    columns: Iterable[ColumnMetadata],
) -> list[FilterCondition]:
    """Turn a properties mapping into filter conditions.

    ``None`` values, the ``columns`` key and keys with an empty column part
    are skipped.

    Raises:
        ColumnNotFound: If a key names a column absent from ``columns``
        InvalidOperator: If a key names an unknown operator
        MalformedRangeValue: If a range value has the wrong number of parts
    """
    if not properties:
        return []
    known = {c.name for c in columns}
    filters = []
    for key, raw_value in properties.items():
        if raw_value is None or key in SKIPPED_KEYS:
            continue
        column, _, operator_name = key.partition(".")
        if not column:
            logger.debug(f"Skipping property '{key}' without a column")
            continue
        if column not in known:
            raise ColumnNotFound(column)
        operator = normalize_operator(operator_name)
        filters.append(
            FilterCondition(
                column=column,
                operator=operator.value,
                value=process_value(raw_value, operator),
            )
        )
    return filters
