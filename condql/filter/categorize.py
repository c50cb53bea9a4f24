"""Split filters between WHERE and HAVING for aggregated queries.

Routing is decided on the column string: an aggregate call such as
``SUM(revenue)`` or one of the aggregation aliases (``value`` by default)
goes to HAVING, everything else to WHERE.
"""

from __future__ import annotations

import re
from typing import Any, Iterable

from pydantic import BaseModel, Field

from condql.filter.errors import UnsupportedAggregate

AGGREGATE_EXPRESSION_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*\((.*)\)\s*$")

SUPPORTED_AGGREGATES = frozenset({"COUNT", "SUM", "AVG", "MIN", "MAX"})

DEFAULT_AGGREGATION_ALIASES: tuple[str, ...] = ("value",)

_ARGUMENT_RE = re.compile(r'^(?:(DISTINCT)\s+)?("?)([A-Za-z_][A-Za-z0-9_]*|\*)\2$', re.I)


class CategorizedFilters(BaseModel):
    where_filters: list[Any] = Field(default_factory=list)
    having_filters: list[Any] = Field(default_factory=list)


def is_aggregate_expression(column: str) -> bool:
    """Whether a column has the ``FUNC(...)`` shape of an aggregate call."""
    return bool(AGGREGATE_EXPRESSION_RE.match(column))


def parse_aggregate_expression(column: str) -> tuple[str, str, bool]:
    """Split an aggregate call into its parts.

    Args:
        column: Expression such as ``COUNT(*)``, ``sum(revenue)`` or ``COUNT(DISTINCT id)``

    Returns:
        Tuple of (upper-cased function, argument column or ``*``, distinct flag)

    Raises:
        UnsupportedAggregate: If the function is not COUNT, SUM, AVG, MIN or MAX,
            or the argument is not a plain column name
    """
    match = AGGREGATE_EXPRESSION_RE.match(column)
    if match is None:
        raise UnsupportedAggregate(f"'{column}' is not an aggregate expression")
    function = match.group(1).upper()
    if function not in SUPPORTED_AGGREGATES:
        raise UnsupportedAggregate(f"Unsupported aggregate function '{function}'")
    argument = _ARGUMENT_RE.match(match.group(2).strip())
    if argument is None:
        raise UnsupportedAggregate(f"Unsupported aggregate argument in '{column}'")
    distinct = argument.group(1) is not None
    name = argument.group(3)
    if name == "*" and (function != "COUNT" or distinct):
        raise UnsupportedAggregate(f"'{column}' is not a valid aggregate")
    return function, name, distinct


def _column_of(item: Any) -> str:
    if isinstance(item, dict):
        return str(item.get("column", ""))
    return str(getattr(item, "column", ""))


def categorize_filters(
    filters: Iterable[Any],
    is_aggregated: bool,
    aggregation_aliases: Iterable[str] | None = None,
) -> CategorizedFilters:
    """Partition filters into pre- and post-aggregation groups.

    Without aggregation every filter is a WHERE filter. Relative order inside
    each group follows the input, and every filter lands in exactly one group.

    Args:
        filters: Conditions, as models or dicts
        is_aggregated: Whether the query aggregates
        aggregation_aliases: Column names that stand for the aggregate value

    Returns:
        CategorizedFilters with ``where_filters`` and ``having_filters``
    """
    items = list(filters)
    if not is_aggregated:
        return CategorizedFilters(where_filters=items)
    aliases = {
        a.lower()
        for a in (
            DEFAULT_AGGREGATION_ALIASES
            if aggregation_aliases is None
            else aggregation_aliases
        )
    }
    result = CategorizedFilters()
    for item in items:
        column = _column_of(item)
        if is_aggregate_expression(column) or column.strip().lower() in aliases:
            result.having_filters.append(item)
        else:
            result.where_filters.append(item)
    return result
