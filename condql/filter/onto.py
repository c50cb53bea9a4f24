"""Filter condition model.

This module defines the closed set of filter operators and the structural
descriptor of a single predicate.

Key Components:
    - FilterOperator: Enum of every operator the compiler understands
    - FilterCondition: One predicate (column, operator, value, optional type)

Example:
    >>> cond = FilterCondition.from_list(["status", "eq", "active"])
    >>> cond.operator
    'eq'
"""

from __future__ import annotations

from typing import Any, Self

from pydantic import ConfigDict, Field

from condql.architecture.base import ConfigBaseModel
from condql.onto import BaseEnum, SemanticType

FilterValue = str | int | float | bool | list[Any] | tuple[Any, ...] | None


class FilterOperator(BaseEnum):
    """Filter operators.

    Comparison operators apply to numbers and dates, pattern operators to
    text, date operators are aliases resolved by the operator mapper, JSON
    operators to json/jsonb columns and array operators are served by
    custom handlers only.
    """

    EQ = "eq"
    NEQ = "neq"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"

    BETWEEN = "between"
    NOT_BETWEEN = "notBetween"

    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"

    IN = "in"
    NOT_IN = "notIn"

    IS_NULL = "isNull"
    NOT_NULL = "notNull"

    BEFORE = "before"
    BEFORE_OR_ON = "beforeOrOn"
    AFTER = "after"
    AFTER_OR_ON = "afterOrOn"
    DURING = "during"

    CONTAINS_TEXT = "containsText"
    HAS_KEY = "hasKey"
    KEY_EQUALS = "keyEquals"
    PATH_EXISTS = "pathExists"

    ARRAY_CONTAINS = "arrayContains"
    ARRAY_CONTAINED_BY = "arrayContainedBy"
    OVERLAPS = "overlaps"


class FilterCondition(ConfigBaseModel):
    """Structural descriptor of one predicate.

    The operator is kept as a plain string so that an unknown operator is
    reported by the compiler as ``InvalidOperator`` rather than rejected at
    construction.

    Attributes:
        column: Column name or, for HAVING filters, an aggregate expression
        operator: Operator key, see ``FilterOperator``
        value: Scalar, ``(start, end)`` pair, list or None
        type: Optional semantic type overriding the one inferred from metadata
    """

    model_config = ConfigDict(frozen=True)

    column: str = Field(min_length=1)
    operator: str = FilterOperator.EQ.value
    value: FilterValue = None
    type: SemanticType | None = None

    @classmethod
    def from_list(cls, current: list[Any]) -> Self:
        """Build a condition from list form ``[column, operator, value, type?]``."""
        column = current[0]
        operator = current[1] if len(current) > 1 else FilterOperator.EQ.value
        value = current[2] if len(current) > 2 else None
        semantic_type = current[3] if len(current) > 3 else None
        return cls(column=column, operator=operator, value=value, type=semantic_type)

    def __str__(self) -> str:
        return f"{self.column} {self.operator} {self.value!r}"
