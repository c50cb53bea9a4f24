"""Error taxonomy for filter compilation.

Every failure aborts the whole compilation; no partial SQL is returned.
"""

from __future__ import annotations

from typing import Any


class FilterError(Exception):
    """Base exception for filter compilation errors."""


class ColumnNotFound(FilterError):
    """A condition references a column absent from the context metadata."""

    def __init__(self, column: str):
        self.column = column
        super().__init__(f"Column '{column}' not found in metadata")


class InvalidOperator(FilterError):
    """An operator is unknown, or unsupported for the resolved semantic type."""

    def __init__(self, operator: str, semantic_type: str | None = None):
        self.operator = operator
        self.semantic_type = semantic_type
        if semantic_type is None:
            message = f"Unknown filter operator '{operator}'"
        else:
            message = f"Operator '{operator}' not supported for type '{semantic_type}'"
        super().__init__(message)


class MalformedRangeValue(FilterError):
    """A range operator value cannot be split into exactly two parts."""

    def __init__(self, operator: str, value: Any):
        self.operator = operator
        self.value = value
        super().__init__(
            f"Operator '{operator}' requires a two-part value, got {value!r}"
        )


class HandlerContractViolation(FilterError):
    """A handler claimed a condition but produced an empty fragment.

    The message stays generic; handler and condition are kept as attributes
    and logged where the violation is detected.
    """

    def __init__(self, handler: str, condition: Any):
        self.handler = handler
        self.condition = condition
        super().__init__("filter compilation failed")


class InvalidFilterValue(FilterError, ValueError):
    """A value cannot be converted to the type its column requires."""


class MissingReferenceInstant(FilterError):
    """A relative token or partial date was compiled without a reference instant."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(
            f"Date value '{value}' requires an explicit reference instant"
        )


class InvalidTimezone(FilterError, ValueError):
    """A timezone name is not known to the tz database."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown timezone '{name}'")


class UnsafeIdentifier(FilterError, ValueError):
    """An identifier contains characters that cannot be quoted safely."""


class UnsupportedAggregate(FilterError, ValueError):
    """A HAVING column is not a recognized aggregate expression."""


class RegistryFrozenError(FilterError, RuntimeError):
    """A handler was registered after the registry was frozen."""
