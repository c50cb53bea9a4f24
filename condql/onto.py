"""Core enumerations shared across the filter compiler.

Key Components:
    - BaseEnum: Base class for string-based enumerations with flexible membership testing
    - SemanticType: Value semantics a column is filtered with
    - EscapeStrategy: How literal values reach the emitted SQL
    - ServiceType: Consumer of the compiler, used to select handler presets

Example:
    >>> "date" in SemanticType  # True
    >>> "interval" in SemanticType  # False
"""

from enum import EnumMeta

from strenum import StrEnum


class MetaEnum(EnumMeta):
    """Metaclass for flexible enumeration membership testing.

    Allows checking whether a raw value is a valid member of an enum
    using the `in` operator.
    """

    def __contains__(self, member: object) -> bool:
        if isinstance(member, self):
            return True
        try:
            self(member)
            return True
        except ValueError:
            return False


class BaseEnum(StrEnum, metaclass=MetaEnum):
    """Base class for string-based enumerations."""

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return self.value


class SemanticType(BaseEnum):
    """Semantic type tags used to pick the default handler for a condition.

    Attributes:
        TEXT: Free text, matched by equality or case-insensitive patterns
        NUMBER: Integer and floating point columns
        BOOLEAN: Boolean columns, exact match only
        DATE: Date and timestamp columns, with relative-date support
        IDENTIFIER: UUIDs and enumerations, exact match only
        JSON: Structured json/jsonb documents
    """

    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    IDENTIFIER = "identifier"
    JSON = "json"


class EscapeStrategy(BaseEnum):
    """How literal values are written into compiled SQL.

    Attributes:
        PARAMETERIZED: Literals become ``%s`` placeholders with a bound-value list
        RAW_SQL: Unsafe fallback, literals are inlined with quote doubling
    """

    PARAMETERIZED = "parameterized"
    RAW_SQL = "raw-sql"


class ServiceType(BaseEnum):
    """Consumers of the compiler; each may ship its own handler preset."""

    DATA_EXPLORER = "data-explorer"
    WIDGETS = "widgets"
    CUSTOM = "custom"
