from .errors import (
    ColumnNotFound,
    FilterError,
    HandlerContractViolation,
    InvalidFilterValue,
    InvalidOperator,
    InvalidTimezone,
    MalformedRangeValue,
    MissingReferenceInstant,
    RegistryFrozenError,
    UnsafeIdentifier,
    UnsupportedAggregate,
)
from .onto import FilterCondition, FilterOperator
from .sql import SqlFragment
from .dates import (
    DateRange,
    EndOfDayPrecision,
    RelativeDateOption,
    create_relative_date_value,
    extract_relative_date_option,
    format_date_for_sql,
    get_date_range_for_operator,
    get_relative_date_range,
    is_relative_date,
    resolve_relative_date,
)
from .operators import (
    OPERATOR_REGISTRY,
    get_operator,
    get_operators_for_type,
    is_range_operator,
    map_date_operator,
)
from .handlers import (
    ArrayOperatorHandler,
    FilterHandler,
    HandlerRegistry,
    JsonBooleanKeyHandler,
    load_handler,
)
from .context import FilterContext
from .builder import CompiledWhere, FilterBuilder, FilterValidation
from .categorize import CategorizedFilters, categorize_filters
from .properties import parse_properties_to_filters

__all__ = [
    "ArrayOperatorHandler",
    "CategorizedFilters",
    "ColumnNotFound",
    "CompiledWhere",
    "DateRange",
    "EndOfDayPrecision",
    "FilterBuilder",
    "FilterCondition",
    "FilterContext",
    "FilterError",
    "FilterHandler",
    "FilterOperator",
    "FilterValidation",
    "HandlerContractViolation",
    "HandlerRegistry",
    "InvalidFilterValue",
    "InvalidOperator",
    "InvalidTimezone",
    "JsonBooleanKeyHandler",
    "MalformedRangeValue",
    "MissingReferenceInstant",
    "OPERATOR_REGISTRY",
    "RegistryFrozenError",
    "RelativeDateOption",
    "SqlFragment",
    "UnsafeIdentifier",
    "UnsupportedAggregate",
    "categorize_filters",
    "create_relative_date_value",
    "extract_relative_date_option",
    "format_date_for_sql",
    "get_date_range_for_operator",
    "get_operator",
    "get_operators_for_type",
    "get_relative_date_range",
    "is_range_operator",
    "is_relative_date",
    "load_handler",
    "map_date_operator",
    "parse_properties_to_filters",
    "resolve_relative_date",
]
