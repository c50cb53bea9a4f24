"""condql: compile structured filter conditions into SQL predicates.

condql turns (column, operator, value) filter descriptors into SQL WHERE and
HAVING fragments for row-level filtering and aggregated dashboard queries.

Key Features:
    - Timezone-correct relative dates resolved against an explicit reference instant
    - Operator mapping with range expansion to explicit BETWEEN boundaries
    - Per-type default handlers plus a frozen registry of custom handlers
    - Parameterized output, with an inline raw-sql fallback
    - WHERE/HAVING categorization for aggregated widgets

Example:
    >>> from condql import FilterBuilder, FilterContext
    >>> ctx = FilterContext(columns=[{"name": "created_at", "data_type": "timestamptz"}])
    >>> FilterBuilder(ctx).build_where(
    ...     [{"column": "created_at", "operator": "eq", "value": "__rel_date:today"}],
    ...     reference_instant=now,
    ... )
"""

# --- Enumerations ----------------------------------------------------------
from .onto import EscapeStrategy, SemanticType, ServiceType

# --- Architecture ----------------------------------------------------------
from .architecture import ColumnMetadata, ConfigBaseModel

# --- Filters ---------------------------------------------------------------
from .filter import (
    CompiledWhere,
    FilterBuilder,
    FilterCondition,
    FilterContext,
    FilterError,
    FilterOperator,
    HandlerRegistry,
    SqlFragment,
    categorize_filters,
    parse_properties_to_filters,
)

# --- Widgets ---------------------------------------------------------------
from .widget import TableQueryParams, WidgetConfig, build_query_params

__all__ = [
    "ColumnMetadata",
    "CompiledWhere",
    "ConfigBaseModel",
    "EscapeStrategy",
    "FilterBuilder",
    "FilterCondition",
    "FilterContext",
    "FilterError",
    "FilterOperator",
    "HandlerRegistry",
    "SemanticType",
    "ServiceType",
    "SqlFragment",
    "TableQueryParams",
    "WidgetConfig",
    "build_query_params",
    "categorize_filters",
    "parse_properties_to_filters",
]
