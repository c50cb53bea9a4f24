from .query import (
    TableQueryParams,
    WidgetConfig,
    WidgetRef,
    WidgetType,
    build_query_params,
    compile_widget_filters,
    default_widget_config,
    is_aggregated_widget,
    parse_widget_config,
    validate_widget_config,
)

__all__ = [
    "TableQueryParams",
    "WidgetConfig",
    "WidgetRef",
    "WidgetType",
    "build_query_params",
    "compile_widget_filters",
    "default_widget_config",
    "is_aggregated_widget",
    "parse_widget_config",
    "validate_widget_config",
]
