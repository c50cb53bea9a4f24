"""Query parameters for dashboard widgets.

A widget (chart, metric or table) carries a configuration with filters and
aggregation settings. This module turns the pair into ``TableQueryParams``:
filters are split between WHERE and HAVING according to whether the widget
aggregates, and the per-type fields are filled with their defaults. Nothing
here executes SQL.

Example:
    >>> params = build_query_params(
    ...     {"schemaName": "public", "tableName": "orders", "widgetType": "metric"},
    ...     {"metric": "revenue", "aggregation": "sum"},
    ... )
    >>> params.aggregation, params.aggregation_column
    ('SUM', 'revenue')
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Iterable, Mapping

from pydantic import ConfigDict, Field

from condql.architecture.base import ConfigBaseModel
from condql.filter.builder import CompiledWhere, FilterBuilder
from condql.filter.categorize import SUPPORTED_AGGREGATES, categorize_filters
from condql.filter.errors import UnsupportedAggregate
from condql.filter.onto import FilterCondition
from condql.filter.sql import SqlFragment, aggregate_call
from condql.onto import BaseEnum

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


class WidgetType(BaseEnum):
    CHART = "chart"
    METRIC = "metric"
    TABLE = "table"


class WidgetConfig(ConfigBaseModel):
    """Widget configuration as stored by the dashboard.

    Unknown keys are ignored; they belong to presentation settings.
    """

    model_config = ConfigDict(extra="ignore")

    filters: list[FilterCondition] = Field(default_factory=list)
    columns: list[str] | None = None
    x_axis: str | None = Field(default=None, alias="xAxis")
    y_axis: str | None = Field(default=None, alias="yAxis")
    aggregation: str | None = None
    group_by: str | None = Field(default=None, alias="groupBy")
    time_aggregation: str | None = Field(default=None, alias="timeAggregation")
    metric: str | None = None


class WidgetRef(ConfigBaseModel):
    """Table a widget reads from, and the kind of widget."""

    model_config = ConfigDict(extra="ignore")

    schema_name: str = Field(alias="schemaName")
    table_name: str = Field(alias="tableName")
    widget_type: str = Field(alias="widgetType")


class TableQueryParams(ConfigBaseModel):
    """Parameters handed to the table query layer."""

    schema_name: str = Field(alias="schemaName")
    table_name: str = Field(alias="tableName")
    page: int = 1
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, alias="pageSize")
    filters: list[FilterCondition] = Field(default_factory=list)
    having_filters: list[FilterCondition] = Field(
        default_factory=list, alias="havingFilters"
    )
    x_axis: str | None = Field(default=None, alias="xAxis")
    y_axis: str | None = Field(default=None, alias="yAxis")
    aggregation: str | None = None
    aggregation_column: str | None = Field(default=None, alias="aggregationColumn")
    group_by: list[str] | None = Field(default=None, alias="groupBy")
    time_aggregation: str | None = Field(default=None, alias="timeAggregation")
    columns: list[str] | None = None


def parse_widget_config(raw: Any) -> WidgetConfig:
    """Read a widget configuration from a JSON string, a mapping or None.

    Raises:
        ValueError: If a string is not valid JSON
    """
    if isinstance(raw, WidgetConfig):
        return raw
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError("Invalid JSON configuration") from e
    if isinstance(raw, Mapping):
        return WidgetConfig.model_validate(dict(raw))
    return WidgetConfig()


def is_aggregated_widget(widget_type: str, config: WidgetConfig) -> bool:
    if widget_type == WidgetType.CHART:
        return bool(config.aggregation or config.group_by or config.time_aggregation)
    return widget_type == WidgetType.METRIC


def normalize_aggregation(aggregation: str | None) -> str:
    return aggregation.upper() if aggregation else "COUNT"


def aggregate_expression(params: TableQueryParams) -> SqlFragment | None:
    """SQL of the aggregate a widget's ``value`` alias stands for.

    Returns:
        Fragment such as ``SUM("revenue")``, or None for non-aggregating params

    Raises:
        UnsupportedAggregate: For unknown functions, or ``*`` with anything but COUNT
    """
    if params.aggregation is None:
        return None
    function = normalize_aggregation(params.aggregation)
    if function not in SUPPORTED_AGGREGATES:
        raise UnsupportedAggregate(f"Unsupported aggregate function '{function}'")
    argument = params.aggregation_column or params.y_axis or "*"
    return aggregate_call(function, argument)


def build_query_params(
    widget: WidgetRef | Mapping[str, Any],
    config: WidgetConfig | Mapping[str, Any] | str | None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    aggregation_aliases: Iterable[str] | None = None,
) -> TableQueryParams:
    """Assemble query parameters for a widget.

    Args:
        widget: Widget reference (schema, table, widget type)
        config: Widget configuration
        page: 1-based page number
        page_size: Rows per page
        aggregation_aliases: Column names routed to HAVING besides aggregate calls

    Raises:
        ValueError: If the widget type is not chart, metric or table
    """
    if not isinstance(widget, WidgetRef):
        widget = WidgetRef.model_validate(dict(widget))
    config = parse_widget_config(config)
    widget_type = widget.widget_type
    if widget_type not in WidgetType:
        raise ValueError(f"Unsupported widget type: {widget_type}")

    aggregated = is_aggregated_widget(widget_type, config)
    categorized = categorize_filters(config.filters, aggregated, aggregation_aliases)
    fields: dict[str, Any] = dict(
        schema_name=widget.schema_name,
        table_name=widget.table_name,
        page=page or 1,
        page_size=page_size or DEFAULT_PAGE_SIZE,
        filters=categorized.where_filters,
        having_filters=categorized.having_filters,
    )

    if widget_type == WidgetType.CHART:
        fields.update(
            x_axis=config.x_axis,
            y_axis=config.y_axis or "*",
            aggregation=normalize_aggregation(config.aggregation),
            group_by=[config.group_by] if config.group_by else None,
            time_aggregation=config.time_aggregation,
        )
    elif widget_type == WidgetType.METRIC:
        fields.update(
            aggregation=normalize_aggregation(config.aggregation),
            aggregation_column=config.metric or "*",
        )
    else:
        fields.update(columns=config.columns or None)

    logger.debug(
        f"Widget {widget.schema_name}.{widget.table_name} ({widget_type}): "
        f"{len(categorized.where_filters)} WHERE, "
        f"{len(categorized.having_filters)} HAVING filter(s)"
    )
    return TableQueryParams(**fields)


def compile_widget_filters(
    params: TableQueryParams,
    builder: FilterBuilder,
    reference_instant: datetime | None = None,
) -> tuple[CompiledWhere, CompiledWhere]:
    """Compile the WHERE and HAVING clauses of assembled parameters."""
    where = builder.compile_where(params.filters, reference_instant)
    having = CompiledWhere()
    if params.having_filters:
        having = builder.build_having(
            params.having_filters,
            aggregate_expression(params),
            reference_instant,
        )
    return where, having


def validate_widget_config(widget_type: str, config: WidgetConfig) -> list[str]:
    """List configuration problems; an empty list means the config is usable."""
    errors = []
    if widget_type not in WidgetType:
        return [f"Unsupported widget type: {widget_type}"]
    if widget_type == WidgetType.CHART and not config.x_axis:
        errors.append("Chart widgets require xAxis configuration")
    if widget_type != WidgetType.TABLE and config.aggregation:
        function = normalize_aggregation(config.aggregation)
        if function not in SUPPORTED_AGGREGATES:
            errors.append(f"Unsupported aggregation '{config.aggregation}'")
    return errors


def default_widget_config(widget_type: str) -> WidgetConfig:
    if widget_type == WidgetType.CHART:
        return WidgetConfig(aggregation="count", y_axis="*")
    if widget_type == WidgetType.METRIC:
        return WidgetConfig(aggregation="count", metric="*")
    if widget_type == WidgetType.TABLE:
        return WidgetConfig(columns=[])
    return WidgetConfig()
