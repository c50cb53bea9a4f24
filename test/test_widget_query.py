from os.path import join

import pytest
import yaml

from condql.filter.errors import UnsupportedAggregate
from condql.widget.query import (
    TableQueryParams,
    WidgetConfig,
    aggregate_expression,
    build_query_params,
    compile_widget_filters,
    default_widget_config,
    is_aggregated_widget,
    normalize_aggregation,
    parse_widget_config,
    validate_widget_config,
)


@pytest.fixture()
def widget():
    return {"schemaName": "public", "tableName": "orders", "widgetType": "chart"}


@pytest.fixture()
def widget_configs(config_path):
    with open(join(config_path, "widgets.yaml")) as f:
        return yaml.safe_load(f)


class TestAggregationDetection:
    @pytest.mark.parametrize(
        "config",
        [{"aggregation": "count"}, {"groupBy": "category"}, {"timeAggregation": "month"}],
    )
    def test_aggregated_chart(self, config):
        assert is_aggregated_widget("chart", WidgetConfig.model_validate(config))

    def test_plain_chart(self):
        assert not is_aggregated_widget("chart", WidgetConfig(x_axis="name", y_axis="price"))

    def test_metric_and_table(self):
        assert is_aggregated_widget("metric", WidgetConfig())
        assert not is_aggregated_widget("table", WidgetConfig(aggregation="sum"))

    def test_normalize_aggregation(self):
        assert normalize_aggregation(None) == "COUNT"
        assert normalize_aggregation("") == "COUNT"
        assert normalize_aggregation("avg") == "AVG"


class TestBuildQueryParams:
    def test_aggregated_chart(self, widget, widget_configs):
        params = build_query_params(widget, widget_configs[0])
        assert [f.column for f in params.filters] == ["status"]
        assert [f.column for f in params.having_filters] == ["value", "COUNT(*)"]
        assert params.x_axis == "category"
        assert params.y_axis == "*"
        assert params.aggregation == "COUNT"
        assert params.page == 1
        assert params.page_size == 100

    def test_plain_chart_keeps_filters_in_where(self, widget):
        config = {
            "xAxis": "category",
            "yAxis": "price",
            "filters": [
                {"column": "status", "operator": "eq", "value": "active"},
                {"column": "value", "operator": "gt", "value": "100"},
            ],
        }
        params = build_query_params(widget, config)
        assert len(params.filters) == 2
        assert params.having_filters == []

    def test_time_aggregation_chart(self, widget):
        config = {
            "xAxis": "created_at",
            "yAxis": "revenue",
            "aggregation": "sum",
            "timeAggregation": "month",
            "groupBy": "region",
            "filters": [
                {"column": "region", "operator": "eq", "value": "US"},
                {"column": "SUM(revenue)", "operator": "gt", "value": "10000"},
            ],
        }
        params = build_query_params(widget, config)
        assert [f.column for f in params.having_filters] == ["SUM(revenue)"]
        assert params.group_by == ["region"]
        assert params.time_aggregation == "month"
        assert params.aggregation == "SUM"

    def test_metric(self, widget, widget_configs):
        params = build_query_params({**widget, "widgetType": "metric"}, widget_configs[1])
        assert [f.column for f in params.filters] == ["region"]
        assert [f.column for f in params.having_filters] == ["value"]
        assert params.aggregation == "SUM"
        assert params.aggregation_column == "revenue"

    def test_metric_defaults(self, widget):
        params = build_query_params({**widget, "widgetType": "metric"}, {})
        assert params.aggregation == "COUNT"
        assert params.aggregation_column == "*"

    def test_table(self, widget, widget_configs):
        params = build_query_params(
            {**widget, "widgetType": "table"}, widget_configs[2], page=3, page_size=25
        )
        assert len(params.filters) == 2
        assert params.having_filters == []
        assert params.columns == ["id", "status", "amount"]
        assert (params.page, params.page_size) == (3, 25)

    def test_missing_filters(self, widget):
        params = build_query_params(widget, {"xAxis": "category", "aggregation": "count"})
        assert params.filters == [] and params.having_filters == []

    def test_unsupported_widget_type(self, widget):
        with pytest.raises(ValueError, match="Unsupported widget type"):
            build_query_params({**widget, "widgetType": "map"}, {})

    def test_serializes_with_camel_case(self, widget, widget_configs):
        data = build_query_params(widget, widget_configs[0]).to_dict()
        assert data["schemaName"] == "public"
        assert data["havingFilters"][0]["column"] == "value"
        assert "aggregationColumn" not in data


class TestCompileWidgetFilters:
    def test_metric_where_and_having(self, builder, widget, widget_configs):
        params = build_query_params({**widget, "widgetType": "metric"}, widget_configs[1])
        where, having = compile_widget_filters(params, builder)
        assert where.clause == 'WHERE "region" = %s'
        assert where.params == ("US",)
        assert having.clause == 'HAVING SUM("revenue") > %s'
        assert having.params == (1000,)

    def test_chart_count_star(self, builder, widget, widget_configs):
        params = build_query_params(widget, widget_configs[0])
        _, having = compile_widget_filters(params, builder)
        assert having.clause == "HAVING COUNT(*) > %s AND COUNT(*) >= %s"
        assert having.params == (100, 5)

    def test_no_having_filters(self, builder, widget):
        params = build_query_params(
            {**widget, "widgetType": "table"},
            {"filters": [{"column": "status", "operator": "eq", "value": "active"}]},
        )
        where, having = compile_widget_filters(params, builder)
        assert where.clause == 'WHERE "status" = %s'
        assert not having

    def test_star_needs_count(self):
        params = TableQueryParams(
            schema_name="public", table_name="orders", aggregation="SUM", y_axis="*"
        )
        with pytest.raises(UnsupportedAggregate):
            aggregate_expression(params)


class TestWidgetConfig:
    def test_parse_json_string(self):
        config = parse_widget_config('{"xAxis": "category", "theme": "dark"}')
        assert config.x_axis == "category"

    def test_parse_invalid_json(self):
        with pytest.raises(ValueError, match="Invalid JSON configuration"):
            parse_widget_config("{not json")

    def test_parse_empty(self):
        assert parse_widget_config(None) == WidgetConfig()

    def test_validate(self):
        assert validate_widget_config("chart", WidgetConfig()) == [
            "Chart widgets require xAxis configuration"
        ]
        assert validate_widget_config("chart", WidgetConfig(x_axis="category")) == []
        assert validate_widget_config("metric", WidgetConfig(aggregation="median")) == [
            "Unsupported aggregation 'median'"
        ]
        assert validate_widget_config("map", WidgetConfig()) == [
            "Unsupported widget type: map"
        ]

    def test_defaults(self):
        assert default_widget_config("chart") == WidgetConfig(aggregation="count", y_axis="*")
        assert default_widget_config("metric").metric == "*"
        assert default_widget_config("table").columns == []
        assert default_widget_config("map") == WidgetConfig()
