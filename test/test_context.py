from datetime import datetime, timezone
from os.path import join

import pytest
import yaml

from condql.architecture import ColumnMetadata, infer_semantic_type, normalize_data_type
from condql.filter import FilterBuilder, FilterCondition, FilterContext
from condql.filter.errors import ColumnNotFound, RegistryFrozenError
from condql.filter.handlers import ArrayOperatorHandler, HandlerRegistry
from condql.onto import SemanticType


class TestColumnMetadata:
    @pytest.mark.parametrize(
        "data_type, expected",
        [
            ("timestamp with time zone", "date"),
            ("TIMESTAMPTZ", "date"),
            ("date", "date"),
            ("numeric(10, 2)", "number"),
            ("double precision", "number"),
            ("bigint", "number"),
            ("boolean", "boolean"),
            ("jsonb", "json"),
            ("uuid", "identifier"),
            ("USER-DEFINED", "identifier"),
            ("character varying(255)", "text"),
            ("tsvector", "text"),
        ],
    )
    def test_infer_semantic_type(self, data_type, expected):
        assert infer_semantic_type(data_type) == expected

    def test_normalize_data_type(self):
        assert normalize_data_type(" Numeric(10, 2) ") == "numeric"

    def test_ui_config_shape(self):
        column = ColumnMetadata.from_dict(
            {"name": "placed_at", "ui_config": {"data_type": "timestamptz"}}
        )
        assert column.data_type == "timestamptz"
        assert column.is_date
        assert column.semantic_type == SemanticType.DATE

    def test_frozen(self):
        column = ColumnMetadata(name="status", data_type="text")
        with pytest.raises(ValueError):
            column.name = "other"


class TestFilterContext:
    def test_defaults(self):
        ctx = FilterContext()
        assert ctx.escape_strategy == "parameterized"
        assert ctx.timezone == "UTC"
        assert ctx.reference_instant is None
        assert ctx.custom_handlers.frozen
        assert len(ctx.custom_handlers) == 0

    def test_registry_is_frozen(self):
        registry = HandlerRegistry([ArrayOperatorHandler()])
        ctx = FilterContext(custom_handlers=registry)
        assert registry.frozen
        with pytest.raises(RegistryFrozenError):
            ctx.custom_handlers.register("jsonBooleanKey")

    def test_invalid_timezone(self):
        with pytest.raises(ValueError):
            FilterContext(timezone="Mars/Olympus")

    def test_naive_reference_is_utc(self):
        ctx = FilterContext(reference_instant=datetime(2024, 3, 15, 12))
        assert ctx.reference_instant.tzinfo is timezone.utc

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValueError):
            FilterContext(escape="raw")

    def test_for_service(self, columns):
        ctx = FilterContext.for_service("data-explorer", columns, timezone="Europe/Paris")
        assert ctx.custom_handlers.names == ["arrayOperator", "jsonBooleanKey"]
        assert ctx.timezone == "Europe/Paris"
        assert FilterContext.for_service("widgets", columns).custom_handlers.names == []

    def test_resolve_type(self, context):
        assert context.resolve_type(FilterCondition(column="amount")) == SemanticType.NUMBER
        declared = FilterCondition(column="amount", type="text")
        assert context.resolve_type(declared) == SemanticType.TEXT
        with pytest.raises(ColumnNotFound):
            context.resolve_type(FilterCondition(column="ghost_column"))

    def test_from_yaml(self, config_path):
        ctx = FilterContext.from_yaml(join(config_path, "context.yaml"))
        assert ctx.service_type == "data-explorer"
        assert ctx.timezone == "America/New_York"
        assert ctx.reference_instant == datetime(2024, 3, 15, 14, 30, tzinfo=timezone.utc)
        assert ctx.custom_handlers.names == ["arrayOperator", "jsonBooleanKey"]
        assert ctx.require_column("placed_at").is_date
        builder = FilterBuilder(ctx)
        assert builder.build_where([["labels", "overlaps", "a,b"]]) == 'WHERE "labels" && %s'

    def test_yaml_round_trip(self, context):
        data = yaml.safe_load(context.to_yaml_str())
        assert data["custom_handlers"] == []
        assert data["reference_instant"].startswith("2024-03-15T14:30:00")
        restored = FilterContext.from_dict(data)
        assert restored.columns == context.columns
        assert restored.reference_instant == context.reference_instant

    def test_handlers_round_trip_by_name(self, columns):
        ctx = FilterContext(
            columns=columns,
            custom_handlers=[
                "condql.filter.handlers.JsonBooleanKeyHandler",
                ArrayOperatorHandler,
            ],
        )
        dumped = ctx.model_dump()
        assert dumped["custom_handlers"] == ["jsonBooleanKey", "arrayOperator"]
        restored = FilterContext.from_dict(dumped)
        assert restored.custom_handlers.names == ["jsonBooleanKey", "arrayOperator"]


class TestFilterCondition:
    def test_from_list(self):
        condition = FilterCondition.from_list(["created_at", "during", "__rel_date:today", "date"])
        assert condition.operator == "during"
        assert condition.type == "date"
        assert str(condition) == "created_at during '__rel_date:today'"

    def test_operator_defaults_to_eq(self):
        assert FilterCondition(column="status").operator == "eq"

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            FilterCondition(column="status", type="interval")
