import pytest

from condql.filter.errors import InvalidFilterValue, RegistryFrozenError
from condql.filter.handlers import (
    DEFAULT_HANDLERS,
    ArrayOperatorHandler,
    FilterHandler,
    HandlerRegistry,
    JsonBooleanKeyHandler,
    default_handlers_for,
    load_handler,
    parse_bool,
    parse_json_path,
    parse_key_value,
    parse_number,
    split_list_value,
)
from condql.filter.onto import FilterCondition
from condql.filter.sql import SqlFragment


class StatusHandler(FilterHandler):
    def can_handle(self, condition, context):
        return condition.column == "status"

    def process(self, condition, context):
        return SqlFragment(sql="TRUE")


class TestHandlerRegistry:
    def test_register_after_freeze(self):
        registry = HandlerRegistry().freeze()
        with pytest.raises(RegistryFrozenError):
            registry.register(ArrayOperatorHandler())

    def test_register_by_name_class_and_instance(self):
        registry = HandlerRegistry(
            ["arrayOperator", JsonBooleanKeyHandler, StatusHandler()]
        )
        assert registry.names == ["arrayOperator", "jsonBooleanKey", "StatusHandler"]
        assert len(registry) == 3
        assert not registry.frozen

    def test_register_rejects_non_handlers(self):
        with pytest.raises(TypeError):
            HandlerRegistry([object()])

    def test_first_claiming_handler_wins(self, context):
        first, second = StatusHandler(), StatusHandler()
        registry = HandlerRegistry([first, second]).freeze()
        condition = FilterCondition(column="status", value="active")
        assert registry.find(condition, context) is first
        assert registry.find(FilterCondition(column="amount"), context) is None

    def test_load_handler_dotted_path(self):
        handler = load_handler("condql.filter.handlers.ArrayOperatorHandler")
        assert isinstance(handler, ArrayOperatorHandler)

    @pytest.mark.parametrize(
        "spec", ["noSuchHandler", "condql.filter.sql.SqlFragment", "no_such_module.Handler"]
    )
    def test_load_handler_invalid(self, spec):
        with pytest.raises(ValueError):
            load_handler(spec)

    def test_service_presets(self):
        assert [h.name for h in default_handlers_for("data-explorer")] == [
            "arrayOperator",
            "jsonBooleanKey",
        ]
        assert default_handlers_for("widgets") == []
        assert default_handlers_for("custom") == []

    def test_default_handler_order(self):
        assert [h.name for h in DEFAULT_HANDLERS] == [
            "DateHandler",
            "NumericHandler",
            "BooleanHandler",
            "StructuredHandler",
            "IdentifierHandler",
            "TextHandler",
        ]


class TestJsonBooleanKeyHandler:
    @pytest.mark.parametrize(
        "value, claimed",
        [
            ("beta:true", True),
            ("beta:FALSE", True),
            ('{"beta": true}', True),
            ("beta:yes", False),
            ("plan:pro", False),
            ("nonsense", False),
        ],
    )
    def test_claims_boolean_values_only(self, context, value, claimed):
        condition = FilterCondition(column="metadata", operator="keyEquals", value=value)
        assert JsonBooleanKeyHandler().can_handle(condition, context) is claimed

    def test_ignores_non_json_columns(self, context):
        condition = FilterCondition(column="status", operator="keyEquals", value="beta:true")
        assert not JsonBooleanKeyHandler().can_handle(condition, context)


class TestValueParsing:
    @pytest.mark.parametrize(
        "value, expected", [("42", 42), (" 12.5 ", 12.5), (7, 7), (-0.5, -0.5), ("1e3", 1000.0)]
    )
    def test_parse_number(self, value, expected):
        assert parse_number(value) == expected

    @pytest.mark.parametrize("value", ["abc", "", "nan", "inf", True, float("inf")])
    def test_parse_number_invalid(self, value):
        with pytest.raises(InvalidFilterValue):
            parse_number(value)

    @pytest.mark.parametrize(
        "value, expected",
        [("true", True), ("T", True), ("1", True), ("yes", True), ("false", False), ("0", False), (False, False)],
    )
    def test_parse_bool(self, value, expected):
        assert parse_bool(value) is expected

    def test_parse_bool_invalid(self):
        with pytest.raises(InvalidFilterValue):
            parse_bool("maybe")

    def test_split_list_value(self):
        assert split_list_value(["a", "b"]) == ["a", "b"]
        assert split_list_value("a, b ,c") == ["a", "b", "c"]
        assert split_list_value('["x, y", "z"]') == ["x, y", "z"]
        assert split_list_value("") == []
        assert split_list_value(3) == [3]

    def test_parse_key_value(self):
        assert parse_key_value("plan:pro") == {"plan": "pro"}
        assert parse_key_value("seats:3") == {"seats": 3}
        assert parse_key_value("url:http://x") == {"url": "http://x"}
        assert parse_key_value('{"a": null}') == {"a": None}
        with pytest.raises(InvalidFilterValue):
            parse_key_value("no-separator")
        with pytest.raises(InvalidFilterValue):
            parse_key_value("{broken")

    def test_parse_json_path(self):
        assert parse_json_path("$.a.b") == ["a", "b"]
        assert parse_json_path("a.b.c") == ["a", "b", "c"]
        assert parse_json_path(["x", 1]) == ["x", "1"]
        with pytest.raises(InvalidFilterValue):
            parse_json_path("$")
