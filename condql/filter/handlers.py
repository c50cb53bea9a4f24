"""Filter handlers.

A handler turns one ``FilterCondition`` into an ``SqlFragment``. Two kinds
exist:

- typed default handlers, one per semantic type, tried in the fixed order of
  ``DEFAULT_HANDLERS``
- custom handlers, kept in a ``HandlerRegistry`` that is filled at startup,
  frozen, and consulted before the defaults

Key Components:
    - FilterHandler: Capability interface (``can_handle`` / ``process``)
    - TypeHandler: Shared rendering for the typed defaults
    - HandlerRegistry: Ordered, freezable collection of custom handlers
    - load_handler: Resolve a catalog name or dotted path to a handler

Example:
    >>> registry = HandlerRegistry(["arrayOperator"]).freeze()
    >>> [h.name for h in registry]
    ['arrayOperator']
"""

from __future__ import annotations

import abc
import importlib
import json
import logging
import math
import re
from typing import TYPE_CHECKING, Any, ClassVar, Iterable, Iterator, Self

from condql.filter.dates import (
    DateRange,
    day_range,
    get_date_range_for_operator,
    is_relative_date,
    parse_date_literal,
    resolve_relative_date,
)
from condql.filter.errors import (
    InvalidFilterValue,
    InvalidOperator,
    RegistryFrozenError,
)
from condql.filter.onto import FilterCondition, FilterOperator
from condql.filter.operators import (
    get_operator,
    is_range_operator,
    map_date_operator,
    split_range_value,
    supports,
)
from condql.filter.sql import (
    SqlFragment,
    array_literal,
    compose,
    escape_like,
    identifier,
    join_fragments,
    literal,
)
from condql.onto import SemanticType, ServiceType

if TYPE_CHECKING:
    from condql.filter.context import FilterContext

logger = logging.getLogger(__name__)

_YEAR_LIKE = re.compile(r"^\d{1,4}$")

_TRUE_TOKENS = frozenset({"true", "t", "1", "yes", "y"})
_FALSE_TOKENS = frozenset({"false", "f", "0", "no", "n"})


def split_list_value(value: Any) -> list[Any]:
    """Read an ``in``/``notIn`` value: a sequence, a JSON array or a comma string."""
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, list):
                return parsed
        return [part.strip() for part in text.split(",") if part.strip()]
    if value is None:
        return []
    return [value]


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    token = str(value).strip().lower()
    if token in _TRUE_TOKENS:
        return True
    if token in _FALSE_TOKENS:
        return False
    raise InvalidFilterValue(f"Invalid boolean value: {value!r}")


def parse_number(value: Any) -> int | float:
    """Parse a numeric filter value.

    Raises:
        InvalidFilterValue: For booleans, non-numeric text, NaN and infinities
    """
    if isinstance(value, bool):
        raise InvalidFilterValue(f"Invalid numeric value: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        number: int | float = value
    else:
        text = str(value).strip()
        try:
            number = int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError as e:
                raise InvalidFilterValue(f"Invalid numeric value: {value!r}") from e
    if isinstance(number, float) and not math.isfinite(number):
        raise InvalidFilterValue(f"Invalid numeric value: {value!r}")
    return number


class FilterHandler(abc.ABC):
    """Capability interface of a filter handler.

    A handler that claims a condition through ``can_handle`` must return a
    non-empty fragment from ``process``.
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    @abc.abstractmethod
    def can_handle(self, condition: FilterCondition, context: FilterContext) -> bool:
        pass

    @abc.abstractmethod
    def process(
        self, condition: FilterCondition, context: FilterContext
    ) -> SqlFragment:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class TypeHandler(FilterHandler):
    """Default handler for one semantic type.

    ``render`` takes the left-hand side as a fragment so that the same code
    serves plain columns in WHERE and aggregate expressions in HAVING.
    """

    semantic_type: ClassVar[SemanticType]

    def can_handle(self, condition: FilterCondition, context: FilterContext) -> bool:
        return context.resolve_type(condition) == self.semantic_type

    def process(
        self, condition: FilterCondition, context: FilterContext
    ) -> SqlFragment:
        return self.render(identifier(condition.column), condition, context)

    def render(
        self,
        column: SqlFragment,
        condition: FilterCondition,
        context: FilterContext,
    ) -> SqlFragment:
        operator = condition.operator
        definition = get_operator(operator)
        if not supports(operator, self.semantic_type):
            raise InvalidOperator(operator, self.semantic_type)

        if operator in (FilterOperator.IS_NULL, FilterOperator.NOT_NULL):
            return compose(f"{{}} {definition.sql}", column)
        if condition.value is None and operator in (
            FilterOperator.EQ,
            FilterOperator.NEQ,
        ):
            keyword = "IS NULL" if operator == FilterOperator.EQ else "IS NOT NULL"
            return compose(f"{{}} {keyword}", column)
        if operator in (FilterOperator.IN, FilterOperator.NOT_IN):
            values = split_list_value(condition.value)
            if not values:
                raise InvalidFilterValue(f"Operator '{operator}' requires a non-empty list")
            items = join_fragments(
                (literal(self.convert(v, context), context.escape_strategy) for v in values),
                sep=", ",
            )
            return compose(f"{{}} {definition.sql} ({{}})", column, items)
        return self.render_operator(column, condition, context)

    def render_operator(
        self,
        column: SqlFragment,
        condition: FilterCondition,
        context: FilterContext,
    ) -> SqlFragment:
        sql = get_operator(condition.operator).sql
        value = literal(self.convert(condition.value, context), context.escape_strategy)
        return compose(f"{{}} {sql} {{}}", column, value)

    def convert(self, value: Any, context: FilterContext) -> Any:
        return str(value)

    def render_between(
        self,
        column: SqlFragment,
        start: Any,
        end: Any,
        context: FilterContext,
        negate: bool = False,
        end_inclusive: bool = True,
    ) -> SqlFragment:
        lower = literal(start, context.escape_strategy)
        upper = literal(end, context.escape_strategy)
        if not end_inclusive:
            # half-open [start, end)
            prefix = "NOT " if negate else ""
            return compose(
                f"{prefix}({{}} >= {{}} AND {{}} < {{}})", column, lower, column, upper
            )
        keyword = "NOT BETWEEN" if negate else "BETWEEN"
        return compose(f"{{}} {keyword} {{}} AND {{}}", column, lower, upper)


_PATTERN_OPERATORS = frozenset(
    {FilterOperator.CONTAINS, FilterOperator.STARTS_WITH, FilterOperator.ENDS_WITH}
)


class TextHandler(TypeHandler):
    semantic_type = SemanticType.TEXT

    def render_operator(self, column, condition, context):
        if condition.value is None and condition.operator in _PATTERN_OPERATORS:
            raise InvalidFilterValue(f"Operator '{condition.operator}' requires a value")
        text = escape_like(str(condition.value))
        if condition.operator == FilterOperator.CONTAINS:
            pattern = f"%{text}%"
        elif condition.operator == FilterOperator.STARTS_WITH:
            pattern = f"{text}%"
        elif condition.operator == FilterOperator.ENDS_WITH:
            pattern = f"%{text}"
        else:
            return super().render_operator(column, condition, context)
        return compose(
            "{} ILIKE {}", column, literal(pattern, context.escape_strategy)
        )


class NumericHandler(TypeHandler):
    semantic_type = SemanticType.NUMBER

    def convert(self, value: Any, context: FilterContext) -> Any:
        return parse_number(value)

    def render_operator(self, column, condition, context):
        if is_range_operator(condition.operator):
            start, end = split_range_value(condition.operator, condition.value)
            return self.render_between(
                column,
                parse_number(start),
                parse_number(end),
                context,
                negate=condition.operator == FilterOperator.NOT_BETWEEN,
            )
        return super().render_operator(column, condition, context)


class BooleanHandler(TypeHandler):
    semantic_type = SemanticType.BOOLEAN

    def convert(self, value: Any, context: FilterContext) -> Any:
        return parse_bool(value)


class IdentifierHandler(TypeHandler):
    semantic_type = SemanticType.IDENTIFIER


class DateHandler(TypeHandler):
    """Dates, timestamps and relative date tokens.

    Range operators and day equality expand to ``BETWEEN`` over explicit
    boundaries, or to ``>= start AND < end`` when the range ends at the next
    midnight. Single-instant comparisons use the start of the resolved
    day or range.
    """

    semantic_type = SemanticType.DATE

    def convert(self, value: Any, context: FilterContext) -> Any:
        resolved = resolve_relative_date(
            value, context.reference_instant, context.timezone
        )
        instant, _ = parse_date_literal(
            resolved, context.timezone, context.reference_instant
        )
        return instant

    def _equality_range(self, value: Any, context: FilterContext) -> DateRange:
        if is_relative_date(value):
            rng = get_date_range_for_operator(
                value,
                FilterOperator.DURING,
                context.reference_instant,
                context.timezone,
                context.end_of_day_precision,
            )
            if rng is not None:
                return rng
        return day_range(
            value,
            context.timezone,
            context.end_of_day_precision,
            context.reference_instant,
        )

    def render_operator(self, column, condition, context):
        operator = condition.operator
        value = condition.value
        if is_range_operator(operator):
            rng = get_date_range_for_operator(
                value,
                operator,
                context.reference_instant,
                context.timezone,
                context.end_of_day_precision,
            )
            return self.render_between(
                column,
                rng.start,
                rng.end,
                context,
                negate=operator == FilterOperator.NOT_BETWEEN,
                end_inclusive=rng.end_inclusive,
            )

        mapped = map_date_operator(operator)
        if mapped in (FilterOperator.EQ, FilterOperator.NEQ):
            negate = mapped == FilterOperator.NEQ
            if isinstance(value, str) and _YEAR_LIKE.match(value.strip()):
                sql = "!=" if negate else "="
                return compose(
                    f"{{}} {sql} {{}}",
                    column,
                    literal(value.strip(), context.escape_strategy),
                )
            rng = self._equality_range(value, context)
            return self.render_between(
                column, rng.start, rng.end, context, negate, rng.end_inclusive
            )

        sql = get_operator(mapped).sql
        return compose(
            f"{{}} {sql} {{}}",
            column,
            literal(self.convert(value, context), context.escape_strategy),
        )


def _parse_json_scalar(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def parse_key_value(value: Any) -> dict[str, Any]:
    """Read a ``keyEquals`` value: a mapping, a JSON object or ``"key:value"``."""
    if isinstance(value, dict):
        return value
    text = str(value).strip()
    if text.startswith("{"):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidFilterValue(f"Invalid JSON object: {value!r}") from e
        if isinstance(parsed, dict) and parsed:
            return parsed
        raise InvalidFilterValue(f"Invalid JSON object: {value!r}")
    key, sep, raw_value = text.partition(":")
    if not sep or not key.strip():
        raise InvalidFilterValue(f"Expected 'key:value', got {value!r}")
    return {key.strip(): _parse_json_scalar(raw_value.strip())}


def parse_json_path(value: Any) -> list[str]:
    """Split ``$.a.b``, ``a.b`` or a sequence into path elements."""
    if isinstance(value, (list, tuple)):
        parts = [str(p) for p in value]
    else:
        text = str(value).strip()
        if text.startswith("$"):
            text = text[1:].lstrip(".")
        parts = [p for p in text.split(".") if p]
    if not parts:
        raise InvalidFilterValue(f"Empty JSON path: {value!r}")
    return parts


def _text_array(parts: list[str]) -> str:
    quoted = (
        '"' + p.replace("\\", "\\\\").replace('"', '\\"') + '"' for p in parts
    )
    return "{" + ",".join(quoted) + "}"


class StructuredHandler(TypeHandler):
    semantic_type = SemanticType.JSON

    def render_operator(self, column, condition, context):
        operator = condition.operator
        value = condition.value
        strategy = context.escape_strategy
        if operator == FilterOperator.HAS_KEY:
            return compose("{} ? {}", column, literal(str(value), strategy))
        if operator == FilterOperator.KEY_EQUALS:
            document = json.dumps(parse_key_value(value))
            return compose("{} @> {}::jsonb", column, literal(document, strategy))
        if operator == FilterOperator.PATH_EXISTS:
            path = _text_array(parse_json_path(value))
            return compose(
                "{} #> {}::text[] IS NOT NULL", column, literal(path, strategy)
            )
        # containsText
        pattern = f"%{escape_like(str(value))}%"
        return compose("{}::text ILIKE {}", column, literal(pattern, strategy))


DEFAULT_HANDLERS: tuple[TypeHandler, ...] = (
    DateHandler(),
    NumericHandler(),
    BooleanHandler(),
    StructuredHandler(),
    IdentifierHandler(),
    TextHandler(),
)


def default_handler_for(semantic_type: SemanticType | str) -> TypeHandler:
    for handler in DEFAULT_HANDLERS:
        if handler.semantic_type == semantic_type:
            return handler
    raise KeyError(semantic_type)


class ArrayOperatorHandler(FilterHandler):
    """Postgres array containment and overlap on any column."""

    name = "arrayOperator"

    _SQL: ClassVar[dict[str, str]] = {
        FilterOperator.ARRAY_CONTAINS: "@>",
        FilterOperator.ARRAY_CONTAINED_BY: "<@",
        FilterOperator.OVERLAPS: "&&",
    }

    def can_handle(self, condition, context):
        return condition.operator in self._SQL

    def process(self, condition, context):
        values = split_list_value(condition.value)
        if not values:
            raise InvalidFilterValue(
                f"Operator '{condition.operator}' requires a non-empty list"
            )
        sql = self._SQL[condition.operator]
        return compose(
            f"{{}} {sql} {{}}",
            identifier(condition.column),
            array_literal(values, context.escape_strategy),
        )


class JsonBooleanKeyHandler(FilterHandler):
    """``keyEquals`` with a boolean value on a json column.

    Documents store booleans either as JSON booleans or as strings, so both
    forms are matched.
    """

    name = "jsonBooleanKey"

    def _boolean_pair(self, value: Any) -> tuple[str, bool] | None:
        try:
            document = parse_key_value(value)
        except InvalidFilterValue:
            return None
        if len(document) != 1:
            return None
        key, raw_value = next(iter(document.items()))
        if isinstance(raw_value, bool):
            return key, raw_value
        if isinstance(raw_value, str) and raw_value.lower() in ("true", "false"):
            return key, raw_value.lower() == "true"
        return None

    def can_handle(self, condition, context):
        return (
            condition.operator == FilterOperator.KEY_EQUALS
            and context.resolve_type(condition) == SemanticType.JSON
            and self._boolean_pair(condition.value) is not None
        )

    def process(self, condition, context):
        key, flag = self._boolean_pair(condition.value)
        column = identifier(condition.column)
        strategy = context.escape_strategy
        return compose(
            "({} @> {}::jsonb OR {} @> {}::jsonb)",
            column,
            literal(json.dumps({key: flag}), strategy),
            column,
            literal(json.dumps({key: str(flag).lower()}), strategy),
        )


BUILTIN_HANDLERS: dict[str, type[FilterHandler]] = {
    ArrayOperatorHandler.name: ArrayOperatorHandler,
    JsonBooleanKeyHandler.name: JsonBooleanKeyHandler,
}

SERVICE_PRESETS: dict[str, tuple[str, ...]] = {
    ServiceType.DATA_EXPLORER: (ArrayOperatorHandler.name, JsonBooleanKeyHandler.name),
    ServiceType.WIDGETS: (),
    ServiceType.CUSTOM: (),
}


def load_handler(spec: str) -> FilterHandler:
    """Instantiate a handler from a catalog name or a dotted ``module.Class`` path."""
    if spec in BUILTIN_HANDLERS:
        return BUILTIN_HANDLERS[spec]()
    module_name, _, class_name = spec.rpartition(".")
    if not module_name:
        raise ValueError(f"Unknown filter handler '{spec}'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Provided module {module_name} is not valid: {e}") from e
    cls = getattr(module, class_name, None)
    if not isinstance(cls, type) or not issubclass(cls, FilterHandler):
        raise ValueError(f"'{spec}' is not a FilterHandler subclass")
    return cls()


def default_handlers_for(service_type: ServiceType | str) -> list[FilterHandler]:
    return [load_handler(name) for name in SERVICE_PRESETS[ServiceType(service_type)]]


class HandlerRegistry:
    """Ordered custom handlers; populated at startup, then frozen.

    Handlers are tried in registration order and the first that claims a
    condition wins.
    """

    def __init__(self, handlers: Iterable[FilterHandler | str] = ()):
        self._handlers: list[FilterHandler] = []
        self._frozen = False
        for handler in handlers:
            self.register(handler)

    def register(self, handler: FilterHandler | type[FilterHandler] | str) -> Self:
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot register {handler!r}: handler registry is frozen"
            )
        if isinstance(handler, str):
            handler = load_handler(handler)
        elif isinstance(handler, type):
            handler = handler()
        if not isinstance(handler, FilterHandler):
            raise TypeError(f"Expected a FilterHandler, got {type(handler).__name__}")
        self._handlers.append(handler)
        logger.debug(f"Registered filter handler {handler.name}")
        return self

    def freeze(self) -> Self:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def names(self) -> list[str]:
        return [h.name for h in self._handlers]

    def find(
        self, condition: FilterCondition, context: FilterContext
    ) -> FilterHandler | None:
        for handler in self._handlers:
            if handler.can_handle(condition, context):
                return handler
        return None

    def __iter__(self) -> Iterator[FilterHandler]:
        return iter(tuple(self._handlers))

    def __len__(self) -> int:
        return len(self._handlers)

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "open"
        return f"HandlerRegistry({self.names}, {state})"
