"""Filter condition compiler.

``FilterBuilder`` turns filter conditions into SQL predicates:

- custom handlers from the context registry are consulted first
- the typed default handlers follow, in their fixed order
- the column is checked against the context metadata before any handler

Compilation is all-or-nothing: the first error aborts the call and no
partial clause is returned.

Example:
    >>> builder = FilterBuilder(FilterContext(columns=[{"name": "status", "data_type": "text"}]))
    >>> builder.compile_where([{"column": "status", "operator": "eq", "value": "active"}])
    CompiledWhere(clause='WHERE "status" = %s', params=('active',))
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from condql.filter.categorize import (
    DEFAULT_AGGREGATION_ALIASES,
    parse_aggregate_expression,
)
from condql.filter.context import FilterContext
from condql.filter.dates import ensure_aware
from condql.filter.errors import (
    FilterError,
    HandlerContractViolation,
    InvalidOperator,
    UnsupportedAggregate,
)
from condql.filter.handlers import DEFAULT_HANDLERS, FilterHandler, default_handler_for
from condql.filter.onto import FilterCondition, FilterOperator
from condql.filter.operators import supports
from condql.filter.sql import SqlFragment, aggregate_call, join_fragments
from condql.onto import SemanticType

logger = logging.getLogger(__name__)

ConditionLike = FilterCondition | dict[str, Any] | list[Any]


class CompiledWhere(BaseModel):
    """A compiled clause and the values bound to its placeholders."""

    model_config = ConfigDict(frozen=True)

    clause: str = ""
    params: tuple[Any, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.clause)


class FilterValidation(BaseModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)


def to_condition(condition: ConditionLike) -> FilterCondition:
    """Accept a condition, its dict form or its list form."""
    if isinstance(condition, FilterCondition):
        return condition
    if isinstance(condition, list):
        return FilterCondition.from_list(condition)
    return FilterCondition.from_dict(condition)


class FilterBuilder:
    """Compiles filter conditions against a fixed ``FilterContext``.

    Args:
        context: Compilation context; built from ``kwargs`` when omitted
        **kwargs: Fields of ``FilterContext``
    """

    def __init__(self, context: FilterContext | None = None, **kwargs: Any):
        self._context = context if context is not None else FilterContext(**kwargs)

    def get_context(self) -> FilterContext:
        return self._context

    def with_context(self, **updates: Any) -> FilterBuilder:
        """Return a builder over a context with ``updates`` applied."""
        current = {
            name: getattr(self._context, name)
            for name in FilterContext.model_fields
        }
        return FilterBuilder(FilterContext(**{**current, **updates}))

    def _scoped(self, reference_instant: datetime | None) -> FilterContext:
        if reference_instant is None:
            return self._context
        return self._context.model_copy(
            update={"reference_instant": ensure_aware(reference_instant)}
        )

    def _checked(
        self,
        handler: FilterHandler,
        condition: FilterCondition,
        context: FilterContext,
    ) -> SqlFragment:
        fragment = handler.process(condition, context)
        if not fragment:
            logger.error(
                f"Filter handler {handler.name} claimed condition '{condition}' "
                "but produced an empty fragment"
            )
            raise HandlerContractViolation(handler.name, condition)
        return fragment

    def _compile(self, condition: FilterCondition, context: FilterContext) -> SqlFragment:
        context.require_column(condition.column)

        handler = context.custom_handlers.find(condition, context)
        if handler is not None:
            logger.debug(f"Condition '{condition}' dispatched to custom handler {handler.name}")
            return self._checked(handler, condition, context)

        for handler in DEFAULT_HANDLERS:
            if handler.can_handle(condition, context):
                logger.debug(f"Condition '{condition}' dispatched to {handler.name}")
                return self._checked(handler, condition, context)
        raise InvalidOperator(condition.operator, context.resolve_type(condition))

    def build_condition(
        self, condition: ConditionLike, reference_instant: datetime | None = None
    ) -> SqlFragment:
        """Compile a single condition into a predicate fragment.

        Raises:
            ColumnNotFound: If the column is absent from the context metadata
            InvalidOperator: If the operator is unknown or unsupported for the column type
            MalformedRangeValue: If a range value is not a two-part value
            InvalidFilterValue: If the value cannot be converted
            HandlerContractViolation: If a claiming handler returned nothing
        """
        return self._compile(to_condition(condition), self._scoped(reference_instant))

    def compile_where(
        self,
        conditions: Iterable[ConditionLike],
        reference_instant: datetime | None = None,
    ) -> CompiledWhere:
        """Compile conditions into ``WHERE c1 AND c2 ...`` with bound values.

        One reference instant is used for every condition of the call.
        """
        items = [to_condition(c) for c in conditions]
        if not items:
            return CompiledWhere()
        context = self._scoped(reference_instant)
        fragment = join_fragments(self._compile(c, context) for c in items)
        logger.debug(
            f"Compiled WHERE from {len(items)} condition(s) "
            f"with {context.escape_strategy} strategy"
        )
        return CompiledWhere(clause=f"WHERE {fragment.sql}", params=fragment.params)

    def build_where(
        self,
        conditions: Iterable[ConditionLike],
        reference_instant: datetime | None = None,
    ) -> str:
        """Compile conditions into a WHERE clause, or ``""`` when there are none."""
        return self.compile_where(conditions, reference_instant).clause

    def build_having(
        self,
        conditions: Iterable[ConditionLike],
        aggregate_expression: SqlFragment | str | None = None,
        reference_instant: datetime | None = None,
        aggregation_aliases: Iterable[str] | None = None,
    ) -> CompiledWhere:
        """Compile post-aggregation conditions into a HAVING clause.

        Args:
            conditions: Conditions whose column is an aggregate expression or alias
            aggregate_expression: Expression an alias column stands for
            reference_instant: Instant relative dates resolve against
            aggregation_aliases: Column names treated as aliases, ``("value",)`` by default

        Raises:
            UnsupportedAggregate: If a column is neither an alias nor a supported aggregate
        """
        items = [to_condition(c) for c in conditions]
        if not items:
            return CompiledWhere()
        aliases = {
            a.lower()
            for a in (
                DEFAULT_AGGREGATION_ALIASES
                if aggregation_aliases is None
                else aggregation_aliases
            )
        }
        context = self._scoped(reference_instant)
        parts = []
        for condition in items:
            lhs = self._aggregate_lhs(condition.column, aggregate_expression, aliases)
            handler = default_handler_for(condition.type or SemanticType.NUMBER)
            parts.append(handler.render(lhs, condition, context))
        fragment = join_fragments(parts)
        logger.debug(f"Compiled HAVING from {len(items)} condition(s)")
        return CompiledWhere(clause=f"HAVING {fragment.sql}", params=fragment.params)

    @staticmethod
    def _aggregate_lhs(
        column: str,
        aggregate_expression: SqlFragment | str | None,
        aliases: set[str],
    ) -> SqlFragment:
        if column.strip().lower() in aliases:
            if aggregate_expression is None:
                raise UnsupportedAggregate(
                    f"Alias '{column}' requires an aggregate expression"
                )
            if isinstance(aggregate_expression, SqlFragment):
                return aggregate_expression
            column = aggregate_expression
        return aggregate_call(*parse_aggregate_expression(column))

    def validate_filter(
        self, condition: ConditionLike, reference_instant: datetime | None = None
    ) -> FilterValidation:
        """Collect the problems of a condition without raising."""
        try:
            item = to_condition(condition)
        except (ValidationError, IndexError, TypeError) as e:
            return FilterValidation(is_valid=False, errors=[str(e)])

        context = self._scoped(reference_instant)
        column = context.get_column(item.column)
        if column is None:
            return FilterValidation(
                is_valid=False,
                errors=[f"Column '{item.column}' not found in metadata"],
            )

        errors = []
        if not column.is_filterable:
            errors.append(f"Column '{item.column}' is not filterable")
        semantic_type = context.resolve_type(item)
        claimed = context.custom_handlers.find(item, context) is not None
        if item.operator not in FilterOperator:
            errors.append(str(InvalidOperator(item.operator)))
        elif not claimed and not supports(item.operator, semantic_type):
            errors.append(str(InvalidOperator(item.operator, semantic_type)))
        if not errors:
            try:
                self._compile(item, context)
            except FilterError as e:
                errors.append(str(e))
        return FilterValidation(is_valid=not errors, errors=errors)
