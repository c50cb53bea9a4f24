"""Compilation context.

A ``FilterContext`` bundles everything a compilation depends on besides the
conditions themselves: column metadata, custom handlers, escape strategy,
timezone and reference instant. Contexts are frozen and can be loaded from
YAML like any other configuration model.
"""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Any, Iterable, Self

from pydantic import ConfigDict, Field, field_serializer, field_validator, model_validator

from condql.architecture.base import ConfigBaseModel
from condql.architecture.column import ColumnMetadata
from condql.filter.dates import (
    EndOfDayPrecision,
    ensure_aware,
    get_timezone,
    is_valid_timezone,
)
from condql.filter.errors import ColumnNotFound, InvalidTimezone
from condql.filter.handlers import (
    BUILTIN_HANDLERS,
    FilterHandler,
    HandlerRegistry,
    default_handlers_for,
)
from condql.filter.onto import FilterCondition
from condql.onto import EscapeStrategy, SemanticType, ServiceType

logger = logging.getLogger(__name__)


def _empty_registry() -> HandlerRegistry:
    return HandlerRegistry().freeze()


class FilterContext(ConfigBaseModel):
    """Inputs of a compilation other than the conditions.

    Attributes:
        service_type: Consumer of the compiler
        columns: Metadata of the columns conditions may reference
        custom_handlers: Frozen registry consulted before the typed defaults
        escape_strategy: Placeholders with bound values, or inlined literals
        timezone: IANA zone whose calendar defines day boundaries
        reference_instant: Instant relative dates resolve against
        end_of_day_precision: Inclusive ``23:59:59.999999`` or next-midnight range ends
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    service_type: ServiceType = ServiceType.CUSTOM
    columns: tuple[ColumnMetadata, ...] = ()
    custom_handlers: HandlerRegistry = Field(default_factory=_empty_registry)
    escape_strategy: EscapeStrategy = EscapeStrategy.PARAMETERIZED
    timezone: str = "UTC"
    reference_instant: datetime | None = None
    end_of_day_precision: EndOfDayPrecision = EndOfDayPrecision.INCLUSIVE

    @field_validator("custom_handlers", mode="before")
    @classmethod
    def _build_registry(cls, value: Any) -> HandlerRegistry:
        if value is None:
            return _empty_registry()
        if isinstance(value, HandlerRegistry):
            return value.freeze()
        return HandlerRegistry(value).freeze()

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        if not is_valid_timezone(value):
            raise InvalidTimezone(value)
        return value

    @field_validator("reference_instant")
    @classmethod
    def _aware_reference(cls, value: datetime | None) -> datetime | None:
        return None if value is None else ensure_aware(value)

    @model_validator(mode="after")
    def _warn_raw_sql(self) -> Self:
        if self.escape_strategy == EscapeStrategy.RAW_SQL:
            logger.warning(
                f"Filter context for {self.service_type} uses the raw-sql escape "
                "strategy; literals are inlined into SQL"
            )
        return self

    @field_serializer("custom_handlers")
    def _serialize_registry(self, registry: HandlerRegistry) -> list[str]:
        return [_handler_spec(h) for h in registry]

    @classmethod
    def for_service(
        cls,
        service_type: ServiceType | str,
        columns: Iterable[ColumnMetadata | dict[str, Any]] = (),
        custom_handlers: Iterable[FilterHandler | str] = (),
        **kwargs: Any,
    ) -> Self:
        """Build a context carrying the handler preset of a service."""
        handlers = [*default_handlers_for(service_type), *custom_handlers]
        return cls(
            service_type=service_type,
            columns=tuple(columns),
            custom_handlers=handlers,
            **kwargs,
        )

    @property
    def zone(self) -> tzinfo:
        return get_timezone(self.timezone)

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def get_column(self, name: str) -> ColumnMetadata | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def require_column(self, name: str) -> ColumnMetadata:
        column = self.get_column(name)
        if column is None:
            raise ColumnNotFound(name)
        return column

    def resolve_type(self, condition: FilterCondition) -> SemanticType:
        """Declared type of a condition, or the type inferred from its column."""
        if condition.type is not None:
            return SemanticType(condition.type)
        return self.require_column(condition.column).semantic_type


def _handler_spec(handler: FilterHandler) -> str:
    if BUILTIN_HANDLERS.get(handler.name) is type(handler):
        return handler.name
    cls = type(handler)
    return f"{cls.__module__}.{cls.__qualname__}"
