"""Column metadata supplied by schema introspection.

The compiler only needs a column's name and declared data type; the
remaining flags are carried through for validation and for callers that
build filter forms from the same metadata.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import ConfigDict, Field, model_validator

from condql.architecture.base import ConfigBaseModel
from condql.onto import SemanticType

DATE_TYPES = frozenset(
    {
        "date",
        "timestamp",
        "timestamp with time zone",
        "timestamp without time zone",
        "timestamptz",
        "datetime",
    }
)

NUMBER_TYPES = frozenset(
    {
        "integer",
        "int",
        "int2",
        "int4",
        "int8",
        "bigint",
        "smallint",
        "numeric",
        "decimal",
        "real",
        "float4",
        "float8",
        "double precision",
        "serial",
        "bigserial",
        "money",
    }
)

BOOLEAN_TYPES = frozenset({"boolean", "bool"})

JSON_TYPES = frozenset({"json", "jsonb"})

IDENTIFIER_TYPES = frozenset({"uuid", "user-defined", "enum"})

_TYPE_MODIFIER = re.compile(r"\(.*?\)")


def normalize_data_type(data_type: str) -> str:
    """Lower-case a declared type and drop modifiers like ``(255)`` or ``(10, 2)``."""
    return " ".join(_TYPE_MODIFIER.sub("", data_type).lower().split())


def infer_semantic_type(data_type: str) -> SemanticType:
    """Map a declared column data type onto the semantic type used for filtering.

    Unknown types fall back to text.
    """
    normalized = normalize_data_type(data_type)
    if normalized in DATE_TYPES:
        return SemanticType.DATE
    if normalized in NUMBER_TYPES:
        return SemanticType.NUMBER
    if normalized in BOOLEAN_TYPES:
        return SemanticType.BOOLEAN
    if normalized in JSON_TYPES:
        return SemanticType.JSON
    if normalized in IDENTIFIER_TYPES:
        return SemanticType.IDENTIFIER
    return SemanticType.TEXT


class ColumnMetadata(ConfigBaseModel):
    """Metadata for one filterable column.

    Attributes:
        name: Column name as it appears in the table
        data_type: Declared SQL data type (e.g. ``timestamp with time zone``)
        is_filterable: Whether the column may appear in filters
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    data_type: str
    is_filterable: bool = True
    is_nullable: bool = True
    is_primary_key: bool = False
    is_unique: bool = False
    is_searchable: bool = False
    is_sortable: bool = True

    @model_validator(mode="before")
    @classmethod
    def _lift_ui_config(cls, data: Any) -> Any:
        """Accept the nested ``ui_config.data_type`` shape of introspected metadata."""
        if not isinstance(data, dict) or "ui_config" not in data:
            return data
        data = dict(data)
        ui_config = data.pop("ui_config") or {}
        if "data_type" not in data and "data_type" in ui_config:
            data["data_type"] = ui_config["data_type"]
        return data

    @property
    def semantic_type(self) -> SemanticType:
        return infer_semantic_type(self.data_type)

    @property
    def is_date(self) -> bool:
        return self.semantic_type == SemanticType.DATE
