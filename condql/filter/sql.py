"""SQL fragment helpers.

Fragments pair a piece of SQL text with the values bound to its
placeholders. Under the parameterized strategy literals become ``%s``
placeholders (psycopg paramstyle); under the raw strategy they are inlined
with quote doubling and the parameter tuple stays empty.

Key Components:
    - SqlFragment: SQL text plus bound parameters
    - quote_identifier / quote_literal: Escaping primitives
    - literal / compose / join_fragments: Fragment construction

Example:
    >>> frag = compose("{} = {}", identifier("status"), literal("active"))
    >>> frag.sql, frag.params
    ('"status" = %s', ('active',))
"""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict

from condql.filter.dates import ensure_aware, format_date_for_sql
from condql.filter.errors import UnsafeIdentifier, UnsupportedAggregate
from condql.onto import EscapeStrategy

PLACEHOLDER = "%s"


class SqlFragment(BaseModel):
    """SQL text with its bound parameters, in placeholder order."""

    model_config = ConfigDict(frozen=True)

    sql: str = ""
    params: tuple[Any, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.sql.strip())

    def __str__(self) -> str:
        return self.sql


EMPTY = SqlFragment()


def quote_identifier(name: str) -> str:
    """Double-quote an identifier.

    Raises:
        UnsafeIdentifier: If the name is empty or holds a double quote or NUL
    """
    if not name or '"' in name or "\x00" in name:
        raise UnsafeIdentifier(f"Unsafe identifier: {name!r}")
    return f'"{name}"'


def quote_literal(value: Any) -> str:
    """Render a value as an inline SQL literal with quote doubling."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, datetime):
        return "'" + format_date_for_sql(value, timespec="microseconds") + "'"
    if isinstance(value, date):
        return f"'{value.isoformat()}'"
    if isinstance(value, (list, dict)):
        value = json.dumps(value)
    text = str(value)
    if "\x00" in text:
        raise UnsafeIdentifier("Literal contains a NUL character")
    escaped = text.replace("'", "''")
    return f"'{escaped}'"


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user text matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def identifier(name: str) -> SqlFragment:
    return SqlFragment(sql=quote_identifier(name))


def raw(sql: str) -> SqlFragment:
    """Wrap trusted SQL text (keywords, operators) as a fragment."""
    return SqlFragment(sql=sql)


def literal(
    value: Any, strategy: EscapeStrategy | str = EscapeStrategy.PARAMETERIZED
) -> SqlFragment:
    """Render a literal value under the given escape strategy.

    Datetimes are bound as UTC instants so both strategies compare against
    the same point in time.
    """
    if strategy == EscapeStrategy.RAW_SQL:
        return SqlFragment(sql=quote_literal(value))
    if isinstance(value, datetime):
        value = ensure_aware(value).astimezone(timezone.utc)
    return SqlFragment(sql=PLACEHOLDER, params=(value,))


def array_literal(
    values: Iterable[Any], strategy: EscapeStrategy | str = EscapeStrategy.PARAMETERIZED
) -> SqlFragment:
    """Render a sequence as a Postgres array."""
    items = list(values)
    if strategy == EscapeStrategy.RAW_SQL:
        inner = ", ".join(quote_literal(v) for v in items)
        return SqlFragment(sql=f"ARRAY[{inner}]")
    return SqlFragment(sql=PLACEHOLDER, params=(items,))


def compose(template: str, *fragments: SqlFragment) -> SqlFragment:
    """Fill ``{}`` slots of a template with fragments, concatenating their params."""
    params: list[Any] = []
    for frag in fragments:
        params.extend(frag.params)
    return SqlFragment(
        sql=template.format(*(frag.sql for frag in fragments)), params=tuple(params)
    )


def join_fragments(parts: Iterable[SqlFragment], sep: str = " AND ") -> SqlFragment:
    parts = [p for p in parts if p]
    return SqlFragment(
        sql=sep.join(p.sql for p in parts),
        params=tuple(v for p in parts for v in p.params),
    )


def aggregate_call(function: str, argument: str, distinct: bool = False) -> SqlFragment:
    """Render ``FUNC("column")``; ``*`` is only accepted for COUNT."""
    function = function.upper()
    if argument == "*":
        if function != "COUNT":
            raise UnsupportedAggregate(f"{function}(*) is not a valid aggregate")
        return raw("COUNT(*)")
    prefix = "DISTINCT " if distinct else ""
    return raw(f"{function}({prefix}{quote_identifier(argument)})")
