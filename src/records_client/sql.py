from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence

from .errors import ConfigurationError
from .models import CursorType, QuerySpec

HEALTH = "SELECT 1"

_WHERE = re.compile(r"\bwhere\b", re.IGNORECASE)


def cursor_literal(value: str, cursor_type: CursorType) -> str:
    """Render a cursor value for the trailing predicate.

    TIMESTAMP values become quoted string literals; NUMBER values are checked
    to be numeric and substituted unquoted.
    """
    if cursor_type is CursorType.TIMESTAMP:
        return "'" + value.replace("'", "''") + "'"
    try:
        finite = Decimal(value).is_finite()
    except InvalidOperation:
        finite = False
    if not finite:
        raise ConfigurationError(f"cursor value {value!r} is not a number")
    return value.strip()


def incremental_query(spec: QuerySpec, checkpoint: Optional[str]) -> str:
    """
    Rewrite ``spec.query`` to read only rows past ``checkpoint``.

    Snapshot queries (no cursor column) are returned verbatim. Otherwise:
        <query> where|and <cursor> > <value> order by <cursor> asc;
    The value is the checkpoint, falling back to the configured initial value.
    With neither, only the ordering clause is appended.
    """
    if not spec.incremental:
        return spec.query

    base = spec.query.rstrip().rstrip(";").rstrip()
    col = spec.cursor_column
    value = checkpoint if checkpoint is not None else spec.initial_value

    parts = [base]
    if value is not None:
        joiner = "and" if _WHERE.search(base) else "where"
        parts.append(f"{joiner} {col} > {cursor_literal(value, spec.cursor_type)}")
    parts.append(f"order by {col} asc;")
    return " ".join(parts)


def result_column(cursor_column: str, columns: Sequence[str]) -> Optional[str]:
    """
    Find ``cursor_column`` among result column names.

    Result columns are bare names: a table qualifier is dropped, a quoted
    identifier keeps its exact case, and an unquoted one is folded to lower
    case by the server.
    """
    name = cursor_column.rsplit(".", 1)[-1]
    if len(name) > 1 and name.startswith('"') and name.endswith('"'):
        name = name[1:-1]
        return name if name in columns else None
    if name in columns:
        return name
    folded = name.lower()
    return folded if folded in columns else None
