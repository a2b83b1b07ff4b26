"""
Row → Record encoding.

Each row becomes a JSON object keyed by column name (column order kept) and
is addressed as ``<queryId>_record<ordinal>`` with a 1-based ordinal.
"""

from __future__ import annotations

import json
from datetime import date, datetime, time
from typing import Any, Iterable, Optional, Sequence

from .errors import EncodingError
from .models import Record

NULL = "NULL"


def to_text(value: Any) -> str:
    """Render a driver value as the text a SQL client would show."""
    if value is None:
        return NULL
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    return str(value)


def record_key(query_id: str, ordinal: int) -> str:
    return f"{query_id}_record{ordinal}"


def encode_row(query_id: str, ordinal: int, columns: Sequence[str], row: Sequence[Any]) -> Record:
    if len(row) != len(columns):
        raise EncodingError(
            query_id, f"row {ordinal} has {len(row)} values for {len(columns)} columns"
        )
    obj = {col: to_text(v) for col, v in zip(columns, row)}
    try:
        body = json.dumps(obj, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise EncodingError(query_id, f"cannot serialize row {ordinal}: {e}") from e
    return Record(key=record_key(query_id, ordinal), query_id=query_id, body=body)


def encode_rows(
    query_id: str, columns: Sequence[str], rows: Iterable[Sequence[Any]]
) -> tuple[Record, ...]:
    return tuple(encode_row(query_id, i, columns, row) for i, row in enumerate(rows, start=1))


def field_value(record: Record, column: str) -> Optional[str]:
    """Decode ``column`` back out of an encoded record."""
    try:
        obj = json.loads(record.body)
    except ValueError as e:
        raise EncodingError(record.query_id, f"record {record.key} is not valid JSON: {e}") from e
    return obj.get(column)
