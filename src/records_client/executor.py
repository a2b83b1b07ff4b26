from __future__ import annotations

from typing import Any, Optional

from loguru import logger

from . import sql as q
from .client import ConnectionManager
from .encoder import NULL, encode_rows, field_value
from .errors import EncodingError, ReceiverError, map_db_error
from .models import Batch, QuerySpec, Record


class IncrementalQueryExecutor:
    """
    Runs one QuerySpec and turns the result into a Batch.

    Snapshot queries run verbatim. Cursor queries are rewritten to read past
    the checkpoint, and the batch carries the cursor value of its last record
    with a non-NULL cursor as the candidate next checkpoint. The checkpoint
    itself is not touched here; that happens only after delivery.
    """

    def __init__(self, connections: ConnectionManager):
        self._connections = connections

    async def _run(self, spec: QuerySpec, text: str) -> tuple[list[str], list[tuple[Any, ...]]]:
        try:
            async with self._connections.connection() as conn, conn.cursor() as cur:
                await cur.execute(text)
                if cur.description is None:
                    return [], []
                columns = [c.name for c in cur.description]
                rows = await cur.fetchall()
                return columns, rows
        except ReceiverError:
            raise
        except Exception as e:
            raise map_db_error(e, spec.query_id) from e

    @staticmethod
    def _last_cursor(records: tuple[Record, ...], column: str) -> Optional[str]:
        """Cursor value of the last record that has one. NULLs sort last in ascending order."""
        for rec in reversed(records):
            value = field_value(rec, column)
            if value is not None and value != NULL:
                return value
        return None

    async def fetch(self, spec: QuerySpec, checkpoint: Optional[str] = None) -> Batch:
        text = q.incremental_query(spec, checkpoint)
        mode = "incrementally" if spec.incremental else "all records"
        logger.debug(f"[{spec.query_id}] fetching {mode}: {text}")

        columns, rows = await self._run(spec, text)
        records = encode_rows(spec.query_id, columns, rows)

        if not records:
            if spec.incremental:
                logger.info(f"[{spec.query_id}] No new records found")
            else:
                logger.info(f"[{spec.query_id}] No database records found")
            return Batch(query_id=spec.query_id, cursor_type=spec.cursor_type)

        next_checkpoint = None
        if spec.incremental:
            column = q.result_column(spec.cursor_column, columns)
            if column is None:
                raise EncodingError(
                    spec.query_id,
                    f"cursor column {spec.cursor_column!r} missing from result columns",
                )
            next_checkpoint = self._last_cursor(records, column)
            if next_checkpoint is None:
                logger.warning(
                    f"[{spec.query_id}] all {len(records)} records have NULL in "
                    f"{spec.cursor_column}, checkpoint will not advance"
                )

        logger.info(f"[{spec.query_id}] {len(records)} database records found")
        return Batch(
            query_id=spec.query_id,
            records=records,
            next_checkpoint=next_checkpoint,
            cursor_type=spec.cursor_type,
        )
