"""
Checkpoint stores: last cursor value successfully delivered, per query.

Checkpoints only move forward. A value that does not sort after the stored
one is ignored, so a late or replayed advance can never rewind a query.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional, Protocol, Union

from loguru import logger

from records_client.models import CursorType


def is_after(new: str, current: Optional[str], cursor_type: Optional[CursorType]) -> bool:
    """True when ``new`` sorts strictly after ``current`` for ``cursor_type``."""
    if current is None:
        return True
    try:
        if cursor_type is CursorType.NUMBER:
            return Decimal(new) > Decimal(current)
        if cursor_type is CursorType.TIMESTAMP:
            return datetime.fromisoformat(new) > datetime.fromisoformat(current)
    except (InvalidOperation, ValueError, TypeError):
        pass
    return new > current


class CheckpointStore(Protocol):
    def get(self, query_id: str) -> Optional[str]: ...

    def advance(
        self, query_id: str, value: str, cursor_type: Optional[CursorType] = None
    ) -> bool: ...

    def snapshot(self) -> dict[str, str]: ...


class InMemoryCheckpointStore:
    """Checkpoints held for the lifetime of the receiver. Lost on restart."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._values: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, query_id: str) -> Optional[str]:
        with self._lock:
            return self._values.get(query_id)

    def advance(self, query_id: str, value: str, cursor_type: Optional[CursorType] = None) -> bool:
        """Move ``query_id`` forward to ``value``. Returns False if it would not advance."""
        with self._lock:
            current = self._values.get(query_id)
            if not is_after(value, current, cursor_type):
                logger.warning(
                    f"[{query_id}] checkpoint not advanced: {value!r} is not after {current!r}"
                )
                return False
            self._values[query_id] = value
            try:
                self._on_change()
            except OSError:
                if current is None:
                    del self._values[query_id]
                else:
                    self._values[query_id] = current
                raise
        logger.debug(f"[{query_id}] checkpoint {current!r} -> {value!r}")
        return True

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._values)

    def _on_change(self) -> None:
        """Hook called with the lock held after a successful advance."""


class FileCheckpointStore(InMemoryCheckpointStore):
    """
    Checkpoints persisted as a JSON object to ``path``.

    Every advance rewrites the file atomically (temp file + replace), so a
    crash leaves either the old or the new mapping on disk. That write blocks,
    so async callers run ``advance`` in a worker thread.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        super().__init__(self._load(self.path))

    @staticmethod
    def _load(path: Path) -> dict[str, str]:
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            raise ValueError(f"cannot read checkpoint file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"checkpoint file {path} must contain a JSON object")
        logger.info(f"Loaded {len(data)} checkpoint(s) from {path}")
        return {str(k): str(v) for k, v in data.items()}

    def _on_change(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".checkpoints-", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._values, f, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise
