"""
Pytest configuration and fixtures for the SQL records receiver.

Provides cross-platform event loop configuration, an in-memory fake of the
PostgreSQL source, and a loguru capture helper.
"""

import asyncio
import re
import sys
from contextlib import asynccontextmanager
from decimal import Decimal
from types import SimpleNamespace

import pytest
from loguru import logger

from records_client.encoder import to_text

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


_SELECT = re.compile(r"(?is)^\s*select \* from (\w+)(.*)$")
_PRED = re.compile(r"(?i)\b(?:where|and) ([\w.\"]+) > (?:'((?:[^']|'')*)'|(-?[\d.]+))")
_ORDER = re.compile(r"(?i)order by ([\w.\"]+) asc")


def _column_index(columns, ident):
    """Resolve a possibly qualified or quoted identifier the way the server would."""
    name = ident.rsplit(".", 1)[-1]
    if name.startswith('"'):
        name = name.strip('"')
    else:
        name = name.lower()
    return columns.index(name) if name in columns else None


class FakeSource:
    """Tiny in-memory source understanding the statements the executor emits."""

    def __init__(self):
        self.tables: dict[str, tuple[list[str], list[tuple]]] = {}
        self.executed: list[str] = []
        self.fail: dict[str, Exception] = {}
        self.delay = 0.0

    def add_table(self, name, columns, rows=()):
        self.tables[name] = (list(columns), list(rows))

    def insert(self, name, *rows):
        self.tables[name][1].extend(rows)

    def run(self, text):
        self.executed.append(text)
        m = _SELECT.match(text)
        if not m:
            raise RuntimeError(f"fake source cannot run: {text}")
        table, rest = m.group(1), m.group(2)
        if table in self.fail:
            raise self.fail[table]
        columns, rows = self.tables[table]
        rows = list(rows)

        pred = _PRED.search(rest)
        if pred:
            idx = _column_index(columns, pred.group(1))
            # NULL > anything is not true
            rows = [r for r in rows if r[idx] is not None]
            if pred.group(3) is not None:
                bound = Decimal(pred.group(3))
                rows = [r for r in rows if Decimal(str(r[idx])) > bound]
            else:
                bound = pred.group(2).replace("''", "'")
                rows = [r for r in rows if to_text(r[idx]) > bound]

        order = _ORDER.search(rest)
        # a projected-away cursor column is simply not sorted on
        idx = _column_index(columns, order.group(1)) if order else None
        if idx is not None:
            rows.sort(key=lambda r: (r[idx] is None, r[idx] if r[idx] is not None else 0))  # NULLS LAST
        return columns, rows


class FakeCursor:
    def __init__(self, source: FakeSource):
        self._source = source
        self.description = None
        self._rows = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, text):
        if self._source.delay:
            await asyncio.sleep(self._source.delay)
        columns, rows = self._source.run(text)
        self.description = [SimpleNamespace(name=c) for c in columns]
        self._rows = rows

    async def fetchall(self):
        return list(self._rows)

    async def fetchone(self):
        return self._rows[0] if self._rows else None


class FakeConnections:
    """Stands in for ConnectionManager, handing out connections to a FakeSource."""

    def __init__(self, source: FakeSource, open_error: Exception | None = None):
        self.source = source
        self.open_error = open_error
        self.is_open = False
        self.open_calls = 0
        self.close_calls = 0
        self.in_use = 0

    async def open(self):
        self.open_calls += 1
        if self.open_error is not None:
            raise self.open_error
        self.is_open = True

    @asynccontextmanager
    async def connection(self):
        self.in_use += 1
        try:
            yield SimpleNamespace(cursor=lambda: FakeCursor(self.source))
        finally:
            self.in_use -= 1

    async def close(self):
        self.close_calls += 1
        self.is_open = False


@pytest.fixture
def source():
    """Fake source preloaded with the employees sample tables."""
    src = FakeSource()
    src.add_table(
        "departments",
        ["dept_no", "dept_name"],
        [("d001", "Marketing"), ("d002", "Finance")],
    )
    src.add_table(
        "dept_manager",
        ["emp_no", "dept_no", "from_date"],
        [(1, "d001", "1985-01-01"), (4, "d002", "1986-04-03"), (7, "d001", None)],
    )
    return src


@pytest.fixture
def connections(source):
    return FakeConnections(source)


@pytest.fixture
def log_messages():
    """Collect loguru messages emitted during a test."""
    messages = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
