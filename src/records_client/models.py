"""
Data models for the SQL records client.

QuerySpec and ConnectionProfile are validated once from configuration and
are immutable afterwards. Records and batches are transient per tick.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, SecretStr, model_validator

_IDENTIFIER = re.compile(r'^[A-Za-z_"][A-Za-z0-9_$"]*(\.[A-Za-z_"][A-Za-z0-9_$"]*)*$')


class CursorType(str, Enum):
    """Supported cursor column types."""

    TIMESTAMP = "TIMESTAMP"
    NUMBER = "NUMBER"


class AuthMode(str, Enum):
    """How the connection secret is obtained."""

    PLAINTEXT = "plaintext"
    ENCRYPTED = "encrypted"
    IAM_TOKEN = "iam-token"


class QuerySpec(BaseModel):
    """One configured query, optionally tracked by a cursor column."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    query_id: str = Field(validation_alias=AliasChoices("query_id", "queryid", "id"))
    query: str
    cursor_column: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("cursor_column", "index_column_name"),
    )
    cursor_type: Optional[CursorType] = Field(
        default=None,
        validation_alias=AliasChoices("cursor_type", "index_column_type"),
    )
    initial_value: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("initial_value", "initial_index_column_start_value"),
    )

    @model_validator(mode="before")
    @classmethod
    def _blank_to_none(cls, data):
        if not isinstance(data, dict):
            return data
        out = {}
        for k, v in data.items():
            if isinstance(v, str):
                v = v.strip() or None
            elif isinstance(v, (int, float)) and not isinstance(v, bool):
                v = str(v)
            out[k] = v
        return out

    @model_validator(mode="after")
    def _check_cursor(self) -> "QuerySpec":
        if not self.query_id:
            raise ValueError("query id must not be empty")
        if not self.query:
            raise ValueError(f"query {self.query_id!r} has empty query text")
        if self.cursor_column and self.cursor_type is None:
            raise ValueError(
                f"query {self.query_id!r}: cursor type must be set with a cursor column "
                "(supported: TIMESTAMP, NUMBER)"
            )
        if self.cursor_type is not None and not self.cursor_column:
            raise ValueError(f"query {self.query_id!r}: cursor type set without a cursor column")
        if self.cursor_column and not _IDENTIFIER.match(self.cursor_column):
            raise ValueError(
                f"query {self.query_id!r}: {self.cursor_column!r} is not a column identifier"
            )
        if self.cursor_type is CursorType.NUMBER and self.initial_value is not None:
            try:
                finite = Decimal(self.initial_value).is_finite()
            except InvalidOperation:
                finite = False
            if not finite:
                raise ValueError(
                    f"query {self.query_id!r}: initial value {self.initial_value!r} is not a number"
                )
        return self

    @property
    def incremental(self) -> bool:
        return self.cursor_column is not None


class ConnectionProfile(BaseModel):
    """Resolved, immutable connection parameters. The secret never appears in repr."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int = 5432
    database: str
    username: str
    password: SecretStr
    transport: str = "tcp"
    sslmode: Optional[str] = None
    sslrootcert: Optional[str] = None
    app_name: str = "sqlrecords"
    connect_timeout: int = 10
    credential_expires_at: Optional[float] = None  # epoch seconds; None means no expiry

    def credential_expired(self, now: Optional[float] = None) -> bool:
        if self.credential_expires_at is None:
            return False
        return (time.time() if now is None else now) >= self.credential_expires_at

    def conninfo(self) -> str:
        """Render a libpq conninfo string for psycopg."""
        from psycopg.conninfo import make_conninfo

        params = {
            "host": self.host,
            "dbname": self.database,
            "user": self.username,
            "password": self.password.get_secret_value(),
            "application_name": self.app_name,
            "connect_timeout": self.connect_timeout,
        }
        # unix transport: host is the socket directory, port selects the socket file
        params["port"] = self.port
        if self.sslmode:
            params["sslmode"] = self.sslmode
        if self.sslrootcert:
            params["sslrootcert"] = self.sslrootcert
        return make_conninfo("", **params)

    def describe(self) -> str:
        """Redacted one-line summary for logs."""
        tls = f" sslmode={self.sslmode}" if self.sslmode else ""
        return (
            f"{self.transport}://{self.username}@{self.host}:{self.port}/{self.database}{tls}"
        )


@dataclass(frozen=True)
class Record:
    """One encoded result row."""

    key: str
    query_id: str
    body: str


@dataclass(frozen=True)
class Batch:
    """Records from one query execution in one tick."""

    query_id: str
    records: tuple[Record, ...] = field(default_factory=tuple)
    next_checkpoint: Optional[str] = None
    cursor_type: Optional[CursorType] = None

    def __len__(self) -> int:
        return len(self.records)

    @property
    def empty(self) -> bool:
        return not self.records
