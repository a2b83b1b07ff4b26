"""
SQL Records Client Library

Connection, credential and query layer for polling a PostgreSQL source
incrementally and encoding result rows as JSON records.

Usage:
    from records_client import (
        AuthConfig, resolve_profile, ConnectionManager, IncrementalQueryExecutor, QuerySpec,
    )

    profile = resolve_profile(AuthConfig(host="db", database="employees", username="u",
                                         password="p"))
    cm = ConnectionManager(profile)
    await cm.open()
    batch = await IncrementalQueryExecutor(cm).fetch(
        QuerySpec(query_id="Q1", query="select * from departments")
    )
"""

from .client import ConnectionManager, PoolLimits
from .credentials import AuthConfig, resolve_profile
from .executor import IncrementalQueryExecutor
from .models import AuthMode, Batch, ConnectionProfile, CursorType, QuerySpec, Record

__version__ = "0.1.0"
__all__ = [
    "AuthConfig",
    "AuthMode",
    "Batch",
    "ConnectionManager",
    "ConnectionProfile",
    "CursorType",
    "IncrementalQueryExecutor",
    "PoolLimits",
    "QuerySpec",
    "Record",
    "resolve_profile",
]
