from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import psycopg
from psycopg_pool import AsyncConnectionPool, PoolTimeout
from loguru import logger

from . import sql as q
from .errors import SourceConnectionError
from .models import ConnectionProfile

DEFAULT_MAX_LIFETIME_MIN = 3
DEFAULT_MAX_OPEN = 5
DEFAULT_MAX_IDLE = 5


@dataclass(frozen=True)
class PoolLimits:
    """Connection lifecycle limits; unset or non-positive values fall back to defaults."""

    max_lifetime_min: Optional[float] = None
    max_open: Optional[int] = None
    max_idle: Optional[int] = None
    open_timeout: float = 10.0

    @property
    def lifetime_sec(self) -> float:
        v = self.max_lifetime_min
        return (v if v and v > 0 else DEFAULT_MAX_LIFETIME_MIN) * 60.0

    @property
    def open_conns(self) -> int:
        v = self.max_open
        return v if v and v > 0 else DEFAULT_MAX_OPEN

    @property
    def idle_conns(self) -> int:
        v = self.max_idle
        v = v if v and v > 0 else DEFAULT_MAX_IDLE
        # idle connections are the pool's warm set and can't exceed the open cap
        return min(v, self.open_conns)


class ConnectionManager:
    """
    Owns the async connection pool for one source database.

    The pool is opened lazily so a database that is down at startup is
    retried on the next tick instead of failing the process.

    Usage:
        cm = ConnectionManager(profile, PoolLimits(max_open=10))
        await cm.open()
        async with cm.connection() as conn:
            ...
        await cm.close()
    """

    def __init__(self, profile: ConnectionProfile, limits: Optional[PoolLimits] = None):
        self._profile = profile
        self._limits = limits or PoolLimits()
        self._pool: Optional[AsyncConnectionPool] = None
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def profile(self) -> ConnectionProfile:
        return self._profile

    @property
    def limits(self) -> PoolLimits:
        return self._limits

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def _make_pool(self) -> AsyncConnectionPool:
        lim = self._limits
        return AsyncConnectionPool(
            conninfo=self._profile.conninfo(),
            min_size=lim.idle_conns,
            max_size=lim.open_conns,
            max_lifetime=lim.lifetime_sec,
            timeout=lim.open_timeout,
            kwargs={"autocommit": True},
            open=False,
            name=f"sqlrecords-{self._profile.database}",
        )

    def _warn_expiry(self, lim: PoolLimits) -> None:
        expires = self._profile.credential_expires_at
        if expires is None:
            return
        until = datetime.fromtimestamp(expires, tz=timezone.utc).isoformat(timespec="seconds")
        logger.warning(
            f"Database credential is a short-lived token valid until {until}. The pool replaces "
            f"connections every {lim.lifetime_sec:.0f}s, and new connections fail once the token "
            "expires; restart the receiver to mint a fresh token"
        )

    def _warn_if_expired(self) -> None:
        if self._profile.credential_expired():
            logger.warning(
                "Database credential token has expired; restart the receiver to mint a fresh one"
            )

    async def open(self) -> None:
        """Open the pool if not open yet. Raises SourceConnectionError on failure."""
        async with self._lock:
            if self._closed:
                raise SourceConnectionError("connection manager is closed")
            if self._pool is not None:
                return
            pool = self._make_pool()
            try:
                await pool.open(wait=True, timeout=self._limits.open_timeout)
            except (PoolTimeout, psycopg.OperationalError) as e:
                await pool.close()
                logger.error(f"Unable to connect to database {self._profile.describe()}: {e}")
                self._warn_if_expired()
                raise SourceConnectionError(str(e)) from e
            self._pool = pool
            lim = self._limits
            logger.info(
                f"Connection pool open: {self._profile.describe()} "
                f"max_open={lim.open_conns} max_idle={lim.idle_conns} "
                f"max_lifetime={lim.lifetime_sec:.0f}s"
            )
            self._warn_expiry(lim)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[psycopg.AsyncConnection]:
        if self._pool is None:
            raise SourceConnectionError("connection pool is not open")
        try:
            async with self._pool.connection() as conn:
                yield conn
        except PoolTimeout as e:
            self._warn_if_expired()
            raise SourceConnectionError(f"no connection available: {e}") from e

    async def health(self) -> bool:
        async with self.connection() as conn, conn.cursor() as cur:
            await cur.execute(q.HEALTH)
            _ = await cur.fetchone()
            return True

    async def close(self) -> None:
        """Close the pool. Safe to call multiple times and concurrently."""
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()
            logger.info(f"Connection pool closed: {self._profile.describe()}")
