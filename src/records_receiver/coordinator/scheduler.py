"""
Poll scheduler: periodic ticks over all configured queries.

Each tick fans one job per query out over at most ``max_workers`` concurrent
workers. A job runs fetch → deliver for its query end to end, and ticks never
overlap, so a query's checkpoint has exactly one writer at a time.

Shutdown is driven by the shutdown event shared with the delivery
controller: setting it stops new ticks and interrupts retry backoffs.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence

from loguru import logger

from records_client.client import ConnectionManager
from records_client.errors import (
    ConfigurationError,
    EncodingError,
    QueryError,
    ReceiverError,
    SourceConnectionError,
)
from records_client.executor import IncrementalQueryExecutor
from records_client.models import QuerySpec
from ..metrics.registry import metrics_registry
from .delivery import DeliveryController, DeliveryResult

DEFAULT_MAX_WORKERS = 1


@dataclass(frozen=True)
class SchedulerHealth:
    running: bool
    ticks: int
    queries: int
    max_workers: int
    pool_open: bool
    last_cycle_sec: Optional[float] = None
    checkpoints: dict[str, str] = field(default_factory=dict)


class PollScheduler:
    """
    Usage:
        async with PollScheduler(queries, executor, delivery, connections,
                                 interval_sec=10, max_workers=2) as sched:
            await sched.wait_stopped()
    """

    def __init__(
        self,
        queries: Sequence[QuerySpec],
        executor: IncrementalQueryExecutor,
        delivery: DeliveryController,
        connections: ConnectionManager,
        *,
        interval_sec: float = 10.0,
        max_workers: Optional[int] = None,
        grace_sec: float = 5.0,
    ):
        if interval_sec <= 0:
            raise ValueError("interval_sec must be > 0")
        ids = [q.query_id for q in queries]
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        if dupes:
            raise ConfigurationError(f"duplicate query ids: {', '.join(dupes)}")

        self._queries = tuple(queries)
        self._executor = executor
        self._delivery = delivery
        self._connections = connections
        self._interval = interval_sec
        self._max_workers = max_workers if max_workers and max_workers > 0 else DEFAULT_MAX_WORKERS
        self._grace = grace_sec

        self._shutdown = delivery.shutdown
        self._sem = asyncio.Semaphore(self._max_workers)
        self._task: Optional[asyncio.Task] = None
        self._stop_lock = asyncio.Lock()
        self._stopped = False
        self._ticks = 0
        self._last_cycle_sec: Optional[float] = None

    # --------------------------- lifecycle

    async def start(self) -> None:
        if self._task is not None:
            return
        if self._stopped:
            raise RuntimeError("scheduler already stopped")
        logger.info(
            f"Starting poll scheduler: {len(self._queries)} queries, "
            f"interval={self._interval}s, max_workers={self._max_workers}"
        )
        self._task = asyncio.create_task(self._loop(), name="sqlrecords-scheduler")

    async def stop(self, grace_sec: Optional[float] = None) -> None:
        """Stop ticking, drain or cancel in-flight work, release connections once."""
        self._shutdown.set()
        async with self._stop_lock:
            if self._stopped:
                return
            grace = self._grace if grace_sec is None else grace_sec
            task = self._task
            if task is not None and not task.done():
                try:
                    await asyncio.wait_for(asyncio.shield(task), timeout=grace)
                except asyncio.TimeoutError:
                    logger.warning(f"In-flight polling did not finish within {grace}s, cancelling")
                    task.cancel()
                    await asyncio.gather(task, return_exceptions=True)
                except Exception as e:
                    logger.error(f"Poll scheduler loop failed: {type(e).__name__}: {e}")
            await self._connections.close()
            self._stopped = True
            logger.info("Poll scheduler stopped")

    def request_stop(self) -> None:
        """Signal shutdown without waiting; safe from signal handlers."""
        self._shutdown.set()

    async def wait_stopped(self) -> None:
        await self._shutdown.wait()

    async def __aenter__(self) -> "PollScheduler":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # --------------------------- polling

    async def _loop(self) -> None:
        while not self._shutdown.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> dict[str, Optional[DeliveryResult]]:
        """Run one polling cycle over every query. Returns per-query results."""
        if not self._connections.is_open:
            try:
                await self._connections.open()
            except SourceConnectionError as e:
                logger.error(f"Skipping tick, database unavailable: {e}")
                return {}

        t0 = time.perf_counter()
        outcomes = await asyncio.gather(
            *(self._poll_query(spec) for spec in self._queries), return_exceptions=True
        )
        results: dict[str, Optional[DeliveryResult]] = {}
        for spec, res in zip(self._queries, outcomes):
            if isinstance(res, asyncio.CancelledError):
                results[spec.query_id] = None
            elif isinstance(res, BaseException):
                logger.opt(exception=res).error(f"[{spec.query_id}] Unexpected polling failure")
                metrics_registry.query_errors_total.labels(
                    query_id=spec.query_id, kind="unexpected"
                ).inc()
                results[spec.query_id] = None
            else:
                results[spec.query_id] = res

        self._last_cycle_sec = time.perf_counter() - t0
        self._ticks += 1
        metrics_registry.poll_cycle_seconds.observe(self._last_cycle_sec)
        return results

    async def _poll_query(self, spec: QuerySpec) -> Optional[DeliveryResult]:
        async with self._sem:
            if self._shutdown.is_set():
                return None
            qid = spec.query_id
            checkpoint = self._delivery.checkpoints.get(qid) if spec.incremental else None
            try:
                batch = await self._executor.fetch(spec, checkpoint)
            except SourceConnectionError as e:
                return self._skip(qid, "connection", e)
            except QueryError as e:
                return self._skip(qid, "query", e)
            except EncodingError as e:
                return self._skip(qid, "encoding", e)
            except ReceiverError as e:
                return self._skip(qid, "other", e)

            metrics_registry.records_fetched_total.labels(query_id=qid).inc(len(batch))
            return await self._delivery.deliver(batch)

    @staticmethod
    def _skip(query_id: str, kind: str, err: Exception) -> None:
        logger.error(f"[{query_id}] Skipping query this tick ({kind} error): {err}")
        metrics_registry.query_errors_total.labels(query_id=query_id, kind=kind).inc()
        return None

    # --------------------------- introspection

    @property
    def queries(self) -> tuple[QuerySpec, ...]:
        return self._queries

    def health(self) -> SchedulerHealth:
        return SchedulerHealth(
            running=self._task is not None and not self._task.done(),
            ticks=self._ticks,
            queries=len(self._queries),
            max_workers=self._max_workers,
            pool_open=self._connections.is_open,
            last_cycle_sec=self._last_cycle_sec,
            checkpoints=self._delivery.checkpoints.snapshot(),
        )
