"""
Delivery & retry controller.

Pushes one batch downstream and advances the query's checkpoint only after
the consumer accepted it. Transient failures are retried after a delay, up
to the policy's budget; permanent failures drop the batch at once. A dropped
batch leaves the checkpoint where it was, so the same rows are fetched again
on the next tick (at-least-once).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from loguru import logger

from records_client.models import Batch
from ..checkpoints import CheckpointStore
from ..metrics.registry import metrics_registry
from .policy import RetryPolicy
from .types import RecordConsumer


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    EMPTY = "empty"
    DROPPED_PERMANENT = "dropped_permanent"
    DROPPED_EXHAUSTED = "dropped_exhausted"
    ABORTED = "aborted"


@dataclass(frozen=True)
class DeliveryResult:
    outcome: DeliveryOutcome
    attempts: int = 0
    retries: int = 0
    checkpoint_advanced: bool = False
    error: Optional[str] = None


class DeliveryController:
    def __init__(
        self,
        consumer: RecordConsumer,
        checkpoints: CheckpointStore,
        retry_policy: Optional[RetryPolicy] = None,
        shutdown: Optional[asyncio.Event] = None,
    ):
        self._consumer = consumer
        self._checkpoints = checkpoints
        self._policy = retry_policy or RetryPolicy()
        self._shutdown = shutdown or asyncio.Event()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def checkpoints(self) -> CheckpointStore:
        return self._checkpoints

    @property
    def shutdown(self) -> asyncio.Event:
        return self._shutdown

    async def _wait(self, delay: float) -> bool:
        """Sleep ``delay`` seconds; returns True if shutdown was signalled meanwhile."""
        if self._shutdown.is_set():
            return True
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _advance(self, batch: Batch) -> bool:
        if batch.next_checkpoint is None:
            return False
        # stores may write to disk; keep that off the event loop
        try:
            advanced = await asyncio.to_thread(
                self._checkpoints.advance, batch.query_id, batch.next_checkpoint, batch.cursor_type
            )
        except OSError as e:
            logger.error(f"[{batch.query_id}] failed to persist checkpoint: {e}")
            return False
        if advanced:
            metrics_registry.checkpoint_advances_total.labels(query_id=batch.query_id).inc()
        return advanced

    def _finish(self, batch: Batch, result: DeliveryResult) -> DeliveryResult:
        metrics_registry.batches_delivered_total.labels(
            query_id=batch.query_id, outcome=result.outcome.value
        ).inc()
        return result

    async def deliver(self, batch: Batch) -> DeliveryResult:
        qid = batch.query_id
        if batch.empty:
            return DeliveryResult(DeliveryOutcome.EMPTY)

        retries = 0
        attempts = 0
        while True:
            attempts += 1
            try:
                await self._consumer.consume(batch)
            except Exception as exc:
                err = f"{type(exc).__name__}: {exc}"
                if not self._policy.classify_retryable(exc):
                    logger.error(
                        f"[{qid}] Dropping batch of {len(batch)} records, permanent error: {err}"
                    )
                    return self._finish(
                        batch,
                        DeliveryResult(DeliveryOutcome.DROPPED_PERMANENT, attempts, retries, error=err),
                    )
                if retries >= self._policy.max_retries:
                    logger.error(
                        f"[{qid}] Dropping batch of {len(batch)} records after {retries} retries: "
                        f"{err}. Checkpoint unchanged, rows will be re-fetched next tick"
                    )
                    return self._finish(
                        batch,
                        DeliveryResult(DeliveryOutcome.DROPPED_EXHAUSTED, attempts, retries, error=err),
                    )
                retries += 1
                delay = self._policy.next_delay(retries)
                logger.warning(
                    f"[{qid}] Transient delivery error ({err}); "
                    f"retry {retries}/{self._policy.max_retries} in {delay:.2f}s"
                )
                metrics_registry.delivery_retries_total.labels(query_id=qid).inc()
                if await self._wait(delay):
                    logger.warning(f"[{qid}] Shutdown during retry backoff, batch not delivered")
                    return self._finish(
                        batch, DeliveryResult(DeliveryOutcome.ABORTED, attempts, retries, error=err)
                    )
                continue

            advanced = await self._advance(batch)
            logger.info(
                f"[{qid}] Delivered {len(batch)} records"
                + (f", checkpoint -> {batch.next_checkpoint}" if advanced else "")
            )
            return self._finish(
                batch, DeliveryResult(DeliveryOutcome.DELIVERED, attempts, retries, advanced)
            )
