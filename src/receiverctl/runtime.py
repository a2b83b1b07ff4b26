from __future__ import annotations

import asyncio
import signal
from typing import Optional

from loguru import logger

from records_client.client import ConnectionManager
from records_client.credentials import resolve_profile
from records_client.executor import IncrementalQueryExecutor
from records_receiver.checkpoints import CheckpointStore
from records_receiver.consumers import HttpConsumer, LogConsumer
from records_receiver.coordinator import DeliveryController, PollScheduler, RecordConsumer
from .config import ReceiverSettings


def build_consumer(settings: ReceiverSettings) -> RecordConsumer:
    if settings.consumer == "http":
        return HttpConsumer(settings.http_endpoint)
    return LogConsumer()


def build_scheduler(
    settings: ReceiverSettings,
    consumer: Optional[RecordConsumer] = None,
    checkpoints: Optional[CheckpointStore] = None,
) -> PollScheduler:
    """Wire credential resolver → connections → executor → delivery → scheduler.

    Raises CredentialError / ConfigurationError; both are fatal at startup.
    """
    profile = resolve_profile(settings.auth_config())
    connections = ConnectionManager(profile, settings.pool_limits())
    delivery = DeliveryController(
        consumer or build_consumer(settings),
        checkpoints or settings.checkpoint_store(),
        settings.retry_policy(),
        asyncio.Event(),
    )
    return PollScheduler(
        settings.db_queries,
        IncrementalQueryExecutor(connections),
        delivery,
        connections,
        interval_sec=settings.collection_interval,
        max_workers=settings.setmaxnodatabaseworkers,
        grace_sec=settings.shutdown_grace,
    )


async def serve(settings: ReceiverSettings) -> None:
    """Run the receiver until SIGINT/SIGTERM."""
    consumer = build_consumer(settings)
    scheduler = build_scheduler(settings, consumer)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda s=sig: _request_stop(scheduler, s))
        except NotImplementedError:
            # Windows event loops have no signal handlers; KeyboardInterrupt still works
            pass

    try:
        async with scheduler:
            await scheduler.wait_stopped()
    finally:
        if isinstance(consumer, HttpConsumer):
            await consumer.stop()


def _request_stop(scheduler: PollScheduler, sig: signal.Signals) -> None:
    logger.info(f"Received {sig.name}, shutting down")
    scheduler.request_stop()


async def poll_once(settings: ReceiverSettings) -> dict:
    consumer = build_consumer(settings)
    scheduler = build_scheduler(settings, consumer)
    try:
        return await scheduler.run_once()
    finally:
        await scheduler.stop()
        if isinstance(consumer, HttpConsumer):
            await consumer.stop()
