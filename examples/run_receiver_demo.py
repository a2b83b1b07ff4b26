"""
Demo script for the poll scheduler.

Polls a local PostgreSQL for a few ticks with a consumer that rejects every
other batch, showing retries, checkpoint advances and graceful shutdown.

    python examples/run_receiver_demo.py examples/receiver.yaml
"""

import asyncio
import sys

from loguru import logger

from records_client.errors import TransientDeliveryError
from records_client.models import Batch
from records_receiver.checkpoints import InMemoryCheckpointStore
from receiverctl.config import load_settings
from receiverctl.runtime import build_scheduler


class FlakyPrintConsumer:
    """Rejects every other batch with backpressure, prints the rest."""

    def __init__(self):
        self.calls = 0

    async def consume(self, batch: Batch) -> None:
        self.calls += 1
        # Simulate I/O latency
        await asyncio.sleep(0.01)
        if self.calls % 2:
            raise TransientDeliveryError("consumer busy")
        first = batch.records[0].key if batch.records else None
        logger.info(f"FlakyPrintConsumer accepted {len(batch)} records (first={first})")


async def main(path: str):
    settings = load_settings(path, collection_interval="2s", retry_delay="200ms")
    checkpoints = InMemoryCheckpointStore()
    scheduler = build_scheduler(settings, FlakyPrintConsumer(), checkpoints)

    async with scheduler:
        logger.info("🚀 Polling for 10 seconds")
        for _ in range(5):
            await asyncio.sleep(2)
            health = scheduler.health()
            logger.info(
                f"Ticks: {health.ticks} | pool open: {health.pool_open} | "
                f"checkpoints: {health.checkpoints}"
            )

    logger.info(f"✅ Demo complete, final checkpoints: {checkpoints.snapshot()}")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "examples/receiver.yaml"))
