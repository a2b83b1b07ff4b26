from __future__ import annotations

from loguru import logger

from records_client.models import Batch


class LogConsumer:
    """Writes every record to the log. Never rejects a batch."""

    def __init__(self, level: str = "INFO") -> None:
        self.level = level
        self.records_logged = 0

    async def consume(self, batch: Batch) -> None:
        for rec in batch.records:
            logger.log(self.level, f"{rec.key} {rec.body}")
        self.records_logged += len(batch)
