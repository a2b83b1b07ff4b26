from __future__ import annotations

from typing import Protocol, runtime_checkable

from records_client.models import Batch


@runtime_checkable
class RecordConsumer(Protocol):
    """Downstream collaborator that accepts batches of records.

    Implementations raise TransientDeliveryError when the batch may succeed
    later (backpressure, admission control, timeouts) and
    PermanentDeliveryError when it never will.
    """

    async def consume(self, batch: Batch) -> None: ...
