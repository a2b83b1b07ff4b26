"""
SQL Records Receiver

Polls a relational source on an interval, checkpoints per-query cursor
progress, and delivers encoded rows to a downstream consumer with
at-least-once semantics.
"""

from .checkpoints import CheckpointStore, FileCheckpointStore, InMemoryCheckpointStore
from .coordinator import (
    DeliveryController,
    DeliveryOutcome,
    PollScheduler,
    RecordConsumer,
    RetryPolicy,
)

__all__ = [
    "CheckpointStore",
    "DeliveryController",
    "DeliveryOutcome",
    "FileCheckpointStore",
    "InMemoryCheckpointStore",
    "PollScheduler",
    "RecordConsumer",
    "RetryPolicy",
]
