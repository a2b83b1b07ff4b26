"""Polling coordinator

Scheduler → executor → delivery pipeline with:
- PollScheduler with a bounded worker pool and interruptible ticks
- DeliveryController with transient/permanent failure handling
- RetryPolicy with fixed or growing delay
- RecordConsumer protocol for downstream collaborators
"""

from .types import RecordConsumer
from .policy import RetryPolicy, default_retry_classifier
from .delivery import DeliveryController, DeliveryOutcome, DeliveryResult
from .scheduler import PollScheduler, SchedulerHealth

__all__ = [
    # types
    "RecordConsumer",
    "DeliveryOutcome",
    "DeliveryResult",
    "SchedulerHealth",
    # policies
    "RetryPolicy",
    "default_retry_classifier",
    # runtime
    "DeliveryController",
    "PollScheduler",
]
