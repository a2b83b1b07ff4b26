"""Downstream consumers for record batches."""

from .http import HttpConsumer
from .log import LogConsumer

__all__ = ["HttpConsumer", "LogConsumer"]
