from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

from records_client.errors import PermanentDeliveryError, TransientDeliveryError

_TRANSIENT_HINTS = ("temporar", "timeout", "busy", "retry", "backpressure", "unavailable")


def default_retry_classifier(exc: Exception) -> bool:
    """Decide whether a delivery failure is worth retrying."""
    if isinstance(exc, TransientDeliveryError):
        return True
    if isinstance(exc, PermanentDeliveryError):
        return False
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return True
    msg = str(exc).lower()
    return any(h in msg for h in _TRANSIENT_HINTS)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget for transient delivery failures.

    ``max_retries`` counts retries after the first attempt. The delay is fixed
    unless ``backoff_multiplier`` is above 1, in which case it grows per retry
    up to ``max_delay_sec``.
    """

    max_retries: int = 3
    retry_delay_sec: float = 1.0
    backoff_multiplier: float = 1.0
    max_delay_sec: Optional[float] = None
    classify_retryable: Callable[[Exception], bool] = field(default=default_retry_classifier)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.retry_delay_sec < 0:
            raise ValueError("retry_delay_sec must be >= 0")
        if self.backoff_multiplier < 1.0:
            raise ValueError("backoff_multiplier must be >= 1.0")

    def next_delay(self, retry: int) -> float:
        """Delay in seconds before retry number ``retry`` (1-based)."""
        delay = self.retry_delay_sec * (self.backoff_multiplier ** max(0, retry - 1))
        if self.max_delay_sec is not None:
            delay = min(delay, self.max_delay_sec)
        return delay
