"""Exponential-backoff retry combinator shared by every fetcher.

``with_retry`` wraps a zero-argument callable in a ``tenacity.Retrying``
controller built from an immutable :class:`RetrySpec`.  Waits come from
:meth:`RetrySpec.delay_for`, i.e. ``base_delay * multiplier ** (attempt - 1)``,
so a spec with a one-second base sleeps 1 s, then 2 s, then 4 s between attempts.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetrySpec:
    """How many times to try an operation and how long to wait in between."""

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Return the wait that follows failed attempt number *attempt* (1-based)."""
        return self.base_delay * self.multiplier ** (attempt - 1)


def with_retry(
    operation: Callable[[], T],
    spec: RetrySpec,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    cancel: Optional[threading.Event] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call *operation* until it succeeds or *spec* runs out of attempts.

    Args:
        operation: Zero-argument callable to invoke.
        spec: Attempt budget and backoff shape.
        retry_on: Exception types that make an attempt retryable.  Anything
            else propagates immediately.
        cancel: Optional event; once set no further attempt is started and
            the last error is re-raised.
        sleep: Sleep function (injectable for tests).

    Returns:
        Whatever *operation* returns on its first successful attempt.

    Raises:
        The exception raised by the final attempt.
    """
    stop = stop_after_attempt(max(spec.max_attempts, 1))
    if cancel is not None:
        stop = stop | stop_when_event_set(cancel)

    retrying = Retrying(
        stop=stop,
        wait=lambda state: spec.delay_for(state.attempt_number),
        retry=retry_if_exception_type(retry_on),
        sleep=sleep,
        reraise=True,
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
    return retrying(operation)
