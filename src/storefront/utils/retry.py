"""Retry helper for calls to external collaborators.

Used around notifier sends and the orchestrator's final save. Domain state
transitions themselves are never retried here; re-invoking fulfillment is
guarded by the order's payment status instead.
"""

import time
from collections.abc import Callable
from typing import TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def retry_with_backoff(
    fn: Callable[[], T],
    max_attempts: int = 3,
    base_delay: float = 0.5,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    operation: str = "external_call",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` until it succeeds, doubling the delay after each failure.

    The last exception is re-raised once ``max_attempts`` is exhausted.
    Exceptions outside ``retry_on`` propagate immediately.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 1
    while True:
        try:
            return fn()
        except retry_on as exc:
            if attempt >= max_attempts:
                logger.error(
                    "retry_exhausted",
                    operation=operation,
                    attempts=attempt,
                    error=str(exc),
                )
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                "retrying_after_failure",
                operation=operation,
                attempt=attempt,
                delay=delay,
                error=str(exc),
            )
            if delay > 0:
                sleep(delay)
            attempt += 1
