from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from .errors import RetryError

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_FRACTION = 0.25


def backoff_delay(attempt: int, initial_delay: float, max_delay: float) -> float:
    """Delay (before jitter) that follows failed attempt number ``attempt`` (1-based)."""

    if attempt < 1:
        raise ValueError("attempt must be >= 1")
    return min(initial_delay * (2 ** (attempt - 1)), max_delay)


def apply_jitter(delay: float, rand: Callable[[], float] = random.random) -> float:
    """Spread a delay uniformly over +/-25%."""

    return max(0.0, delay * (1.0 + JITTER_FRACTION * (2.0 * rand() - 1.0)))


def retry(
    operation: Callable[[], T],
    *,
    max_attempts: int = 3,
    initial_delay: float = 5.0,
    max_delay: float = 300.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    description: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep,
    rand: Callable[[], float] = random.random,
) -> T:
    """Run ``operation`` until it succeeds or ``max_attempts`` is exhausted.

    Between attempts sleeps ``backoff_delay(n)`` with +/-25% jitter so that
    several callers hitting the same mirror do not retry in lockstep.

    Raises RetryError (chained from the last failure) when every attempt
    fails; the caller decides whether that is fatal.
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    what = description or getattr(operation, "__name__", "operation")
    for attempt in range(1, max_attempts):
        logger.debug("Attempt %s/%s: %s", attempt, max_attempts, what)
        try:
            result = operation()
        except retry_on as e:
            delay = apply_jitter(backoff_delay(attempt, initial_delay, max_delay), rand)
            logger.warning("%s failed (%s), retrying in %.1fs", what, e, delay)
            sleep(delay)
            continue
        if attempt > 1:
            logger.info("%s succeeded on attempt %s", what, attempt)
        return result

    logger.debug("Attempt %s/%s: %s", max_attempts, max_attempts, what)
    try:
        result = operation()
    except retry_on as e:
        logger.error("%s failed after %s attempts", what, max_attempts)
        raise RetryError(max_attempts, e) from e
    if max_attempts > 1:
        logger.info("%s succeeded on attempt %s", what, max_attempts)
    return result
