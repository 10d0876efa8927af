"""
Retry — Exponential backoff for transient backend failures

Only timeouts are retried. A missing binary or unparsable output fails
immediately, as does any other non-transient error: repeating a call that
the backend rejected will not change its answer.
"""

import logging
import time
from typing import Callable, TypeVar

from ..errors import is_permanent, is_transient


logger = logging.getLogger(__name__)

T = TypeVar("T")


def with_retry(
    fn: Callable[[], T],
    max_retries: int = 3,
    base_delay: float = 0.1,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call `fn`, retrying transient failures with exponential backoff.

    Args:
        fn: Zero-argument callable
        max_retries: Retries after the first attempt (total attempts = max_retries + 1)
        base_delay: Seconds before the first retry; doubles each attempt
        sleep: Injected for tests

    Returns:
        Whatever `fn` returns on the first successful attempt

    Raises:
        The first permanent or non-transient error, or the last transient
        error once attempts are exhausted.
    """
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as e:
            if is_permanent(e) or not is_transient(e):
                raise
            if attempt >= max_retries:
                logger.warning("Giving up after %d attempts: %s", attempt + 1, e)
                raise

            delay = base_delay * (2 ** attempt)
            logger.warning(
                "Transient error on attempt %d/%d, retrying in %.3fs: %s",
                attempt + 1, max_retries + 1, delay, e,
            )
            sleep(delay)
            attempt += 1
