"""
Retry policy shared by the subtitle warm-up poll and the LLM rate-limit backoff.
"""

import logging
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class RetryExhausted(Exception):
    """Every attempt failed or produced an unusable result."""

    def __init__(self, label: str, attempts: int,
                 last_error: Optional[BaseException] = None, last_result: Any = None):
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        self.last_result = last_result
        super().__init__(f"{label}: gave up after {attempts} attempts")


def fixed_delay(seconds: float) -> Callable[[int], float]:
    return lambda attempt: seconds


def exponential_backoff(base: float) -> Callable[[int], float]:
    """base * 2^attempt, attempt counted from 0."""
    return lambda attempt: base * (2 ** attempt)


class RetryPolicy:
    """
    Calls a function up to max_attempts times.

    An exception is retried only when retry_on_exception(error) is true,
    otherwise it propagates at once. A returned value is retried when
    retry_on_result(value) is true. backoff(attempt) gives the wait before
    the next attempt; attempt is 0 for the first failure.
    """

    def __init__(self, max_attempts: int,
                 backoff: Callable[[int], float],
                 retry_on_exception: Optional[Callable[[Exception], bool]] = None,
                 retry_on_result: Optional[Callable[[Any], bool]] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 label: str = "operation"):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.retry_on_exception = retry_on_exception
        self.retry_on_result = retry_on_result
        self.sleep = sleep
        self.label = label

    def call(self, fn: Callable, *args, **kwargs):
        last_error = None
        last_result = None

        for attempt in range(self.max_attempts):
            try:
                result = fn(*args, **kwargs)
            except Exception as e:
                if self.retry_on_exception is None or not self.retry_on_exception(e):
                    raise
                last_error, last_result = e, None
                reason = str(e) or type(e).__name__
            else:
                if self.retry_on_result is None or not self.retry_on_result(result):
                    return result
                last_error, last_result = None, result
                reason = "result not ready"

            if attempt < self.max_attempts - 1:
                delay = self.backoff(attempt)
                logger.warning("%s: %s, retrying in %.1fs (attempt %d/%d)",
                               self.label, reason, delay, attempt + 1, self.max_attempts)
                self.sleep(delay)

        raise RetryExhausted(self.label, self.max_attempts, last_error, last_result) from last_error
