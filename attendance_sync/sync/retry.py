"""Backoff helpers for reconnecting to attendance devices."""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """How often and how patiently to retry a device operation."""

    max_retries: int = 1
    base_delay: float = 2.0  # seconds
    max_delay: float = 10.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True


class RetryExhausted(Exception):
    """Every attempt failed."""

    def __init__(self, attempts: int, last_error: Optional[Exception] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempts")


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Seconds to wait before retry number ``attempt`` (0-indexed)."""
    delay = min(config.base_delay * (config.exponential_base ** attempt), config.max_delay)
    if config.jitter:
        # +/- 25%
        spread = delay * 0.25
        delay += random.uniform(-spread, spread)
    return max(0.0, delay)


def retry_with_backoff(
    func: Callable[[], T],
    config: Optional[RetryConfig] = None,
    retryable_exceptions: tuple = (Exception,),
    description: str = "operation",
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    """Call ``func`` until it succeeds or the retry budget is spent.

    Args:
        func: Zero-argument callable to execute
        config: Retry configuration
        retryable_exceptions: Exceptions that trigger another attempt
        description: Label used in log messages
        sleep: Sleep function (injected by tests)

    Returns:
        Result of the first successful call

    Raises:
        RetryExhausted: If every attempt raised a retryable exception
        Exception: Any non-retryable exception, unchanged
    """
    if config is None:
        config = RetryConfig()

    last_error: Optional[Exception] = None
    for attempt in range(config.max_retries + 1):
        try:
            return func()
        except retryable_exceptions as e:
            last_error = e
            if attempt >= config.max_retries:
                break
            delay = calculate_delay(attempt, config)
            logger.warning(
                f"{description} attempt {attempt + 1} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            (sleep or time.sleep)(delay)

    raise RetryExhausted(config.max_retries + 1, last_error)
