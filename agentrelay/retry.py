"""
agentrelay - Retry Logic

Exponential backoff with jitter for the client layer. The normalizer
itself never retries; only failures that happen before any part of the
body has been consumed are safe to repeat.
"""

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, TypeVar, Optional, List

from .errors import AgentRelayError


logger = logging.getLogger("agentrelay.retry")

T = TypeVar("T")


def calculate_backoff(
    attempt: int,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True
) -> float:
    """
    Calculate delay for exponential backoff with optional jitter.

    Args:
        attempt: Current retry attempt (0-based)
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential calculation
        jitter: Whether to add random jitter

    Returns:
        Delay in seconds
    """
    delay = initial_delay * (exponential_base ** attempt)
    delay = min(delay, max_delay)

    # Up to 25% variance
    if jitter:
        jitter_range = delay * 0.25
        delay = delay + random.uniform(-jitter_range, jitter_range)

    return max(0, delay)


def should_retry(
    error: Exception,
    retry_on_status: Optional[List[int]] = None
) -> bool:
    """
    Determine if an error should be retried.

    Args:
        error: The exception that was raised
        retry_on_status: HTTP status codes to retry on

    Returns:
        True if the request should be retried
    """
    if retry_on_status is None:
        retry_on_status = [500, 502, 503, 504]

    if isinstance(error, AgentRelayError):
        if error.retryable:
            return True

        # Protocol failures carry 5xx-like codes but are never transient.
        if error.code in ("malformed_response", "no_valid_response", "cancelled"):
            return False

        if error.status_code in retry_on_status:
            return True

    return False


class RetryHandler:
    """
    Configurable retry handler for API requests.

    Example:
        handler = RetryHandler(max_retries=5, initial_delay=0.5)
        result = handler.execute(lambda: client._send_once("/ask", payload))
    """

    def __init__(
        self,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        retry_on_status: Optional[List[int]] = None,
        on_retry: Optional[Callable[[int, Exception, float], None]] = None
    ):
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.retry_on_status = retry_on_status or [500, 502, 503, 504]
        self.on_retry = on_retry

    def wrap(self, func: Callable[..., T]) -> Callable[..., T]:
        """Wrap a synchronous function with retry logic."""
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return self.execute(lambda: func(*args, **kwargs))

        return wrapper

    def execute(self, func: Callable[[], T]) -> T:
        """
        Execute a function with retry logic.

        Args:
            func: A callable that takes no arguments

        Returns:
            The result of the function call
        """
        attempt = 0
        while True:
            try:
                return func()
            except Exception as e:
                delay = self._next_delay(attempt, e)
                time.sleep(delay)
                attempt += 1

    async def execute_async(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Execute an async function with retry logic.

        Args:
            func: An async callable that takes no arguments

        Returns:
            The result of the function call
        """
        attempt = 0
        while True:
            try:
                return await func()
            except Exception as e:
                delay = self._next_delay(attempt, e)
                await asyncio.sleep(delay)
                attempt += 1

    def _next_delay(self, attempt: int, error: Exception) -> float:
        """Return the backoff delay, or re-raise when retrying is not allowed."""
        if attempt >= self.max_retries or not should_retry(error, self.retry_on_status):
            raise error

        delay = calculate_backoff(
            attempt,
            self.initial_delay,
            self.max_delay,
            self.exponential_base
        )

        logger.warning(
            "Retrying after %s (attempt %d/%d, delay %.2fs)",
            error.__class__.__name__,
            attempt + 1,
            self.max_retries,
            delay,
        )

        if self.on_retry:
            self.on_retry(attempt, error, delay)

        return delay
