"""
Retry middleware for Convo Hub
"""

import asyncio
import functools
import inspect
import logging
import random
import time
from typing import Any, Awaitable, Callable

from ..config import TransportConfig
from ..exceptions import RetryExhaustedError

# Set up logger
logger = logging.getLogger(__name__)


class RetryPolicy:
    """
    Bounded retry of a single request attempt under rate limiting

    Only exceptions with a true ``retryable`` attribute (rate limited or
    overloaded) are retried. The callable is invoked again unchanged, so it
    must resend the same already-serialized request on every attempt.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 60.0,
        backoff_factor: float = 1.0,
        jitter: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        async_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the retry policy

        Args:
            max_attempts: Total number of attempts, the first one included
            initial_delay: Delay used when the provider does not say how long to wait
            max_delay: Upper bound for computed delays
            backoff_factor: Multiplier applied per attempt (1.0 keeps the delay fixed)
            jitter: Whether to add random jitter to computed delays
            sleep: Blocking sleep used between synchronous attempts
            async_sleep: Awaitable sleep used between asynchronous attempts
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter
        self.sleep = sleep
        self.async_sleep = async_sleep

    @classmethod
    def from_config(cls, config: TransportConfig, **kwargs) -> "RetryPolicy":
        return cls(max_attempts=config.max_attempts, initial_delay=config.default_retry_delay, **kwargs)

    def call(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """
        Call a function, retrying it while it raises retryable errors

        Raises:
            RetryExhaustedError: If every attempt was rate limited
        """
        for attempt in range(self.max_attempts):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                delay = self._delay_before_retry(e, attempt)
                self.sleep(delay)
        # unreachable: _delay_before_retry raises on the last attempt
        raise RetryExhaustedError(self.max_attempts)

    async def acall(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Await a coroutine function, retrying it while it raises retryable errors

        Raises:
            RetryExhaustedError: If every attempt was rate limited
        """
        for attempt in range(self.max_attempts):
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                delay = self._delay_before_retry(e, attempt)
                await self.async_sleep(delay)
        raise RetryExhaustedError(self.max_attempts)

    def wrap(self, func: Callable) -> Callable:
        """
        Wrap a function with retry logic

        Args:
            func: The function to wrap

        Returns:
            Wrapped function
        """
        @functools.wraps(func)
        def wrapped_sync(*args, **kwargs):
            return self.call(func, *args, **kwargs)

        @functools.wraps(func)
        async def wrapped_async(*args, **kwargs):
            return await self.acall(func, *args, **kwargs)

        # Check if the wrapped function is async
        if inspect.iscoroutinefunction(func):
            return wrapped_async
        else:
            return wrapped_sync

    def _delay_before_retry(self, exception: Exception, attempt: int) -> float:
        """
        Decide whether to retry after a failed attempt

        Args:
            exception: The exception raised by the attempt
            attempt: The current attempt number (0-indexed)

        Returns:
            Seconds to wait before the next attempt

        Raises:
            The original exception if it is not retryable, or
            RetryExhaustedError if no attempts remain
        """
        if not self._is_retryable(exception):
            logger.debug(f"Non-retryable exception: {type(exception).__name__}, giving up")
            raise exception

        if attempt + 1 >= self.max_attempts:
            logger.warning(f"Max attempts ({self.max_attempts}) reached, giving up")
            raise RetryExhaustedError(self.max_attempts, exception) from exception

        retry_after = getattr(exception, "retry_after", None)
        delay = retry_after if retry_after is not None else self._calculate_delay(attempt)

        logger.info(
            f"Retry {attempt + 1}/{self.max_attempts - 1} after exception: "
            f"{type(exception).__name__}: {str(exception)}. Waiting {delay:.2f}s"
        )
        return delay

    def _is_retryable(self, exception: Exception) -> bool:
        return bool(getattr(exception, "retryable", False))

    def _calculate_delay(self, attempt: int) -> float:
        """
        Calculate the delay for a retry attempt

        Args:
            attempt: The current attempt number (0-indexed)

        Returns:
            Delay time in seconds
        """
        # Calculate exponential backoff
        delay = min(
            self.max_delay,
            self.initial_delay * (self.backoff_factor ** attempt)
        )

        # Add jitter if enabled
        if self.jitter:
            jitter_multiplier = random.uniform(0.5, 1.5)
            delay *= jitter_multiplier

        return delay
