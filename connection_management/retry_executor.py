"""
Retry Executor

Runs database operations with a guaranteed connection and transparent
retries on transient infrastructure failures.

Per call the executor moves through:
    Attempting -> Succeeded                      (operation returned)
    Attempting -> FailedFatal                    (non-retriable error, re-raised)
    Attempting -> Waiting -> Attempting          (retriable error, attempts left)
    Attempting -> ExhaustedRetries               (retriable error, none left, re-raised)

The schedule is delay(n) = min(base * 2^(n-1), max) with no jitter unless
jitter is configured. Terminal failures re-raise the original exception
object, never a wrapper.
"""

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
    wait_exponential_jitter,
)

from config import RetrySettings
from connection_management.connection_manager import ConnectionManager
from connection_management.error_classifier import (
    ErrorClassifier,
    MongoErrorClassifier,
    describe_error,
    is_dns_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExecutor:
    """
    Wraps database operations with connect-before-attempt and backoff retries.

    Args:
        connection_manager: Manager whose connection is ensured before every
                            attempt and invalidated after a transient failure
        classifier: Decides which errors are transient. Defaults to the
                    pymongo classifier.
        settings: Attempt count, backoff, optional jitter and deadline
        sleep: Coroutine used to wait between attempts

    Example:
        >>> executor = RetryExecutor(manager)
        >>> order = await executor.with_retry(
        ...     lambda: manager.connection.database["orders"].find_one({"_id": order_id})
        ... )
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        classifier: Optional[ErrorClassifier] = None,
        settings: Optional[RetrySettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._connections = connection_manager
        self._classifier = classifier if classifier is not None else MongoErrorClassifier()
        self.settings = settings if settings is not None else RetrySettings()
        self._sleep = sleep

    @property
    def classifier(self) -> ErrorClassifier:
        return self._classifier

    def _wait_strategy(self):
        base = self.settings.base_delay_ms / 1000
        ceiling = self.settings.max_delay_ms / 1000
        if self.settings.jitter_ms > 0:
            return wait_exponential_jitter(
                initial=base, max=ceiling, exp_base=2, jitter=self.settings.jitter_ms / 1000
            )
        return wait_exponential(multiplier=base, exp_base=2, max=ceiling)

    def _stop_strategy(self, max_attempts: int):
        stop = stop_after_attempt(max_attempts)
        if self.settings.deadline_ms is not None:
            stop = stop | stop_after_delay(self.settings.deadline_ms / 1000)
        return stop

    def _build_retrying(self, max_attempts: int) -> AsyncRetrying:
        return AsyncRetrying(
            sleep=self._sleep,
            stop=self._stop_strategy(max_attempts),
            wait=self._wait_strategy(),
            retry=retry_if_exception(self._classifier.is_retriable),
            before_sleep=functools.partial(self._before_sleep, max_attempts=max_attempts),
            reraise=True,
        )

    def _before_sleep(self, retry_state: RetryCallState, max_attempts: int) -> None:
        error = retry_state.outcome.exception()
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"Database operation failed: {describe_error(error)} "
            f"[{self._classifier.explain(error)}], retrying in {delay * 1000:.0f}ms "
            f"({retry_state.attempt_number}/{max_attempts})"
        )
        if is_dns_error(error):
            logger.warning(
                "DNS resolution error detected. Likely causes: temporary DNS server "
                "issues, local network configuration, or ISP resolver problems. "
                "Run `python -m diagnostics` to check resolution of the database host."
            )
        self._connections.invalidate(reason=f"transient failure on attempt {retry_state.attempt_number}")

    async def _attempt(self, operation: Callable[[], Awaitable[T]]) -> T:
        await self._connections.ensure_connected()
        return await operation()

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: Optional[int] = None,
    ) -> T:
        """
        Run ``operation`` with a ready connection, retrying transient failures.

        Args:
            operation: Zero-argument async callable performing the database work
            max_attempts: Attempts including the first; defaults to the
                          configured ``max_attempts``

        Returns:
            Whatever ``operation`` returns

        Raises:
            ValueError: If max_attempts is less than 1
            The last error, unchanged, once attempts are exhausted, or the
            first non-retriable error immediately
        """
        attempts = self.settings.max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        retrying = self._build_retrying(attempts)
        try:
            return await retrying(self._attempt, operation)
        except Exception as e:
            attempt_number = retrying.statistics.get("attempt_number", 1)
            if self._classifier.is_retriable(e):
                logger.error(
                    f"Database operation gave up after {attempt_number} attempt(s): {describe_error(e)}"
                )
            else:
                logger.debug(f"Non-retriable error on attempt {attempt_number}: {type(e).__name__}: {e}")
            raise

    def retrying(self, func: Optional[Callable[..., Awaitable[T]]] = None, *, max_attempts: Optional[int] = None):
        """
        Decorator routing every call of an async function through ``with_retry``.

        Usable bare or with arguments:

            @executor.retrying
            async def get_menu():
                ...

            @executor.retrying(max_attempts=3)
            async def place_order(order):
                ...
        """
        def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
            @functools.wraps(fn)
            async def wrapper(*args: Any, **kwargs: Any) -> T:
                return await self.with_retry(functools.partial(fn, *args, **kwargs), max_attempts=max_attempts)
            return wrapper

        if func is not None:
            return decorator(func)
        return decorator
