"""
Single-Flight Pattern

Collapses concurrent requests for the same resource into one in-progress
attempt. Every caller that arrives while the attempt is running awaits the
same task and observes the same result or the same exception; the cell is
cleared as soon as the attempt settles, so a failed attempt is never handed
to a later caller.

Key Concepts:
- At most one attempt in flight per SingleFlight instance
- Joiners share the outcome of the in-flight attempt
- Cancelling one caller does not cancel the shared attempt
"""

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """
    Guarded "in-progress future" cell.

    The check-then-set on the cell is protected by a lock and contains no
    suspension point, so two callers can never both start an attempt. All
    callers must run on the event loop that owns the in-flight task.

    Example:
        >>> flight = SingleFlight(name="mongo-connect")
        >>> connection = await flight.do(lambda: driver.connect(settings))
    """

    def __init__(self, name: str = "single-flight"):
        self.name = name
        self._lock = threading.Lock()
        self._task: Optional[asyncio.Future] = None
        self._started = 0
        self._joined = 0

    @property
    def in_flight(self) -> bool:
        """True while an attempt is running."""
        with self._lock:
            return self._task is not None and not self._task.done()

    async def do(self, factory: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``factory()`` unless an attempt is already in flight, then await it.

        Args:
            factory: Zero-argument callable returning an awaitable. Only
                     invoked when this caller starts a new attempt.

        Returns:
            The result of the shared attempt.

        Raises:
            Whatever the shared attempt raised, unchanged.
        """
        with self._lock:
            task = self._task
            if task is None or task.done():
                task = asyncio.ensure_future(factory())
                task.add_done_callback(self._clear)
                self._task = task
                self._started += 1
                logger.debug(f"[{self.name}] started new attempt #{self._started}")
            else:
                self._joined += 1
                logger.debug(f"[{self.name}] joined in-flight attempt")
        return await asyncio.shield(task)

    async def wait(self) -> None:
        """
        Wait for the in-flight attempt, if any, to settle.

        The attempt's outcome belongs to the callers of ``do()``; a failure
        is not raised here.
        """
        with self._lock:
            task = self._task
        if task is None:
            return
        await asyncio.wait({task})

    def _clear(self, task: asyncio.Future) -> None:
        with self._lock:
            if self._task is task:
                self._task = None
        if not task.cancelled():
            # Mark the exception as retrieved; every caller may have been cancelled.
            task.exception()

    def get_metrics(self) -> Dict[str, Any]:
        """Counters for monitoring."""
        with self._lock:
            return {
                "attempts_started": self._started,
                "callers_joined": self._joined,
                "in_flight": self._task is not None and not self._task.done(),
            }

    def __repr__(self) -> str:
        return f"SingleFlight(name={self.name!r}, in_flight={self.in_flight})"
