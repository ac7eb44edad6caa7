"""
Guarded lazy initialization for expensive, process-lifetime resources.

A LazyResource wraps a blocking factory (load a model, open a database).
The first caller starts a single initialization task on the executor; every
concurrent caller awaits that same task, so the factory runs at most once
per attempt no matter how many callers race. A factory that keeps failing is
retried a bounded number of times with exponential backoff, after which the
resource stays FAILED and get() returns None immediately.
"""

import asyncio
import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InitState(Enum):
    """Lifecycle of a lazily initialized resource"""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


@dataclass
class RetryPolicy:
    """
    Bounded retry for resource initialization.

    Attributes:
        max_attempts: Total attempts, including the first
        initial_delay: Seconds to wait after the first failure
        max_delay: Upper bound on any single wait
        backoff_multiplier: Growth factor between waits
    """
    max_attempts: int = 1
    initial_delay: float = 0.5
    max_delay: float = 4.0
    backoff_multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Wait after the given 0-based failed attempt"""
        return min(self.initial_delay * (self.backoff_multiplier ** attempt),
                   self.max_delay)


class LazyResource(Generic[T]):
    """
    At-most-once initialization cell shared by all callers
    """

    def __init__(self,
                 name: str,
                 factory: Callable[[], T],
                 retry: Optional[RetryPolicy] = None,
                 executor: Optional[Executor] = None):
        self.name = name
        self._factory = factory
        self._retry = retry or RetryPolicy()
        self._executor = executor
        self._state = InitState.UNINITIALIZED
        self._value: Optional[T] = None
        self._error: Optional[BaseException] = None
        self._task: Optional[asyncio.Future] = None
        self.attempts = 0
        self._closed = False

    @property
    def state(self) -> InitState:
        return self._state

    @property
    def error(self) -> Optional[BaseException]:
        """Last initialization error, if any"""
        return self._error

    @property
    def value(self) -> Optional[T]:
        """The resource if READY, without triggering initialization"""
        return self._value if self._state is InitState.READY else None

    def close(self):
        """
        Retire the resource; get() returns None from now on.

        The owner releases the underlying object itself.
        """
        self._closed = True
        self._value = None
        if self._state is not InitState.INITIALIZING:
            self._state = InitState.FAILED
            self._error = RuntimeError(f"{self.name} closed")

    async def get(self) -> Optional[T]:
        """
        Return the resource, initializing it on first use.

        Returns None once initialization has permanently failed.
        """
        if self._closed:
            return None
        if self._state is InitState.READY:
            return self._value
        if self._state is InitState.FAILED:
            return None

        # No await between the check and the assignment, so only one
        # caller can create the task
        if self._task is None:
            self._state = InitState.INITIALIZING
            self._task = asyncio.ensure_future(self._initialize())

        # Shielded so a caller that gives up does not abort the shared load
        return await asyncio.shield(self._task)

    async def _initialize(self) -> Optional[T]:
        loop = asyncio.get_running_loop()
        max_attempts = max(1, self._retry.max_attempts)

        try:
            for attempt in range(max_attempts):
                self.attempts += 1
                try:
                    value = await loop.run_in_executor(self._executor, self._factory)
                except Exception as e:
                    self._error = e
                    logger.warning(
                        f"{self.name} initialization failed "
                        f"(attempt {attempt + 1}/{max_attempts}): {e}"
                    )
                    if attempt < max_attempts - 1:
                        delay = self._retry.delay_for(attempt)
                        logger.debug(f"Retrying {self.name} in {delay:.2f}s")
                        await asyncio.sleep(delay)
                    continue

                if self._closed:
                    self._state = InitState.FAILED
                    self._error = RuntimeError(f"{self.name} closed")
                    return None

                self._value = value
                self._state = InitState.READY
                logger.info(f"{self.name} ready")
                return value
        except asyncio.CancelledError:
            # Only happens when the event loop itself is torn down
            self._state = InitState.UNINITIALIZED
            self._task = None
            raise

        self._state = InitState.FAILED
        logger.error(
            f"{self.name} unavailable after {max_attempts} attempt(s); "
            f"dependent operations will return empty results: {self._error}"
        )
        return None
