"""
Per-backend call gate

Wraps one backend adapter with a concurrency cap, start spacing, retry with
exponential backoff and auth latching.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from collie.api.base import BackendAdapter
from collie.api.error_handler import (
    BackendDisabledError,
    BackoffPolicy,
    ErrorCategory,
    ScrapeCancelled,
    categorize_error,
)

logger = logging.getLogger(__name__)


class RateGate:
    """
    Concurrency and pacing limiter for a single backend

    Features:
    - At most max_concurrent calls in flight
    - Call starts spaced at least min_interval apart
    - Retry on rate limit / network errors with exponential backoff
    - Backend disabled for the rest of the session after an auth failure
    - Backoff sleeps wake early when the session is cancelled

    Example:
        gate = RateGate(adapter, max_concurrent=1, min_interval=1.2,
                        cancel_event=session_cancel)

        match = await gate.call(adapter.search_metadata, rom, credentials)
    """

    def __init__(
        self,
        adapter: BackendAdapter,
        max_concurrent: int = 1,
        min_interval: float = 0.0,
        policy: Optional[BackoffPolicy] = None,
        cancel_event: Optional[asyncio.Event] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize rate gate

        Args:
            adapter: Backend adapter whose calls go through this gate
            max_concurrent: Maximum calls in flight at once
            min_interval: Minimum seconds between call starts
            policy: Retry/backoff settings (default: BackoffPolicy())
            cancel_event: Session cancellation signal
            clock: Monotonic time source
        """
        self.adapter = adapter
        self.max_concurrent = max(1, int(max_concurrent))
        self.min_interval = max(0.0, float(min_interval))
        self.policy = policy or BackoffPolicy()
        self.cancel_event = cancel_event or asyncio.Event()
        self._clock = clock

        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._pacing_lock = asyncio.Lock()
        self._next_start = 0.0
        self._disabled_reason: Optional[str] = None

        # Stats
        self._calls = 0
        self._retries = 0
        self._failures = 0
        self._in_flight = 0

        logger.debug(
            "Rate gate for %s: max %s concurrent, %.2fs spacing, %s attempts",
            adapter.name,
            self.max_concurrent,
            self.min_interval,
            self.policy.max_attempts
        )

    @classmethod
    def from_config(
        cls,
        adapter: BackendAdapter,
        backend_config: Optional[Dict[str, Any]] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> 'RateGate':
        """
        Create a gate from a `backends.<key>` configuration section.

        Args:
            adapter: Backend adapter
            backend_config: Section with max_concurrent, min_interval,
                max_attempts, initial_delay, multiplier, max_delay
            cancel_event: Session cancellation signal

        Returns:
            Configured RateGate
        """
        section = backend_config or {}
        defaults = BackoffPolicy()
        policy = BackoffPolicy(
            max_attempts=int(section.get('max_attempts', defaults.max_attempts)),
            initial_delay=float(section.get('initial_delay', defaults.initial_delay)),
            multiplier=float(section.get('multiplier', defaults.multiplier)),
            max_delay=float(section.get('max_delay', defaults.max_delay)),
        )
        return cls(
            adapter,
            max_concurrent=section.get('max_concurrent', 1),
            min_interval=section.get('min_interval', 0.0),
            policy=policy,
            cancel_event=cancel_event
        )

    @property
    def name(self) -> str:
        return self.adapter.name

    @property
    def is_disabled(self) -> bool:
        """True once the backend rejected our credentials this session."""
        return self._disabled_reason is not None

    @property
    def disabled_reason(self) -> Optional[str]:
        return self._disabled_reason

    async def call(self, operation: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Run one adapter operation through the gate.

        Args:
            operation: Bound adapter coroutine function
            *args, **kwargs: Passed to the operation

        Returns:
            Whatever the operation returns

        Raises:
            BackendDisabledError: Backend latched off after an auth failure
            ScrapeCancelled: Session was stopped
            BackendError: Final error once retries are exhausted, or any
                non-retryable error
        """
        attempt = 0

        while True:
            self._check_open()
            attempt += 1

            async with self._semaphore:
                await self._reserve_start()
                self._check_open()

                self._calls += 1
                self._in_flight += 1
                try:
                    return await operation(*args, **kwargs)
                except Exception as e:
                    error, category = categorize_error(e)
                finally:
                    self._in_flight -= 1

            if category == ErrorCategory.AUTH:
                self._failures += 1
                if self._disabled_reason is None:
                    self._disabled_reason = str(error)
                    logger.error(f"{self.name} disabled for this session: {error}")
                raise error

            if category == ErrorCategory.CANCELLED:
                raise error

            if category != ErrorCategory.RETRYABLE:
                self._failures += 1
                raise error

            if attempt >= self.policy.max_attempts:
                self._failures += 1
                logger.warning(
                    f"{self.name}: giving up after {attempt} attempts: {error}"
                )
                raise error

            delay = self.policy.delay_for(attempt, getattr(error, 'retry_after', None))
            self._retries += 1
            logger.warning(
                f"{self.name}: {error} (attempt {attempt}/{self.policy.max_attempts}), "
                f"backing off {delay:.1f}s"
            )
            # Sleep outside the semaphore so other callers keep the slot busy
            await self._sleep(delay)

    def _check_open(self) -> None:
        if self.cancel_event.is_set():
            raise ScrapeCancelled()
        if self._disabled_reason is not None:
            raise BackendDisabledError(
                f"{self.name} disabled: {self._disabled_reason}"
            )

    async def _reserve_start(self) -> None:
        """Claim the next start slot, then wait for it without holding the lock."""
        async with self._pacing_lock:
            now = self._clock()
            start = max(now, self._next_start)
            self._next_start = start + self.min_interval

        wait_time = start - now
        if wait_time > 0:
            await self._sleep(wait_time)

    async def _sleep(self, seconds: float) -> None:
        """Sleep, waking early with ScrapeCancelled if the session stops."""
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self.cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise ScrapeCancelled()

    def get_stats(self) -> Dict[str, Any]:
        """
        Get gate statistics

        Returns:
            Dictionary with calls, retries, failures, in_flight and disabled
        """
        return {
            'backend': self.name,
            'calls': self._calls,
            'retries': self._retries,
            'failures': self._failures,
            'in_flight': self._in_flight,
            'disabled': self.is_disabled,
        }
