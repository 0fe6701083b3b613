"""Engine for executing backend calls under a retry policy.

Implements exponential (or linear) backoff for transient errors such as
timeouts, dropped connections, rate limits (429) or temporary server issues
(5xx). The engine never raises for a failed operation: it returns a
``RetryOutcome`` and leaves raising to the caller.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from typing import (
    Any, Awaitable, Callable, FrozenSet, Generic, Optional, Tuple, TypeVar,
)

from taskgate.domain.errors import (
    ApiError, AuthenticationError, AuthorizationError, NetworkError,
    NotFoundError, RetryExhaustedError, ValidationError,
)
from taskgate.domain.events.api_events import DomainEvent, EventListener, RetryScheduled

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_STATUS_CODES: FrozenSet[int] = frozenset({408, 429, 500, 502, 503, 504})
DEFAULT_RETRYABLE_MESSAGES: Tuple[str, ...] = (
    "network error occurred",
    "timeout",
    "network",
    "connection",
    "econnreset",
    "enotfound",
    "etimedout",
)

# Errors that are never retried, whatever their message says
NON_RETRYABLE_EXCEPTIONS = (ValidationError, AuthenticationError, AuthorizationError, NotFoundError)

# Transport-level failures raised by the runtime itself
TRANSPORT_EXCEPTIONS = (NetworkError, asyncio.TimeoutError, ConnectionError)

RetryPredicate = Callable[[BaseException, int], bool]
RetryCallback = Callable[[BaseException, int, float], Any]
ExhaustedCallback = Callable[[BaseException, int], Any]


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry configuration.

    Delays are in seconds. Between attempt ``i`` and ``i + 1`` the engine
    sleeps ``min(base_delay * backoff_multiplier ** (i - 1), max_delay)``.
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    retryable_status_codes: FrozenSet[int] = DEFAULT_RETRYABLE_STATUS_CODES
    retryable_messages: Tuple[str, ...] = DEFAULT_RETRYABLE_MESSAGES
    should_retry: Optional[RetryPredicate] = field(default=None, compare=False)
    on_retry: Optional[RetryCallback] = field(default=None, compare=False)
    on_max_attempts_reached: Optional[ExhaustedCallback] = field(default=None, compare=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Delays must be non-negative")
        if self.backoff_multiplier < 1:
            raise ValueError(f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}")

    def with_overrides(self, **changes: Any) -> "RetryPolicy":
        """Returns a copy with the given fields replaced."""
        return replace(self, **changes)

    def delay_for(self, attempt: int) -> float:
        """Back-off delay (seconds) after the given 1-based failed attempt."""
        delay = self.base_delay * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_delay)

    @classmethod
    def from_api_settings(cls, api_settings: Any) -> "RetryPolicy":
        """Builds the process-wide default policy from loaded configuration."""
        return cls(
            max_attempts=max(1, int(api_settings.retry_attempts)),
            base_delay=float(api_settings.retry_delay),
            max_delay=float(api_settings.max_delay),
        )


@dataclass
class RetryOutcome(Generic[T]):
    """Result of one ``RetryPolicyEngine.execute`` invocation."""
    success: bool
    attempts: int
    elapsed: float
    result: Optional[T] = None
    error: Optional[RetryExhaustedError] = None

    @property
    def last_error(self) -> Optional[BaseException]:
        """The underlying error of a failed outcome (unwrapped)."""
        return self.error.last_error if self.error is not None else None

    def unwrap(self) -> T:
        """Returns the result, or raises the terminal error."""
        if not self.success:
            raise self.error
        return self.result


def _status_of(error: BaseException) -> Optional[int]:
    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(error, "status", None)
    return status if isinstance(status, int) else None


def is_retryable(error: BaseException, policy: RetryPolicy, attempt: int = 0) -> bool:
    """Classifies an error as transient (retryable) under ``policy``.

    Args:
        error: The exception raised by the operation.
        policy: The active policy (status table, message list, predicate).
        attempt: The 1-based attempt that raised ``error``.

    Returns:
        True if the operation should be attempted again.
    """
    if isinstance(error, NON_RETRYABLE_EXCEPTIONS):
        return False

    if isinstance(error, TRANSPORT_EXCEPTIONS):
        return True

    status = _status_of(error)
    if status is not None:
        if status in policy.retryable_status_codes:
            return True
        if 400 <= status < 500:
            return False

    message = str(error).lower()
    if any(fragment.lower() in message for fragment in policy.retryable_messages):
        return True

    if policy.should_retry is not None:
        return bool(policy.should_retry(error, attempt))

    return False


class RetryPolicyEngine:
    """Executes async operations under a RetryPolicy."""

    def __init__(
        self,
        default_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        event_listener: Optional[EventListener] = None,
    ):
        """Initializes the RetryPolicyEngine.

        Args:
            default_policy: Policy used when ``execute`` is given none.
            sleep: Awaitable sleep; the only suspension point between attempts.
            clock: Monotonic clock used to measure elapsed time.
            event_listener: Optional receiver for RetryScheduled events.
        """
        self.default_policy = default_policy or RetryPolicy()
        self._sleep = sleep
        self._clock = clock
        self._event_listener = event_listener
        logger.info(
            f"RetryPolicyEngine initialized: max_attempts={self.default_policy.max_attempts}, "
            f"base_delay={self.default_policy.base_delay}s, max_delay={self.default_policy.max_delay}s, "
            f"factor={self.default_policy.backoff_multiplier}"
        )

    def _dispatch(self, event: DomainEvent) -> None:
        logger.debug(f"EVENT: {event}")
        if self._event_listener is not None:
            try:
                self._event_listener(event)
            except Exception as e:
                logger.error(f"Event listener failed for {type(event).__name__}: {e}", exc_info=True)

    @staticmethod
    def _notify(callback: Optional[Callable[..., Any]], *args: Any) -> None:
        # Callbacks observe; they never change the retry decision
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Retry callback {getattr(callback, '__name__', callback)!r} raised: {e}", exc_info=True)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: Optional[RetryPolicy] = None,
        operation_name: Optional[str] = None,
    ) -> RetryOutcome[T]:
        """Executes ``operation`` with retries.

        Args:
            operation: Zero-argument callable returning a fresh awaitable per attempt.
            policy: Policy for this call (defaults to the engine's default policy).
            operation_name: Label used in logs and events.

        Returns:
            A RetryOutcome. Failures are reported, not raised.
        """
        active = policy or self.default_policy
        name = operation_name or getattr(operation, "__name__", "operation")
        started = self._clock()

        for attempt in range(1, active.max_attempts + 1):
            try:
                result = await operation()
            except Exception as e:
                elapsed = self._clock() - started
                retryable = is_retryable(e, active, attempt)
                logger.warning(
                    f"Attempt {attempt}/{active.max_attempts} of '{name}' failed: "
                    f"{type(e).__name__}: {e} (retryable={retryable})"
                )

                if attempt >= active.max_attempts or not retryable:
                    logger.error(
                        f"'{name}' failed permanently after {attempt} attempt(s) in {elapsed:.3f}s. Last error: {e}"
                    )
                    self._notify(active.on_max_attempts_reached, e, attempt)
                    return RetryOutcome(
                        success=False,
                        attempts=attempt,
                        elapsed=elapsed,
                        error=RetryExhaustedError(e, attempt, elapsed),
                    )

                delay = active.delay_for(attempt)
                logger.info(f"Retrying '{name}' (attempt {attempt + 1}) in {delay:.2f}s...")
                kind = e.kind.value if isinstance(e, ApiError) else type(e).__name__
                self._dispatch(RetryScheduled(operation=name, attempt_number=attempt, delay_seconds=delay, error_kind=kind))
                self._notify(active.on_retry, e, attempt, delay)
                await self._sleep(delay)
                continue

            elapsed = self._clock() - started
            if attempt > 1:
                logger.info(f"'{name}' succeeded on attempt {attempt} after {elapsed:.3f}s")
            return RetryOutcome(success=True, attempts=attempt, elapsed=elapsed, result=result)

        # The loop always returns; max_attempts >= 1 is enforced by RetryPolicy
        raise AssertionError("unreachable")

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: Optional[RetryPolicy] = None,
        operation_name: Optional[str] = None,
    ) -> T:
        """Like ``execute`` but raises the terminal RetryExhaustedError."""
        outcome = await self.execute(operation, policy, operation_name)
        return outcome.unwrap()

    # --- Convenience variants ---

    async def execute_exponential(self, operation: Callable[[], Awaitable[T]], max_attempts: int = 3) -> RetryOutcome[T]:
        policy = self.default_policy.with_overrides(max_attempts=max_attempts, backoff_multiplier=2.0)
        return await self.execute(operation, policy)

    async def execute_linear(self, operation: Callable[[], Awaitable[T]], max_attempts: int = 3) -> RetryOutcome[T]:
        policy = self.default_policy.with_overrides(max_attempts=max_attempts, backoff_multiplier=1.0)
        return await self.execute(operation, policy)

    async def execute_immediate(self, operation: Callable[[], Awaitable[T]], max_attempts: int = 3) -> RetryOutcome[T]:
        policy = self.default_policy.with_overrides(max_attempts=max_attempts, base_delay=0.0, backoff_multiplier=1.0)
        return await self.execute(operation, policy)

    async def execute_with_strategy(
        self,
        operation: Callable[[], Awaitable[T]],
        strategy: str = "exponential",
        max_attempts: int = 3,
    ) -> RetryOutcome[T]:
        """Dispatches to a convenience variant by name ('exponential', 'linear', 'immediate')."""
        variants = {
            "exponential": self.execute_exponential,
            "linear": self.execute_linear,
            "immediate": self.execute_immediate,
        }
        if strategy not in variants:
            raise ValueError(f"Unknown retry strategy: {strategy!r}")
        return await variants[strategy](operation, max_attempts)
