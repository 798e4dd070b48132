"""Retry mechanism with exponential backoff for upstream services.

This module provides an immutable retry policy, a pure backoff calculation
and an executor that re-invokes an operation on transient failures. The
executor honours a caller-supplied cancellation event and deadline so that
a request's overall time budget bounds every attempt and every wait.
"""

import asyncio
import errno
import functools
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from snapname.app.core.logging import get_logger
from snapname.app.exceptions import RetryCancelledError, RetryTimeoutError

logger = get_logger(__name__)

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Awaitable[Any]])

# Statuses worth repeating: timeouts, upstream throttling and server errors
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

RETRYABLE_ERRNOS = frozenset(
    {
        errno.ECONNRESET,
        errno.ETIMEDOUT,
        errno.ECONNREFUSED,
        errno.EPIPE,
        errno.EHOSTUNREACH,
    }
)


def is_transient_error(exc: BaseException) -> bool:
    """Default classifier: True for failures that may succeed on retry.

    Transient failures are network level errors (connection reset or
    refused, timeouts) and HTTP responses with a status in
    ``RETRYABLE_STATUS_CODES``. Everything else, including 4xx client
    errors such as 400 and 401, is permanent.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return True
    if isinstance(exc, OSError):
        return exc.errno in RETRYABLE_ERRNOS
    return False


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry behavior with exponential backoff.

    Attributes:
        max_attempts: Total number of attempts, including the first (default: 3)
        initial_delay: Delay after the first failed attempt in seconds (default: 1.0)
        max_delay: Upper bound for any single delay in seconds (default: 10.0)
        backoff_factor: Multiplier applied per failed attempt (default: 2.0)
        retryable_classifier: Predicate deciding whether an error is transient

    Example:
        >>> policy = RetryPolicy(max_attempts=3, initial_delay=1.0)
        >>> policy.calculate_delay(2)  # delay before the third attempt
        2.0
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2.0
    retryable_classifier: Callable[[BaseException], bool] = is_transient_error

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays cannot be negative")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be at least 1")

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        """Build the application-wide policy from settings."""
        from snapname.app.core.config import settings

        return cls(
            max_attempts=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
            backoff_factor=settings.retry_backoff_factor,
        )

    def calculate_delay(self, attempt: int) -> float:
        """Delay to wait after failed ``attempt`` (1-indexed)."""
        return calculate_backoff(attempt, self)

    def is_retryable(self, exception: BaseException) -> bool:
        """Check if an exception should trigger a retry."""
        return self.retryable_classifier(exception)


def calculate_backoff(attempt: int, policy: RetryPolicy) -> float:
    """Calculate the delay that follows failed attempt number ``attempt``.

    delay = min(initial_delay * backoff_factor ** (attempt - 1), max_delay)

    Pure: computes the value without sleeping, so backoff schedules can be
    checked directly.

    Args:
        attempt: Number of the attempt that just failed (1-indexed)
        policy: Retry policy supplying the parameters

    Returns:
        Delay in seconds
    """
    if attempt < 1:
        raise ValueError("attempt numbers start at 1")
    delay = policy.initial_delay * (policy.backoff_factor ** (attempt - 1))
    return min(delay, policy.max_delay)


def _check_not_aborted(
    attempts: int,
    last_error: Optional[BaseException],
    cancel_event: Optional[asyncio.Event],
    deadline: Optional[float],
    loop: asyncio.AbstractEventLoop,
) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise RetryCancelledError(attempts, last_error) from last_error
    if deadline is not None and loop.time() >= deadline:
        raise RetryTimeoutError(attempts, last_error) from last_error


async def _wait_before_retry(
    delay: float,
    attempts: int,
    last_error: BaseException,
    cancel_event: Optional[asyncio.Event],
    deadline: Optional[float],
    loop: asyncio.AbstractEventLoop,
) -> None:
    """Sleep ``delay`` seconds unless cancelled or the deadline would pass."""
    if cancel_event is not None and cancel_event.is_set():
        raise RetryCancelledError(attempts, last_error) from last_error
    if deadline is not None and loop.time() + delay >= deadline:
        # The next attempt could not start before the deadline.
        raise RetryTimeoutError(attempts, last_error) from last_error

    if cancel_event is None:
        await asyncio.sleep(delay)
        return

    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise RetryCancelledError(attempts, last_error) from last_error


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    cancel_event: Optional[asyncio.Event] = None,
    deadline: Optional[float] = None,
) -> T:
    """Run ``operation`` until it succeeds or the policy gives up.

    Non-retryable failures and the failure of the final attempt are
    re-raised unchanged. Between attempts the executor waits for the
    backoff delay.

    Args:
        operation: Zero-argument callable returning an awaitable
        policy: RetryPolicy configuration. Uses defaults if not provided.
        cancel_event: Set by the caller to abandon the sequence; checked
            before every attempt and interrupts any wait in progress.
        deadline: Absolute event loop time (``loop.time()``) bounding all
            attempts and delays together.

    Raises:
        RetryCancelledError: ``cancel_event`` was set
        RetryTimeoutError: ``deadline`` passed

    Example:
        >>> result = await execute_with_retry(
        ...     lambda: store.upload(data_uri),
        ...     RetryPolicy(max_attempts=3),
        ... )
    """
    retry_policy = policy or RetryPolicy()
    loop = asyncio.get_running_loop()
    target = getattr(operation, "func", operation)  # unwrap functools.partial
    name = getattr(target, "__qualname__", type(operation).__name__)
    last_error: Optional[BaseException] = None

    for attempt in range(1, retry_policy.max_attempts + 1):
        _check_not_aborted(attempt - 1, last_error, cancel_event, deadline, loop)

        try:
            if deadline is None:
                return await operation()
            return await asyncio.wait_for(operation(), timeout=deadline - loop.time())
        except Exception as e:
            if (
                deadline is not None
                and isinstance(e, asyncio.TimeoutError)
                and loop.time() >= deadline
            ):
                raise RetryTimeoutError(attempt, e) from e

            if not retry_policy.is_retryable(e):
                logger.debug(
                    f"Non-retryable exception in {name}: {type(e).__name__}: {e}",
                    extra={"attempt": attempt},
                )
                raise

            if attempt >= retry_policy.max_attempts:
                logger.warning(
                    f"Max attempts ({retry_policy.max_attempts}) exhausted for {name}: "
                    f"{type(e).__name__}: {e}",
                    extra={"attempt": attempt},
                )
                raise

            last_error = e
            delay = retry_policy.calculate_delay(attempt)
            logger.warning(
                f"Attempt {attempt}/{retry_policy.max_attempts} of {name} failed "
                f"with {type(e).__name__}: {e}. Retrying in {delay:.2f}s...",
                extra={"attempt": attempt},
            )
            await _wait_before_retry(delay, attempt, e, cancel_event, deadline, loop)

    # max_attempts >= 1, so the loop always returns or raises
    raise AssertionError("unreachable")


def with_retry(policy: Optional[RetryPolicy] = None) -> Callable[[F], F]:
    """Decorator that adds retry logic with exponential backoff.

    Example:
        >>> @with_retry(policy=RetryPolicy(max_attempts=3))
        ... async def describe(self, image_url):
        ...     return await self._request(image_url)
    """
    retry_policy = policy or RetryPolicy()

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await execute_with_retry(
                functools.partial(func, *args, **kwargs), retry_policy
            )

        return wrapper  # type: ignore

    return decorator
