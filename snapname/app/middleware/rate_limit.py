"""Rate limiting for the SnapName API.

Each client key keeps a log of its request timestamps. A request is
admitted while fewer than ``max_requests`` timestamps fall inside the
trailing window, so the limit holds for every window-sized interval and
not only for calendar-aligned buckets.
"""

import asyncio
import hashlib
import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from snapname.app.core.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    limit: int
    remaining: int
    retry_after: Optional[float] = None


class SlidingWindowRateLimiter:
    """In-memory sliding window rate limiter keyed by client.

    A timestamp ``t`` counts toward a client's usage iff
    ``now - t < window_seconds``. Expired timestamps are dropped whenever
    the client is checked and by :meth:`sweep`; clients left with no
    timestamps are forgotten.

    One lock guards all clients. Every operation is synchronous and bounded,
    so the check-and-record step is atomic for callers on the event loop
    and in worker threads alike.

    Example:
        >>> limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60)
        >>> [limiter.admit("1.2.3.4") for _ in range(3)]
        [True, True, False]
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 900.0,
        clock: Clock = time.monotonic,
    ):
        """Initialize rate limiter.

        Args:
            max_requests: Maximum requests admitted per window
            window_seconds: Length of the trailing window in seconds
            clock: Monotonic time source, injectable for tests
        """
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def _prune(self, timestamps: Deque[float], now: float) -> None:
        while timestamps and now - timestamps[0] >= self.window_seconds:
            timestamps.popleft()

    def check(self, key: str) -> RateLimitResult:
        """Admit or deny one request for ``key``.

        An admitted request is recorded; a denied one leaves the client's
        usage unchanged.
        """
        with self._lock:
            now = self._clock()
            timestamps = self._requests.get(key)
            if timestamps is not None:
                self._prune(timestamps, now)

            if timestamps and len(timestamps) >= self.max_requests:
                return RateLimitResult(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    retry_after=timestamps[0] + self.window_seconds - now,
                )

            if timestamps is None:
                timestamps = deque()
                self._requests[key] = timestamps
            timestamps.append(now)

            return RateLimitResult(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - len(timestamps),
            )

    def admit(self, key: str) -> bool:
        """Return True and record the request if ``key`` is under its limit."""
        return self.check(key).allowed

    def usage(self, key: str) -> int:
        """Number of requests from ``key`` inside the current window."""
        with self._lock:
            timestamps = self._requests.get(key)
            if timestamps is None:
                return 0
            self._prune(timestamps, self._clock())
            if not timestamps:
                del self._requests[key]
                return 0
            return len(timestamps)

    def reset(self, key: Optional[str] = None) -> None:
        """Forget ``key``, or every client when no key is given."""
        with self._lock:
            if key is None:
                self._requests.clear()
            else:
                self._requests.pop(key, None)

    def sweep(self) -> int:
        """Drop expired timestamps for every client.

        Returns:
            Number of clients removed because they had no live requests.
        """
        with self._lock:
            now = self._clock()
            idle = []
            for key, timestamps in self._requests.items():
                self._prune(timestamps, now)
                if not timestamps:
                    idle.append(key)
            for key in idle:
                del self._requests[key]
        return len(idle)

    def __len__(self) -> int:
        """Number of clients currently tracked."""
        with self._lock:
            return len(self._requests)


class RateLimitSweeper:
    """Background task that periodically sweeps a rate limiter.

    Usage:
        sweeper = RateLimitSweeper(limiter, interval=60.0)
        await sweeper.start()
        ...
        await sweeper.stop()
    """

    def __init__(self, limiter: SlidingWindowRateLimiter, interval: float = 60.0):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._limiter = limiter
        self._interval = interval
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        """Start the background sweep task."""
        if self._task is not None:
            logger.debug("Rate limit sweeper already running")
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Started rate limit sweeper (interval: {self._interval}s)")

    async def stop(self) -> None:
        """Stop the background sweep task."""
        if self._task is None:
            return

        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Rate limit sweeper did not stop gracefully, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
            logger.info("Stopped rate limit sweeper")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                removed = self._limiter.sweep()
                if removed:
                    logger.debug(f"Rate limit sweep removed {removed} idle clients")


def get_client_ip(request: Request, trust_forwarded_for: bool = False) -> str:
    """Client address used for rate limiting.

    The peer address, unless ``trust_forwarded_for`` is set, in which case
    the first X-Forwarded-For hop wins. Only a proxy in front of the service
    can vouch for that header; any client can send it.
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()
            if client_ip:
                return client_ip
    return request.client.host if request.client else "unknown"


def client_key_for(request: Request, trust_forwarded_for: bool = False) -> str:
    """Rate limit key for the request.

    The IP is hashed so raw addresses are not kept in memory or logs.
    """
    client_ip = get_client_ip(request, trust_forwarded_for)
    ip_hash = hashlib.sha256(client_ip.encode()).hexdigest()[:32]
    return f"ratelimit:ip:{ip_hash}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce per-client rate limits on requests.

    Denied requests get HTTP 429 without reaching the route. The limiter
    instance is owned by the application and passed in, so the sweeper and
    the health endpoint see the same state.
    """

    def __init__(
        self,
        app,
        limiter: SlidingWindowRateLimiter,
        exempt_paths: tuple[str, ...] = ("/health",),
        trust_forwarded_for: bool = False,
    ):
        super().__init__(app)
        self.limiter = limiter
        self.exempt_paths = exempt_paths
        self.trust_forwarded_for = trust_forwarded_for

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        if request.url.path in self.exempt_paths or request.method == "OPTIONS":
            return await call_next(request)

        key = client_key_for(request, self.trust_forwarded_for)
        request.state.client_key = key
        result = self.limiter.check(key)

        if not result.allowed:
            retry_after = max(1, math.ceil(result.retry_after or 0))
            logger.debug(
                "Rate limit exceeded",
                extra={"client_key": key, "path": request.url.path},
            )
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": "Too many requests. Please try again later.",
                    "retryAfter": retry_after,
                },
                headers={
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                    "Retry-After": str(retry_after),
                },
            )

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)

        return response
