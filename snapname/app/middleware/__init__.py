"""Middleware package for SnapName."""

from snapname.app.middleware.deadline import RequestDeadlineMiddleware, get_deadline
from snapname.app.middleware.rate_limit import (
    RateLimitMiddleware,
    RateLimitResult,
    RateLimitSweeper,
    SlidingWindowRateLimiter,
)
from snapname.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "RequestDeadlineMiddleware",
    "get_deadline",
    "RateLimitMiddleware",
    "RateLimitResult",
    "RateLimitSweeper",
    "SlidingWindowRateLimiter",
    "RequestIdMiddleware",
    "get_request_id",
]
