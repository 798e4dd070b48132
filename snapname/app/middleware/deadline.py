"""Per-request deadline for routes that call upstream services.

The middleware only stamps the deadline on ``request.state``; the retry
executor is what enforces it, so a slow upstream cannot hold a request past
its budget no matter how many attempts remain.
"""

import asyncio
from typing import Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint


class RequestDeadlineMiddleware(BaseHTTPMiddleware):
    """Attach an absolute event loop deadline to matching requests.

    Args:
        timeout: Budget in seconds for the whole request
        path_fragments: Requests whose path contains any of these get a
            deadline; others run unbounded
    """

    def __init__(
        self,
        app,
        timeout: float = 30.0,
        path_fragments: tuple[str, ...] = ("/api/image/upload", "/api/image/generate"),
    ):
        super().__init__(app)
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.timeout = timeout
        self.path_fragments = path_fragments

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if any(fragment in path for fragment in self.path_fragments):
            request.state.deadline = asyncio.get_running_loop().time() + self.timeout
        return await call_next(request)


def get_deadline(request: Request) -> Optional[float]:
    """Deadline stamped on the request, or None when unbounded."""
    return getattr(request.state, "deadline", None)
