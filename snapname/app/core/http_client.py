"""Shared HTTP client for upstream calls.

One ``httpx.AsyncClient`` is opened during the application lifespan and
shared by the image store and generation providers so connections are
pooled across requests.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx

from snapname.app.core.config import settings


def _build_timeout() -> httpx.Timeout:
    return httpx.Timeout(
        connect=settings.httpx_connect_timeout,
        read=settings.httpx_read_timeout,
        write=settings.httpx_write_timeout,
        pool=settings.httpx_pool_timeout,
    )


def _build_limits() -> httpx.Limits:
    return httpx.Limits(
        max_connections=settings.httpx_max_connections,
        max_keepalive_connections=settings.httpx_max_keepalive_connections,
        keepalive_expiry=settings.httpx_keepalive_expiry,
    )


@asynccontextmanager
async def init_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Initialize and yield the shared HTTP client.

    Used in the FastAPI lifespan:

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            async with init_http_client() as http_client:
                ...
                yield
    """
    async with httpx.AsyncClient(
        timeout=_build_timeout(), limits=_build_limits()
    ) as client:
        yield client
