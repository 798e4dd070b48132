from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from snapname.app.api.image import router as image_router
from snapname.app.core.cache import get_cache
from snapname.app.core.config import settings
from snapname.app.core.http_client import init_http_client
from snapname.app.core.logging import get_logger, setup_logging
from snapname.app.exceptions import SnapNameException
from snapname.app.middleware.deadline import RequestDeadlineMiddleware
from snapname.app.middleware.rate_limit import (
    RateLimitMiddleware,
    RateLimitSweeper,
    SlidingWindowRateLimiter,
)
from snapname.app.middleware.request_id import RequestIdMiddleware, get_request_id
from snapname.app.providers.base import GenerationService, ImageStore
from snapname.app.providers.factory import create_generation_service, create_image_store
from snapname.app.providers.health import ProviderHealthChecker
from snapname.app.providers.retry import RetryPolicy
from snapname.app.services.images import ImageService
from snapname.app.services.nickname import NicknameService

# Upstream statuses shown to the client as-is; others become 502
PASSTHROUGH_UPSTREAM_STATUSES = frozenset({400, 401, 429})


def create_app(
    image_store: Optional[ImageStore] = None,
    generator: Optional[GenerationService] = None,
    limiter: Optional[SlidingWindowRateLimiter] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        image_store: Image store to use instead of the configured one
        generator: Generation service to use instead of the configured one
        limiter: Rate limiter to use instead of one built from settings
        retry_policy: Retry policy for upstream calls; settings by default

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    if limiter is None:
        limiter = SlidingWindowRateLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    if retry_policy is None:
        retry_policy = RetryPolicy.from_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Create shared resources on startup and release them on shutdown."""
        async with init_http_client() as http_client:
            store = image_store if image_store is not None else create_image_store(http_client)
            gen = generator if generator is not None else create_generation_service(http_client)
            nickname_cache = get_cache("nickname", default_ttl=settings.nickname_cache_ttl)

            app.state.rate_limiter = limiter
            app.state.nickname_cache = nickname_cache
            app.state.image_store = store
            app.state.generator = gen
            app.state.nickname_service = NicknameService(
                generator=gen,
                cache=nickname_cache,
                retry_policy=retry_policy,
                cache_ttl=settings.nickname_cache_ttl,
            )
            app.state.image_service = ImageService(
                store=store,
                generator=gen,
                retry_policy=retry_policy,
                folder=settings.cloudinary_folder,
                max_dimension=settings.max_image_dimension,
            )

            sweeper = RateLimitSweeper(limiter, interval=settings.rate_limit_sweep_interval_seconds)
            app.state.rate_limit_sweeper = sweeper
            await sweeper.start()

            health_checker = ProviderHealthChecker(check_interval=settings.health_check_interval_seconds)
            health_checker.register_provider(store)
            health_checker.register_provider(gen)
            app.state.health_checker = health_checker
            await health_checker.start()

            logger.info(
                "Application startup complete",
                extra={
                    "image_store": store.name,
                    "generator": gen.name,
                    "rate_limit": f"{limiter.max_requests}/{limiter.window_seconds}s",
                },
            )
            try:
                yield
            finally:
                await health_checker.stop()
                await sweeper.stop()
                logger.info("Application shutdown complete")

    app = FastAPI(
        title="SnapName API",
        description="Upload an image, get an AI-generated nickname",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Middleware order: last added = first executed
    app.add_middleware(RequestDeadlineMiddleware, timeout=settings.request_timeout_seconds)
    if settings.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            limiter=limiter,
            trust_forwarded_for=settings.rate_limit_trust_forwarded_for,
        )
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
    )

    app.include_router(image_router)

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        """Health check with cache, rate limiter and provider status.

        Provider status is the last background check result; this endpoint
        never calls upstream services itself.
        """
        state = request.app.state
        health_status: dict[str, Any] = {"status": "ok", "components": {}}

        health_status["components"]["cache"] = {
            "status": "ok",
            "entries": len(state.nickname_cache),
        }
        health_status["components"]["rate_limiter"] = {
            "status": "ok",
            "tracked_clients": len(state.rate_limiter),
            "sweeper_running": state.rate_limit_sweeper.running,
        }

        providers = state.health_checker.get_all_status()
        if not all(providers.values()):
            health_status["status"] = "degraded"
        health_status["components"]["providers"] = {
            "status": "ok" if all(providers.values()) else "degraded",
            "details": providers,
        }
        return health_status

    @app.exception_handler(SnapNameException)
    async def app_exception_handler(request: Request, exc: SnapNameException) -> JSONResponse:
        """Render application errors with their own status code."""
        if exc.status_code >= 500:
            logger.error(
                f"{type(exc).__name__}: {exc.message}",
                extra={"request_id": get_request_id(request), "path": request.url.path},
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.message},
        )

    @app.exception_handler(httpx.HTTPStatusError)
    async def upstream_status_handler(request: Request, exc: httpx.HTTPStatusError) -> JSONResponse:
        """Surface an upstream HTTP failure that survived the retry policy."""
        upstream_status = exc.response.status_code
        status_code = upstream_status if upstream_status in PASSTHROUGH_UPSTREAM_STATUSES else 502
        logger.warning(
            f"Upstream request failed with HTTP {upstream_status}: {exc.request.url}",
            extra={"request_id": get_request_id(request), "status_code": upstream_status},
        )
        messages = {
            400: "Upstream service rejected the request.",
            401: "Upstream service rejected the credentials.",
            429: "Upstream rate limit exceeded. Please try again later.",
        }
        return JSONResponse(
            status_code=status_code,
            content={
                "success": False,
                "error": messages.get(status_code, "Upstream service error."),
            },
        )

    @app.exception_handler(httpx.TransportError)
    async def upstream_transport_handler(request: Request, exc: httpx.TransportError) -> JSONResponse:
        logger.warning(
            f"Upstream unreachable: {type(exc).__name__}: {exc}",
            extra={"request_id": get_request_id(request)},
        )
        return JSONResponse(
            status_code=503,
            content={"success": False, "error": "Upstream service unavailable. Please try again later."},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns the traceback to the client; it is logged server-side.
        """
        request_id = get_request_id(request)
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={"request_id": request_id, "exception_type": type(exc).__name__},
        )

        content: dict[str, Any] = {"success": False, "error": "Internal server error"}
        if settings.debug:
            content["error"] = str(exc)
            content["exception_type"] = type(exc).__name__
        return JSONResponse(status_code=500, content=content)

    return app


app = create_app()
