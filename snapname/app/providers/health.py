"""Background health checking for upstream providers.

Upstream health probes cost real API calls (Cloudinary's usage endpoint is
quota limited), so they run on an interval and /health only reads the last
result.
"""

import asyncio
from typing import Dict, Optional, Union

from snapname.app.core.logging import get_logger
from snapname.app.providers.base import GenerationService, ImageStore

logger = get_logger(__name__)

Provider = Union[ImageStore, GenerationService]


class ProviderHealthChecker:
    """Tracks provider health with periodic background checks.

    Usage:
        checker = ProviderHealthChecker(check_interval=30.0)
        checker.register_provider(store)
        checker.register_provider(generator)

        await checker.start()   # runs the first check before returning
        checker.get_all_status()
        await checker.stop()
    """

    def __init__(self, check_interval: float = 30.0):
        if check_interval <= 0:
            raise ValueError("check_interval must be positive")
        self._providers: Dict[str, Provider] = {}
        self._health_status: Dict[str, bool] = {}
        self._check_interval = check_interval
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    def register_provider(self, provider: Provider, name: Optional[str] = None) -> None:
        """Register a provider under ``name`` (its ``name`` attribute by default)."""
        name = name or provider.name
        self._providers[name] = provider
        # Healthy until the first check says otherwise
        self._health_status[name] = True
        logger.debug(f"Registered provider '{name}' for health checks")

    def is_healthy(self, name: str) -> bool:
        return self._health_status.get(name, False)

    def get_all_status(self) -> Dict[str, bool]:
        """Last known health of every registered provider."""
        return self._health_status.copy()

    @property
    def running(self) -> bool:
        return self._task is not None

    async def check_all(self) -> Dict[str, bool]:
        """Run health checks for all registered providers.

        Returns:
            Updated health status dictionary
        """
        results = {}
        for name, provider in self._providers.items():
            try:
                is_healthy = await provider.health_check()
            except Exception as e:
                logger.warning(f"Health check failed for '{name}': {e}", extra={"upstream": name})
                is_healthy = False

            if self._health_status.get(name) != is_healthy:
                if is_healthy:
                    logger.info(f"Provider '{name}' is now healthy", extra={"upstream": name})
                else:
                    logger.warning(f"Provider '{name}' is now unhealthy", extra={"upstream": name})

            self._health_status[name] = is_healthy
            results[name] = is_healthy
        return results

    async def start(self) -> None:
        """Check every provider once, then keep checking in the background."""
        if self._task is not None:
            logger.debug("Health checker already running")
            return

        await self.check_all()
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_checks())
        logger.info(f"Started health checker (interval: {self._check_interval}s)")

    async def stop(self) -> None:
        """Stop the background health check task."""
        if self._task is None:
            return

        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Health check task did not stop gracefully, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
            logger.info("Stopped health checker")

    async def _run_checks(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._check_interval)
            except asyncio.TimeoutError:
                await self.check_all()
