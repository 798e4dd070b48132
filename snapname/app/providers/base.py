from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx


@dataclass
class UploadedImage:
    """An image held by the image store."""
    url: str
    public_id: str


class ImageStore(ABC):
    """Interface of the upstream image store."""

    name: str = "image_store"

    @abstractmethod
    async def upload(
        self,
        file: str,
        folder: Optional[str] = None,
        transformation: Optional[str] = None,
    ) -> UploadedImage:
        """Upload an image given as a data URI or a remote URL."""

    @abstractmethod
    async def destroy(self, public_id: str) -> bool:
        """Delete an image. Returns False if no such image exists."""

    @abstractmethod
    async def search(self, expression: str, max_results: int = 100) -> List[Dict[str, Any]]:
        """Return resources matching a search expression, newest first."""

    @abstractmethod
    async def health_check(self, timeout: float = 2.0) -> bool:
        """Check if the store is reachable."""


class GenerationService(ABC):
    """Interface of the upstream language/vision/image model service."""

    name: str = "generation"

    @abstractmethod
    async def chat(self, messages: List[Dict[str, Any]], **model_params: Any) -> str:
        """Run a chat completion and return the assistant text."""

    @abstractmethod
    async def describe_image(self, image_url: str) -> str:
        """Describe an image for nickname inspiration."""

    @abstractmethod
    async def generate_image(self, prompt: str) -> str:
        """Generate an image and return its temporary URL."""

    @abstractmethod
    async def health_check(self, timeout: float = 2.0) -> bool:
        """Check if the service is reachable."""


class HTTPProvider:
    """Common HTTP client management for REST providers.

    Providers can accept an external httpx.AsyncClient for connection
    pooling, or create a short-lived one per request if not provided.
    """

    def __init__(
        self,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0
    ):
        """Initialize the provider.

        Args:
            base_url: The API base URL
            http_client: Optional shared HTTP client for connection pooling
            timeout: Request timeout in seconds
        """
        self._http_client = http_client
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client
        # Fallback: create a new client (not recommended for production)
        return httpx.AsyncClient(timeout=self.timeout)

    @asynccontextmanager
    async def _client_context(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the shared client, or a per-request client closed afterwards."""
        client = self._get_client()
        is_shared = self._http_client is not None
        try:
            yield client
        finally:
            if not is_shared:
                await client.aclose()

    def _get_endpoint_url(self, endpoint: str) -> str:
        """Build full URL for an API endpoint (e.g. "/chat/completions")."""
        return f"{self.base_url}{endpoint}"
