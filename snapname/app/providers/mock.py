"""Mock providers for testing purposes.

These providers simulate the image store and the generation service
without making external API calls. They are useful for local development
and tests when real credentials are not available.

Enable by setting environment variable:
    SNAPNAME_MOCK_PROVIDERS=true
"""

import asyncio
import hashlib
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional

from snapname.app.providers.base import GenerationService, ImageStore, UploadedImage

_ADJECTIVES = ["Sunny", "Cosmic", "Mellow", "Dashing", "Velvet", "Turbo", "Misty", "Zippy"]
_NOUNS = ["Otter", "Comet", "Pebble", "Falcon", "Maple", "Pixel", "Nova", "Biscuit"]


class _FailureQueue:
    """Exceptions to raise, one per call, before calls start succeeding."""

    def __init__(self, failures: Optional[Iterable[BaseException]] = None):
        self._pending: List[BaseException] = list(failures or [])

    def add(self, *failures: BaseException) -> None:
        self._pending.extend(failures)

    def raise_next(self) -> None:
        if self._pending:
            raise self._pending.pop(0)


class MockImageStore(ImageStore):
    """In-process image store keeping uploads in a dict."""

    name = "mock_image_store"

    def __init__(
        self,
        base_url: str = "https://mock.images.local",
        failures: Optional[Iterable[BaseException]] = None,
        latency: float = 0.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.failures = _FailureQueue(failures)
        self.latency = latency
        self.images: Dict[str, Dict[str, Any]] = {}
        self.calls: Dict[str, int] = {"upload": 0, "destroy": 0, "search": 0}

    async def _simulate(self, operation: str) -> None:
        self.calls[operation] += 1
        if self.latency:
            await asyncio.sleep(self.latency)
        self.failures.raise_next()

    async def upload(
        self,
        file: str,
        folder: Optional[str] = None,
        transformation: Optional[str] = None,
    ) -> UploadedImage:
        await self._simulate("upload")
        name = uuid.uuid4().hex[:12]
        public_id = f"{folder}/{name}" if folder else name
        url = f"{self.base_url}/{public_id}.png"
        self.images[public_id] = {
            "public_id": public_id,
            "secure_url": url,
            "folder": folder or "",
            "created_at": time.time(),
        }
        return UploadedImage(url=url, public_id=public_id)

    async def destroy(self, public_id: str) -> bool:
        await self._simulate("destroy")
        return self.images.pop(public_id, None) is not None

    async def search(self, expression: str, max_results: int = 100) -> List[Dict[str, Any]]:
        """Supports the ``folder:<name>`` term; other terms are ignored."""
        await self._simulate("search")
        folder = None
        for term in expression.split(" AND "):
            if term.strip().startswith("folder:"):
                folder = term.strip()[len("folder:"):]
        resources = [
            image for image in self.images.values()
            if folder is None or image["folder"] == folder
        ]
        resources.sort(key=lambda image: image["created_at"], reverse=True)
        return resources[:max_results]

    async def health_check(self, timeout: float = 2.0) -> bool:
        return True


class MockGenerationService(GenerationService):
    """Generation service returning deterministic text and URLs."""

    name = "mock_generation"

    def __init__(
        self,
        failures: Optional[Iterable[BaseException]] = None,
        latency: float = 0.0,
    ):
        self.failures = _FailureQueue(failures)
        self.latency = latency
        self.calls: Dict[str, int] = {"chat": 0, "describe_image": 0, "generate_image": 0}

    async def _simulate(self, operation: str) -> None:
        self.calls[operation] += 1
        if self.latency:
            await asyncio.sleep(self.latency)
        self.failures.raise_next()

    @staticmethod
    def _pick(seed: str) -> str:
        digest = hashlib.sha256(seed.encode()).digest()
        return f"{_ADJECTIVES[digest[0] % len(_ADJECTIVES)]} {_NOUNS[digest[1] % len(_NOUNS)]}"

    async def chat(self, messages: List[Dict[str, Any]], **model_params: Any) -> str:
        await self._simulate("chat")
        last_user = ""
        for msg in reversed(messages):
            if msg.get("role") == "user":
                last_user = str(msg.get("content", ""))
                break
        return self._pick(last_user)

    async def describe_image(self, image_url: str) -> str:
        await self._simulate("describe_image")
        return f"A bright, playful picture ({self._pick(image_url).lower()} vibes)."

    async def generate_image(self, prompt: str) -> str:
        await self._simulate("generate_image")
        digest = hashlib.sha256(prompt.encode()).hexdigest()[:16]
        return f"https://mock.generated.local/{digest}.png"

    async def health_check(self, timeout: float = 2.0) -> bool:
        return True
