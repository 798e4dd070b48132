"""OpenAI API provider implementation.

Compatible with the OpenAI API and other OpenAI-compatible endpoints.
Upstream HTTP failures surface as ``httpx.HTTPStatusError`` so the retry
executor can classify them by status code.
"""

from typing import Any, Dict, List, Optional

import httpx

from snapname.app.core.logging import get_logger
from snapname.app.exceptions import UpstreamServiceError
from snapname.app.providers.base import GenerationService, HTTPProvider

logger = get_logger(__name__)

DESCRIBE_SYSTEM_PROMPT = (
    "You are an expert at analyzing images and creating concise, descriptive "
    "summaries that capture the essence of what you see."
)
DESCRIBE_USER_PROMPT = (
    "Please provide a brief description focusing on notable features, colors, "
    "and characteristics that could inspire a creative nickname."
)


class OpenAIProvider(HTTPProvider, GenerationService):
    """OpenAI chat, vision and image generation client.

    If http_client is provided, it will be used for all requests (connection reuse).
    If not, a new client is created per-request.
    """

    name = "openai"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        organization: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        vision_model: str = "gpt-4o-mini",
        chat_model: str = "gpt-4o-mini",
        image_model: str = "dall-e-3",
    ):
        super().__init__(base_url, http_client, timeout)
        self.api_key = api_key
        self.vision_model = vision_model
        self.chat_model = chat_model
        self.image_model = image_model
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        if organization:
            self.headers["OpenAI-Organization"] = organization

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = self._get_endpoint_url(endpoint)
        async with self._client_context() as client:
            resp = await client.post(url, headers=self.headers, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()

    async def chat(self, messages: List[Dict[str, Any]], **model_params: Any) -> str:
        """Send a chat completion request and return the first choice's text.

        Args:
            messages: Chat messages in OpenAI format
            **model_params: model, max_tokens, temperature, ...

        Raises:
            httpx.HTTPStatusError: If the API returns an error
            UpstreamServiceError: If the response has no content
        """
        payload = {"model": self.chat_model, **model_params, "messages": messages}
        data = await self._post("/chat/completions", payload)

        choices = data.get("choices") or []
        content = (choices[0].get("message") or {}).get("content") if choices else None
        if not content or not content.strip():
            raise UpstreamServiceError(self.name, "Empty completion from generation service")
        return content.strip()

    async def describe_image(self, image_url: str) -> str:
        messages = [
            {"role": "system", "content": DESCRIBE_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": DESCRIBE_USER_PROMPT},
                    {"type": "image_url", "image_url": {"url": image_url}},
                ],
            },
        ]
        return await self.chat(messages, model=self.vision_model, max_tokens=150)

    async def generate_image(self, prompt: str) -> str:
        """Generate one 1024x1024 image and return its URL."""
        payload = {
            "model": self.image_model,
            "prompt": prompt,
            "n": 1,
            "size": "1024x1024",
            "quality": "standard",
            "response_format": "url",
        }
        data = await self._post("/images/generations", payload)

        items = data.get("data") or []
        url = items[0].get("url") if items else None
        if not url:
            raise UpstreamServiceError(self.name, "Failed to generate image")
        return url

    async def health_check(self, timeout: float = 2.0) -> bool:
        """Check if the OpenAI provider is healthy via the /models endpoint."""
        try:
            url = self._get_endpoint_url("/models")
            async with self._client_context() as client:
                resp = await client.get(url, headers=self.headers, timeout=timeout)
                return resp.status_code == 200
        except httpx.HTTPError as e:
            logger.debug(f"OpenAI health check failed: {e}")
            return False
