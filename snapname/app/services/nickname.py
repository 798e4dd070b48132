"""Nickname generation service.

Puts the TTL cache in front of the two upstream model calls: a cache hit
answers immediately, a miss describes the image and turns the description
into a nickname, each call under the retry policy, then caches the result.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

from snapname.app.core.cache import TTLCache
from snapname.app.core.logging import get_logger
from snapname.app.providers.base import GenerationService
from snapname.app.providers.retry import RetryPolicy, execute_with_retry

logger = get_logger(__name__)

NICKNAME_SYSTEM_PROMPT = (
    "You are a creative nickname generator. Generate a fun, memorable, and "
    "appropriate nickname based on the image description provided. The "
    "nickname should be 1-3 words long and suitable for all audiences."
)


@dataclass
class NicknameResult:
    nickname: str
    analysis: str
    cached: bool = False


class NicknameService:
    """Generates nicknames for images, caching results per image URL."""

    def __init__(
        self,
        generator: GenerationService,
        cache: TTLCache,
        retry_policy: Optional[RetryPolicy] = None,
        cache_ttl: Optional[float] = None,
    ):
        self.generator = generator
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy()
        self.cache_ttl = cache_ttl

    @staticmethod
    def cache_key(image_url: str) -> str:
        return f"nickname:{image_url}"

    async def generate(
        self,
        image_url: str,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        deadline: Optional[float] = None,
    ) -> NicknameResult:
        """Return the nickname for ``image_url``, from cache when possible.

        Raises:
            RetryCancelledError: ``cancel_event`` was set between attempts
            RetryTimeoutError: ``deadline`` passed
            Exception: The upstream failure, unchanged, once retries are exhausted
        """
        key = self.cache_key(image_url)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Nickname cache hit for {key}")
            return NicknameResult(nickname=cached["nickname"], analysis=cached["analysis"], cached=True)

        analysis = await execute_with_retry(
            lambda: self.generator.describe_image(image_url),
            self.retry_policy,
            cancel_event=cancel_event,
            deadline=deadline,
        )
        nickname = await execute_with_retry(
            lambda: self.generator.chat(
                [
                    {"role": "system", "content": NICKNAME_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": f"Based on this image description, generate a creative nickname: {analysis}",
                    },
                ],
                max_tokens=50,
                temperature=0.8,
            ),
            self.retry_policy,
            cancel_event=cancel_event,
            deadline=deadline,
        )
        nickname = nickname.strip().strip('"').strip()

        self.cache.set(key, {"nickname": nickname, "analysis": analysis}, ttl=self.cache_ttl)
        logger.info("Generated nickname", extra={"upstream": self.generator.name})
        return NicknameResult(nickname=nickname, analysis=analysis, cached=False)
