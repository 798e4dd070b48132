"""Tests for nickname generation with caching and retries."""

import asyncio

import httpx
import pytest

from snapname.app.core.cache import TTLCache
from snapname.app.exceptions import RetryCancelledError
from snapname.app.providers.mock import MockGenerationService
from snapname.app.providers.retry import RetryPolicy
from snapname.app.services.nickname import NicknameService

IMAGE_URL = "https://res.cloudinary.com/demo/image/upload/nicknames/cat.png"


@pytest.fixture
def policy():
    return RetryPolicy(max_attempts=3, initial_delay=0.01, max_delay=0.05)


@pytest.fixture
def cache(clock):
    return TTLCache(default_ttl=60, clock=clock)


class TestNicknameService:

    def test_cache_key(self):
        assert NicknameService.cache_key(IMAGE_URL) == f"nickname:{IMAGE_URL}"

    @pytest.mark.asyncio
    async def test_miss_calls_upstream_and_caches(self, cache, policy):
        generator = MockGenerationService()
        service = NicknameService(generator, cache, policy)

        result = await service.generate(IMAGE_URL)

        assert result.cached is False
        assert result.nickname
        assert result.analysis.startswith("A bright, playful picture")
        assert generator.calls == {"chat": 1, "describe_image": 1, "generate_image": 0}
        assert cache.get(f"nickname:{IMAGE_URL}") == {
            "nickname": result.nickname,
            "analysis": result.analysis,
        }

    @pytest.mark.asyncio
    async def test_hit_skips_upstream(self, cache, policy):
        generator = MockGenerationService()
        service = NicknameService(generator, cache, policy)

        first = await service.generate(IMAGE_URL)
        second = await service.generate(IMAGE_URL)

        assert second.cached is True
        assert second.nickname == first.nickname
        assert second.analysis == first.analysis
        assert generator.calls["describe_image"] == 1
        assert generator.calls["chat"] == 1

    @pytest.mark.asyncio
    async def test_expired_entry_regenerates(self, cache, policy, clock):
        generator = MockGenerationService()
        service = NicknameService(generator, cache, policy, cache_ttl=10)

        await service.generate(IMAGE_URL)
        clock.advance(10)
        result = await service.generate(IMAGE_URL)

        assert result.cached is False
        assert generator.calls["describe_image"] == 2

    @pytest.mark.asyncio
    async def test_distinct_urls_cached_separately(self, cache, policy):
        service = NicknameService(MockGenerationService(), cache, policy)

        await service.generate(IMAGE_URL)
        await service.generate(IMAGE_URL + "?v=2")

        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self, cache, policy):
        generator = MockGenerationService(
            failures=[httpx.ConnectError("down"), httpx.ReadTimeout("slow")]
        )
        service = NicknameService(generator, cache, policy)

        result = await service.generate(IMAGE_URL)

        assert result.cached is False
        assert generator.calls["describe_image"] == 3
        assert generator.calls["chat"] == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_cache_nothing(self, cache, policy):
        generator = MockGenerationService(failures=[httpx.ConnectError("down")] * 3)
        service = NicknameService(generator, cache, policy)

        with pytest.raises(httpx.ConnectError):
            await service.generate(IMAGE_URL)

        assert len(cache) == 0
        assert generator.calls["chat"] == 0

    @pytest.mark.asyncio
    async def test_cancelled_request(self, cache, policy):
        cancel_event = asyncio.Event()
        cancel_event.set()
        generator = MockGenerationService()
        service = NicknameService(generator, cache, policy)

        with pytest.raises(RetryCancelledError):
            await service.generate(IMAGE_URL, cancel_event=cancel_event)

        assert generator.calls["describe_image"] == 0

    @pytest.mark.asyncio
    async def test_quotes_stripped_from_nickname(self, cache, policy):
        class QuotingGenerator(MockGenerationService):
            async def chat(self, messages, **model_params):
                await super().chat(messages, **model_params)
                return '"Captain Whiskers"'

        service = NicknameService(QuotingGenerator(), cache, policy)
        result = await service.generate(IMAGE_URL)

        assert result.nickname == "Captain Whiskers"
