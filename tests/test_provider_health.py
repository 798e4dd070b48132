"""Tests for background provider health checking."""

import asyncio

import pytest

from snapname.app.providers.health import ProviderHealthChecker
from snapname.app.providers.mock import MockGenerationService, MockImageStore


class FlakyStore(MockImageStore):
    """Store whose health check answers from a scripted list."""

    def __init__(self, answers):
        super().__init__()
        self.answers = list(answers)
        self.health_checks = 0

    async def health_check(self, timeout: float = 2.0) -> bool:
        self.health_checks += 1
        answer = self.answers.pop(0) if self.answers else True
        if isinstance(answer, BaseException):
            raise answer
        return answer


def test_registered_providers_start_healthy():
    checker = ProviderHealthChecker()
    checker.register_provider(MockImageStore())
    checker.register_provider(MockGenerationService(), name="generator")

    assert checker.get_all_status() == {"mock_image_store": True, "generator": True}
    assert checker.is_healthy("generator") is True
    assert checker.is_healthy("unknown") is False


def test_get_all_status_returns_copy():
    checker = ProviderHealthChecker()
    checker.register_provider(MockImageStore())

    checker.get_all_status()["mock_image_store"] = False
    assert checker.is_healthy("mock_image_store") is True


def test_invalid_interval():
    with pytest.raises(ValueError):
        ProviderHealthChecker(check_interval=0)


@pytest.mark.asyncio
async def test_check_all_marks_errors_unhealthy():
    checker = ProviderHealthChecker()
    checker.register_provider(FlakyStore([ConnectionError("down")]))
    checker.register_provider(MockGenerationService())

    results = await checker.check_all()

    assert results == {"mock_image_store": False, "mock_generation": True}
    assert checker.is_healthy("mock_image_store") is False


@pytest.mark.asyncio
async def test_start_checks_once_then_stop():
    store = FlakyStore([False])
    checker = ProviderHealthChecker(check_interval=30.0)
    checker.register_provider(store)

    await checker.start()
    assert checker.running is True
    assert store.health_checks == 1
    assert checker.is_healthy("mock_image_store") is False

    # Second start is a no-op
    await checker.start()
    assert store.health_checks == 1

    await checker.stop()
    assert checker.running is False


@pytest.mark.asyncio
async def test_background_checks_recover_status():
    store = FlakyStore([False, True])
    checker = ProviderHealthChecker(check_interval=0.01)
    checker.register_provider(store)

    await checker.start()
    assert checker.is_healthy("mock_image_store") is False
    try:
        for _ in range(100):
            if store.health_checks >= 2:
                break
            await asyncio.sleep(0.01)
    finally:
        await checker.stop()

    assert store.health_checks >= 2
    assert checker.is_healthy("mock_image_store") is True


@pytest.mark.asyncio
async def test_stop_without_start():
    checker = ProviderHealthChecker()
    await checker.stop()
    assert checker.running is False
