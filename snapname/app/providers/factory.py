"""Factory functions selecting real or mock upstream providers."""

from typing import Optional

import httpx

from snapname.app.core.config import Settings, settings as default_settings
from snapname.app.core.logging import get_logger
from snapname.app.providers.base import GenerationService, ImageStore
from snapname.app.providers.cloudinary import CloudinaryProvider
from snapname.app.providers.mock import MockGenerationService, MockImageStore
from snapname.app.providers.openai import OpenAIProvider

logger = get_logger(__name__)


def create_image_store(
    http_client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> ImageStore:
    """Create the image store configured in settings."""
    settings = settings or default_settings
    if settings.use_mock_providers:
        logger.info("Using mock image store")
        return MockImageStore()

    if not settings.cloudinary_configured:
        logger.warning("Cloudinary credentials are not fully configured")
    return CloudinaryProvider(
        cloud_name=settings.cloudinary_cloud_name,
        api_key=settings.cloudinary_api_key,
        api_secret=settings.cloudinary_api_secret,
        base_url=settings.cloudinary_base_url,
        http_client=http_client,
        timeout=settings.cloudinary_timeout,
    )


def create_generation_service(
    http_client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> GenerationService:
    """Create the generation service configured in settings."""
    settings = settings or default_settings
    if settings.use_mock_providers:
        logger.info("Using mock generation service")
        return MockGenerationService()

    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not configured")
    return OpenAIProvider(
        base_url=settings.openai_base_url,
        api_key=settings.openai_api_key,
        organization=settings.openai_organization,
        http_client=http_client,
        timeout=settings.openai_timeout,
        vision_model=settings.openai_vision_model,
        chat_model=settings.openai_nickname_model,
        image_model=settings.openai_image_model,
    )
