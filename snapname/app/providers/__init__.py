"""Upstream providers package for SnapName.

This package provides:
- Provider interfaces (ImageStore, GenerationService)
- Provider implementations (CloudinaryProvider, OpenAIProvider)
- Mock providers for tests and local development
- Retry mechanism (RetryPolicy, execute_with_retry, with_retry)
"""

from snapname.app.providers.base import GenerationService, ImageStore, UploadedImage
from snapname.app.providers.cloudinary import CloudinaryProvider
from snapname.app.providers.factory import create_generation_service, create_image_store
from snapname.app.providers.health import ProviderHealthChecker
from snapname.app.providers.mock import MockGenerationService, MockImageStore
from snapname.app.providers.openai import OpenAIProvider
from snapname.app.providers.retry import (
    RetryPolicy,
    calculate_backoff,
    execute_with_retry,
    is_transient_error,
    with_retry,
)

__all__ = [
    # Interfaces
    "GenerationService",
    "ImageStore",
    "UploadedImage",
    # Providers
    "CloudinaryProvider",
    "OpenAIProvider",
    "MockGenerationService",
    "MockImageStore",
    # Factory
    "create_generation_service",
    "create_image_store",
    # Health
    "ProviderHealthChecker",
    # Retry
    "RetryPolicy",
    "calculate_backoff",
    "execute_with_retry",
    "is_transient_error",
    "with_retry",
]
