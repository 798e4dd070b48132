import json
import re
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_cors_origins(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []
    if raw == "*":
        return ["*"]

    # Prefer JSON, but tolerate a plain comma/space separated list.
    if raw.startswith(("[", '"')):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]
        if isinstance(parsed, str):
            raw = parsed.strip()

    origins: list[str] = []
    for part in re.split(r"[,\s]+", raw):
        if not part:
            continue
        if part == "*":
            return ["*"]
        if part not in origins:
            origins.append(part)
    return origins


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # OpenAI settings (vision + nickname + image generation)
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_organization: str | None = None
    openai_vision_model: str = "gpt-4o-mini"
    openai_nickname_model: str = "gpt-4o-mini"
    openai_image_model: str = "dall-e-3"
    openai_timeout: float = 30.0

    # Cloudinary settings
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    cloudinary_base_url: str = "https://api.cloudinary.com/v1_1"
    cloudinary_folder: str = "nicknames"
    cloudinary_timeout: float = 30.0

    # Use in-process mock providers instead of the real upstream services
    use_mock_providers: bool = Field(
        default=False, validation_alias="SNAPNAME_MOCK_PROVIDERS"
    )

    # HTTP Client connection pool settings
    httpx_timeout: float = 60.0
    httpx_connect_timeout: float = 10.0
    httpx_read_timeout: float = 60.0
    httpx_write_timeout: float = 10.0
    httpx_pool_timeout: float = 5.0
    httpx_keepalive_expiry: float = 30.0
    httpx_max_connections: int = 100
    httpx_max_keepalive_connections: int = 20

    # Rate limiting settings (100 requests per 15 minutes per client)
    rate_limit_enabled: bool = True
    rate_limit_max_requests: int = 100
    rate_limit_window_seconds: float = 900.0
    rate_limit_sweep_interval_seconds: float = 60.0
    # Key clients on the first X-Forwarded-For hop; enable only behind a trusted proxy
    rate_limit_trust_forwarded_for: bool = False

    # Provider health checks run in the background; /health reports the last result
    health_check_interval_seconds: float = 30.0

    # Retry settings for upstream calls
    retry_max_attempts: int = 3
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 10.0
    retry_backoff_factor: float = 2.0

    # Cache settings
    cache_default_ttl: int = 86400  # 24 hours
    nickname_cache_ttl: int = 86400

    # Overall budget for upload/generate requests, including retries
    request_timeout_seconds: float = 30.0

    # Image limits
    max_image_bytes: int = 10 * 1024 * 1024
    max_image_dimension: int = 2048
    allowed_image_types: list[str] = ["image/jpeg", "image/png", "image/webp"]
    cleanup_max_age: str = "1d"

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["http://localhost:3002"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @field_validator("rate_limit_max_requests", "retry_max_attempts")
    @classmethod
    def validate_count_positive(cls, v: int) -> int:
        """Validate counters are at least 1."""
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator(
        "rate_limit_window_seconds",
        "rate_limit_sweep_interval_seconds",
        "health_check_interval_seconds",
        "request_timeout_seconds",
        "openai_timeout",
        "cloudinary_timeout",
        "httpx_timeout",
        "httpx_connect_timeout",
        "httpx_read_timeout",
    )
    @classmethod
    def validate_duration_positive(cls, v: float) -> float:
        """Validate durations are positive."""
        if v <= 0:
            raise ValueError("duration values must be positive")
        return v

    @field_validator("retry_initial_delay", "retry_max_delay")
    @classmethod
    def validate_delay_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("retry delays cannot be negative")
        return v

    @field_validator("retry_backoff_factor")
    @classmethod
    def validate_backoff_factor(cls, v: float) -> float:
        if v < 1:
            raise ValueError("retry_backoff_factor must be at least 1")
        return v

    @field_validator("cache_default_ttl", "nickname_cache_ttl")
    @classmethod
    def validate_ttl_non_negative(cls, v: int) -> int:
        """Validate TTLs; 0 means entries never expire."""
        if v < 0:
            raise ValueError("cache TTL cannot be negative")
        return v

    @property
    def cloudinary_configured(self) -> bool:
        return bool(
            self.cloudinary_cloud_name
            and self.cloudinary_api_key
            and self.cloudinary_api_secret
        )

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )


# Global settings instance
settings = Settings()
