"""
Configuration Management Module

Configures application parameters via environment variables or .env file.
Upstream 1min.ai endpoints, cache TTLs, KV backend and rate limits live here.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application Configuration Class

    All configuration items can be overridden by environment variables, with names matching fields (uppercase).
    """

    # Application Config
    APP_NAME: str = "1min Gateway"
    DEBUG: bool = False

    # Upstream 1min.ai Endpoints
    ONE_MIN_API_URL: str = "https://api.1min.ai/api/features"
    ONE_MIN_CONVERSATION_API_STREAMING_URL: str = "https://api.1min.ai/api/features?isStreaming=true"
    ONE_MIN_ASSET_URL: str = "https://api.1min.ai/api/assets"
    ONE_MIN_MODELS_API_URL: str = "https://api.1min.ai/models"

    # Default Models
    DEFAULT_MODEL: str = "open-mistral-nemo"
    DEFAULT_IMAGE_MODEL: str = "black-forest-labs/flux-schnell"

    # Authentication
    # When both AUTH_TOKEN and ONE_MIN_API_KEY are set, clients authenticate with
    # AUTH_TOKEN and the gateway calls upstream with its own key.
    # Otherwise the caller's bearer token is forwarded as the upstream key.
    AUTH_TOKEN: Optional[str] = None
    ONE_MIN_API_KEY: Optional[str] = None

    # Web Search (":online" model suffix)
    # Kept as strings: invalid values fall back to defaults instead of failing startup
    WEB_SEARCH_NUM_OF_SITE: Optional[str] = None
    WEB_SEARCH_MAX_WORD: Optional[str] = None

    # HTTP Client Config
    # Request timeout (seconds)
    HTTP_TIMEOUT: int = 600

    # Model Registry Config
    # Timeout for each models-API query (seconds)
    MODEL_FETCH_TIMEOUT: float = 5.0
    # In-memory snapshot TTL (seconds)
    MODEL_MEMORY_TTL_SECONDS: int = 300
    # KV store TTL (seconds)
    MODEL_KV_TTL_SECONDS: int = 3600

    # Image Ingestion Config
    # Reject image URLs that point at private/loopback addresses
    IMAGE_URL_BLOCK_PRIVATE: bool = True
    # Comma-separated hosts that need browser-like headers to serve images
    IMAGE_COMPAT_HOSTS: str = "cdn.discordapp.com,media.discordapp.net,i.imgur.com,pbs.twimg.com"
    # Maximum image size (bytes)
    IMAGE_MAX_BYTES: int = 20 * 1024 * 1024

    # Streaming Config
    # Bounded channel between the upstream reader and the HTTP writer
    STREAM_QUEUE_SIZE: int = 16

    # KV Store Config
    # KV store backend: "memory" keeps data in-process, "database" uses the SQL database, "redis" uses Redis
    KV_STORE_TYPE: Literal["memory", "database", "redis"] = "database"
    # Supports SQLite (default) and PostgreSQL, only used when KV_STORE_TYPE is "database"
    DATABASE_TYPE: Literal["sqlite", "postgresql"] = "sqlite"
    DATABASE_URL: str = "sqlite+aiosqlite:///./onemin_gateway.db"
    # Redis connection URL (only used when KV_STORE_TYPE is "redis")
    REDIS_URL: str = "redis://localhost:6379/0"
    # Interval between expired-entry purges for the memory/database backends (minutes)
    KV_CLEANUP_INTERVAL_MINUTES: int = 60

    # CORS Config
    # Comma-separated list of allowed origins for CORS
    # Example: "http://localhost:3000,https://example.com"
    # Default: "*" (public API gateway)
    ALLOWED_ORIGINS: str = "*"

    # Rate Limit Config
    # Enable/disable rate limiting (useful for development)
    RATE_LIMIT_ENABLED: bool = True
    # Request budget per client
    RATE_LIMIT_REQUESTS: str = "180/minute"
    # Estimated token budget per client within the same window (0 disables)
    RATE_LIMIT_MAX_TOKENS: int = 100000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    @property
    def image_compat_hosts(self) -> set[str]:
        return {h.strip().lower() for h in self.IMAGE_COMPAT_HOSTS.split(",") if h.strip()}


@lru_cache()
def get_settings() -> Settings:
    """
    Get application configuration (Singleton)

    Uses lru_cache to ensure configuration is loaded only once.

    Returns:
        Settings: Application configuration instance
    """
    return Settings()
