"""
Configuration Management Module

Configures proxy parameters via environment variables or .env file.
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
    APP_NAME: str = "Gemini OpenAI Proxy"
    DEBUG: bool = False

    # Server Config
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    # Working directory attached to engine sessions
    WORKING_DIR: str = "."

    # Surface model thoughts as `reasoning_content` in responses
    INCLUDE_THINKING: bool = True

    # CORS Config
    # "*" allows every origin, otherwise a comma-separated list
    # Example: "http://localhost:3000,https://example.com"
    CORS_ORIGINS: str = "*"

    # Consumer Authentication
    # When set, /v1 endpoints require "Authorization: Bearer <PROXY_API_KEY>"
    PROXY_API_KEY: Optional[str] = None

    # Engine Config
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com"
    DEFAULT_MODEL: str = "gemini-2.5-flash"

    # Session Policy
    # per_request: fresh engine session per request
    # shared: one process-wide session, requests are queued on its lock
    SESSION_MODE: Literal["per_request", "shared"] = "per_request"

    # HTTP Client Config (seconds)
    HTTP_TIMEOUT: int = 600
    IMAGE_FETCH_TIMEOUT: int = 30

    # Capacity of the engine -> client event channel
    STREAM_QUEUE_SIZE: int = 64

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def cors_origin_list(self) -> list[str]:
        """Parsed CORS origins; ["*"] when every origin is allowed."""
        raw = self.CORS_ORIGINS.strip()
        if not raw or raw == "*":
            return ["*"]
        return [origin.strip() for origin in raw.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Get application configuration (Singleton)

    Returns:
        Settings: Application configuration instance
    """
    return Settings()
