"""
Application configuration settings.

Loads configuration from environment variables using pydantic-settings.
Provides a single shared instance for application-wide access.
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Loads and stores application configuration from environment variables."""

    # Application
    app_name: str = "Edge Agent API"
    app_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False

    # Database
    database_url: str

    # Redis
    redis_url: str

    # OpenAI
    openai_api_key: str
    openai_model: str = "gpt-4o-mini"
    openai_timeout_seconds: int = 20

    # Rate limiting
    rate_limit_per_minute: int = 60
    rate_limit_window_ms: int = 60_000

    # Conversation history
    max_conversation_history: int = 50
    # How many prior turns are sent to the model
    model_history_messages: int = 10

    # Context enrichment; disabled when no key is configured
    context_api_url: str = "https://mcp.context7.com/mcp"
    context_api_key: Optional[str] = None
    context_timeout_seconds: float = 10.0

    # pydantic-settings configuration:
    # - Load variables from a .env file
    # - Ignore extra variables to avoid validation errors
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Singleton settings instance for application-wide use
settings = Settings()
