from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Confluence Cloud (host REST API)
    confluence_base_url: str = ""  # e.g. https://your-site.atlassian.net
    confluence_app_email: str = ""  # Service account used for "app" calls
    confluence_app_token: str = ""
    confluence_timeout_seconds: float = 30.0

    # Local storage for the AI configuration record
    storage_path: str = "flowme.db"

    # AI defaults (applied when the stored record omits a field)
    ai_default_model: str = "gpt-5.2"
    ai_default_base_url: str = "https://api.openai.com"
    ai_default_allowed_hosts: str = "api.openai.com"
    ai_default_timeout_seconds: int = 360

    # Authentication (admin settings form)
    admin_codes: str = ""  # Comma-separated list of admin codes
    jwt_secret: str = ""   # Secret for signing JWT tokens

    # App Settings
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
