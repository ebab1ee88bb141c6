"""Configuration management using pydantic-settings."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # GCP settings (required)
    gcp_project_id: str
    vertex_ai_location: str

    # Stable Diffusion (SD Forge / A1111) API base URL (required)
    sd_api_url: str

    # Secret used to sign bearer tokens (required)
    auth_secret: str

    # LLM / storage
    llm_model: str = "gemini-2.5-flash"
    firestore_database: str = "(default)"

    # Application settings
    app_name: str = "companion-chat"
    images_dir: str = "data/images"
    auth_token_ttl_minutes: int = 30 * 24 * 60

    # Outbound SD call policy
    sd_timeout_seconds: float = 120.0
    sd_max_retries: int = 1

    # Server settings
    backend_host: str = "localhost"
    backend_port: int = 8000
    frontend_port: int = 3000


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
