"""
Application configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )
    
    # Database
    database_url: str = "sqlite+aiosqlite:///./workstation.db"
    
    # AI suggestion service (empty URL disables suggestions)
    suggestion_service_url: str = ""
    suggestion_service_token: str = ""
    suggestion_timeout_seconds: float = 10.0
    suggestion_max_items: int = 20

    # Export
    export_template_version: str = "1"

    # HTTP
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000"
    slow_request_ms: int = 1000

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR
    
    # API Settings
    api_v1_prefix: str = "/api/v1"
    project_name: str = "Prompt Workstation"
    version: str = "1.0.0"

    @property
    def cors_origin_list(self) -> list:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
