"""
Application configuration using Pydantic Settings.
Loads from environment variables (prefixed DISPATCH_) or a .env file.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Dispatch engine settings."""

    APP_NAME: str = "Clinic Patient Dispatch"
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    # Engine
    ROUTINE_QUEUE_CAPACITY: int = 20
    TOKEN_ID_START: int = 1
    TOP_K_DEFAULT: int = 3

    # Load the demo doctors/patients at startup
    SEED_DEMO_DATA: bool = False

    class Config:
        env_prefix = "DISPATCH_"
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
