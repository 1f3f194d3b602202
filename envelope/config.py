"""
Application configuration using Pydantic Settings
"""
import os
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables
    """
    # Database. DATABASE_URL wins over BUDGET_DB_PATH when both are set.
    DATABASE_URL: str = ""
    BUDGET_DB_PATH: str = os.path.join(os.path.expanduser("~"), ".budget", "budget.sqlite")

    # CLI state (active budget per database file)
    BUDGET_CONFIG_DIR: str = os.path.join(os.path.expanduser("~"), ".config", "budget")

    # Application
    DEFAULT_CURRENCY: str = "USD"
    TIMEZONE: str = "UTC"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def get_sqlalchemy_url(self) -> str:
        """
        Resolve the SQLAlchemy URL: DATABASE_URL (postgresql:// -> postgresql+psycopg://)
        or a SQLite file at BUDGET_DB_PATH
        """
        url = self.DATABASE_URL
        if not url:
            return f"sqlite:///{self.BUDGET_DB_PATH}"
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+psycopg://", 1)
        return url


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance (singleton)
    """
    return Settings()
