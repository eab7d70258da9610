"""
Application Configuration — Environment & Settings
Centralizes all config from .env with Pydantic Settings for validation.
"""
from pathlib import Path
from functools import lru_cache
from pydantic_settings import BaseSettings

# Resolve paths relative to backend/ directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # --- Core ---
    APP_NAME: str = "Audit Ledger API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # --- Database ---
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'data' / 'audit_ledger.db'}"

    # --- HTTP ---
    CORS_ORIGINS: list[str] = ["*"]

    # --- Ledger ---
    INTEGRITY_BATCH_SIZE: int = 500
    INTEGRITY_VIOLATION_LIMIT: int = 100   # cap on itemised violations in responses
    AUDIT_PAGE_LIMIT_DEFAULT: int = 50
    AUDIT_PAGE_LIMIT_MAX: int = 200

    # --- Logging ---
    LOG_DIR: str = str(BASE_DIR / "logs")
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
