"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. Secrets (the JWT signing key) never live in source code.

Pydantic Settings resolves values in this order:
  1. Environment variables (highest priority)
  2. .env file values
  3. Defaults defined here (lowest priority)

Usage:
    from league_ledger.config import settings
    print(settings.TRANSFER_MAX_RETRIES)
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the League Ledger API.

    Required fields (no defaults) MUST be set in .env or environment:
      - SECRET_KEY: Used to sign JWT tokens
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "League Ledger API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # --- Database ---
    # SQLite for local use; point at postgresql+asyncpg://... in production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/league_ledger.db"

    # --- Authentication ---
    # REQUIRED: No default, forces the operator to set a real secret
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]

    # --- Ledger ---
    # How many times a transfer is re-run after lock/serialization contention
    # before the caller sees a 409 Conflict.
    TRANSFER_MAX_RETRIES: int = 3
    # Display name cached on every league's system account
    SYSTEM_ACCOUNT_NAME: str = "FIA"

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
