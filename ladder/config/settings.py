"""
Settings Configuration

Centralized runtime configuration for the ladder backend.
All settings are loaded from environment variables (optionally via a .env file).
"""
import os
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
ENV_FILE = PROJECT_ROOT / ".env"

load_dotenv(dotenv_path=ENV_FILE)


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


def get_int_env(key: str, default: int = 0) -> int:
    """Get an integer value from environment variable, falling back on bad input."""
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Settings:
    """
    Settings for the application.

    To add a new setting:
    1. Add it here as a class property
    2. Load it from environment variable
    3. Read it through the `settings` singleton
    """

    # Storage
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./ladder.db")

    # Caller identity (bearer tokens)
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = get_int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 60)

    # Comma-separated extra CORS origins
    ALLOWED_ORIGINS: str = os.getenv("ALLOWED_ORIGINS", "")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Round closing: 0 disables the timeout
    CLOSE_ROUND_TIMEOUT_SECONDS: int = get_int_env("CLOSE_ROUND_TIMEOUT_SECONDS", 0)

    # Live points preview while scores are being entered
    FEATURE_ROUND_PREVIEW: bool = get_bool_env("FEATURE_ROUND_PREVIEW", True)

    @classmethod
    def as_dict(cls) -> dict:
        """Get all non-secret settings as a dictionary."""
        return {
            key: value
            for key, value in cls.__dict__.items()
            if key.isupper() and "SECRET" not in key
        }


# Singleton instance for easy importing
settings = Settings()
