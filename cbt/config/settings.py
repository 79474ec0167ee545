"""
Settings

Centralized runtime configuration for the CBT backend.
All values are loaded from environment variables (a .env file is honoured).
"""
import os

from dotenv import load_dotenv

load_dotenv()


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


def get_int_env(key: str, default: int) -> int:
    """Get an integer value from environment variable, falling back on junk."""
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Settings:
    """
    Runtime settings.

    To add a new setting:
    1. Add it here as a class property
    2. Load it from environment variable
    3. Document it in .env.example
    """

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./cbt.db")
    SQL_ECHO: bool = get_bool_env("SQL_ECHO", False)

    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = get_int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 60)

    # Exam runtime
    DEFAULT_TIME_LIMIT_MINUTES: int = get_int_env("DEFAULT_TIME_LIMIT_MINUTES", 60)
    DEFAULT_PASS_MARK: int = get_int_env("DEFAULT_PASS_MARK", 60)
    ACCESS_CODE_LENGTH: int = get_int_env("ACCESS_CODE_LENGTH", 8)
    MAX_SESSIONS_PER_USER: int = get_int_env("MAX_SESSIONS_PER_USER", 5)

    # Links and email
    APP_BASE_URL: str = os.getenv("APP_BASE_URL", "http://localhost:3000").rstrip("/")
    EMAIL_FUNCTION_URL: str = os.getenv("EMAIL_FUNCTION_URL", "")
    EMAIL_TIMEOUT_SECONDS: int = get_int_env("EMAIL_TIMEOUT_SECONDS", 10)

    # Code verification is the brute-forceable endpoint
    CODE_VERIFY_RATE_LIMIT: str = os.getenv("CODE_VERIFY_RATE_LIMIT", "10/minute")
    RATE_LIMIT_ENABLED: bool = get_bool_env("RATE_LIMIT_ENABLED", True)

    ALLOWED_ORIGINS: str = os.getenv("ALLOWED_ORIGINS", "")

    @classmethod
    def is_development(cls) -> bool:
        return cls.ENVIRONMENT == "development"

    @classmethod
    def get_all(cls) -> dict:
        """Get all settings as a dictionary (secrets masked)."""
        result = {}
        for attr in dir(cls):
            if attr.isupper():
                value = getattr(cls, attr)
                if "SECRET" in attr:
                    value = "***"
                result[attr] = value
        return result


settings = Settings()
