"""
Configuration
=============
Environment loading for the marketplace API. Settings are read once at
startup and handed to ``create_app``; nothing else reads the environment.
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration is invalid."""
    pass


def load_environment():
    """Load a .env file from the working directory if one exists."""
    env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)
        logger.info("Loaded environment from .env file")


def _get_optional_env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key, default)
    return value.strip() if value else default


def _get_int_env(key: str, default: int) -> int:
    """
    Get integer environment variable.

    Raises:
        ConfigurationError: If value is not a valid integer
    """
    value = os.getenv(key)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"Invalid integer value for {key}: {value}")


def _get_list_env(key: str, default: List[str]) -> List[str]:
    value = os.getenv(key)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


DEFAULT_JWT_SECRET = "dev_secret_change_me"


@dataclass(frozen=True)
class Settings:
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "LocalChefBazaar"
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_alg: str = "HS256"
    token_expire_min: int = 60 * 24 * 14  # 14 days
    stripe_secret_key: Optional[str] = None
    stripe_currency: str = "usd"
    client_domain: str = "http://localhost:5173"
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])
    log_level: str = "INFO"
    port: int = 3000


def load_settings() -> Settings:
    load_environment()
    defaults = Settings()
    return Settings(
        database_url=_get_optional_env("DATABASE_URL", defaults.database_url),
        database_name=_get_optional_env("DATABASE_NAME", defaults.database_name),
        jwt_secret=_get_optional_env("JWT_SECRET", defaults.jwt_secret),
        jwt_alg=_get_optional_env("JWT_ALG", defaults.jwt_alg),
        token_expire_min=_get_int_env("TOKEN_EXPIRE_MIN", defaults.token_expire_min),
        stripe_secret_key=_get_optional_env("STRIPE_SECRET_KEY"),
        stripe_currency=_get_optional_env("STRIPE_CURRENCY", defaults.stripe_currency),
        client_domain=_get_optional_env("CLIENT_DOMAIN", defaults.client_domain).rstrip("/"),
        cors_origins=_get_list_env("CORS_ORIGINS", defaults.cors_origins),
        log_level=_get_optional_env("LOG_LEVEL", defaults.log_level).upper(),
        port=_get_int_env("PORT", defaults.port),
    )
