"""
Application configuration.

All settings come from environment variables, read once into a frozen
Settings object:

- DB_HOST / DB_PORT / DB_NAME / DB_USER / DB_PASSWORD / DB_SSLMODE
  (or DATABASE_URL to override the whole URL)
- JWT_SECRET, ACCESS_TOKEN_MINUTES, REFRESH_TOKEN_DAYS
- ENV: production / prod / staging enables secure cross-site cookies
- FIREBASE_CREDENTIALS: path to the service-account JSON
- R2_ACCOUNT_ID / R2_ACCESS_KEY_ID / R2_SECRET_ACCESS_KEY / R2_BUCKET_NAME
- NOTIFICATION_TOPIC, LOG_LEVEL
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def get_database_url() -> str:
    """
    Get database URL from environment variables.

    Returns:
        Database URL string for SQLAlchemy
    """
    override = os.getenv("DATABASE_URL")
    if override:
        return override

    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5432")
    database = os.getenv("DB_NAME", "sightings")
    user = os.getenv("DB_USER", "postgres")
    password = os.getenv("DB_PASSWORD", "password")
    sslmode = os.getenv("DB_SSLMODE", "")

    url = f"postgresql://{user}:{password}@{host}:{port}/{database}"
    if sslmode:
        url += f"?sslmode={sslmode}"
    return url


@dataclass(frozen=True)
class Settings:
    database_url: str
    jwt_secret: str
    access_token_minutes: int = 15
    refresh_token_days: int = 7
    is_production: bool = False
    firebase_credentials: Optional[str] = None
    r2_account_id: Optional[str] = None
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None
    r2_bucket_name: str = "sightings-media"
    notification_topic: str = "sightings"
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Build a Settings object from the current environment."""
    return Settings(
        database_url=get_database_url(),
        jwt_secret=os.getenv("JWT_SECRET", ""),
        access_token_minutes=int(os.getenv("ACCESS_TOKEN_MINUTES", "15")),
        refresh_token_days=int(os.getenv("REFRESH_TOKEN_DAYS", "7")),
        is_production=os.getenv("ENV", "").lower() in ("production", "prod", "staging"),
        firebase_credentials=os.getenv("FIREBASE_CREDENTIALS"),
        r2_account_id=os.getenv("R2_ACCOUNT_ID"),
        r2_access_key_id=os.getenv("R2_ACCESS_KEY_ID"),
        r2_secret_access_key=os.getenv("R2_SECRET_ACCESS_KEY"),
        r2_bucket_name=os.getenv("R2_BUCKET_NAME", "sightings-media"),
        notification_topic=os.getenv("NOTIFICATION_TOPIC", "sightings"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, loaded on first use."""
    return load_settings()
