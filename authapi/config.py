"""
Configuration Management
Environment-based settings for the identity provider, token signing,
persistence, rate limiting and logging
"""

import re
from datetime import timedelta
from typing import Optional, Union
import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$")
_DURATION_UNITS = {
    "": "seconds",
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


def parse_duration(value: Union[str, int, float, timedelta]) -> timedelta:
    """
    Parse a compact duration such as "7d", "12h", "15m", "30s" or plain seconds

    Args:
        value: Duration string, number of seconds, or timedelta

    Returns:
        timedelta: Parsed duration
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    match = _DURATION_RE.match(str(value).lower())
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")

    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


class Settings(BaseSettings):
    # App config
    app_name: str = "Auth API"
    version: str = "1.0.0"
    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 5000
    api_prefix: str = ""

    # Logging
    log_level: str = "INFO"
    log_format: str = "default"
    log_config_path: Optional[str] = None

    # Supabase (identity provider)
    supabase_url: str = ""
    supabase_anon_key: str = ""

    # JWT
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_expires_in: timedelta = timedelta(days=7)
    jwt_refresh_expires_in: timedelta = timedelta(days=30)
    jwt_issuer: str = "authapi"
    jwt_audience: str = "authapi-client"

    # Frontend origin, used for CORS and the OAuth redirect
    client_url: str = "http://localhost:3000"

    # User store
    user_store_backend: str = "postgres"
    database_url: Optional[str] = None
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "auth"
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10
    db_command_timeout: float = 30.0

    # Rate limiting (fixed window per client IP)
    rate_limit_enabled: bool = True
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 100
    auth_rate_limit_max_requests: int = 20
    redis_url: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("jwt_expires_in", "jwt_refresh_expires_in", mode="before")
    @classmethod
    def validate_duration(cls, v):
        return parse_duration(v)

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, v):
        if not v:
            raise ValueError("JWT_SECRET must not be empty")
        return v

    @field_validator("user_store_backend")
    @classmethod
    def validate_user_store_backend(cls, v):
        v = v.lower()
        if v not in ("postgres", "memory"):
            raise ValueError("USER_STORE_BACKEND must be 'postgres' or 'memory'")
        return v

    @field_validator("api_prefix")
    @classmethod
    def validate_api_prefix(cls, v):
        v = v.strip().rstrip("/")
        if v and not v.startswith("/"):
            v = f"/{v}"
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def postgres_dsn(self) -> str:
        """Build PostgreSQL connection string"""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    def log_config(self):
        """Log configuration (without sensitive data)"""
        logger.info(f"Environment: {self.environment}")
        logger.info(f"API prefix: {self.api_prefix or '/'}")
        logger.info(f"Client origin: {self.client_url}")
        logger.info(f"User store backend: {self.user_store_backend}")
        logger.info(f"Supabase configured: {'Yes' if self.supabase_url and self.supabase_anon_key else 'No'}")
        logger.info(
            f"Token lifetimes: access={self.jwt_expires_in}, refresh={self.jwt_refresh_expires_in}"
        )
        logger.info(
            f"Rate limits: {self.rate_limit_max_requests} general / "
            f"{self.auth_rate_limit_max_requests} auth per {self.rate_limit_window_seconds}s "
            f"({'redis' if self.redis_url else 'memory'})"
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get application settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
