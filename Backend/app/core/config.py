"""
Settings for the RBAC service.

Each concern is a pydantic-settings section with its own env prefix
(DB_, REDIS_, LOG_, AUTHZ_); all of them read Backend/.env as well as
the process environment.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Backend/app/core/config.py -> Backend/.env
BACKEND_DIR = Path(__file__).resolve().parents[2]
ENV_FILE = BACKEND_DIR / ".env"

# Sections are built via default_factory, so export .env to os.environ first
load_dotenv(ENV_FILE)


def section_config(prefix: str = "") -> SettingsConfigDict:
    """Common settings config for one env prefix."""
    return SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix=prefix,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class AppSettings(BaseSettings):
    """Application and HTTP server settings."""

    model_config = section_config()

    app_env: Literal["development", "staging", "production"] = "development"
    app_name: str = "tenant-rbac"
    app_version: str = "1.0.0"
    app_debug: bool = False

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 4

    # Comma separated
    cors_origins: str = "http://localhost:3000"
    cors_credentials: bool = True

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


class DatabaseSettings(BaseSettings):
    """Database connection settings.

    The authorization engine reads role data through its own credential
    (authz_user / authz_password, or a full authz_url). When neither is
    set it shares the main connection.
    """

    model_config = section_config("DB_")

    # Full SQLAlchemy URL, takes precedence over host/port/name
    url: str = ""

    host: str = "localhost"
    port: int = 5432
    name: str = "rbac_db"
    user: str = "rbac_user"
    password: str = ""

    authz_url: str = ""
    authz_user: str = ""
    authz_password: str = ""

    pool_size: int = 20
    max_overflow: int = 10

    # Create missing tables on startup
    auto_create: bool = True

    def _postgres_dsn(self, user: str, password: str) -> str:
        credentials = f"{user}:{password}" if password else user
        return f"postgresql+asyncpg://{credentials}@{self.host}:{self.port}/{self.name}"

    @property
    def dsn(self) -> str:
        return self.url or self._postgres_dsn(self.user, self.password)

    @property
    def authz_dsn(self) -> str:
        """DSN for the authorization engine's read-only sessions."""
        if self.authz_url:
            return self.authz_url
        if self.authz_user:
            return self._postgres_dsn(self.authz_user, self.authz_password)
        return self.dsn


class RedisSettings(BaseSettings):
    """Redis settings. Redis only backs the role permission cache."""

    model_config = section_config("REDIS_")

    enabled: bool = True
    host: str = "localhost"
    port: int = 6379
    password: str = ""
    db: int = 0
    pool_size: int = 50

    @property
    def dsn(self) -> str:
        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


class LogSettings(BaseSettings):
    model_config = section_config("LOG_")

    level: str = "INFO"
    format: Literal["json", "text"] = "json"
    # Per-request start/complete lines
    requests: bool = True


class AuthzSettings(BaseSettings):
    """Authorization engine settings."""

    model_config = section_config("AUTHZ_")

    # Trusted header carrying the caller's user id, set by the gateway
    identity_header: str = "X-User-ID"

    cache_enabled: bool = True
    cache_ttl: int = 300  # seconds
    cache_key: str = "authz:role_permissions"

    seed_default_roles: bool = True
    # User id granted a global system_admin role at startup
    bootstrap_admin_id: Optional[str] = None

    # Global role granted when a profile is first provisioned; empty disables
    signup_default_role: Optional[str] = "basic_user"

    @field_validator("signup_default_role", mode="before")
    @classmethod
    def empty_role_is_none(cls, v):
        if isinstance(v, str) and v.strip().lower() in ("", "none"):
            return None
        return v


class Settings(BaseSettings):
    """All settings sections."""

    model_config = section_config()

    app: AppSettings = Field(default_factory=AppSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    authz: AuthzSettings = Field(default_factory=AuthzSettings)

    docs_enabled: bool = True
    dev_auto_reload: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
