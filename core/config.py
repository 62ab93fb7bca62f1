"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for UserGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Settings is read once through get_settings() (lru_cache) and shared by the
lifespan, the cookie middleware, the password hasher and the rate limiter.
Each field maps to its uppercased env var (redis_url -> REDIS_URL) and may
also come from .env. Groups:

  core        DEBUG, SECRET_KEY, LOG_LEVEL, HOST, PORT, CORS and host lists
  database    DATABASE_URL plus pool sizing for server databases
  sessions    REDIS_URL, socket timeouts, key prefix and cookie attributes
  passwords   Argon2id time/memory/parallelism costs
  throttling  LOGIN_RATE_LIMIT and the limiter storage URI

Security notes:
  SECRET_KEY signs the session cookie. Keys shorter than 32 chars are
  rejected outright, and a missing key in production is a hard startup
  failure (a random key would silently log everyone out on restart).

Layer rule: core/ is the kernel. This module may not import from api/,
auth/ or users/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("usergate.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    log_level: str = "INFO"
    host: str = "0.0.0.0"  # nosec B104 -- container default, override with HOST
    port: int = 3000
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000"]
    allowed_hosts: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Database (user storage)
    # ------------------------------------------------------------------

    database_url: str = "sqlite:///usergate.db"
    # Pool settings only apply to server databases (Postgres etc.); SQLite
    # uses SQLAlchemy's default single-file pool.
    database_pool_size: int = 10
    database_max_overflow: int = 0
    database_pool_timeout: int = 30  # seconds to wait for a free connection
    database_pool_recycle: int = 600  # seconds before an idle connection is replaced

    # ------------------------------------------------------------------
    # Session store
    # ------------------------------------------------------------------

    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 5.0
    redis_connect_timeout: float = 5.0
    session_key_prefix: str = "session:"
    session_cookie_name: str = "connect.sid"
    session_cookie_domain: str | None = None
    session_cookie_secure: bool = False
    session_cookie_same_site: Literal["strict", "lax", "none"] = "lax"
    session_max_age_seconds: int = 86400  # 24 hours

    # ------------------------------------------------------------------
    # Password hashing (Argon2id)
    # ------------------------------------------------------------------

    argon2_time_cost: int = 2
    argon2_memory_cost: int = 19456  # KiB -- OWASP minimum for Argon2id
    argon2_parallelism: int = 1

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    rate_limit_storage_uri: str = "memory://"
    # Per-IP throttling only. There is no per-account lockout.

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("session_cookie_same_site", mode="before")
    @classmethod
    def normalize_same_site(cls, value: object) -> str:
        """Accept any casing and fall back to "lax" for unrecognised values."""
        normalized = str(value).strip().lower()
        if normalized not in ("strict", "lax", "none"):
            logger.warning("Unknown SESSION_COOKIE_SAME_SITE %r, using 'lax'", value)
            return "lax"
        return normalized

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
