"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the marketplace auth service happen here.
No module should call os.getenv() or os.environ.get() directly.

Design patterns used:
  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  Explicit injection: create_app(settings) receives one Settings instance and
      hands plain values to TokenService, CredentialStore and RateLimiter
      constructors. Verification code never calls get_settings() itself.

  Singleton via lru_cache: get_settings() builds Settings once for the
      process entry point (asgi.py). Tests construct Settings(...) directly.

Security notes:
  SECRET_KEY has no default. A missing key is a hard startup failure in every
  mode; there is no development fallback key. Keys shorter than 32 characters
  are rejected because HS256 signing relies on key entropy.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from limits import parse
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("marketplace.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'marketplace_auth.db'}"

_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Every field except secret_key has a default. Environment variable names
    are the uppercased field names (token_ttl_seconds -> TOKEN_TTL_SECONDS).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured"; the validator below
    # refuses to start with it.
    secret_key: str = ""
    # 7 days, matching the marketplace session policy.
    token_ttl_seconds: int = 7 * 24 * 60 * 60

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    # bcrypt cost factor. 12 rounds lands around 100-300ms per verify on
    # current hardware. Tests drop this to 4 (bcrypt's minimum).
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    # Size of the dedicated hashing pool, kept apart from request dispatch.
    hash_workers: int = Field(default=4, ge=1)

    # ------------------------------------------------------------------
    # Rate limiting (limits-style rate strings, fixed window)
    # ------------------------------------------------------------------

    general_rate_limit: str = "100/15minutes"
    login_rate_limit: str = "5/15minutes"
    register_rate_limit: str = "3/60minutes"
    rate_limit_storage_uri: str = "memory://"

    # ------------------------------------------------------------------
    # Storage / HTTP
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("general_rate_limit", "login_rate_limit", "register_rate_limit")
    @classmethod
    def validate_rate_string(cls, value: str) -> str:
        """Reject rate strings that limits cannot parse, at load time rather than first request."""
        try:
            parse(value)
        except ValueError as exc:
            raise ValueError(f"Invalid rate limit {value!r}: {exc}") from exc
        return value

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Refuse to start without a strong SECRET_KEY.

        A missing key would force a hardcoded or per-process random key,
        either of which breaks token verification silently across replicas
        or restarts. Treat it as a configuration error instead.
        """
        if not self.secret_key:
            raise ValueError(
                "SECRET_KEY is required. Set SECRET_KEY in your environment or .env file."
            )
        if len(self.secret_key) < _MIN_SECRET_LENGTH:
            raise ValueError(f"SECRET_KEY must be at least {_MIN_SECRET_LENGTH} characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings instance.

    Only the ASGI entry point should call this. Components receive values
    through their constructors.

    In tests: build Settings(secret_key=...) directly, or call
    get_settings.cache_clear() after changing the environment.
    """
    settings = Settings()
    logger.info(
        "Settings loaded (token_ttl=%ds, bcrypt_rounds=%d, rate_limit_storage=%s)",
        settings.token_ttl_seconds,
        settings.bcrypt_rounds,
        settings.rate_limit_storage_uri,
    )
    return settings
