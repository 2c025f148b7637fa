"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads happen here. No module should call os.getenv()
directly -- import get_settings() instead. Only the wiring code (api/main.py
and main.py) reads settings; auth/ components receive their values through
their constructors.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY).

  @model_validator(mode="after"): cross-field validation once all fields are
      resolved. Dev mode generates a signing key with a warning; production
      refuses to start without one.

Security notes:
  SECRET_KEY is a base64-encoded symmetric key. It signs access and refresh
  tokens (HS256) and keys the HMAC that hashes refresh tokens before storage,
  so it must be identical on every replica. Decoded keys shorter than 32
  bytes are rejected outright.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import base64
import binascii
import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.schedule import Schedule, parse_schedule

logger = logging.getLogger("authservice.config")

_MIN_KEY_BYTES = 32

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'authservice.db'}"


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
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    access_token_ttl_seconds: int = 900
    refresh_token_ttl_seconds: int = 7 * 24 * 3600

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    default_role: str = "ROLE_USER"
    admin_role: str = "ROLE_ADMIN"

    # ------------------------------------------------------------------
    # Reaper
    # ------------------------------------------------------------------

    # Cron (5 fields, or 6 with leading seconds), an alias such as @hourly,
    # or a fixed interval such as "@every 30m".
    reaper_schedule: str = "@hourly"

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    # JSON list in the environment, e.g. ALLOWED_HOSTS='["auth.internal", "localhost"]'
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("access_token_ttl_seconds", "refresh_token_ttl_seconds")
    @classmethod
    def positive_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Token TTLs must be positive.")
        return value

    @field_validator("reaper_schedule")
    @classmethod
    def known_schedule(cls, value: str) -> str:
        parse_schedule(value)
        return value

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive a restart -- acceptable for local dev.

        Production mode: refuse to start if SECRET_KEY is missing. A random
            key per process would invalidate every token on restart and make
            replicas reject each other's tokens.

        Both modes: the key must be valid base64 and decode to at least
            32 bytes.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = base64.b64encode(secrets.token_bytes(_MIN_KEY_BYTES)).decode("ascii")
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY (base64) in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        try:
            decoded = base64.b64decode(self.secret_key, validate=True)
        except binascii.Error as exc:
            raise ValueError("SECRET_KEY must be base64-encoded.") from exc
        if len(decoded) < _MIN_KEY_BYTES:
            raise ValueError(f"SECRET_KEY must decode to at least {_MIN_KEY_BYTES} bytes.")
        return self

    @property
    def signing_key(self) -> bytes:
        """The decoded symmetric key shared by the token signer and the ledger HMAC."""
        return base64.b64decode(self.secret_key)

    @property
    def parsed_reaper_schedule(self) -> Schedule:
        return parse_schedule(self.reaper_schedule)


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
