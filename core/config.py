"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the MovieFlix gateway happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead, or receive a Settings instance from the caller.

  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): reads values from environment variables
      and an optional .env file. Field names map to env var names
      case-insensitively (secret_key -> SECRET_KEY).

  cors.allowed-origins: the deployment sets the CORS origin list under its
      dotted property name. Dots and dashes are not valid in most shells, so
      CORS_ALLOWED_ORIGINS is accepted as well. Both feed the same field.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright -- it signs every
  bearer token. In production mode (DEBUG not set or false), a missing
  SECRET_KEY is a hard startup failure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("movieflix.config")

APP_VERSION = "1.0.0"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. Built once at startup and never
    mutated afterwards; policies receive it by reference.
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

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # One day -- the browser client keeps the token in localStorage and
    # re-authenticates on expiry.
    token_expire_seconds: int = 86400
    login_rate_limit: str = "10/minute"
    # Empty string means "use the SQLite file beside auth/store.py".
    auth_db_url: str = ""

    # ------------------------------------------------------------------
    # CORS
    # ------------------------------------------------------------------

    # Comma-separated origin patterns. Empty means no cross-origin access.
    cors_allowed_origins: str = Field(
        default="",
        validation_alias=AliasChoices("cors.allowed-origins", "cors_allowed_origins"),
    )

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive a restart -- acceptable for local dev.

        Production mode: refuse to start without SECRET_KEY.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
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
