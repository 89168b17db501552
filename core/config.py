"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for SessionKeeper happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. session_timeout_seconds -> SESSION_TIMEOUT_SECONDS).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Dev mode generates a SECRET_KEY with a warning; production mode
      refuses to start without one, and refuses the obfuscated session codec.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. Session tokens
       are HS256-signed with it -- a short key weakens every token.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure, and SESSION_CODEC=obfuscated is rejected. The
       obfuscated codec is keyless and only exists for compatibility with
       tokens written by older clients.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or storage/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sessionkeeper.config")

_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
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
    # Session tokens
    # ------------------------------------------------------------------

    session_codec: Literal["signed", "obfuscated"] = "signed"
    # Sliding window measured from the last recorded activity.
    session_timeout_seconds: int = Field(default=24 * 60 * 60, gt=0)
    # Hard ceiling on the age of an encoded token, regardless of activity.
    token_max_age_seconds: int = Field(default=30 * 24 * 60 * 60, gt=0)

    # ------------------------------------------------------------------
    # Login policy
    # ------------------------------------------------------------------

    max_login_attempts: int = Field(default=3, ge=1)
    # 0 keeps the lockout until the process restarts.
    lockout_cooldown_seconds: int = Field(default=0, ge=0)
    inactivity_timeout_seconds: int = Field(default=30 * 60, gt=0)
    inactivity_check_interval_seconds: float = Field(default=60.0, gt=0)

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    storage_db_path: Path = _ROOT / "storage" / "sessionkeeper.db"
    credentials_db_url: str = f"sqlite:///{_ROOT / 'auth' / 'sessionkeeper_auth.db'}"

    # ------------------------------------------------------------------
    # HTTP adapter
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY and codec policy [M6][M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Signed sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing or if the keyless obfuscated codec is selected.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Signed sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.session_codec == "obfuscated":
            if not self.debug:
                raise ValueError(
                    "SESSION_CODEC=obfuscated is not a security control and is refused in production mode. "
                    "Use SESSION_CODEC=signed, or set DEBUG=true for local compatibility testing."
                )
            logger.warning("WARNING: SESSION_CODEC=obfuscated -- session tokens are not signed.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
