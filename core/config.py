"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for PushGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, argon2_memory -> ARGON2_MEMORY).

  @model_validator(mode="after"): dev mode generates a SECRET_KEY with a
      warning, production mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. Bearer tokens are
  HS256-signed with it.

  Argon2 parameters only affect newly created digests. Stored digests carry
  their own parameters, so raising the cost here never locks anyone out.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("pushgate.config")

# Provisioned only when ADMIN_PASSWORD is unset; api.main warns about it outside debug mode.
DEFAULT_ADMIN_PASSWORD = "admin"


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
    database_url: str = "sqlite:///pushgate.db"

    # ------------------------------------------------------------------
    # Initial admin account (created on first start with an empty DB)
    # ------------------------------------------------------------------

    admin_name: str = "admin"
    admin_password: str = DEFAULT_ADMIN_PASSWORD
    admin_matrix_id: str = ""

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    # Comma-separated, tried in order: "basic", "bearer".
    auth_schemes: str = "basic,bearer"
    token_expire_seconds: int = 3600
    token_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Argon2id password hashing
    # ------------------------------------------------------------------

    argon2_memory: int = 131072  # KiB
    argon2_iterations: int = 4
    argon2_parallelism: int = 4
    argon2_salt_length: int = 16
    argon2_key_length: int = 32

    # ------------------------------------------------------------------
    # Breached password check (k-anonymity range API)
    # ------------------------------------------------------------------

    check_breached_passwords: bool = False
    # When the breach service is unreachable: False rejects the password,
    # True accepts it and logs a warning.
    breach_check_fail_open: bool = False
    breach_api_url: str = "https://api.pwnedpasswords.com"
    breach_timeout_seconds: float = 5.0

    # ------------------------------------------------------------------
    # Message formatting
    # ------------------------------------------------------------------

    colored_title: bool = False

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Bearer tokens will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Bearer tokens will not persist across restarts."
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

    @model_validator(mode="after")
    def validate_argon2(self) -> "Settings":
        """Reject Argon2 parameters libargon2 would refuse at hash time."""
        if self.argon2_parallelism < 1 or self.argon2_iterations < 1:
            raise ValueError("ARGON2_PARALLELISM and ARGON2_ITERATIONS must be at least 1.")
        if self.argon2_memory < 8 * self.argon2_parallelism:
            raise ValueError("ARGON2_MEMORY must be at least 8 KiB per lane of parallelism.")
        if self.argon2_salt_length < 8 or self.argon2_key_length < 4:
            raise ValueError("ARGON2_SALT_LENGTH must be >= 8 and ARGON2_KEY_LENGTH >= 4.")
        return self

    @model_validator(mode="after")
    def validate_breach_timeout(self) -> "Settings":
        """requests rejects a zero or negative timeout before any I/O happens."""
        if self.breach_timeout_seconds <= 0:
            raise ValueError("BREACH_TIMEOUT_SECONDS must be greater than 0.")
        return self

    def auth_scheme_names(self) -> list[str]:
        return [s.strip().lower() for s in self.auth_schemes.split(",") if s.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
