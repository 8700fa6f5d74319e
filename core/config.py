"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the auth service happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead, or accept a Settings instance at construction time.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. access_token_secret -> ACCESS_TOKEN_SECRET).

  @model_validator(mode="after"): Cross-field validation of the signing key
      registry. Dev mode generates missing keys with a warning, production
      mode refuses to start without all three.

Security notes:
  [K1] Every token kind (access, refresh, reset) has its own signing key. A
       token minted for one purpose must never verify as another, so two kinds
       sharing a key is rejected outright.

  [K2] Keys shorter than 32 chars are rejected. HS256 signing relies on key
       entropy -- a short key weakens every token kind at once.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authservice.config")

_MIN_KEY_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    the key-registry rules at startup.
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
    host: str = "0.0.0.0"  # noqa: S104 -- container default, override with HOST
    port: int = 3000
    database_url: str = ""

    # ------------------------------------------------------------------
    # Signing keys -- one per token kind [K1]
    # Empty string is the sentinel for "not configured".
    # ------------------------------------------------------------------

    access_token_secret: str = Field(
        default="",
        validation_alias=AliasChoices("access_token_secret", "jwt_secret"),
    )
    refresh_token_secret: str = ""
    reset_token_secret: str = ""

    # ------------------------------------------------------------------
    # Token lifetimes (seconds)
    # ------------------------------------------------------------------

    access_token_ttl_seconds: int = 3600
    refresh_token_ttl_seconds: int = 300
    reset_token_ttl_seconds: int = 1800
    # Access Gate re-issues an access token when exp - now <= this value.
    rotation_window_seconds: int = 300

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 10
    otp_length: int = 4

    # ------------------------------------------------------------------
    # Email (SMTP notifier)
    # ------------------------------------------------------------------

    email_user: str = ""
    email_pass: str = ""
    email_from: str = ""
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_timeout_seconds: int = 10

    # Base URL of the client app; reset links are {client_url}/reset-password/{token}
    client_url: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    rate_limit_enabled: bool = True
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]
    # 0 = no upper bound on GET /auth/users?limit=
    list_users_max_limit: int = 0

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_signing_keys(self) -> "Settings":
        """Build a complete, distinct key set or refuse to start.

        Dev mode (DEBUG=true): any missing key is auto-generated with a
            warning. Tokens will not survive a restart.

        Production mode: every missing key is a hard startup failure, listed
            together so the operator fixes them in one pass.

        Both modes: short keys [K2] and keys shared between kinds [K1] are
            rejected.
        """
        fields = ("access_token_secret", "refresh_token_secret", "reset_token_secret")
        missing = [name for name in fields if not getattr(self, name)]
        if missing:
            if self.debug:
                for name in missing:
                    setattr(self, name, secrets.token_hex(32))
                logger.warning(
                    "WARNING: Using auto-generated %s. Issued tokens will not survive a restart.",
                    ", ".join(name.upper() for name in missing),
                )
            else:
                raise ValueError(
                    f"{', '.join(name.upper() for name in missing)} required in production mode. "
                    "Set them in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        for name in fields:
            if len(getattr(self, name)) < _MIN_KEY_LENGTH:
                raise ValueError(f"{name.upper()} must be at least {_MIN_KEY_LENGTH} characters.")
        if len({getattr(self, name) for name in fields}) != len(fields):
            raise ValueError("Access, refresh and reset token secrets must all be different.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
