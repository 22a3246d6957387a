"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the account service happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Two layers:
  Settings (pydantic-settings BaseSettings): reads env vars and an optional
      .env file. Field names map to env var names (secret_key -> SECRET_KEY).
      get_settings() caches one instance via lru_cache.

  AuthPolicy (frozen dataclass): the immutable subset the credential
      components need -- signing key, expiry windows, bcrypt cost, code
      length. Built once with AuthPolicy.from_settings() and passed into each
      component's constructor, so tests inject a fixed key and a low cost
      factor without touching the environment.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing relies
  on key entropy -- a short key weakens every session token.

  In production mode (DEBUG not set or false), a missing SECRET_KEY is a
  hard startup failure. Rotating the key invalidates all outstanding session
  tokens; that is the only revocation mechanism.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or mail/.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("accounts.config")


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
    database_url: str = "sqlite:///accounts.db"
    # SQLite busy timeout / driver timeout for a single store call.
    store_timeout_seconds: float = 5.0

    # ------------------------------------------------------------------
    # Credential lifetimes and strength
    # ------------------------------------------------------------------

    session_ttl_seconds: int = 7 * 24 * 60 * 60
    verification_ttl_seconds: int = 24 * 60 * 60
    reset_ttl_seconds: int = 60 * 60
    bcrypt_rounds: int = 12
    verification_code_length: int = 6
    reset_token_bytes: int = 20
    # Open question policy: collapse "wrong code" and "expired code" into one
    # message on the verification path. Off by default.
    collapse_code_errors: bool = False

    # ------------------------------------------------------------------
    # Session cookie
    # ------------------------------------------------------------------

    cookie_name: str = "token"
    secure_cookies: bool = True
    # "none" lets a separately hosted frontend send the cookie cross-site.
    # Browsers require secure=True alongside samesite=none.
    cookie_samesite: str = "none"

    # ------------------------------------------------------------------
    # Links and HTTP surface
    # ------------------------------------------------------------------

    client_url: str = "http://localhost:3000"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:3000"]

    # ------------------------------------------------------------------
    # Mail
    # ------------------------------------------------------------------

    mail_backend: str = "console"  # "console" (DEBUG only) | "smtp"
    mail_from: str = "Accounts <no-reply@localhost>"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_timeout_seconds: float = 20.0

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy.

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
        if self.verification_code_length < 6:
            raise ValueError("VERIFICATION_CODE_LENGTH must be at least 6.")
        if self.reset_token_bytes < 20:
            raise ValueError("RESET_TOKEN_BYTES must be at least 20.")
        if self.cookie_samesite not in ("lax", "strict", "none"):
            raise ValueError("COOKIE_SAMESITE must be one of: lax, strict, none.")
        return self

    @model_validator(mode="after")
    def validate_mail_backend(self) -> "Settings":
        """Refuse the console mail backend outside DEBUG.

        ConsoleMailer writes whole messages to the log, verification codes and
        reset links included. Production must deliver over SMTP.
        """
        if not self.debug and self.mail_backend.strip().lower() == "console":
            raise ValueError(
                "MAIL_BACKEND=console is only allowed with DEBUG=true. "
                "Set MAIL_BACKEND=smtp and SMTP_HOST for production."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()


@dataclass(frozen=True)
class AuthPolicy:
    """Immutable process-wide credential configuration.

    Constructed once at startup and handed to the codec, the token issuer and
    the state machine. Never mutated afterwards.
    """

    secret_key: str
    session_ttl: timedelta = timedelta(days=7)
    verification_ttl: timedelta = timedelta(hours=24)
    reset_ttl: timedelta = timedelta(hours=1)
    bcrypt_rounds: int = 12
    verification_code_length: int = 6
    reset_token_bytes: int = 20
    client_url: str = "http://localhost:3000"
    collapse_code_errors: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthPolicy":
        return cls(
            secret_key=settings.secret_key,
            session_ttl=timedelta(seconds=settings.session_ttl_seconds),
            verification_ttl=timedelta(seconds=settings.verification_ttl_seconds),
            reset_ttl=timedelta(seconds=settings.reset_ttl_seconds),
            bcrypt_rounds=settings.bcrypt_rounds,
            verification_code_length=settings.verification_code_length,
            reset_token_bytes=settings.reset_token_bytes,
            client_url=settings.client_url.rstrip("/"),
            collapse_code_errors=settings.collapse_code_errors,
        )
