"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the auth server happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
at the application edge and hand an AuthConfig to the credential managers.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. Only the
      application assembly (api/main.py) calls it.

  Value object: AuthConfig is a frozen dataclass derived from Settings. It
      holds the three signing secrets and every credential lifetime. The token
      codec and both managers receive it explicitly and never read Settings.

  @model_validator(mode="after"): cross-field validation after all fields are
      resolved. Dev mode generates missing secrets; production refuses to
      start without them.

Security notes:
  [S1] Every secret shorter than 32 chars is rejected outright.
  [S2] Access, refresh and verification secrets must be pairwise distinct.
       A shared key would let a refresh token verify as an access token.
  [S3] In production mode a missing secret is a hard startup failure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authserver.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'authserver.db'}"

_SECRET_FIELDS = ("jwt_access_secret", "jwt_refresh_secret", "verification_secret", "session_secret")
_SIGNING_SECRET_FIELDS = ("jwt_access_secret", "jwt_refresh_secret", "verification_secret")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `jwt_access_secret` reads from JWT_ACCESS_SECRET.
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
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Secrets -- empty string is the "not configured" sentinel
    # ------------------------------------------------------------------

    jwt_access_secret: str = ""
    jwt_refresh_secret: str = ""
    verification_secret: str = ""
    # Signs the Starlette session cookie that carries OAuth state.
    session_secret: str = ""

    # ------------------------------------------------------------------
    # Credential lifetimes
    # ------------------------------------------------------------------

    access_token_expire_seconds: int = 3 * 24 * 60 * 60
    refresh_token_expire_seconds: int = 30 * 24 * 60 * 60
    verification_token_expire_seconds: int = 10 * 60
    otp_expire_seconds: int = 5 * 60
    otp_length: int = 6

    # ------------------------------------------------------------------
    # Mail relay
    # ------------------------------------------------------------------

    mail_api_base_url: str = ""
    email_verification_key: str = ""

    # ------------------------------------------------------------------
    # Google OAuth (optional -- empty string means disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""
    mobile_success_url: str = "safari://auth/success"
    mobile_error_url: str = "safari://auth/error"

    # ------------------------------------------------------------------
    # Rate limiting and housekeeping
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["http://localhost", "http://localhost:3000"]
    login_rate_limit: str = "10/minute"
    otp_rate_limit: str = "5/minute"
    purge_interval_seconds: int = 60 * 60

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the secret policy [S1][S2][S3].

        Dev mode (DEBUG=true): auto-generate each missing secret with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if any secret is missing.
        """
        for name in _SECRET_FIELDS:
            value = getattr(self, name)
            if not value:
                if not self.debug:
                    raise ValueError(
                        f"{name.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
                value = secrets.token_hex(32)
                setattr(self, name, value)
                logger.warning("Using auto-generated %s. Tokens will not persist across restarts.", name.upper())
            if len(value) < 32:
                raise ValueError(f"{name.upper()} must be at least 32 characters.")

        signing = [getattr(self, name) for name in _SIGNING_SECRET_FIELDS]
        if len(set(signing)) != len(signing):
            raise ValueError("JWT_ACCESS_SECRET, JWT_REFRESH_SECRET and VERIFICATION_SECRET must all differ.")

        if not 4 <= self.otp_length <= 10:
            raise ValueError("OTP_LENGTH must be between 4 and 10 digits.")
        return self


@dataclass(frozen=True)
class AuthConfig:
    """Immutable credential configuration shared by the codec and managers.

    Built once at startup and passed explicitly; safe to share across threads
    because nothing can mutate it.
    """

    access_secret: str
    refresh_secret: str
    verification_secret: str
    access_token_expiry: timedelta = timedelta(days=3)
    refresh_token_expiry: timedelta = timedelta(days=30)
    verification_token_expiry: timedelta = timedelta(minutes=10)
    otp_expiry: timedelta = timedelta(minutes=5)
    otp_length: int = 6

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthConfig":
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            verification_secret=settings.verification_secret,
            access_token_expiry=timedelta(seconds=settings.access_token_expire_seconds),
            refresh_token_expiry=timedelta(seconds=settings.refresh_token_expire_seconds),
            verification_token_expiry=timedelta(seconds=settings.verification_token_expire_seconds),
            otp_expiry=timedelta(seconds=settings.otp_expire_seconds),
            otp_length=settings.otp_length,
        )


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
