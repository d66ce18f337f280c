"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Matcha happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The
      instance is treated as immutable process-wide state after startup.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Used for the SECRET_KEY policy below.

Security notes:
  [K1] A missing SECRET_KEY is a configuration warning, not a startup failure.
       A random key is generated so local development keeps working; every
       restart then invalidates all issued credentials. Deployments must set
       SECRET_KEY -- nothing in the auth design relies on this fallback.

  [K2] A SECRET_KEY shorter than 32 chars is accepted with a warning. HS256
       signing relies on key entropy, so a short key weakens every credential.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or photos/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("matcha.config")

_REPO_ROOT = Path(__file__).resolve().parent.parent


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
    # below replaces it with a generated key, so callers never see "".
    secret_key: str = ""
    database_url: str = f"sqlite:///{_REPO_ROOT / 'matcha.db'}"
    public_base_url: str = "http://localhost:8000"

    # ------------------------------------------------------------------
    # Session / CSRF cookies
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    # Credential lifetime. Also the access_token cookie max-age so both
    # expire together.
    token_expire_seconds: int = 15 * 60
    csrf_cookie_max_age: int = 7 * 24 * 60 * 60

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["http://localhost:5173"]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    auth_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Photo uploads
    # ------------------------------------------------------------------

    uploads_dir: Path = _REPO_ROOT / "uploads"
    max_upload_bytes: int = 10 * 1024 * 1024

    # ------------------------------------------------------------------
    # Outbound mail (optional -- empty host means log-only delivery)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 1025
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "Matcha <no-reply@matcha.local>"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Apply the SECRET_KEY policy [K1][K2].

        Missing key: generate a random one and warn. Credentials will not
            survive a restart -- acceptable for local dev only.

        Short key: keep it and warn.
        """
        if not self.secret_key:
            self.secret_key = secrets.token_hex(32)
            logger.warning(
                "WARNING: SECRET_KEY is not set; using an auto-generated key. "
                "Sessions will not persist across restarts."
            )
        elif len(self.secret_key) < 32:
            logger.warning("WARNING: SECRET_KEY is shorter than 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
