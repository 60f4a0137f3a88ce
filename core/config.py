"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for AuthKit happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. database_url -> DATABASE_URL).

  @model_validator(mode="after"): Collects every missing required setting and
      fails once with the full list, so an operator fixes the environment in
      one pass instead of one variable per restart.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authkit.config")

# Local SQLite fallback used only when DEBUG=true and DATABASE_URL is unset.
_DEV_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'authkit_dev.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Every field has a default so Settings() can be built in tests. The
    model_validator enforces the store-credential rule at startup.
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
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Credential store
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured".
    database_url: str = ""

    # ------------------------------------------------------------------
    # Application identity (used in email links and subjects)
    # ------------------------------------------------------------------

    app_url: str = "http://localhost:3000"
    app_name: str = "App"

    # ------------------------------------------------------------------
    # Resend notifier (optional -- empty api key disables email delivery)
    # ------------------------------------------------------------------

    resend_api_key: str = ""
    resend_from_email: str = "noreply@example.com"
    resend_from_name: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    def missing_settings(self) -> list[str]:
        """Return the env var names of required settings that are empty."""
        missing: list[str] = []
        if not self.database_url:
            missing.append("DATABASE_URL")
        return missing

    @model_validator(mode="after")
    def validate_store_credentials(self) -> "Settings":
        """Fail fast when store credentials are missing.

        Dev mode (DEBUG=true): fall back to a local SQLite file with a warning.
        Production mode: raise ValueError listing every missing setting.
        """
        missing = self.missing_settings()
        if not missing:
            return self
        if self.debug:
            self.database_url = _DEV_DB_URL
            logger.warning("DATABASE_URL not set -- using local development database at %s", _DEV_DB_URL)
            return self
        raise ValueError(
            f"Missing required settings: {', '.join(missing)}. "
            "Set these in your environment or .env file. "
            "To run in development mode, set DEBUG=true."
        )

    @property
    def notifier_enabled(self) -> bool:
        return bool(self.resend_api_key)


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
