"""
Client settings.

Values come from keyword arguments, then `MICROFEED_*` environment
variables, then a `.env` file in the working directory, then the defaults
below.
"""

import logging
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared_lib.baseclient.client import DEFAULT_RETRY_LIMIT, DEFAULT_TIMEOUT

from microfeed.auth.credential_store import DEFAULT_STORAGE_DIR
from microfeed.urls import MicrofeedBaseUrls


class ClientSettings(BaseSettings):
    """
    Settings for `MicrofeedClient`.

    Attributes:
        environment: "development" targets the local API server,
            "production" the hosted one
        base_url: Explicit API base URL, overrides `environment`
        timeout: Seconds allowed for each request attempt
        retry_limit: Extra attempts for transient failures
        language: Sent as the `x-lang` header
        storage_dir: Directory of the encrypted credential store
        log_level: Logging level name used by `setup_logging`
    """

    model_config = SettingsConfigDict(
        env_prefix="MICROFEED_",
        env_file=".env",
        extra="ignore",
    )

    environment: Literal["development", "production"] = "production"
    base_url: str | None = None
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    retry_limit: int = Field(default=DEFAULT_RETRY_LIMIT, ge=0)
    language: str = "EN"
    storage_dir: Path = DEFAULT_STORAGE_DIR
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def resolved_base_url(self) -> str:
        if self.base_url:
            return self.base_url
        if self.environment == "development":
            return MicrofeedBaseUrls.DEVELOPMENT
        return MicrofeedBaseUrls.PRODUCTION

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level)
