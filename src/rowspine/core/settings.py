"""Environment-driven settings for rowspine.

``DatabaseSettings`` reads ``ROWSPINE_*`` variables (and a ``.env`` file)
and turns them into the immutable :class:`~rowspine.core.connection.ConnectionSettings`
that ``rowspine.open()`` accepts.

Examples:
    >>> import os
    >>> os.environ["ROWSPINE_URL"] = "sqlite:///books.db"
    >>> os.environ["ROWSPINE_POOL_SIZE"] = "8"
    >>> DatabaseSettings().to_connection_settings().options["pool_size"]
    '8'

Tags:
    settings, configuration, pydantic, environment, rowspine
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rowspine.core.connection import ConnectionSettings

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class DatabaseSettings(BaseSettings):
    """rowspine configuration.

    Fields
    ──────
    url           : Connection URL or bare SQLite path
    pool_size     : Maximum pooled connections per session
    pool_timeout  : Seconds to wait for a free pooled connection
    log_level     : Level passed to ``configure_logging``
    log_format    : ``json`` or ``console``
    echo          : Log every statement at INFO instead of DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="ROWSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────
    url: str = Field(default="sqlite:///:memory:")
    pool_size: int = Field(default=5, ge=1)
    pool_timeout: float = Field(default=30.0, gt=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")
    echo: bool = Field(default=False)

    @field_validator("log_level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        value = value.upper()
        if value not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return value

    @field_validator("log_format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value

    def to_connection_settings(self) -> ConnectionSettings:
        """Parse ``url`` and fold the pool settings into its options."""
        settings = ConnectionSettings.parse(self.url)
        return settings.with_options(
            pool_size=self.pool_size,
            pool_timeout=self.pool_timeout,
        )


__all__ = ["DatabaseSettings"]
