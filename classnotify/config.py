"""Application configuration management."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralised application settings derived from environment variables."""

    database_url: str = Field(
        default="sqlite:///./data/classnotify.db",
        description="SQLAlchemy-compatible database URL.",
    )
    app_host: str = Field(default="0.0.0.0")
    app_port: int = Field(default=8000, ge=1, le=65535)
    debug: bool = Field(default=False)

    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default=Path("logs"))
    log_max_bytes: int = Field(default=5_000_000, ge=0)
    log_backup_count: int = Field(default=5, ge=0)

    # SMTP transport
    smtp_host: str | None = Field(default=None)
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_username: str | None = Field(default=None)
    smtp_password: str | None = Field(default=None)
    smtp_security: Literal["starttls", "tls", "none"] = Field(default="starttls")
    smtp_timeout_seconds: float = Field(default=10.0, gt=0)

    mail_from_email: str | None = Field(default=None)
    mail_from_name: str = Field(default="LinuxWorld")
    mail_brand_name: str = Field(default="LinuxWorld")

    # Batch dispatch
    dispatch_batch_size: int = Field(default=10, ge=1)
    dispatch_inter_batch_delay_ms: int = Field(default=1000, ge=0)

    # Verification codes
    verification_code_ttl_seconds: int = Field(default=600, ge=1)
    verification_rate_limit: int = Field(default=5, ge=1)
    verification_rate_window_seconds: int = Field(default=3600, ge=1)
    verification_delivery_retries: int = Field(default=2, ge=0)
    verification_retry_backoff_ms: int = Field(default=500, ge=0)

    rate_limit_backend: Literal["memory", "sql"] = Field(default="memory")
    sweep_interval_minutes: int = Field(default=60, ge=1)
    scheduler_lock_file: Path = Field(default=Path(".scheduler.lock"))

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        valid = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
        upper = value.upper()
        if upper not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(sorted(valid))}")
        return upper

    @field_validator("smtp_host", "smtp_username", "smtp_password", "mail_from_email")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        """Treat empty environment values as unset."""

        if value is not None and not value.strip():
            return None
        return value

    @property
    def mail_configured(self) -> bool:
        """True when enough SMTP settings are present to attempt delivery."""

        return bool(self.smtp_host and (self.mail_from_email or self.smtp_username))

    @property
    def sender_address(self) -> str | None:
        return self.mail_from_email or self.smtp_username


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance so it can be reused across the app."""

    settings = Settings()
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    return settings
