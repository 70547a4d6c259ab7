"""Configuration for the report scheduler and mail delivery."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["MailConfig", "SchedulerConfig"]


@dataclass
class SchedulerConfig:
    """Configuration for :class:`~portal_workflows.scheduler.service.ReportScheduler`.

    Attributes:
        run_hour: Hour of day (0-23) at which reports fire.
        timezone: IANA timezone name the cron expressions are evaluated in.
            Defaults to the server's local timezone.
        refresh_interval: How often the set of active reports is reloaded.
        sender_name: Display name used in the From header of report mails.
    """

    run_hour: int = 8
    timezone: str | None = None
    refresh_interval: timedelta = field(default_factory=lambda: timedelta(hours=24))
    sender_name: str = "Analytics System"

    def __post_init__(self) -> None:
        if not 0 <= self.run_hour <= 23:
            msg = f"run_hour must be between 0 and 23, got {self.run_hour}"
            raise ValueError(msg)

    def get_tzinfo(self) -> tzinfo:
        """Resolve the configured timezone."""
        if self.timezone:
            return ZoneInfo(self.timezone)
        return datetime.now().astimezone().tzinfo  # type: ignore[return-value]


class MailConfig(BaseSettings):
    """SMTP settings, read from ``EMAIL_*`` environment variables.

    Attributes:
        host: SMTP server (``EMAIL_HOST``).
        port: SMTP port (``EMAIL_PORT``).
        secure: Connect with implicit TLS (``EMAIL_SECURE``).
        user: Login user, also used as the sender address (``EMAIL_USER``).
        password: Login password (``EMAIL_PASSWORD``).
    """

    model_config = SettingsConfigDict(env_prefix="EMAIL_", env_file=".env", extra="ignore")

    host: str = "localhost"
    port: int = 587
    secure: bool = False
    user: str | None = None
    password: str | None = None

    @classmethod
    def from_env(cls) -> MailConfig:
        """Load the settings from the environment and ``.env``."""
        return cls()
