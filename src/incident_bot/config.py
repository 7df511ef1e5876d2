"""Configuration helpers for the incident feed bot."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


DEFAULT_FEED_URL = "https://www.google.com/appsstatus/dashboard/en/feed.atom"
DEFAULT_DASHBOARD_URL = "https://www.google.com/appsstatus/dashboard/"
DEFAULT_DATABASE_PATH = "incident_state.db"
DEFAULT_RETENTION_LIMIT = 50
DEFAULT_DISPLAY_TIMEZONE = "Europe/Paris"
DEFAULT_DISPLAY_LOCALE = "fr_FR"
DEFAULT_SUBJECT_PREFIX = "[Incident] "
DEFAULT_SMTP_PORT = 587
DEFAULT_REQUEST_TIMEOUT = 20

load_dotenv()


@dataclass(frozen=True, slots=True)
class Settings:
    """Runtime configuration loaded from environment variables."""

    feed_url: str = DEFAULT_FEED_URL
    dashboard_url: str = DEFAULT_DASHBOARD_URL
    database_path: str = DEFAULT_DATABASE_PATH
    retention_limit: int = DEFAULT_RETENTION_LIMIT
    display_timezone: str = DEFAULT_DISPLAY_TIMEZONE
    display_locale: str = DEFAULT_DISPLAY_LOCALE
    subject_prefix: str = DEFAULT_SUBJECT_PREFIX
    recipient: Optional[str] = None
    mail_webhook_url: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = DEFAULT_SMTP_PORT
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_sender: Optional[str] = None
    smtp_use_ssl: bool = False
    request_timeout: int = DEFAULT_REQUEST_TIMEOUT

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""

        return cls(
            feed_url=os.getenv("FEED_URL", DEFAULT_FEED_URL),
            dashboard_url=os.getenv("DASHBOARD_URL", DEFAULT_DASHBOARD_URL),
            database_path=os.getenv("STATE_DB_PATH", DEFAULT_DATABASE_PATH),
            retention_limit=_get_int("SEEN_RETENTION_LIMIT", DEFAULT_RETENTION_LIMIT),
            display_timezone=os.getenv("DISPLAY_TIMEZONE", DEFAULT_DISPLAY_TIMEZONE),
            display_locale=os.getenv("DISPLAY_LOCALE", DEFAULT_DISPLAY_LOCALE),
            subject_prefix=os.getenv("SUBJECT_PREFIX", DEFAULT_SUBJECT_PREFIX),
            recipient=os.getenv("NOTIFY_RECIPIENT") or None,
            mail_webhook_url=os.getenv("MAIL_WEBHOOK_URL") or None,
            smtp_host=os.getenv("SMTP_HOST") or None,
            smtp_port=_get_int("SMTP_PORT", DEFAULT_SMTP_PORT),
            smtp_username=os.getenv("SMTP_USERNAME") or None,
            smtp_password=os.getenv("SMTP_PASSWORD") or None,
            smtp_sender=os.getenv("SMTP_SENDER") or None,
            smtp_use_ssl=_get_bool("SMTP_USE_SSL", False),
            request_timeout=_get_int("REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
        )


def _get_int(var_name: str, default: int) -> int:
    """Read an integer environment variable, falling back to ``default``."""

    raw_value = os.getenv(var_name)
    if raw_value is None:
        return default
    try:
        value = int(raw_value)
    except ValueError:
        return default
    return max(0, value)


def _get_bool(var_name: str, default: bool) -> bool:
    raw_value = os.getenv(var_name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}
