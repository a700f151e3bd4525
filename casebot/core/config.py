# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Core configuration — all env-driven, read once at import.
Single source of truth for every tunable parameter.
"""

import os


def _csv_set(raw: str) -> frozenset:
    """Parse a comma-separated env value into a set of trimmed, non-empty items."""
    return frozenset(item.strip() for item in (raw or "").split(",") if item.strip())


class Settings:
    """Application settings loaded from environment variables."""

    SERVICE_NAME: str = os.getenv("SERVICE_NAME", "casebot")
    SERVICE_VERSION: str = os.getenv("SERVICE_VERSION", "1.0.0")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./casebot.db")
    POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "10"))
    MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "5"))
    POOL_RECYCLE: int = int(os.getenv("DB_POOL_RECYCLE", "300"))

    # Slack
    SLASH_COMMAND: str = os.getenv("SLASH_COMMAND", "/case")
    SLACK_BOT_TOKEN: str = os.getenv("SLACK_BOT_TOKEN", "")
    SLACK_SIGNING_SECRET: str = os.getenv("SLACK_SIGNING_SECRET", "")
    SLACK_API_URL: str = os.getenv("SLACK_API_URL", "https://slack.com/api")
    SLACK_TIMEOUT: float = float(os.getenv("SLACK_TIMEOUT", "5.0"))
    POTENTIAL_ISSUES_CHANNEL_ID: str = os.getenv("POTENTIAL_ISSUES_CHANNEL_ID", "")

    # Access control: empty means "allow all"
    ALLOWED_WORKSPACE_IDS: frozenset = _csv_set(os.getenv("ALLOWED_WORKSPACE_IDS", ""))
    EXPORT_AUTHORIZED_USERS: frozenset = _csv_set(os.getenv("EXPORT_AUTHORIZED_USERS", ""))

    # Paging
    PAGERDUTY_ROUTING_KEY: str = os.getenv("PAGERDUTY_ROUTING_KEY", "")
    PAGERDUTY_EVENTS_URL: str = os.getenv(
        "PAGERDUTY_EVENTS_URL", "https://events.pagerduty.com/v2/enqueue"
    )
    PAGERDUTY_TIMEOUT: float = float(os.getenv("PAGERDUTY_TIMEOUT", "5.0"))

    # Rate governor
    RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
    RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "60"))
    RATE_LIMIT_BLOCK_SECONDS: int = int(os.getenv("RATE_LIMIT_BLOCK_SECONDS", "300"))

    # Lifecycle
    NAME_MAX_ATTEMPTS: int = int(os.getenv("NAME_MAX_ATTEMPTS", "10"))
    LIST_LIMIT: int = int(os.getenv("LIST_LIMIT", "25"))


settings = Settings()
