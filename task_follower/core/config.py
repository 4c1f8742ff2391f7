"""Configuration management for task-follower."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    database_path: str = Field(default="task_follower.db", description="SQLite database file for the task mirror")

    # Telegram Configuration
    telegram_bot_token: str | None = Field(default=None, description="Telegram Bot API token")
    telegram_api_base_url: str = Field(default="https://api.telegram.org", description="Telegram Bot API base URL")
    telegram_webhook_secret: str | None = Field(
        default=None, description="Secret expected in the X-Telegram-Bot-Api-Secret-Token header"
    )

    # Google Sheets Configuration
    google_api_key: str | None = Field(default=None, description="Google API key for the Sheets REST API")
    sheets_api_base_url: str = Field(
        default="https://sheets.googleapis.com/v4", description="Google Sheets REST API base URL"
    )
    members_sheet_id: str | None = Field(default=None, description="Spreadsheet holding the member directory")
    members_tab: str = Field(default="Sheet1", description="Tab name of the member directory")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # Admin Configuration
    admin_api_key: str | None = Field(default=None, description="API key required by the /admin endpoints")
    admin_chat_ids: list[str] = Field(default_factory=list, description="Telegram chat ids that receive admin alerts")
    enable_admin_notifications: bool = Field(
        default=True, description="Enable/disable admin notifications for failing jobs"
    )
    admin_notification_cooldown_minutes: int = Field(
        default=60, description="Minimum minutes between repeated admin alerts with the same key"
    )

    # Scheduling
    timezone: str = Field(default="Europe/Istanbul", description="Time zone used for working hours and day boundaries")
    work_hours_start: int = Field(default=8, description="First hour (inclusive) when the sync may run")
    work_hours_end: int = Field(default=22, description="Hour (exclusive) after which the sync stops running")
    sync_schedule: str = Field(default="*/5 * * * *", description="Cron expression for the sheet sync")
    escalation_schedule: str = Field(default="0 10 * * *", description="Cron expression for the escalation sweep")
    attention_report_schedule: str = Field(
        default="0 9 * * *", description="Cron expression for the daily attention report"
    )
    max_sheets_per_tick: int = Field(default=5, description="Maximum sheets reconciled by one sync tick")
    tick_budget_seconds: float = Field(default=25.0, description="Soft execution budget for one sync tick")

    # Directory cache
    directory_cache_ttl_seconds: int = Field(default=300, description="How long a directory snapshot stays fresh")

    # Escalation
    escalation_threshold_days: int = Field(default=2, description="Days past due before peers are asked to nudge")
    escalation_batch_size: int = Field(default=5, description="Peers notified concurrently per batch")
    escalation_batch_delay_seconds: float = Field(default=1.0, description="Pause between escalation batches")

    # Sheet layout
    contacts_tab: str = Field(default="contacts", description="Tab holding the project roster")
    reserved_tabs: list[str] = Field(
        default_factory=lambda: ["contacts", "imported"], description="Tabs never scanned for tasks"
    )
    date_day_first: bool = Field(default=False, description="Parse ambiguous dates as day/month/year")

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # API Configuration
    API_TIMEOUT_SECONDS: int = 30

    # HTTP Status Codes
    HTTP_OK: int = 200
    HTTP_BAD_REQUEST: int = 400
    HTTP_FORBIDDEN: int = 403
    HTTP_TOO_MANY_REQUESTS: int = 429
    HTTP_SERVER_ERROR: int = 500

    # Telegram allows roughly one message per second per chat; keep well under it
    MAX_MESSAGES_PER_CHAT_PER_MINUTE: int = 20

    # Notification cadence
    NOTIFICATION_INTERVAL_HOURS: int = 24  # Owner reminders and manager reports
    START_DATE_SKEW_MINUTES: int = 10  # Start dates this far ahead count as not begun
    DUE_SOON_DAYS: int = 3

    # Escalation action payload prefix ("shame:<task_id>")
    ESCALATION_ACTION_PREFIX: str = "shame"

    # Placeholder id for owners missing from the roster
    UNKNOWN_PERSON_ID: str = "0"

    # Job Tracker Configuration
    TRACKER_DEAD_LETTER_QUEUE_MAXLEN: int = 100
    TRACKER_ALERT_AFTER_FAILURES: int = 3

    # Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
