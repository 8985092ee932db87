"""
Application configuration management using Pydantic Settings.
Handles environment variables and default values for the service.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host address")
    api_port: int = Field(default=8000, description="API port")
    api_debug: bool = Field(default=False, description="Enable debug mode")
    api_reload: bool = Field(default=False, description="Enable auto-reload")

    # Database Configuration
    database_path: str = Field(
        default="data/power_prices.db",
        description="SQLite database file, or ':memory:'"
    )

    # Price source configuration
    price_api_base_url: str = Field(
        default="https://www.hvakosterstrommen.no/api/v1/prices",
        description="Base URL of the hourly spot price source"
    )
    fetch_timeout_seconds: float = Field(default=5.0, description="Timeout for one price request")
    fetch_concurrency: int = Field(default=5, description="Zones fetched in parallel")

    # Scheduler Configuration
    timezone: str = Field(default="Europe/Oslo", description="Local timezone for days and schedules")
    scheduler_enabled: bool = Field(default=True, description="Start the scheduler with the API")
    hourly_fetch_minute: int = Field(default=5, description="Minute past every hour to fetch today's prices")
    tomorrow_fetch_hour: int = Field(default=13, description="Hour to fetch tomorrow's prices (after publication)")
    tomorrow_fetch_minute: int = Field(default=30, description="Minute to fetch tomorrow's prices")
    cheapest_hours_hour: int = Field(default=6, description="Hour to send cheapest-hours alerts")
    cheapest_hours_minute: int = Field(default=0, description="Minute to send cheapest-hours alerts")
    daily_summary_hour: int = Field(default=18, description="Hour to send daily summaries")
    daily_summary_minute: int = Field(default=0, description="Minute to send daily summaries")
    retention_hour: int = Field(default=3, description="Hour to run the retention sweep")
    retention_minute: int = Field(default=0, description="Minute to run the retention sweep")
    job_timeout_seconds: float = Field(default=300.0, description="Deadline for a single scheduled job")

    # Alert Configuration
    cheapest_hours_count: int = Field(default=3, description="Hours listed in cheapest-hours alerts")
    notify_concurrency: int = Field(default=10, description="Concurrent notification sends per pass")
    notify_timeout_seconds: float = Field(default=10.0, description="Timeout for one notification send")
    currency_unit: str = Field(default="kr/kWh", description="Unit shown next to local prices")

    # Email Configuration
    email_enabled: bool = Field(default=False, description="Send real emails (otherwise log only)")
    smtp_host: str = Field(default="smtp.gmail.com", description="SMTP server host")
    smtp_port: int = Field(default=587, description="SMTP server port")
    smtp_user: str = Field(default="", description="SMTP username")
    smtp_password: str = Field(default="", description="SMTP password")
    email_from: str = Field(default="alerts@powerprice.local", description="Sender address")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format (json/text)")

    # Data Retention Configuration
    price_retention_days: int = Field(default=30, description="Days to retain old price data")
    alert_retention_days: int = Field(default=90, description="Days to retain sent alert records")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


# Global settings instance
settings = Settings()
