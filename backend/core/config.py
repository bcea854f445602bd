"""
PM Engine — Configuration settings.

Loads from environment variables with sensible defaults.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Database
    database_url: str = "sqlite:///./pm_engine.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # PM scheduler
    # Trailing usage window used when an assignment or task rule doesn't set one
    pm_default_lookback_days: int = 30
    # Worker threads per pass; 1 evaluates assignments sequentially
    pm_max_workers: int = 4
    # Period of the built-in daemon (seconds). Hourly by default.
    pm_poll_interval_seconds: int = 3600
    # Rows returned by GET /pm/runs
    pm_run_history_limit: int = 50

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
