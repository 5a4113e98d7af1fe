"""
Configuration management for the ClickHouse manager console.
Loads settings from environment variables.
"""
import os
from dataclasses import dataclass


@dataclass
class Settings:
    """
    Application settings loaded from environment variables.
    Single point of configuration for the entire application.
    """

    # Local store (connections, report snapshots, history, favorites)
    database_url: str = os.getenv("CHMANAGER_DATABASE_URL", "sqlite:///./chmanager.db")
    database_echo: bool = os.getenv("CHMANAGER_DATABASE_ECHO", "false").lower() == "true"

    # Application Settings
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Default deadline applied to every API request (seconds)
    request_timeout: float = float(os.getenv("REQUEST_TIMEOUT", "60.0"))

    # Remote ClickHouse access
    clickhouse_timeout: float = float(os.getenv("CLICKHOUSE_TIMEOUT", "30.0"))
    clickhouse_verify_ssl: bool = os.getenv("CLICKHOUSE_VERIFY_SSL", "true").lower() == "true"

    # Ad-hoc query history kept per connection
    history_limit: int = int(os.getenv("QUERY_HISTORY_LIMIT", "50"))

    def get_engine_kwargs(self) -> dict:
        """Get keyword arguments for SQLAlchemy create_engine."""
        kwargs = {"echo": self.database_echo, "pool_pre_ping": True}
        # SQLite connections are shared with the FastAPI worker threads
        if self.database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
        return kwargs


# Global settings instance
settings = Settings()
