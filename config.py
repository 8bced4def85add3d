"""Configuration module for the Telegram Reminder Bot.

This module provides configuration settings using Pydantic Settings.
Environment variables (or a .env file) can be used to override default values.
"""

from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings

DEFAULT_MAX_NUM_TRIES = 10
DEFAULT_MONITOR_INTERVAL_SECONDS = 10
DEFAULT_TELEGRAM_INTERVAL_SECONDS = 1


class Settings(BaseSettings):
    """Application settings for the reminder bot.

    All settings can be overridden via environment variables.
    Example: export TELEGRAM_API_TOKEN="123456:ABC..."
    """

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./db.sqlite"
    """Database connection URL. Default: SQLite file in current directory"""

    # Telegram Configuration
    TELEGRAM_API_TOKEN: str = ""
    """Bot token issued by @BotFather"""

    TELEGRAM_API_URL: str = "https://api.telegram.org"
    """Base URL of the Telegram Bot API"""

    TELEGRAM_INTERVAL_SECONDS: int = DEFAULT_TELEGRAM_INTERVAL_SECONDS
    """Pause in seconds between two getUpdates polls"""

    TELEGRAM_TIMEOUT_SECONDS: float = 30.0
    """HTTP timeout for Bot API requests"""

    RESTRICT_USERS: bool = False
    """Only answer users listed in ALLOWED_USER_IDS"""

    ALLOWED_USER_IDS: List[str] = []
    """Telegram usernames allowed to use the bot when RESTRICT_USERS is set"""

    BOT_ENABLED: bool = True
    """Enable/disable the Telegram update polling front end"""

    # Delivery Scheduler Configuration
    WORKER_ENABLED: bool = True
    """Enable/disable the delivery scheduler"""

    MONITOR_INTERVAL_SECONDS: int = DEFAULT_MONITOR_INTERVAL_SECONDS
    """Interval in seconds between two queue scans"""

    MAX_NUM_TRIES: int = DEFAULT_MAX_NUM_TRIES
    """Delivery attempts after which a reminder is no longer retried"""

    WORKER_MAX_CONCURRENCY: int = 8
    """Maximum number of deliveries running at the same time"""

    # API Server Configuration
    API_ENABLED: bool = True
    """Serve the REST intake API from main.py"""

    API_HOST: str = "0.0.0.0"
    """API server host address"""

    API_PORT: int = 8005
    """API server port"""

    # MCP Server Configuration
    MCP_ENABLED: bool = False
    """Run the MCP tool server alongside the bot"""

    MCP_HOST: str = "127.0.0.1"
    """MCP server host address"""

    MCP_PORT: int = 8006
    """MCP server port for SSE transport (separate from REST API)"""

    MCP_TRANSPORT: str = "sse"
    """MCP transport type: 'stdio' for local, 'sse' for network access"""

    # General Configuration
    TIMEZONE: str = "UTC"
    """Timezone used to read naive datetimes and to display fire times"""

    IS_VERBOSE: bool = False
    """Log every queue scan and Bot API call, and lower log levels to DEBUG"""

    # Logging Configuration
    LOG_DIR: str = ""
    """Directory for rotating log files (default: logs/ beside the modules)"""

    LOG_MAX_BYTES: int = 10 * 1024 * 1024
    """Size at which a log file is rotated (default: 10MB)"""

    LOG_BACKUP_COUNT: int = 5
    """Rotated log files kept per component"""

    @field_validator("MONITOR_INTERVAL_SECONDS")
    @classmethod
    def _default_monitor_interval(cls, value: int) -> int:
        return value if value > 0 else DEFAULT_MONITOR_INTERVAL_SECONDS

    @field_validator("TELEGRAM_INTERVAL_SECONDS")
    @classmethod
    def _default_telegram_interval(cls, value: int) -> int:
        return value if value > 0 else DEFAULT_TELEGRAM_INTERVAL_SECONDS

    @field_validator("MAX_NUM_TRIES")
    @classmethod
    def _default_max_num_tries(cls, value: int) -> int:
        return value if value >= 0 else DEFAULT_MAX_NUM_TRIES

    @field_validator("WORKER_MAX_CONCURRENCY")
    @classmethod
    def _positive_concurrency(cls, value: int) -> int:
        return max(1, value)

    class Config:
        """Pydantic config"""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()
