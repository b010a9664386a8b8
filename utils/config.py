"""Configuration management utilities for the performance statistics API.

Provides:
- Config: a small attribute container with dict/JSON round-tripping
- AppConfig: application settings read from environment variables
- Enumerations of the fixed vocabularies stored in the database
"""

import json
import os as _os
from pathlib import Path
from typing import Any, Dict


# ── Known values ──────────────────────────────────────────────────────────────

STATUS_INPROGRESS = "INPROGRESS"
STATUS_SUCCESS = "SUCCESS"
STATISTIC_STATUSES = frozenset({STATUS_INPROGRESS, STATUS_SUCCESS})

ROLE_ADMIN = "ADMIN"
ROLE_STATE_ADMIN = "STATE_ADMIN"
ROLE_RANGE_ADMIN = "RANGE_ADMIN"
ROLE_DISTRICT_USER = "DISTRICT_USER"


class Config:
    """Base configuration class for organizing application settings."""

    def __init__(self):
        """Initialize configuration with default values."""
        pass

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary.

        Returns:
            Dictionary of all config attributes
        """
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            Config instance with values from dictionary
        """
        config = cls()
        for key, value in data.items():
            setattr(config, key, value)
        return config

    def save_json(self, path: Path) -> None:
        """Save configuration to JSON file.

        Args:
            path: Path to save configuration file
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def load_json(cls, path: Path) -> "Config":
        """Load configuration from JSON file.

        Args:
            path: Path to configuration file

        Returns:
            Config instance loaded from file

        Raises:
            FileNotFoundError: If file doesn't exist
            json.JSONDecodeError: If file is not valid JSON
        """
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)


def _int_env(name: str, default: int) -> int:
    raw = _os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


class AppConfig(Config):
    """Application-level configuration loaded from environment variables.

    All env vars have sensible defaults so the application works out of the
    box without any configuration.

    Environment variables:
        APP_DB_PATH: Path to the SQLite database file (default: performance.sqlite)
        APP_PORT: API server port (default: 8000)
        APP_HOST: API server bind address (default: 127.0.0.1)
        APP_ENV: "development" or "production" (default: development)
        APP_LOG_FORMAT: Logging format, "text" or "json" (default: text)
        APP_CORS_ORIGINS: Comma-separated allowed origins (default: *)
        APP_REPORTING_MONTH_OFFSET: Months subtracted from today to get the
            current reporting month (default: 0)
        APP_FINANCIAL_YEAR_START: Month number that opens the financial
            year (default: 4, April)
        APP_OTP_TTL_MINUTES: Lifetime of an issued OTP (default: 10)
    """

    def __init__(self) -> None:
        super().__init__()
        self.db_path = Path(_os.getenv("APP_DB_PATH", "performance.sqlite"))
        self.api_port = _int_env("APP_PORT", 8000)
        self.api_host = _os.getenv("APP_HOST", "127.0.0.1")
        self.environment = _os.getenv("APP_ENV", "development").strip().lower()
        self.log_format = _os.getenv("APP_LOG_FORMAT", "text")
        raw_origins = _os.getenv("APP_CORS_ORIGINS", "*")
        self.cors_origins: list[str] = (
            ["*"] if raw_origins == "*"
            else [o.strip() for o in raw_origins.split(",") if o.strip()]
        )
        self.reporting_month_offset = _int_env("APP_REPORTING_MONTH_OFFSET", 0)
        self.financial_year_start = _int_env("APP_FINANCIAL_YEAR_START", 4)
        if not 1 <= self.financial_year_start <= 12:
            raise ValueError(
                "APP_FINANCIAL_YEAR_START must be a month number between 1 and 12"
            )
        self.otp_ttl_minutes = _int_env("APP_OTP_TTL_MINUTES", 10)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create an AppConfig instance populated from environment variables."""
        return cls()
