"""
Configuration module for the Weather Subscriptions service.

All options are read from environment variables (a local .env file is
loaded first if present). Only the listening port, SMTP port, timeouts and
paths have fallbacks; credentials have none.
"""

import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

DEFAULT_PORT = 3000
DEFAULT_SMTP_PORT = 587
DEFAULT_WEATHER_API_URL = "http://api.weatherapi.com/v1/current.json"
DEFAULT_DATABASE_PATH = "weather_subscriptions.db"
DEFAULT_DAILY_SEND_HOUR = 8


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _get_str(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value if value else None


@dataclass(frozen=True)
class Settings:
    """Named options for every collaborator of the service."""
    weather_api_key: Optional[str] = None
    weather_api_url: str = DEFAULT_WEATHER_API_URL
    weather_api_timeout: int = 10

    smtp_host: Optional[str] = None
    smtp_port: int = DEFAULT_SMTP_PORT
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    mail_from: Optional[str] = None
    smtp_timeout: int = 15

    database_path: str = DEFAULT_DATABASE_PATH

    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    base_url: str = f"http://localhost:{DEFAULT_PORT}"
    cors_origins: str = "*"
    static_dir: str = "public"

    scheduler_enabled: bool = True
    daily_send_hour: int = DEFAULT_DAILY_SEND_HOUR

    log_level: str = "INFO"
    debug: bool = False

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Build settings from the process environment."""
        load_dotenv(env_file)

        port = _get_int("PORT", DEFAULT_PORT)
        daily_send_hour = _get_int("DAILY_SEND_HOUR", DEFAULT_DAILY_SEND_HOUR)
        if not 0 <= daily_send_hour <= 23:
            raise ValueError(f"DAILY_SEND_HOUR must be between 0 and 23, got {daily_send_hour}")

        smtp_user = _get_str("SMTP_USER")

        return cls(
            weather_api_key=_get_str("WEATHER_API_KEY"),
            weather_api_url=os.getenv("WEATHER_API_URL") or DEFAULT_WEATHER_API_URL,
            weather_api_timeout=_get_int("WEATHER_API_TIMEOUT", 10),
            smtp_host=_get_str("SMTP_HOST"),
            smtp_port=_get_int("SMTP_PORT", DEFAULT_SMTP_PORT),
            smtp_user=smtp_user,
            smtp_password=_get_str("SMTP_PASS"),
            mail_from=_get_str("MAIL_FROM") or smtp_user,
            smtp_timeout=_get_int("SMTP_TIMEOUT", 15),
            database_path=os.getenv("DATABASE_PATH") or DEFAULT_DATABASE_PATH,
            host=os.getenv("HOST") or "0.0.0.0",
            port=port,
            base_url=(os.getenv("BASE_URL") or f"http://localhost:{port}").rstrip("/"),
            cors_origins=os.getenv("CORS_ORIGINS") or "*",
            static_dir=os.getenv("STATIC_DIR") or "public",
            scheduler_enabled=_get_bool("SCHEDULER_ENABLED", True),
            daily_send_hour=daily_send_hour,
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
            debug=_get_bool("DEBUG", False),
        )

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
