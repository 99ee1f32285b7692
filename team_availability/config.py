"""
Configuration for the Team Availability service.

Values come from config/config.yaml, overridden by environment variables.
"""

import os
from typing import Optional

import yaml


DEFAULTS = {
    "cache": {
        "analytics_timeout": 300.0,
        "alerts_timeout": 30.0,
        "stale_threshold": 60.0,
        "sweep_interval": 300.0,
    },
    "retry": {
        "max_attempts": 3,
        "base_delay": 1.0,
        "max_delay": 30.0,
    },
    "schedule": {
        "unknown_value_hours": 0.0,
    },
    "logging": {
        "level": "INFO",
        "json": False,
    },
}


class Config:
    """Load configuration from config.yaml and environment."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or os.getenv("TEAM_AVAILABILITY_CONFIG", "config/config.yaml")
        self.config = {}

        if os.path.exists(self.config_path):
            with open(self.config_path) as f:
                self.config = yaml.safe_load(f) or {}

        # Override with environment variables
        self._load_env()

    def _load_env(self):
        """Load configuration from environment variables."""
        env_mapping = {
            "SUPABASE_URL": ("database", "url"),
            "SUPABASE_KEY": ("database", "key"),
            "CACHE_ANALYTICS_TIMEOUT": ("cache", "analytics_timeout"),
            "CACHE_ALERTS_TIMEOUT": ("cache", "alerts_timeout"),
            "CACHE_STALE_THRESHOLD": ("cache", "stale_threshold"),
            "CACHE_SWEEP_INTERVAL": ("cache", "sweep_interval"),
            "RETRY_MAX_ATTEMPTS": ("retry", "max_attempts"),
            "RETRY_BASE_DELAY": ("retry", "base_delay"),
            "RETRY_MAX_DELAY": ("retry", "max_delay"),
            "UNKNOWN_VALUE_HOURS": ("schedule", "unknown_value_hours"),
            "LOG_LEVEL": ("logging", "level"),
            "LOG_JSON": ("logging", "json"),
        }

        for env_var, (section, key) in env_mapping.items():
            value = os.getenv(env_var)
            if value:
                if section not in self.config:
                    self.config[section] = {}
                self.config[section][key] = value

    def get(self, section: str, key: str, default=None):
        """Get configuration value."""
        fallback = DEFAULTS.get(section, {}).get(key, default)
        return (self.config.get(section) or {}).get(key, fallback)

    def _float(self, section: str, key: str) -> float:
        value = self.get(section, key)
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{section}.{key} must be a number, got {value!r}") from None

    @property
    def database_url(self) -> Optional[str]:
        return self.get("database", "url")

    @property
    def database_key(self) -> Optional[str]:
        return self.get("database", "key")

    @property
    def analytics_timeout(self) -> float:
        return self._float("cache", "analytics_timeout")

    @property
    def alerts_timeout(self) -> float:
        return self._float("cache", "alerts_timeout")

    @property
    def stale_threshold(self) -> float:
        return self._float("cache", "stale_threshold")

    @property
    def sweep_interval(self) -> float:
        return self._float("cache", "sweep_interval")

    @property
    def retry_max_attempts(self) -> int:
        return int(self._float("retry", "max_attempts"))

    @property
    def retry_base_delay(self) -> float:
        return self._float("retry", "base_delay")

    @property
    def retry_max_delay(self) -> float:
        return self._float("retry", "max_delay")

    @property
    def unknown_value_hours(self) -> float:
        return self._float("schedule", "unknown_value_hours")

    @property
    def roles(self) -> dict:
        return (self.config.get("access") or {}).get("roles") or {}

    @property
    def log_level(self) -> str:
        return str(self.get("logging", "level")).upper()

    @property
    def log_json(self) -> bool:
        value = self.get("logging", "json")
        if isinstance(value, str):
            return value.lower() in ("1", "true", "yes")
        return bool(value)
