"""
Tests for configuration loading.
"""

import pytest

from team_availability.config import Config


ENV_VARS = (
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "CACHE_ANALYTICS_TIMEOUT",
    "CACHE_ALERTS_TIMEOUT",
    "CACHE_STALE_THRESHOLD",
    "CACHE_SWEEP_INTERVAL",
    "RETRY_MAX_ATTEMPTS",
    "RETRY_BASE_DELAY",
    "RETRY_MAX_DELAY",
    "UNKNOWN_VALUE_HOURS",
    "LOG_LEVEL",
    "LOG_JSON",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestConfig:
    """Tests for YAML and environment configuration."""

    def test_defaults_without_file(self, tmp_path):
        """Test built-in defaults when no file exists."""
        config = Config(config_path=str(tmp_path / "missing.yaml"))

        assert config.analytics_timeout == 300
        assert config.alerts_timeout == 30
        assert config.stale_threshold == 60
        assert config.retry_max_attempts == 3
        assert config.unknown_value_hours == 0
        assert config.database_url is None
        assert config.roles == {}
        assert config.log_level == "INFO"
        assert config.log_json is False

    def test_yaml_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "cache:\n"
            "  analytics_timeout: 120\n"
            "logging:\n"
            "  level: debug\n"
            "access:\n"
            "  roles:\n"
            "    admin@company.com: admin\n"
        )
        config = Config(config_path=str(path))

        assert config.analytics_timeout == 120
        assert config.alerts_timeout == 30
        assert config.log_level == "DEBUG"
        assert config.roles == {"admin@company.com": "admin"}

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        """Test that environment variables win over the file."""
        path = tmp_path / "config.yaml"
        path.write_text("retry:\n  max_attempts: 5\n")
        monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "2")
        monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
        monkeypatch.setenv("SUPABASE_KEY", "anon-key")
        monkeypatch.setenv("LOG_JSON", "true")

        config = Config(config_path=str(path))

        assert config.retry_max_attempts == 2
        assert config.database_url == "https://example.supabase.co"
        assert config.database_key == "anon-key"
        assert config.log_json is True

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("schedule:\n  unknown_value_hours: 7\n")
        monkeypatch.setenv("TEAM_AVAILABILITY_CONFIG", str(path))

        assert Config().unknown_value_hours == 7

    def test_bad_number(self, tmp_path, monkeypatch):
        """Test that a non-numeric duration fails loudly."""
        monkeypatch.setenv("CACHE_ALERTS_TIMEOUT", "soon")
        config = Config(config_path=str(tmp_path / "missing.yaml"))

        with pytest.raises(ValueError):
            config.alerts_timeout
