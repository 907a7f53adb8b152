"""
Unit tests for studio sync configuration.

Tests configuration loading, saving, environment overrides and validation.
"""

import pytest
import yaml

from studiosync.config import (
    ConfigError,
    ConfigValidationError,
    SyncConfig,
)


class TestSyncConfig:
    """Tests for SyncConfig class."""

    def test_default_config_values(self, temp_config_dir):
        """Test that default configuration values are set correctly."""
        config = SyncConfig(config_dir=temp_config_dir)

        assert config.server_url == ""
        assert config.api_key == ""
        assert config.studio_slug == ""
        assert config.timeout_seconds == 30.0
        assert config.busy_policy == "supersede"
        assert config.log_level == "INFO"
        assert not config.is_configured

    def test_load_config_from_file(self, sync_config_file, sync_config_data):
        config = SyncConfig(config_path=sync_config_file)

        assert config.server_url == sync_config_data["server_url"]
        assert config.api_key == sync_config_data["api_key"]
        assert config.studio_slug == "mi-estudio"
        assert config.timeout_seconds == 15
        assert config.log_level == "DEBUG"
        assert config.is_configured

    def test_config_path_from_environment(self, sync_config_file, monkeypatch):
        monkeypatch.setenv("STUDIOSYNC_CONFIG_PATH", str(sync_config_file))

        config = SyncConfig()

        assert config.config_path == sync_config_file
        assert config.studio_slug == "mi-estudio"

    def test_save_config_to_file(self, temp_config_dir):
        """Test saving configuration to a YAML file."""
        config_path = temp_config_dir / "nested" / "studio-sync.yaml"
        config = SyncConfig(config_path=config_path)
        config.server_url = "https://studio.example.com"
        config.studio_slug = "foto-luz"
        config.busy_policy = "reject"
        config.save()

        with open(config_path) as f:
            saved = yaml.safe_load(f)

        assert saved["server_url"] == "https://studio.example.com"
        assert saved["studio_slug"] == "foto-luz"
        assert saved["busy_policy"] == "reject"
        assert SyncConfig(config_path=config_path).busy_policy == "reject"

    def test_environment_overrides_file(self, sync_config_file, monkeypatch):
        """Test that environment variables override file configuration."""
        monkeypatch.setenv("STUDIOSYNC_SERVER_URL", "http://env-server:8000")
        monkeypatch.setenv("STUDIOSYNC_STUDIO_SLUG", "otro-estudio")
        monkeypatch.setenv("STUDIOSYNC_LOG_LEVEL", "WARNING")

        config = SyncConfig(config_path=sync_config_file)

        assert config.server_url == "http://env-server:8000"
        assert config.studio_slug == "otro-estudio"
        assert config.log_level == "WARNING"
        assert config.api_key == "sk_test_1234567890abcdef"

    def test_invalid_yaml(self, temp_config_dir):
        config_path = temp_config_dir / "studio-sync.yaml"
        config_path.write_text("server_url: [unclosed\n")

        with pytest.raises(ConfigError, match="Failed to parse"):
            SyncConfig(config_path=config_path)

    def test_non_mapping_file(self, temp_config_dir):
        config_path = temp_config_dir / "studio-sync.yaml"
        config_path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigError, match="mapping"):
            SyncConfig(config_path=config_path)


class TestValidation:
    """Tests for SyncConfig.validate and require_server."""

    def test_valid_config(self, sync_config_file):
        SyncConfig(config_path=sync_config_file).validate()

    @pytest.mark.parametrize(
        "attribute, value, message",
        [
            ("server_url", "ftp://studio.example.com", "server_url"),
            ("studio_slug", "Mi Estudio", "studio_slug"),
            ("timeout_seconds", 0, "timeout_seconds"),
            ("timeout_seconds", "soon", "timeout_seconds"),
            ("busy_policy", "queue", "busy_policy"),
            ("log_level", "VERBOSE", "log_level"),
        ],
    )
    def test_invalid_values(self, temp_config_dir, attribute, value, message):
        config = SyncConfig(config_dir=temp_config_dir)
        setattr(config, attribute, value)

        with pytest.raises(ConfigValidationError, match=message):
            config.validate()

    def test_require_server(self, temp_config_dir):
        config = SyncConfig(config_dir=temp_config_dir)
        with pytest.raises(ConfigError, match="No server configured"):
            config.require_server()

        config.server_url = "http://localhost:8000"
        with pytest.raises(ConfigError, match="No studio configured"):
            config.require_server()

        config.studio_slug = "mi-estudio"
        config.require_server()
