"""
Studio sync configuration module.

Manages the server URL, API key, studio slug and reconciliation settings.
Configuration is loaded from a YAML file and can be overridden with
environment variables.
"""

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from platformdirs import user_config_dir

from studiosync.reconciler import BUSY_POLICIES, DEFAULT_BUSY_POLICY


# ============================================================================
# Constants
# ============================================================================

APP_NAME = "studio-sync"
APP_AUTHOR = "StudioSync"
CONFIG_FILENAME = "studio-sync.yaml"

# Environment variable names
ENV_SERVER_URL = "STUDIOSYNC_SERVER_URL"
ENV_API_KEY = "STUDIOSYNC_API_KEY"
ENV_STUDIO_SLUG = "STUDIOSYNC_STUDIO_SLUG"
ENV_LOG_LEVEL = "STUDIOSYNC_LOG_LEVEL"
ENV_CONFIG_PATH = "STUDIOSYNC_CONFIG_PATH"

# Default values
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_LOG_LEVEL = "INFO"

VALID_LOG_LEVELS = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])

# URL validation regex
URL_PATTERN = re.compile(
    r"^https?://"  # http:// or https://
    r"(?:(?:[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?\.)+[A-Z]{2,6}\.?|"  # domain
    r"localhost|"  # localhost
    r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})"  # ...or ip
    r"(?::\d+)?"  # optional port
    r"(?:/?|[/?]\S+)$",
    re.IGNORECASE,
)

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


# ============================================================================
# Exceptions
# ============================================================================


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when configuration validation fails."""

    pass


# ============================================================================
# Helper Functions
# ============================================================================


def get_default_config_dir() -> Path:
    """
    Get the default configuration directory for the current platform.

    Returns:
        Path to the platform-appropriate config directory
    """
    return Path(user_config_dir(APP_NAME, APP_AUTHOR))


def get_default_config_path() -> Path:
    return get_default_config_dir() / CONFIG_FILENAME


# ============================================================================
# SyncConfig Class
# ============================================================================


class SyncConfig:
    """
    Studio sync configuration manager.

    Configuration sources (in priority order):
    1. Environment variables
    2. Configuration file
    3. Default values

    Attributes:
        server_url: Studio server URL
        api_key: API key for authenticated requests
        studio_slug: Studio (tenant) whose lists are synchronized
        timeout_seconds: Gateway request timeout
        busy_policy: "supersede" or "reject" for groups with a mutation in flight
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config_dir: Optional[Path] = None,
    ):
        """
        Initialize configuration.

        Args:
            config_path: Explicit path to config file (takes precedence)
            config_dir: Directory containing config file

        Raises:
            ConfigError: If the config file cannot be parsed
        """
        if config_path:
            self._config_path = Path(config_path)
            self._config_dir = self._config_path.parent
        elif config_dir:
            self._config_dir = Path(config_dir)
            self._config_path = self._config_dir / CONFIG_FILENAME
        else:
            env_path = os.environ.get(ENV_CONFIG_PATH)
            if env_path:
                self._config_path = Path(env_path)
                self._config_dir = self._config_path.parent
            else:
                self._config_dir = get_default_config_dir()
                self._config_path = self._config_dir / CONFIG_FILENAME

        self._server_url: str = ""
        self._api_key: str = ""
        self._studio_slug: str = ""
        self._timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
        self._busy_policy: str = DEFAULT_BUSY_POLICY
        self._log_level: str = DEFAULT_LOG_LEVEL

        self._load()

    @property
    def config_path(self) -> Path:
        """Get the configuration file path."""
        return self._config_path

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    # -------------------------------------------------------------------------
    # Configuration Properties
    # -------------------------------------------------------------------------

    @property
    def server_url(self) -> str:
        """Get the server URL."""
        return os.environ.get(ENV_SERVER_URL, self._server_url)

    @server_url.setter
    def server_url(self, value: str) -> None:
        self._server_url = value

    @property
    def api_key(self) -> str:
        """Get the API key."""
        return os.environ.get(ENV_API_KEY, self._api_key)

    @api_key.setter
    def api_key(self, value: str) -> None:
        self._api_key = value

    @property
    def studio_slug(self) -> str:
        """Get the studio slug."""
        return os.environ.get(ENV_STUDIO_SLUG, self._studio_slug)

    @studio_slug.setter
    def studio_slug(self, value: str) -> None:
        self._studio_slug = value

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    @timeout_seconds.setter
    def timeout_seconds(self, value: float) -> None:
        self._timeout_seconds = value

    @property
    def busy_policy(self) -> str:
        return self._busy_policy

    @busy_policy.setter
    def busy_policy(self, value: str) -> None:
        self._busy_policy = value

    @property
    def log_level(self) -> str:
        """Get the log level."""
        return os.environ.get(ENV_LOG_LEVEL, self._log_level)

    @log_level.setter
    def log_level(self, value: str) -> None:
        self._log_level = value

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def is_configured(self) -> bool:
        """Check if a server URL and studio slug are set."""
        return bool(self.server_url and self.studio_slug)

    # -------------------------------------------------------------------------
    # Configuration Management
    # -------------------------------------------------------------------------

    def _load(self) -> None:
        """Load configuration from file."""
        if not self._config_path.exists():
            return

        try:
            with open(self._config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config file: {e}")

        if not isinstance(data, dict):
            raise ConfigError(
                f"Config file must contain a mapping, got {type(data).__name__}"
            )

        self._server_url = data.get("server_url", "")
        self._api_key = data.get("api_key", "")
        self._studio_slug = data.get("studio_slug", "")
        self._timeout_seconds = data.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)
        self._busy_policy = data.get("busy_policy", DEFAULT_BUSY_POLICY)
        self._log_level = data.get("log_level", DEFAULT_LOG_LEVEL)

    def save(self) -> None:
        """Save configuration to file."""
        self._config_dir.mkdir(parents=True, exist_ok=True)

        data = {
            "server_url": self._server_url,
            "api_key": self._api_key,
            "studio_slug": self._studio_slug,
            "timeout_seconds": self._timeout_seconds,
            "busy_policy": self._busy_policy,
            "log_level": self._log_level,
        }

        with open(self._config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False)

    def validate(self) -> None:
        """
        Validate the current configuration.

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        if self.server_url and not URL_PATTERN.match(self.server_url):
            raise ConfigValidationError(
                f"Invalid server_url format: {self.server_url}"
            )

        if self.studio_slug and not SLUG_PATTERN.match(self.studio_slug):
            raise ConfigValidationError(
                f"Invalid studio_slug format: {self.studio_slug}"
            )

        if not isinstance(self.timeout_seconds, (int, float)) or self.timeout_seconds <= 0:
            raise ConfigValidationError(
                f"timeout_seconds must be positive, got: {self.timeout_seconds}"
            )

        if self.busy_policy not in BUSY_POLICIES:
            raise ConfigValidationError(
                f"busy_policy must be one of {', '.join(sorted(BUSY_POLICIES))}, "
                f"got: {self.busy_policy}"
            )

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ConfigValidationError(f"Invalid log_level: {self.log_level}")

    def require_server(self) -> None:
        """
        Raises:
            ConfigError: If server_url or studio_slug is missing
        """
        if not self.server_url:
            raise ConfigError(
                f"No server configured. Run 'studio-sync config set-server' "
                f"or set {ENV_SERVER_URL}."
            )
        if not self.studio_slug:
            raise ConfigError(
                f"No studio configured. Run 'studio-sync config set-server' "
                f"or set {ENV_STUDIO_SLUG}."
            )
