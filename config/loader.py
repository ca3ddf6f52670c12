"""Configuration loader that reads from an optional JSON file and environment variables."""

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from dotenv import load_dotenv

from config.models import GatewayConfig


class ConfigurationManager:
    """Manages loading and validation of configuration from multiple sources."""

    # env var -> (section, key, converter)
    ENV_MAPPING: Dict[str, tuple[str, str, Callable[[str], Any]]] = {
        "CODERIDE_API_URL": ("api", "base_url", str),
        "CODERIDE_API_KEY": ("api", "api_key", str),
        "APP_ENV": ("api", "env", str),
        "REQUEST_TIMEOUT_SECONDS": ("retry", "request_timeout_seconds", float),
        "RETRY_MAX_ATTEMPTS": ("retry", "max_attempts", int),
        "RETRY_BASE_DELAY_SECONDS": ("retry", "base_delay_seconds", float),
        "RATE_LIMIT_PER_MINUTE": ("rate_limit", "per_minute", int),
        "TOOL_RATE_LIMIT_PER_MINUTE": ("rate_limit", "tool_per_minute", int),
        "SESSION_TIMEOUT_MINUTES": ("session", "timeout_minutes", float),
        "SESSION_MAX_COUNT": ("session", "max_sessions", int),
        "LOG_LEVEL": ("logging", "level", str.upper),
        "LOG_FORMAT": ("logging", "format", str.lower),
    }

    def __init__(
        self,
        config_path: Optional[str] = None,
        env_file: Optional[str] = None
    ):
        """Initialize configuration manager.

        Args:
            config_path: Optional path to a JSON configuration file. Unlike
                the environment, the file is not required.
            env_file: Path to .env file (default: ./.env)
        """
        self.config_path = config_path
        self.env_file = env_file or "./.env"
        self._config: Optional[GatewayConfig] = None

    @property
    def config(self) -> GatewayConfig:
        """Return the loaded configuration, loading it on first access."""
        if self._config is None:
            return self.load_config()
        return self._config

    def load_config(self) -> GatewayConfig:
        """Load configuration from JSON file and environment variables.

        Environment variables take precedence over JSON file values.

        Returns:
            Validated GatewayConfig object

        Raises:
            FileNotFoundError: If an explicit config file doesn't exist
            ValueError: If a required variable is missing or malformed
            pydantic.ValidationError: If configuration is invalid
        """
        if Path(self.env_file).exists():
            load_dotenv(self.env_file)

        config_data = self._load_json_config()
        config_data = self._override_with_env(config_data)
        self._config = GatewayConfig(**config_data)
        return self._config

    def _load_json_config(self) -> Dict[str, Any]:
        """Load configuration from JSON file, if one was given."""
        if self.config_path is None:
            return {}

        config_path = Path(self.config_path)
        if not config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_path}"
            )

        with open(config_path, "r") as f:
            try:
                return json.load(f)
            except json.JSONDecodeError as e:
                raise json.JSONDecodeError(
                    f"Invalid JSON in configuration file: {e.msg}",
                    e.doc,
                    e.pos
                )

    def _override_with_env(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Override configuration values with environment variables."""
        for section in ("api", "retry", "rate_limit", "session", "security", "logging"):
            config_data.setdefault(section, {})

        for env_var, (section, key, converter) in self.ENV_MAPPING.items():
            value = os.getenv(env_var)
            if not value:
                continue
            try:
                config_data[section][key] = converter(value)
            except ValueError:
                raise ValueError(f"Invalid {env_var}: could not parse '{value}'")

        api_key = config_data["api"].get("api_key", "")
        if not api_key or api_key == "${CODERIDE_API_KEY}":
            raise ValueError(
                "CODERIDE_API_KEY environment variable is required. "
                "Set it in your .env file or environment."
            )

        return config_data
