"""
Configuration Manager with YAML support, environment substitution and
Pydantic validation.
"""

import hashlib
import json
import os
import re
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from ladderbot.config.schemas import AppConfig
from ladderbot.core.exceptions import ConfigurationError

# ${VAR} or ${VAR:-default}
_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def substitute_env(value: Any) -> Any:
    """Recursively replace ${VAR} / ${VAR:-default} in string values."""
    if isinstance(value, dict):
        return {k: substitute_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [substitute_env(v) for v in value]
    if not isinstance(value, str):
        return value

    def _replace(match: re.Match) -> str:
        name, default = match.group(1), match.group(2)
        resolved = os.getenv(name)
        if resolved is None:
            if default is None:
                raise ConfigurationError(f"Environment variable not set: {name}")
            return default
        return resolved

    return _ENV_PATTERN.sub(_replace, value)


class ConfigManager:
    """
    Configuration manager with YAML loading and validation.

    Loading happens before logging is configured, so failures are reported
    only through ConfigurationError and the caller decides how to surface them.

    Features:
    - Load and validate YAML configurations with Pydantic
    - Environment variable substitution
    - Configuration versioning with hash tracking
    """

    def __init__(self, config_path: Path) -> None:
        """
        Initialize ConfigManager.

        Args:
            config_path: Path to main configuration file
        """
        self.config_path = config_path
        self._config_hash: str | None = None

    def load(self) -> AppConfig:
        """
        Load and validate configuration from file.

        Returns:
            Validated AppConfig instance

        Raises:
            ConfigurationError: If the file is missing, unparsable or invalid
        """
        if not self.config_path.exists():
            raise ConfigurationError(f"Config file not found: {self.config_path}")

        try:
            with open(self.config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {self.config_path}: {e}") from e

        if not isinstance(raw_config, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {self.config_path}")

        raw_config = substitute_env(raw_config)

        # Calculate config hash for versioning
        config_str = json.dumps(raw_config, sort_keys=True, default=str)
        new_hash = hashlib.sha256(config_str.encode()).hexdigest()[:16]

        try:
            config = AppConfig(**raw_config)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        self._config_hash = new_hash
        return config

    def get_config_version(self) -> str:
        """Get current configuration version hash."""
        if self._config_hash is None:
            raise RuntimeError("Configuration not loaded")
        return self._config_hash

    @staticmethod
    def create_example_config(path: Path) -> None:
        """
        Create an example configuration file.

        Args:
            path: Path where to create the example config
        """
        example_config = {
            "strategy": {
                "symbol": "SOLUSDT",
                "trigger_price": "100.0",
                "num_levels": 4,
                "base_amount": "20",
                "drop_percentage": "1.0",
                "take_profit_percentage": "0.8",
                "trailing_stop_percentage": "2.0",
                "rearm_after_stop": False,
                "fill_check": "absence",
            },
            "exchange": {
                "base_url": "https://api.binance.us",
                "request_timeout": 10,
                "recv_window": 5000,
            },
            "state_file": "state.json",
            "log_level": "INFO",
            "log_to_console": True,
            "log_to_file": False,
            "json_logs": False,
        }

        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                example_config,
                f,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            )
