"""Configuration loader for the MongoDB sync tool."""

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import ValidationError

from src.models.config import AppConfig, RunConfig
from src.utils.validator import ConfigViolation

log = structlog.stdlib.get_logger()


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, violations: list[ConfigViolation] | None = None):
        super().__init__(message)
        self.violations: list[ConfigViolation] = violations or []

    @classmethod
    def from_violations(cls, violations: list[ConfigViolation]) -> "ConfigurationError":
        details = "\n  - ".join(str(v) for v in violations)
        return cls(f"Invalid configuration:\n  - {details}", violations)


class ConfigLoader:
    """Loads and validates application configuration from YAML files and environment variables."""

    def __init__(self) -> None:
        """Initialize the ConfigLoader."""
        self.env_var_pattern = re.compile(r"\$\{([^}]+)\}")

    def load_config(self, config_path: Optional[str] = None) -> AppConfig:
        """Load configuration from YAML file with environment variable overrides.

        Args:
            config_path: Path to the configuration YAML file. If None, uses
                config/{MONGOSYNC_ENV}.yaml or config/default.yaml

        Returns:
            AppConfig: Validated application configuration

        Raises:
            ConfigurationError: If configuration file is missing or invalid
        """
        if config_path is None:
            config_path = self._get_default_config_path()

        log.info("loading_configuration", config_path=config_path)

        config_dict = self._load_yaml_file(config_path)
        config_dict = self._substitute_env_vars(config_dict)

        try:
            app_config = AppConfig(**config_dict)
            log.info("configuration_loaded_successfully", mode=app_config.sync.mode)
            return app_config
        except ValidationError as e:
            log.error("configuration_validation_failed", error=str(e))
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

    def _get_default_config_path(self) -> str:
        """Get the default configuration file path based on environment.

        Returns:
            str: Path to the configuration file
        """
        env = os.getenv("MONGOSYNC_ENV", "default")
        config_dir = Path(__file__).parent.parent.parent / "config"
        config_file = config_dir / f"{env}.yaml"

        if not config_file.exists():
            config_file = config_dir / "default.yaml"

        if not config_file.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_file}. "
                f"Please create config/default.yaml or set MONGOSYNC_ENV to a valid environment."
            )

        return str(config_file)

    def _load_yaml_file(self, config_path: str) -> Dict[str, Any]:
        """Load YAML configuration file.

        Raises:
            ConfigurationError: If file cannot be read or parsed
        """
        try:
            with open(config_path, "r") as f:
                config_dict = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML file {config_path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration file {config_path}: {e}")

        if config_dict is None:
            raise ConfigurationError(f"Configuration file is empty: {config_path}")
        if not isinstance(config_dict, dict):
            raise ConfigurationError(
                f"Configuration file must contain a mapping at the top level: {config_path}"
            )

        log.debug("yaml_file_loaded", config_path=config_path)
        return config_dict

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute ${VAR_NAME} references with environment values.

        Raises:
            ConfigurationError: If a required environment variable is not set
        """
        if isinstance(config, dict):
            return {key: self._substitute_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_var_in_string(config)
        else:
            return config

    def _substitute_env_var_in_string(self, value: str) -> str:
        matches = self.env_var_pattern.findall(value)

        for var_name in matches:
            env_value = os.getenv(var_name)
            if env_value is None:
                raise ConfigurationError(
                    f"Required environment variable not set: {var_name}. "
                    f"Please set {var_name} in your environment."
                )
            value = value.replace(f"${{{var_name}}}", env_value)

        return value

    def validate_config(self, config: AppConfig) -> list[str]:
        """Return non-fatal warnings about a configuration.

        Hard errors are reported by ``validate_run_config``; this method flags
        settings that are legal but probably not what the operator meant.

        Args:
            config: Application configuration to validate

        Returns:
            List of warning messages (empty if no warnings)
        """
        warnings = []
        run = config.sync

        if (
            run.source.host == run.target.host
            and run.source.port == run.target.port
            and run.target_database == run.source.database
        ):
            warnings.append(
                f"source and target both point at {run.source.address}"
                + (f"/{run.source.database}" if run.source.database else "")
            )

        if run.reset_target and not run.filter.is_empty:
            warnings.append(
                "reset_target drops whole target collections while filter copies only "
                "matching documents"
            )

        if run.mode != "incremental" and run.since is not None:
            warnings.append(f"since is ignored in {run.mode} mode")

        if warnings:
            log.warning("configuration_validation_warnings", warnings=warnings)

        return warnings


def parse_filter(filter_str: str | None) -> dict[str, Any]:
    """Parse a JSON query document given on the command line."""
    if not filter_str:
        return {}
    try:
        parsed = json.loads(filter_str)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid filter JSON: {filter_str}") from e
    if not isinstance(parsed, dict):
        raise ConfigurationError(f"Filter must be a JSON object: {filter_str}")
    return parsed


def parse_list(value: str | None) -> list[str]:
    """Split a comma-separated list, dropping blanks."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def apply_overrides(config: RunConfig, overrides: dict[str, Any]) -> RunConfig:
    """Return a copy of ``config`` with non-None overrides applied.

    Keys ``source`` and ``target`` take partial endpoint dicts.
    """
    data = config.model_dump()
    for key, value in overrides.items():
        if value is None:
            continue
        if key in ("source", "target"):
            data[key].update({k: v for k, v in value.items() if v is not None})
        else:
            data[key] = value
    try:
        return RunConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e
