"""
Configuration loading and management for the trade import core.

This module handles loading import settings from YAML files, broker API
credential management, and validation of configuration parameters.
"""

import logging
import os
from datetime import date, datetime
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values

from tradebook.models import AUTO, BrokerDialect, ImportConfig

logger = logging.getLogger(__name__)


# Default paths for configuration files
PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_ENV_FILE = PROJECT_ROOT / ".env"
DEFAULT_API_KEYS_FILE = PROJECT_ROOT / "config" / "api_keys.yaml"

# Environment variable -> key in the returned credentials dictionary
API_KEY_VARIABLES = {
    "ALPACA_API_KEY": "alpaca_api_key",
    "ALPACA_API_SECRET": "alpaca_api_secret",
    "ALPACA_BASE_URL": "alpaca_base_url",
    "WEBULL_ACCESS_TOKEN": "webull_access_token",
    "WEBULL_DEVICE_ID": "webull_device_id",
    "WEBULL_ACCOUNT_ID": "webull_account_id",
}


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


def load_api_keys(
    env_file: str | Path | None = None,
    api_keys_file: str | Path | None = None,
) -> dict[str, str]:
    """
    Load broker API credentials from multiple sources with priority.

    Sources are checked in this order (later sources override earlier):
    1. config/api_keys.yaml file
    2. .env file in project root
    3. Environment variables

    Args:
        env_file: Path to .env file (defaults to project root .env)
        api_keys_file: Path to api_keys.yaml (defaults to config/api_keys.yaml)

    Returns:
        Dictionary with whichever of these keys are configured:
        alpaca_api_key, alpaca_api_secret, alpaca_base_url,
        webull_access_token, webull_device_id, webull_account_id

    Example:
        >>> keys = load_api_keys()
        >>> alpaca_key = keys.get("alpaca_api_key")
    """
    api_keys: dict[str, str] = {}

    # 1. Load from config/api_keys.yaml
    yaml_path = Path(api_keys_file) if api_keys_file else DEFAULT_API_KEYS_FILE
    if yaml_path.exists():
        try:
            with open(yaml_path, "r") as f:
                yaml_config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning("Ignoring unreadable API keys file %s: %s", yaml_path, e)
            yaml_config = {}
        if isinstance(yaml_config, dict):
            for key in API_KEY_VARIABLES.values():
                if yaml_config.get(key):
                    api_keys[key] = str(yaml_config[key])

    # 2. Load from .env file
    env_path = Path(env_file) if env_file else DEFAULT_ENV_FILE
    if env_path.exists():
        env_values = dotenv_values(env_path)
        for variable, key in API_KEY_VARIABLES.items():
            if env_values.get(variable):
                api_keys[key] = str(env_values[variable])

    # 3. Override with environment variables (highest priority)
    for variable, key in API_KEY_VARIABLES.items():
        if os.environ.get(variable):
            api_keys[key] = os.environ[variable]

    return api_keys


def require_api_keys(api_keys: dict[str, str], *names: str) -> None:
    """
    Ensure the named credentials are present.

    Raises:
        ConfigurationError: Listing every missing credential and where to set it
    """
    missing = [name for name in names if not api_keys.get(name)]
    if not missing:
        return

    variables = [v for v, k in API_KEY_VARIABLES.items() if k in missing]
    raise ConfigurationError(
        f"Missing broker credentials: {', '.join(missing)}. Please set them using one of:\n"
        f"  1. Environment variables: {', '.join(variables)}\n"
        f"  2. .env file in the project root\n"
        f"  3. config/api_keys.yaml: {', '.join(missing)}"
    )


def load_import_config(config_path: str | Path) -> ImportConfig:
    """
    Load import configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        ImportConfig object with validated settings

    Raises:
        ConfigurationError: If the file cannot be loaded or is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigurationError("Configuration file must contain a mapping")

    return _parse_import_config(raw_config)


def _parse_import_config(raw: dict[str, Any]) -> ImportConfig:
    """
    Parse and validate raw configuration dictionary into ImportConfig.

    Every field is optional; missing ones take the ImportConfig defaults.

    Raises:
        ConfigurationError: If a field has an invalid value
    """
    defaults = ImportConfig()

    default_broker = str(raw.get("default_broker", defaults.default_broker)).strip().lower()
    valid_brokers = [AUTO] + [d.value for d in BrokerDialect]
    if default_broker not in valid_brokers:
        raise ConfigurationError(
            f"Invalid default_broker: {default_broker}. "
            f"Expected one of: {', '.join(valid_brokers)}"
        )

    default_date = None
    if raw.get("default_date") is not None:
        default_date = _parse_date(raw["default_date"], "default_date")

    output_dir = str(raw.get("output_dir", defaults.output_dir))
    if not output_dir:
        raise ConfigurationError("output_dir cannot be empty")

    log_file = str(raw.get("log_file", defaults.log_file))
    if not log_file:
        raise ConfigurationError("log_file cannot be empty")

    return ImportConfig(
        default_broker=default_broker,
        default_date=default_date,
        output_dir=output_dir,
        log_file=log_file,
        notes_prefix=str(raw.get("notes_prefix", defaults.notes_prefix)),
    )


def _parse_date(value: Any, field_name: str) -> date:
    """
    Parse a date value from various formats.

    Args:
        value: The value to parse (string or date object)
        field_name: Name of the field for error messages

    Returns:
        Parsed date object

    Raises:
        ConfigurationError: If the date cannot be parsed
    """
    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, str):
        try:
            return datetime.strptime(value, "%Y-%m-%d").date()
        except ValueError:
            pass

        try:
            return datetime.fromisoformat(value).date()
        except ValueError:
            pass

    raise ConfigurationError(
        f"Invalid date format for {field_name}: {value}. Expected YYYY-MM-DD"
    )


def write_config(config: ImportConfig, output_path: str | Path) -> None:
    """
    Write an ImportConfig to a YAML file.

    Args:
        config: The configuration to write
        output_path: Path to write the YAML file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    config_dict = {
        "default_broker": config.default_broker,
        "default_date": config.default_date.isoformat() if config.default_date else None,
        "output_dir": config.output_dir,
        "log_file": config.log_file,
        "notes_prefix": config.notes_prefix,
    }

    with open(output_path, "w") as f:
        yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
