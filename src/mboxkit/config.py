"""Configuration loader.

This module provides configuration loading from YAML with validation
against the Pydantic schema, plus a cached singleton for the CLI.

Usage:
    from mboxkit.config import get_config, load_config

    # Get current config (singleton)
    config = get_config()

    # Load a specific file, bypassing the cache
    config = load_config(Path("config/config.yaml"))
"""

import os
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from mboxkit.config_schema import CURRENT_SCHEMA_VERSION, AppConfig
from mboxkit.core.errors import ConfigLoadError, ConfigValidationError
from mboxkit.core.logging import get_logger

logger = get_logger(__name__)

# Default config path - can be overridden via environment variable
DEFAULT_CONFIG_PATH = Path("config/config.yaml")
CONFIG_PATH_ENV_VAR = "MBOXKIT_CONFIG_PATH"

_config_lock = threading.Lock()
_current_config: AppConfig | None = None


def _get_config_path() -> tuple[Path, bool]:
    """Get the config file path and whether it was explicitly requested."""
    env_path = os.environ.get(CONFIG_PATH_ENV_VAR)
    if env_path:
        return Path(env_path), True
    return DEFAULT_CONFIG_PATH, False


def _format_validation_errors(error: ValidationError) -> str:
    """Format Pydantic validation errors into actionable messages.

    Args:
        error: Pydantic ValidationError

    Returns:
        Formatted error message with specific field errors
    """
    messages = []
    for err in error.errors():
        # Build field path (e.g., "partition.undated_policy")
        field_path = ".".join(str(loc) for loc in err["loc"])
        msg = err["msg"]
        err_type = err["type"]

        if err_type == "missing":
            messages.append(f"  - Missing required field '{field_path}'")
        elif err_type == "string_type":
            messages.append(f"  - Field '{field_path}' must be a string")
        elif err_type == "int_type":
            messages.append(f"  - Field '{field_path}' must be an integer")
        elif err_type == "bool_type":
            messages.append(f"  - Field '{field_path}' must be true or false")
        else:
            messages.append(f"  - Field '{field_path}': {msg}")

    return "\n".join(messages)


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse YAML file.

    Args:
        path: Path to YAML file

    Returns:
        Parsed YAML as dictionary

    Raises:
        ConfigLoadError: If file not found or YAML parse error
    """
    if not path.exists():
        raise ConfigLoadError(
            f"Configuration file not found: {path}\n"
            f"Create it, or unset {CONFIG_PATH_ENV_VAR} to use built-in defaults"
        )

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            if data is None:
                return {}
            if not isinstance(data, dict):
                raise ConfigLoadError(
                    f"Configuration file must be a YAML mapping, got {type(data).__name__}"
                )
            return data
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Failed to parse YAML in {path}:\n{e}") from e


def _validate_config(data: dict[str, Any], path: Path) -> AppConfig:
    """Validate config data against Pydantic schema.

    Args:
        data: Parsed YAML data
        path: Path to config file (for error messages)

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigValidationError: If validation fails
    """
    try:
        config = AppConfig(**data)
    except ValidationError as e:
        error_details = _format_validation_errors(e)
        raise ConfigValidationError(
            f"Configuration validation failed for {path}:\n{error_details}"
        ) from e

    if config.schema_version > CURRENT_SCHEMA_VERSION:
        raise ConfigValidationError(
            f"Config schema version {config.schema_version} is newer than "
            f"supported version {CURRENT_SCHEMA_VERSION}. "
            "Please upgrade mboxkit or downgrade the config."
        )

    return config


def load_config(path: Path | None = None) -> AppConfig:
    """Load and validate configuration from YAML file.

    This function always loads fresh from disk. For cached access,
    use get_config() instead.

    Args:
        path: Optional path to config file. If not provided, uses
              MBOXKIT_CONFIG_PATH env var or the default path.

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigLoadError: If file cannot be loaded
        ConfigValidationError: If validation fails
    """
    config_path = path or _get_config_path()[0]

    logger.debug("Loading configuration", path=str(config_path))

    data = _load_yaml(config_path)
    config = _validate_config(data, config_path)

    logger.info(
        "Configuration loaded successfully",
        path=str(config_path),
        schema_version=config.schema_version,
        date_formats_count=len(config.parser.date_formats),
    )

    return config


def get_config() -> AppConfig:
    """Get the current configuration singleton.

    On first call, loads configuration from disk. If no path was requested
    through MBOXKIT_CONFIG_PATH and the default file does not exist, the
    built-in defaults are used.

    Returns:
        Current AppConfig instance

    Raises:
        ConfigLoadError: If an explicitly requested file cannot be loaded
        ConfigValidationError: If validation fails
    """
    global _current_config

    with _config_lock:
        if _current_config is None:
            config_path, explicit = _get_config_path()
            if explicit or config_path.exists():
                _current_config = load_config(config_path)
            else:
                logger.debug("No config file found, using defaults", path=str(config_path))
                _current_config = AppConfig()

        return _current_config


def validate_config_file(path: Path | None = None) -> tuple[bool, str]:
    """Validate a config file without loading it into the singleton.

    Args:
        path: Path to config file. If not provided, uses default.

    Returns:
        Tuple of (is_valid, message)
    """
    config_path = path or _get_config_path()[0]

    try:
        config = load_config(config_path)
        return (
            True,
            f"Configuration valid (schema version {config.schema_version})\n"
            f"  - encodings: {config.reader.primary_encoding} -> "
            f"{config.reader.fallback_encoding}\n"
            f"  - {len(config.parser.date_formats)} date formats\n"
            f"  - undated messages in date splits: {config.partition.undated_policy}\n"
            f"  - merge sort order: {config.merge.sort_order}",
        )
    except ConfigLoadError as e:
        return (False, f"Load error: {e}")
    except ConfigValidationError as e:
        return (False, f"Validation error: {e}")


def reset_config() -> None:
    """Reset the config singleton. Primarily for testing."""
    global _current_config
    with _config_lock:
        _current_config = None
