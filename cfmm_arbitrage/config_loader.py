"""
Configuration loading for the CFMM arbitrage engine.

Loads a YAML file, validates it against the pydantic schema and returns a
frozen EngineConfig. Every failure surfaces as ConfigurationError before
any evaluation cycle starts.
"""

from pathlib import Path
from typing import Any, Dict, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from .config_schema import EngineConfig, validate_engine_config
from .exceptions import ConfigurationError


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load and parse YAML configuration file."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to load config {config_path}: {e}") from e

    if config_dict is None:
        raise ConfigurationError(f"Empty configuration file: {config_path}")
    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            f"Configuration root must be a mapping in {config_path}, "
            f"got {type(config_dict).__name__}"
        )
    return config_dict


def load_engine_config(config_path: Union[str, Path]) -> EngineConfig:
    """
    Load and validate an engine configuration file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Validated, frozen engine configuration

    Raises:
        ConfigurationError: If the file is missing, empty, unparsable or
            fails schema validation
    """
    config_dict = load_yaml_config(config_path)
    try:
        return validate_engine_config(config_dict)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Configuration validation failed for {config_path}: {e}",
            details={"errors": e.errors()},
        ) from e


def get_default_config() -> EngineConfig:
    """Get a default configuration for testing or fallback purposes."""
    return EngineConfig()
