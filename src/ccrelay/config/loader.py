"""
Relay configuration loading.

Reads relay_config.yaml from the project root. Environment variables with
the CCRELAY_ prefix fill in anything the file leaves out, which keeps
secrets such as the Feishu app secret out of the file.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from ccrelay.core.exceptions import ConfigError

from .settings import RelayConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "relay_config.yaml"


def get_config_path() -> Path:
    """
    Get the path to the relay configuration file.

    Looks for relay_config.yaml in the current working directory (project root).
    """
    return Path(os.getcwd()) / CONFIG_FILENAME


def load_relay_config(path: str | Path | None = None) -> RelayConfig:
    """
    Load and validate the relay configuration.

    Args:
        path: Config file; defaults to relay_config.yaml in the working directory

    Returns:
        Validated RelayConfig

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ConfigError: If the file is not valid YAML or fails validation
    """
    config_path = Path(path) if path else get_config_path()
    logger.debug(f"Loading config from: {config_path}")

    if not config_path.exists():
        raise FileNotFoundError(
            f"{config_path.name} not found at {config_path}. "
            f"Copy {CONFIG_FILENAME}.example to {CONFIG_FILENAME} and configure your platforms."
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(
            f"Expected a mapping at the top level of {config_path}, got {type(data).__name__}"
        )

    try:
        config = RelayConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid relay configuration in {config_path}:\n{e}") from e

    logger.info(
        f"Loaded relay config: platforms={[p.value for p in config.enabled_platforms()]}"
    )
    return config
