"""
Config Loader
=============

Loads the engine configuration from YAML. A missing file yields the
defaults; an unreadable or invalid file is a ConfigError.

The log level can be overridden with the ``BOARDFLOW_LOGLEVEL`` environment
variable.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import structlog
import yaml

from boardflow.core.domain.config_schema import EngineConfig, validate_engine_config
from boardflow.core.domain.errors import ConfigError

logger = structlog.get_logger(__name__)

LOGLEVEL_ENV = "BOARDFLOW_LOGLEVEL"
DEFAULT_CONFIG_PATH = Path("boardflow.yaml")


def load_config(path: str | Path | None = None) -> EngineConfig:
    """Load and validate the engine configuration.

    Args:
        path: YAML file. ``None`` means ``./boardflow.yaml``.

    Returns:
        The validated configuration; defaults if the file does not exist.

    Raises:
        ConfigError: If the file cannot be parsed or fails validation.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(
                f"Cannot read configuration {config_path}: {exc}",
                details={"file": str(config_path)},
            ) from exc
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(
                f"Configuration {config_path} must be a mapping",
                details={"file": str(config_path)},
            )
        data = loaded or {}
        logger.debug("config.loaded", path=str(config_path))
    else:
        logger.debug("config.defaults_used", path=str(config_path))

    env_level = os.getenv(LOGLEVEL_ENV)
    if env_level:
        data = {**data, "logging": {**(data.get("logging") or {}), "level": env_level.upper()}}

    return validate_engine_config(data, file_path=config_path)
