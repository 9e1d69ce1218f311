# genstudio/config/loader.py
"""
Configuration loading with auto-creation of defaults.

Uses platformdirs for cross-platform config directory management. Two
environment variables take precedence over the file:

    GENSTUDIO_CONFIG    path of the YAML file to use instead of the default
    GENSTUDIO_TOKEN     bearer token, never written back to the file
"""

import logging
import os
from pathlib import Path

import yaml
from platformdirs import user_config_path

from .schema import StudioConfig

logger = logging.getLogger(__name__)

CONFIG_ENV = "GENSTUDIO_CONFIG"
TOKEN_ENV = "GENSTUDIO_TOKEN"


def get_config_path() -> Path:
    """Config file from $GENSTUDIO_CONFIG, else the per-user config directory."""
    override = os.environ.get(CONFIG_ENV)
    if override:
        config_path = Path(override).expanduser()
        config_path.parent.mkdir(parents=True, exist_ok=True)
        return config_path

    config_dir = user_config_path("genstudio", ensure_exists=True)
    return config_dir / "config.yaml"


def _apply_env(config: StudioConfig) -> StudioConfig:
    token = os.environ.get(TOKEN_ENV)
    if token:
        config.api.token = token
        logger.debug(f"Using API token from ${TOKEN_ENV}")
    return config


def load_config(path: Path | None = None) -> StudioConfig:
    """
    Load configuration from YAML file.

    If the file doesn't exist, creates it with defaults. Environment
    overrides are applied after loading and are never persisted.
    """
    config_path = path or get_config_path()

    if not config_path.exists():
        default_config = StudioConfig()
        config_dict = default_config.model_dump(mode="json")

        with config_path.open("w") as f:
            yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Created default config at {config_path}")
        return _apply_env(default_config)

    with config_path.open("r") as f:
        config_data = yaml.safe_load(f) or {}

    config = StudioConfig(**config_data)
    logger.info(f"Loaded config from {config_path}")
    return _apply_env(config)
