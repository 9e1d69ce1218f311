"""Configuration system for genstudio."""

from .loader import get_config_path, load_config
from .schema import (
    ApiConfig,
    OutputConfig,
    SelfieConfig,
    StoryConfig,
    StudioConfig,
)

__all__ = [
    "StudioConfig",
    "ApiConfig",
    "SelfieConfig",
    "StoryConfig",
    "OutputConfig",
    "load_config",
    "get_config_path",
]
