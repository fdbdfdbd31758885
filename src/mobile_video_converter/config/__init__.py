"""Configuration management for Mobile Video Converter.

Precedence (highest first): CLI flags, MVC_* environment variables,
~/.mvc/config.toml, built-in defaults.
"""

from mobile_video_converter.config.env import EnvReader
from mobile_video_converter.config.loader import (
    get_config,
    get_default_config_path,
    load_config_file,
)
from mobile_video_converter.config.logging_factory import configure_logging_from_cli
from mobile_video_converter.config.models import (
    VALID_HW_MODES,
    ConversionConfig,
    LoggingConfig,
    MVCConfig,
    ServerConfig,
    ToolPathsConfig,
)

__all__ = [
    # Models
    "VALID_HW_MODES",
    "ConversionConfig",
    "LoggingConfig",
    "MVCConfig",
    "ServerConfig",
    "ToolPathsConfig",
    # Loader
    "get_config",
    "get_default_config_path",
    "load_config_file",
    "EnvReader",
    "configure_logging_from_cli",
]
