"""Configuration loader with precedence handling.

Configuration is loaded with the following precedence (highest to lowest):
1. CLI arguments (passed directly to get_config)
2. Environment variables (MVC_*)
3. Config file (~/.mvc/config.toml)
4. Default values

Environment variables:
- MVC_CONFIG_PATH: Path to config file (overrides default location)
- MVC_FFMPEG_PATH / MVC_FFPROBE_PATH: Tool executables
- MVC_HW_MODE: Hardware encoder preference
- MVC_CANCEL_GRACE_SECONDS: Grace period before killing a cancelled transcode
- MVC_PROBE_TIMEOUT_SECONDS: ffprobe timeout
- MVC_THREADS: ffmpeg thread count
- MVC_PROFILE: Encode profile YAML
- MVC_LOG_LEVEL / MVC_LOG_FILE / MVC_LOG_FORMAT: Logging overrides
- MVC_SERVER_BIND / MVC_SERVER_PORT: HTTP server address
"""

import logging
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from mobile_video_converter.config.env import EnvReader
from mobile_video_converter.config.models import (
    ConversionConfig,
    LoggingConfig,
    MVCConfig,
    ServerConfig,
    ToolPathsConfig,
)

logger = logging.getLogger(__name__)

# Default config location
DEFAULT_CONFIG_DIR = Path.home() / ".mvc"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"


def get_default_config_path(env: Mapping[str, str] | None = None) -> Path:
    """Get the default config file path.

    Can be overridden by MVC_CONFIG_PATH environment variable.
    """
    env_path = EnvReader(env).get_str("MVC_CONFIG_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_FILE


def load_config_file(
    path: Path | None = None, env: Mapping[str, str] | None = None
) -> dict[str, Any]:
    """Load configuration from TOML file.

    Args:
        path: Path to config file. If None, uses default location.
        env: Optional environment mapping (for MVC_CONFIG_PATH).

    Returns:
        Parsed configuration dict. Empty dict if file doesn't exist or
        cannot be parsed.
    """
    if path is None:
        path = get_default_config_path(env)

    if not path.exists():
        logger.debug("Config file not found: %s", path)
        return {}

    try:
        with open(path, "rb") as f:
            config = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Failed to load config file %s: %s", path, e)
        return {}

    logger.debug("Loaded config from %s", path)
    return config


def _file_path(section: dict[str, Any], key: str) -> Path | None:
    value = section.get(key)
    return Path(value).expanduser() if value else None


def get_config(
    config_path: Path | None = None,
    # CLI overrides (highest precedence)
    ffmpeg_path: Path | None = None,
    ffprobe_path: Path | None = None,
    hw_mode: str | None = None,
    profile_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> MVCConfig:
    """Get configuration with full precedence handling.

    Args:
        config_path: Path to config file (overrides MVC_CONFIG_PATH).
        ffmpeg_path: CLI override for ffmpeg path.
        ffprobe_path: CLI override for ffprobe path.
        hw_mode: CLI override for hardware encoder preference.
        profile_path: CLI override for the encode profile YAML.
        env: Environment mapping (defaults to os.environ).

    Returns:
        MVCConfig with merged configuration.

    Raises:
        ValueError: If a merged value fails validation.
    """
    reader = EnvReader(env)
    file_config = load_config_file(config_path, env)

    tools_file = file_config.get("tools", {})
    tools = ToolPathsConfig(
        ffmpeg=(
            ffmpeg_path
            or reader.get_path("MVC_FFMPEG_PATH")
            or _file_path(tools_file, "ffmpeg")
        ),
        ffprobe=(
            ffprobe_path
            or reader.get_path("MVC_FFPROBE_PATH")
            or _file_path(tools_file, "ffprobe")
        ),
    )

    conversion_file = file_config.get("conversion", {})
    defaults = ConversionConfig()
    conversion = ConversionConfig(
        hw_mode=(
            hw_mode
            or reader.get_str("MVC_HW_MODE")
            or conversion_file.get("hw_mode", defaults.hw_mode)
        ),
        cancel_grace_seconds=reader.get_float(
            "MVC_CANCEL_GRACE_SECONDS",
            conversion_file.get("cancel_grace_seconds", defaults.cancel_grace_seconds),
        ),
        probe_timeout_seconds=reader.get_float(
            "MVC_PROBE_TIMEOUT_SECONDS",
            conversion_file.get(
                "probe_timeout_seconds", defaults.probe_timeout_seconds
            ),
        ),
        threads=reader.get_int("MVC_THREADS", conversion_file.get("threads", 0))
        or None,
        progress_resolution=float(
            conversion_file.get("progress_resolution", defaults.progress_resolution)
        ),
        profile=(
            profile_path
            or reader.get_path("MVC_PROFILE")
            or _file_path(conversion_file, "profile")
        ),
        vaapi_device=conversion_file.get("vaapi_device", defaults.vaapi_device),
    )

    logging_file = file_config.get("logging", {})
    log_defaults = LoggingConfig()
    logging_config = LoggingConfig(
        level=reader.get_str("MVC_LOG_LEVEL")
        or logging_file.get("level", log_defaults.level),
        file=reader.get_path("MVC_LOG_FILE", must_exist=False)
        or _file_path(logging_file, "file"),
        format=reader.get_str("MVC_LOG_FORMAT")
        or logging_file.get("format", log_defaults.format),
        include_stderr=reader.get_bool(
            "MVC_LOG_INCLUDE_STDERR",
            logging_file.get("include_stderr", log_defaults.include_stderr),
        ),
        max_bytes=logging_file.get("max_bytes", log_defaults.max_bytes),
        backup_count=logging_file.get("backup_count", log_defaults.backup_count),
    )

    server_file = file_config.get("server", {})
    server_defaults = ServerConfig()
    server = ServerConfig(
        bind=reader.get_str("MVC_SERVER_BIND")
        or server_file.get("bind", server_defaults.bind),
        port=reader.get_int(
            "MVC_SERVER_PORT", server_file.get("port", server_defaults.port)
        ),
        shutdown_timeout=reader.get_float(
            "MVC_SERVER_SHUTDOWN_TIMEOUT",
            server_file.get("shutdown_timeout", server_defaults.shutdown_timeout),
        ),
    )

    return MVCConfig(
        tools=tools,
        conversion=conversion,
        logging=logging_config,
        server=server,
    )
