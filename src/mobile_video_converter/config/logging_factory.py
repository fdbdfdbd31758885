"""Apply CLI logging flags on top of the configured LoggingConfig."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from mobile_video_converter.config.models import LoggingConfig


def configure_logging_from_cli(
    *,
    config_path: Path | None = None,
    level: str | None = None,
    file: Path | None = None,
    format: str | None = None,
    include_stderr: bool | None = None,
) -> LoggingConfig:
    """Load config, override it with the flags that were given, configure logging.

    Returns:
        The LoggingConfig that was applied.

    Raises:
        ValueError: If an override is not a valid level or format.
    """
    from mobile_video_converter.config import get_config
    from mobile_video_converter.logging import configure_logging

    flags = {
        "level": level,
        "file": file,
        "format": format,
        "include_stderr": include_stderr,
    }
    logging_config = replace(
        get_config(config_path=config_path).logging,
        **{name: value for name, value in flags.items() if value is not None},
    )
    configure_logging(logging_config)
    return logging_config
