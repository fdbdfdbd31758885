"""Helpers shared by CLI commands."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from mobile_video_converter.cli.exit_codes import ExitCode
from mobile_video_converter.config import MVCConfig, get_config
from mobile_video_converter.exceptions import ProfileValidationError
from mobile_video_converter.service import ConversionService
from mobile_video_converter.tools.encoders import (
    HostCapabilities,
    StaticCapabilityProbe,
)

logger = logging.getLogger(__name__)

# Extensions offered by the file picker of the desktop front-end
VIDEO_EXTENSIONS = frozenset(
    {
        ".mp4",
        ".mov",
        ".avi",
        ".mkv",
        ".wmv",
        ".flv",
        ".webm",
        ".m4v",
        ".mpeg",
        ".mpg",
        ".3gp",
    }
)


def discover_files(paths: tuple[Path, ...], recursive: bool = False) -> list[Path]:
    """Expand CLI paths into input files.

    Files named explicitly are kept whatever their extension; directories
    contribute the video files they contain.

    Args:
        paths: Paths to files or directories.
        recursive: Whether to search directories recursively.

    Returns:
        Sorted, de-duplicated list of file paths.
    """
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            candidates = path.rglob("*") if recursive else path.iterdir()
            files.extend(
                p
                for p in candidates
                if p.is_file() and p.suffix.lower() in VIDEO_EXTENSIONS
            )
        else:
            files.append(path)
    return sorted(set(files))


def load_cli_config(ctx: click.Context, **overrides: object) -> MVCConfig:
    """Load configuration honouring the global --config option.

    Exits with CONFIG_ERROR when a merged value is invalid.
    """
    config_path = (ctx.obj or {}).get("config_path")
    try:
        return get_config(config_path=config_path, **overrides)
    except ValueError as e:
        click.echo(f"Error: invalid configuration: {e}", err=True)
        sys.exit(ExitCode.CONFIG_ERROR)


def build_service(config: MVCConfig, software_only: bool = False) -> ConversionService:
    """Create the conversion service for a CLI command.

    Exits with PROFILE_INVALID when the configured profile is invalid.
    """
    capability_probe = None
    if software_only:
        capability_probe = StaticCapabilityProbe(HostCapabilities.software_only())
    try:
        return ConversionService(config, capability_probe=capability_probe)
    except ProfileValidationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(ExitCode.PROFILE_INVALID)


def format_duration(seconds: float) -> str:
    """Format seconds as H:MM:SS."""
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"
