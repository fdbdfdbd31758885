"""CLI module for Mobile Video Converter."""

import logging
from pathlib import Path

import click

from mobile_video_converter import __version__

_logging_configured: bool = False

logger = logging.getLogger(__name__)


def _configure_logging(
    config_path: Path | None,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
) -> None:
    """Configure logging from CLI options.

    Args:
        config_path: Config file given with --config.
        log_level: Override log level (debug, info, warning, error).
        log_file: Override log file path.
        log_json: Use JSON log format.
    """
    global _logging_configured
    if _logging_configured:
        return

    from mobile_video_converter.config.logging_factory import (
        configure_logging_from_cli,
    )

    try:
        configure_logging_from_cli(
            config_path=config_path,
            level=log_level,
            file=log_file,
            format="json" if log_json else None,
        )
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
    _logging_configured = True


@click.group()
@click.version_option(version=__version__, prog_name="mvc")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to configuration file (default: ~/.mvc/config.toml).",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Override log level (default: info).",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    default=None,
    help="Override log file path.",
)
@click.option(
    "--log-json",
    is_flag=True,
    default=False,
    help="Use JSON log format.",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Path | None,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
) -> None:
    """Mobile Video Converter - Turn any video into a phone-friendly MP4."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path

    _configure_logging(config_path, log_level, log_file, log_json)


# Defer import to avoid circular dependency
def _register_commands():
    from mobile_video_converter.cli.check import check_command
    from mobile_video_converter.cli.convert import convert_command
    from mobile_video_converter.cli.probe import probe_command
    from mobile_video_converter.cli.serve import serve_command

    main.add_command(check_command)
    main.add_command(probe_command)
    main.add_command(convert_command)
    main.add_command(serve_command)


_register_commands()
