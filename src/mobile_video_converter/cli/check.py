"""mvc check command: external tool and hardware encoder health."""

import json
import sys

import click

from mobile_video_converter.cli.common import build_service, load_cli_config
from mobile_video_converter.cli.exit_codes import ExitCode
from mobile_video_converter.tools.models import INSTALL_HINTS


def _format_status(available: bool) -> str:
    """Format status for display."""
    return "✓" if available else "✗"


def _format_version(version: str | None) -> str:
    """Format version for display."""
    return version if version else "not found"


@click.command("check")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Show tool paths and status details.",
)
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output results as JSON.",
)
@click.pass_context
def check_command(ctx: click.Context, verbose: bool, json_output: bool) -> None:
    """Check that ffmpeg and ffprobe are available.

    Also reports which H.264 encoder conversions will use.

    Exit codes:
      0  - ffmpeg and ffprobe available
      30 - a required tool is missing
    """
    config = load_cli_config(ctx)
    service = build_service(config)

    available = service.check_tool_available()
    tools = service.tools
    capabilities = service.host_capabilities if tools.ffmpeg.is_available() else None

    if json_output:
        payload = {
            "available": available,
            "tools": {
                "ffmpeg": tools.ffmpeg.to_dict(),
                "ffprobe": tools.ffprobe.to_dict(),
            },
            "capabilities": capabilities.to_dict() if capabilities else None,
        }
        click.echo(json.dumps(payload, indent=2))
    else:
        click.echo("External Tools:")
        click.echo("-" * 20)
        for tool in (tools.ffprobe, tools.ffmpeg):
            status = _format_status(tool.is_available())
            version = _format_version(tool.version)
            path_info = f" ({tool.path})" if tool.path and verbose else ""
            click.echo(f"  {status} {tool.name}: {version}{path_info}")
            if not tool.is_available():
                if verbose and tool.status_message:
                    click.echo(f"    ├─ {tool.status_message}")
                click.echo(f"    └─ {INSTALL_HINTS[tool.name]}")

        click.echo()
        click.echo("H.264 Encoder:")
        click.echo("-" * 20)
        if capabilities is None:
            click.echo("  ✗ unavailable (ffmpeg missing)")
        elif capabilities.has_hardware_encoder:
            click.echo(f"  ✓ hardware: {capabilities.hw_encoder}")
        else:
            click.echo("  ✓ software: libx264")

    if not available:
        sys.exit(ExitCode.TOOL_NOT_AVAILABLE)
