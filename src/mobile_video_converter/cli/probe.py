"""mvc probe command: show stream info and whether conversion is needed."""

import json
import sys
from pathlib import Path

import click

from mobile_video_converter.cli.common import (
    build_service,
    format_duration,
    load_cli_config,
)
from mobile_video_converter.cli.exit_codes import ExitCode
from mobile_video_converter.exceptions import ProbeError, ToolNotFoundError
from mobile_video_converter.introspector.models import MediaDescriptor
from mobile_video_converter.policy.compatibility import describe_incompatibilities


def _reasons(descriptor: MediaDescriptor) -> list[str]:
    return describe_incompatibilities(
        descriptor.video_codec,
        descriptor.audio_codec,
        descriptor.container,
        descriptor.path,
    )


def _echo_descriptor(descriptor: MediaDescriptor) -> None:
    click.echo(descriptor.filename)
    click.echo(f"  Container:  {descriptor.container or 'unknown'}")
    click.echo(
        f"  Video:      {descriptor.video_codec or 'unknown'} "
        f"{descriptor.width}x{descriptor.height}"
    )
    click.echo(f"  Audio:      {descriptor.audio_codec or 'none'}")
    click.echo(f"  Duration:   {format_duration(descriptor.duration)}")
    if descriptor.bitrate:
        click.echo(f"  Bitrate:    {descriptor.bitrate // 1000} kb/s")
    if descriptor.needs_conversion:
        click.echo("  Status:     needs conversion")
        for reason in _reasons(descriptor):
            click.echo(f"    - {reason}")
    else:
        click.echo("  Status:     mobile compatible (remux only)")


@click.command("probe")
@click.argument("paths", nargs=-1, type=click.Path(path_type=Path), required=True)
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output results as JSON.",
)
@click.pass_context
def probe_command(ctx: click.Context, paths: tuple[Path, ...], json_output: bool) -> None:
    """Probe video files and report whether they need conversion.

    Files that cannot be probed are reported and skipped.

    Exit codes:
      0  - every file probed
      32 - ffprobe not available
      51 - at least one file could not be probed
    """
    config = load_cli_config(ctx)
    service = build_service(config)

    results: list[dict] = []
    failed = False
    for path in paths:
        try:
            descriptor = service.probe(path)
        except ToolNotFoundError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(ExitCode.FFPROBE_NOT_FOUND)
        except ProbeError as e:
            failed = True
            results.append({"path": str(path), "error": str(e)})
            if not json_output:
                click.echo(f"✗ {path}: {e}", err=True)
            continue

        results.append(
            {**descriptor.to_dict(), "reasons": _reasons(descriptor)}
        )
        if not json_output:
            _echo_descriptor(descriptor)

    if json_output:
        click.echo(json.dumps(results, indent=2))

    if failed:
        sys.exit(ExitCode.PARSE_ERROR)
