"""mvc convert command: convert files to mobile-compatible MP4."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from mobile_video_converter.cli.common import (
    build_service,
    discover_files,
    load_cli_config,
)
from mobile_video_converter.cli.exit_codes import ExitCode
from mobile_video_converter.config.models import VALID_HW_MODES
from mobile_video_converter.exceptions import PlanError, ProbeError
from mobile_video_converter.jobs.events import ConversionProgress, TaskState
from mobile_video_converter.service import ConversionService
from mobile_video_converter.tools.detection import require_tool
from mobile_video_converter.tools.ffmpeg_builder import FFmpegCommandBuilder
from mobile_video_converter.tools.models import INSTALL_HINTS

logger = logging.getLogger(__name__)

# Text output prints a progress line every this many percent
TEXT_PROGRESS_STEP = 10.0


def _dry_run(
    service: ConversionService, files: list[Path], output_dir: Path
) -> int:
    """Show the plan for each file without converting anything."""
    failed = False
    ffmpeg_path = require_tool(service.tools, "ffmpeg")
    builder = FFmpegCommandBuilder(ffmpeg_path)
    for path in files:
        try:
            plan = service.plan(path, output_dir)
        except (ProbeError, PlanError) as e:
            failed = True
            click.echo(f"✗ {path.name}: {e}", err=True)
            continue
        click.echo(f"{path.name}: {plan.mode.value} -> {plan.output_path}")
        click.echo(
            "  " + " ".join(builder.build(plan, threads=service.config.conversion.threads))
        )
    return ExitCode.OPERATION_FAILED if failed else ExitCode.SUCCESS


class _ProgressPrinter:
    """Render conversion events as text lines or JSON lines."""

    def __init__(self, names: dict[str, str], json_output: bool) -> None:
        self.names = names
        self.json_output = json_output
        self._last_printed: dict[str, float] = {}

    def __call__(self, event: ConversionProgress) -> None:
        if self.json_output:
            click.echo(event.to_json())
            return

        name = self.names.get(event.task_id, event.task_id)
        if event.status == TaskState.RUNNING:
            last = self._last_printed.get(event.task_id)
            if last is not None and event.progress - last < TEXT_PROGRESS_STEP:
                return
            self._last_printed[event.task_id] = event.progress
            click.echo(f"  {name}: {event.progress:5.1f}%")
        elif event.status == TaskState.COMPLETED:
            click.echo(f"✓ {name} -> {event.output_path}")
        elif event.status == TaskState.FAILED:
            first_line = (event.error or "unknown error").splitlines()[0]
            click.echo(f"✗ {name}: {first_line}", err=True)
        elif event.status == TaskState.CANCELLED:
            click.echo(f"- {name}: cancelled")


@click.command("convert")
@click.argument(
    "paths", nargs=-1, type=click.Path(exists=True, path_type=Path), required=True
)
@click.option(
    "--output-dir",
    "-o",
    "output_dir",
    type=click.Path(file_okay=False, path_type=Path),
    required=True,
    help="Directory for converted files (created if missing).",
)
@click.option(
    "--profile",
    "profile_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Encode profile YAML overriding the default quality settings.",
)
@click.option(
    "--hw-mode",
    type=click.Choice(sorted(VALID_HW_MODES), case_sensitive=False),
    default=None,
    help="Hardware encoder preference (default: auto).",
)
@click.option(
    "--software-only",
    is_flag=True,
    help="Never use a hardware encoder.",
)
@click.option(
    "--recursive",
    "-R",
    is_flag=True,
    help="Search directories recursively.",
)
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Stream progress events as JSON lines.",
)
@click.option(
    "--dry-run",
    "-n",
    is_flag=True,
    help="Show what would be done without converting.",
)
@click.pass_context
def convert_command(
    ctx: click.Context,
    paths: tuple[Path, ...],
    output_dir: Path,
    profile_path: Path | None,
    hw_mode: str | None,
    software_only: bool,
    recursive: bool,
    json_output: bool,
    dry_run: bool,
) -> None:
    """Convert video files to mobile-compatible MP4 (H.264 + AAC).

    Files that are already H.264/AAC are remuxed without re-encoding.
    All files are converted concurrently. Press Ctrl+C to cancel every
    conversion; partial outputs are removed.

    \b
    Examples:
        mvc convert movie.mkv -o ~/Phone
        mvc convert ~/Videos -R -o ~/Phone --software-only
        mvc convert clip.avi -o out --json

    Exit codes:
      0  - every file converted
      2  - interrupted
      20 - no video files found
      30 - ffmpeg or ffprobe missing
      40 - at least one conversion failed or was rejected
    """
    config = load_cli_config(ctx, hw_mode=hw_mode, profile_path=profile_path)
    service = build_service(config, software_only=software_only)

    files = discover_files(paths, recursive)
    if not files:
        click.echo("No video files found.", err=True)
        sys.exit(ExitCode.TARGET_NOT_FOUND)

    if not service.check_tool_available():
        for name in service.tools.get_missing_tools():
            click.echo(f"Error: {name} not available. {INSTALL_HINTS[name]}", err=True)
        sys.exit(ExitCode.TOOL_NOT_AVAILABLE)

    if dry_run:
        sys.exit(_dry_run(service, files, output_dir))

    names: dict[str, str] = {}
    failed = False
    printer = _ProgressPrinter(names, json_output)

    with service.subscribe() as subscription:
        pending: set[str] = set()
        try:
            for path in files:
                result = service.start_conversion(path, output_dir)
                if not result.accepted:
                    failed = True
                    click.echo(f"✗ {path.name}: {result.reason}", err=True)
                    continue
                names[result.task_id] = path.name
                pending.add(result.task_id)
                if not json_output:
                    click.echo(f"Started {path.name} ({result.mode})")

            while pending:
                event = subscription.get(timeout=0.5)
                if event is None or event.task_id not in names:
                    continue
                printer(event)
                if event.is_terminal:
                    pending.discard(event.task_id)
                    if event.status != TaskState.COMPLETED:
                        failed = True
        except KeyboardInterrupt:
            click.echo("\nInterrupted, cancelling conversions...", err=True)
            service.shutdown(config.conversion.cancel_grace_seconds + 5.0)
            sys.exit(ExitCode.INTERRUPTED)

    sys.exit(ExitCode.OPERATION_FAILED if failed else ExitCode.SUCCESS)
