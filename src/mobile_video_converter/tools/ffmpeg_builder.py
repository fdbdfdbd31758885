"""FFmpeg command builder for conversion plans.

Centralizes the flags every transcode invocation carries so the task
layer only deals with a ready-made argument list.

Example:
    >>> builder = FFmpegCommandBuilder(Path("/usr/bin/ffmpeg"))
    >>> cmd = builder.build(plan, threads=4)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mobile_video_converter.policy.plan import EncodePlan


@dataclass
class FFmpegCommandBuilder:
    """Builds ffmpeg argument lists for encode plans.

    Progress is requested as key=value blocks on stderr (``-progress
    pipe:2``) with the periodic stats line disabled, so the diagnostic
    stream carries progress markers and error messages only.

    Attributes:
        ffmpeg_path: Path to the ffmpeg executable.
    """

    ffmpeg_path: Path

    def base_command(self) -> list[str]:
        """Get base ffmpeg command with standard flags.

        ``-y`` lets ffmpeg write over the empty placeholder the planner
        claimed for the output, and ``-nostdin`` keeps it from waiting on
        a terminal.
        """
        return [str(self.ffmpeg_path), "-hide_banner", "-nostdin", "-y"]

    def with_loglevel(self, cmd: list[str], level: str = "error") -> list[str]:
        """Add log level control to command."""
        return cmd + ["-loglevel", level]

    def with_progress(self, cmd: list[str]) -> list[str]:
        """Add machine-readable progress output on stderr."""
        return cmd + ["-nostats", "-progress", "pipe:2"]

    def with_threads(self, cmd: list[str], threads: int | None) -> list[str]:
        """Add a thread count, leaving ffmpeg's default when None."""
        if threads is None:
            return cmd
        return cmd + ["-threads", str(threads)]

    def build(self, plan: EncodePlan, threads: int | None = None) -> list[str]:
        """Build the complete transcode command for a plan.

        Args:
            plan: Encode plan with input, output and encoder parameters.
            threads: Optional ffmpeg thread count.

        Returns:
            Command list ready for subprocess.Popen.
        """
        cmd = self.base_command()
        cmd = self.with_progress(cmd)
        cmd = self.with_loglevel(cmd, "error")
        cmd = self.with_threads(cmd, threads)
        cmd.extend(plan.input_parameters)
        cmd.extend(["-i", str(plan.input_path)])
        cmd.extend(plan.parameters)
        cmd.append(str(plan.output_path))
        return cmd
