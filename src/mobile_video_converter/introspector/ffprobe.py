"""FFprobe-based implementation of the MediaProber protocol."""

import json
import logging
import subprocess  # nosec B404 - subprocess is required for ffprobe invocation
from pathlib import Path

from mobile_video_converter.exceptions import ProbeError, ToolNotFoundError
from mobile_video_converter.introspector.models import MediaDescriptor
from mobile_video_converter.introspector.parsers import parse_ffprobe_output
from mobile_video_converter.tools.models import INSTALL_HINTS

logger = logging.getLogger(__name__)


class FFprobeProber:
    """ffprobe-based implementation of MediaProber.

    Each probe spawns one short-lived ffprobe process and waits for it
    synchronously. Failures are raised immediately; there are no retries.
    """

    def __init__(self, ffprobe_path: Path, timeout: float = 30.0) -> None:
        """Initialize the prober.

        Args:
            ffprobe_path: Path to the ffprobe executable.
            timeout: Maximum seconds to wait for one ffprobe call.
        """
        self._ffprobe_path = ffprobe_path
        self._timeout = timeout

    def probe(self, path: Path) -> MediaDescriptor:
        """Extract metadata from a video file.

        Args:
            path: Path to the video file.

        Returns:
            MediaDescriptor for the file.

        Raises:
            ProbeError: If the file is missing or cannot be parsed.
            ToolNotFoundError: If ffprobe cannot be launched.
        """
        path = Path(path).expanduser().resolve()
        if not path.exists():
            raise ProbeError(f"File not found: {path}", path=path)
        if not path.is_file():
            raise ProbeError(f"Not a file: {path}", path=path)

        data = self._run_ffprobe(path)
        descriptor = parse_ffprobe_output(path, data)
        logger.debug(
            "Probed %s: video=%s audio=%s container=%s needs_conversion=%s",
            path.name,
            descriptor.video_codec,
            descriptor.audio_codec,
            descriptor.container,
            descriptor.needs_conversion,
        )
        return descriptor

    def _run_ffprobe(self, path: Path) -> dict:
        """Run ffprobe and return parsed JSON output.

        Raises:
            ProbeError: On non-zero exit, timeout or invalid JSON.
            ToolNotFoundError: If the executable cannot be launched.
        """
        cmd = [
            str(self._ffprobe_path),
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
        try:
            result = subprocess.run(  # nosec B603 - ffprobe path is resolved
                cmd,
                capture_output=True,
                text=True,
                errors="replace",  # Handle non-UTF8 characters by replacing them
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ProbeError(
                f"ffprobe timed out after {self._timeout}s for {path.name}",
                path=path,
            ) from e
        except OSError as e:
            raise ToolNotFoundError("ffprobe", INSTALL_HINTS["ffprobe"]) from e

        if result.returncode != 0:
            detail = result.stderr.strip() or f"exit code {result.returncode}"
            raise ProbeError(f"ffprobe failed for {path.name}: {detail}", path=path)

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ProbeError(
                f"Invalid ffprobe output for {path.name}: {e}", path=path
            ) from e
        if not isinstance(data, dict):
            raise ProbeError(f"Unexpected ffprobe output for {path.name}", path=path)
        return data
