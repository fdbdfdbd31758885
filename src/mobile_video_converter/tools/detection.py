"""External tool detection and version parsing.

Locates ffmpeg and ffprobe (configured path first, then PATH), checks that
they run, and records their versions and the encoders ffmpeg exposes.
"""

import logging
import re
import shutil
import subprocess  # nosec B404 - subprocess is required for tool detection
from datetime import datetime, timezone
from pathlib import Path

from mobile_video_converter.exceptions import ToolNotFoundError
from mobile_video_converter.tools.models import (
    INSTALL_HINTS,
    FFmpegInfo,
    FFprobeInfo,
    ToolInfo,
    ToolRegistry,
    ToolStatus,
)

logger = logging.getLogger(__name__)

# Timeout for version/capability detection commands (seconds)
DETECTION_TIMEOUT = 10


def parse_version_string(version_str: str) -> tuple[int, ...] | None:
    """Parse a version string into a comparable tuple.

    Handles "6.1.1", "n6.1.1" (nightlies) and "7.0-full_build" style strings.

    Args:
        version_str: Version string to parse.

    Returns:
        Tuple of version components, or None if parsing fails.
    """
    if not version_str:
        return None

    version_str = version_str.lstrip("nv")
    match = re.match(r"(\d+(?:\.\d+)*)", version_str)
    if not match:
        return None

    return tuple(int(p) for p in match.group(1).split("."))


def _find_tool(name: str, configured_path: Path | None = None) -> Path | None:
    """Find a tool executable, preferring the configured path."""
    if configured_path and configured_path.exists():
        return configured_path

    which_result = shutil.which(name)
    if which_result:
        return Path(which_result)

    return None


def _run_command(
    args: list[str], timeout: int = DETECTION_TIMEOUT
) -> tuple[str, str, int]:
    """Run a command and capture output.

    Returns:
        Tuple of (stdout, stderr, returncode); returncode is -1 when the
        command could not run at all.
    """
    try:
        result = subprocess.run(  # nosec B603 - tool path is resolved above
            args,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
        )
        return result.stdout, result.stderr, result.returncode
    except subprocess.TimeoutExpired:
        logger.warning("Command timed out: %s", " ".join(args))
        return "", "timeout", -1
    except OSError as e:
        logger.warning("Command failed: %s - %s", " ".join(args), e)
        return "", str(e), -1


def parse_encoder_list(output: str) -> set[str]:
    """Parse `ffmpeg -encoders` output.

    Format: " V....D libx264    libx264 H.264 / AVC / MPEG-4 AVC"

    Args:
        output: Command output.

    Returns:
        Set of encoder names (lowercase).
    """
    encoders = set()
    for line in output.splitlines():
        match = re.match(r"\s+[VASFXBDI.]{6}\s+(\S+)", line)
        if match and match.group(1) != "=":
            encoders.add(match.group(1).lower())
    return encoders


def _detect_version(info: ToolInfo, path: Path) -> bool:
    """Run `<tool> -version` and fill version fields. Returns success."""
    stdout, stderr, rc = _run_command([str(path), "-version"])
    if rc != 0:
        info.status = ToolStatus.ERROR
        info.status_message = f"Failed to run {info.name} -version: {stderr.strip()}"
        return False

    version_match = re.search(rf"{info.name} version (\S+)", stdout)
    if version_match:
        info.version = version_match.group(1)
        info.version_tuple = parse_version_string(info.version)
    return True


def detect_ffmpeg(configured_path: Path | None = None) -> FFmpegInfo:
    """Detect ffmpeg, its version and its encoder list.

    Args:
        configured_path: Optional configured path to ffmpeg.

    Returns:
        FFmpegInfo describing the executable.
    """
    info = FFmpegInfo()
    info.detected_at = datetime.now(timezone.utc)

    path = _find_tool("ffmpeg", configured_path)
    if not path:
        info.status = ToolStatus.MISSING
        info.status_message = "ffmpeg not found in PATH"
        return info

    info.path = path
    if not _detect_version(info, path):
        return info

    stdout, _, rc = _run_command([str(path), "-hide_banner", "-encoders"])
    if rc == 0:
        info.encoders = parse_encoder_list(stdout)

    info.status = ToolStatus.AVAILABLE
    return info


def detect_ffprobe(configured_path: Path | None = None) -> FFprobeInfo:
    """Detect ffprobe and its version.

    Args:
        configured_path: Optional configured path to ffprobe.

    Returns:
        FFprobeInfo describing the executable.
    """
    info = FFprobeInfo()
    info.detected_at = datetime.now(timezone.utc)

    path = _find_tool("ffprobe", configured_path)
    if not path:
        info.status = ToolStatus.MISSING
        info.status_message = "ffprobe not found in PATH"
        return info

    info.path = path
    if not _detect_version(info, path):
        return info

    info.status = ToolStatus.AVAILABLE
    return info


def detect_all_tools(
    ffmpeg_path: Path | None = None,
    ffprobe_path: Path | None = None,
) -> ToolRegistry:
    """Detect both tools and return a fresh registry."""
    registry = ToolRegistry(
        ffmpeg=detect_ffmpeg(ffmpeg_path),
        ffprobe=detect_ffprobe(ffprobe_path),
    )
    for tool in (registry.ffmpeg, registry.ffprobe):
        if tool.is_available():
            logger.debug("Detected %s %s at %s", tool.name, tool.version, tool.path)
        else:
            logger.warning("%s unavailable: %s", tool.name, tool.status_message)
    return registry


def require_tool(registry: ToolRegistry, tool_name: str) -> Path:
    """Get path to a required tool.

    Args:
        registry: Registry from detect_all_tools().
        tool_name: "ffmpeg" or "ffprobe".

    Returns:
        Path to the tool executable.

    Raises:
        ToolNotFoundError: If the tool is not available.
    """
    tool = registry.get_tool(tool_name)
    if tool is None or not tool.is_available() or tool.path is None:
        raise ToolNotFoundError(tool_name, INSTALL_HINTS.get(tool_name, ""))
    return tool.path
