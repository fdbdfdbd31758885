"""External tool detection and hardware encoder capabilities.

This module detects ffmpeg and ffprobe, probes the host for a working
hardware H.264 encoder and builds ffmpeg command lines.
"""

from mobile_video_converter.tools.detection import (
    detect_all_tools,
    detect_ffmpeg,
    detect_ffprobe,
    parse_encoder_list,
    parse_version_string,
    require_tool,
)
from mobile_video_converter.tools.encoders import (
    CapabilityKind,
    FFmpegCapabilityProbe,
    HostCapabilities,
    StaticCapabilityProbe,
    check_encoder_works,
)
from mobile_video_converter.tools.ffmpeg_builder import FFmpegCommandBuilder
from mobile_video_converter.tools.models import (
    INSTALL_HINTS,
    FFmpegInfo,
    FFprobeInfo,
    ToolInfo,
    ToolRegistry,
    ToolStatus,
)

__all__ = [
    # Detection
    "detect_all_tools",
    "detect_ffmpeg",
    "detect_ffprobe",
    "parse_encoder_list",
    "parse_version_string",
    "require_tool",
    # Capabilities
    "CapabilityKind",
    "FFmpegCapabilityProbe",
    "HostCapabilities",
    "StaticCapabilityProbe",
    "check_encoder_works",
    # Command building
    "FFmpegCommandBuilder",
    # Models
    "INSTALL_HINTS",
    "FFmpegInfo",
    "FFprobeInfo",
    "ToolInfo",
    "ToolRegistry",
    "ToolStatus",
]
