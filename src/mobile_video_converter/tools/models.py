"""Data models for external tool detection.

This module defines dataclasses for detected ffmpeg/ffprobe information
and the registry aggregating them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class ToolStatus(Enum):
    """Status of an external tool."""

    AVAILABLE = "available"  # Tool found and version detected
    MISSING = "missing"  # Tool not found in PATH or configured location
    ERROR = "error"  # Tool found but could not be executed


@dataclass
class ToolInfo:
    """Information about one external executable."""

    name: str
    path: Path | None = None
    version: str | None = None
    version_tuple: tuple[int, ...] | None = None
    status: ToolStatus = ToolStatus.MISSING
    status_message: str | None = None
    detected_at: datetime | None = None

    def is_available(self) -> bool:
        """Return True if the tool is available and usable."""
        return self.status == ToolStatus.AVAILABLE and self.path is not None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "path": str(self.path) if self.path else None,
            "version": self.version,
            "status": self.status.value,
            "status_message": self.status_message,
        }


@dataclass
class FFmpegInfo(ToolInfo):
    """FFmpeg information, including the encoders the build exposes."""

    name: str = "ffmpeg"
    encoders: set[str] = field(default_factory=set)

    def has_encoder(self, encoder: str) -> bool:
        """Check if the build lists an encoder."""
        return encoder.lower() in self.encoders


@dataclass
class FFprobeInfo(ToolInfo):
    """FFprobe information."""

    name: str = "ffprobe"


# Installation hints shown when a tool is missing
INSTALL_HINTS: dict[str, str] = {
    "ffmpeg": (
        "Install FFmpeg (https://ffmpeg.org/download.html) or set "
        "MVC_FFMPEG_PATH / [tools].ffmpeg in ~/.mvc/config.toml."
    ),
    "ffprobe": (
        "ffprobe ships with FFmpeg; install FFmpeg or set "
        "MVC_FFPROBE_PATH / [tools].ffprobe in ~/.mvc/config.toml."
    ),
}


@dataclass
class ToolRegistry:
    """Registry of detected external tools."""

    ffmpeg: FFmpegInfo = field(default_factory=FFmpegInfo)
    ffprobe: FFprobeInfo = field(default_factory=FFprobeInfo)

    def get_tool(self, name: str) -> ToolInfo | None:
        """Get tool info by name."""
        return {"ffmpeg": self.ffmpeg, "ffprobe": self.ffprobe}.get(name)

    def is_available(self, name: str) -> bool:
        """Check if a tool is available."""
        tool = self.get_tool(name)
        return tool is not None and tool.is_available()

    def all_available(self) -> bool:
        """Return True when both probe and transcode tools are usable."""
        return self.ffmpeg.is_available() and self.ffprobe.is_available()

    def get_missing_tools(self) -> list[str]:
        """Get list of missing tool names."""
        return [
            tool.name for tool in (self.ffmpeg, self.ffprobe) if not tool.is_available()
        ]
