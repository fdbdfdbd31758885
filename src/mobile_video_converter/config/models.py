"""Configuration data models.

This module defines dataclasses for converter configuration options.
"""

from dataclasses import dataclass, field
from pathlib import Path

# Hardware acceleration modes accepted by [conversion].hw_mode
VALID_HW_MODES = frozenset(
    {"auto", "none", "videotoolbox", "nvenc", "qsv", "vaapi", "amf"}
)


@dataclass
class ToolPathsConfig:
    """Configuration for external tool paths.

    All paths are optional. If not specified, tools are looked up in PATH.
    """

    ffmpeg: Path | None = None
    ffprobe: Path | None = None


@dataclass
class ConversionConfig:
    """Configuration for probing and transcoding behavior."""

    hw_mode: str = "auto"
    """Hardware encoder preference: auto, none, or a specific platform."""

    cancel_grace_seconds: float = 5.0
    """Seconds to wait after SIGTERM before killing a cancelled transcode."""

    probe_timeout_seconds: float = 30.0
    """Maximum time for a single ffprobe call."""

    threads: int | None = None
    """Thread count passed to ffmpeg (None = let ffmpeg decide)."""

    progress_resolution: float = 0.1
    """Smallest progress change (percent) that produces a new event."""

    profile: Path | None = None
    """Optional YAML encode profile overriding the built-in defaults."""

    vaapi_device: str = "/dev/dri/renderD128"
    """Render node used when encoding through VA-API."""

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.hw_mode.lower() not in VALID_HW_MODES:
            raise ValueError(
                f"hw_mode must be one of {sorted(VALID_HW_MODES)}, got {self.hw_mode}"
            )
        if self.cancel_grace_seconds <= 0:
            raise ValueError(
                "cancel_grace_seconds must be positive, "
                f"got {self.cancel_grace_seconds}"
            )
        if self.probe_timeout_seconds <= 0:
            raise ValueError(
                "probe_timeout_seconds must be positive, "
                f"got {self.probe_timeout_seconds}"
            )
        if self.threads is not None and self.threads < 1:
            raise ValueError(f"threads must be at least 1, got {self.threads}")
        if not 0 < self.progress_resolution <= 100:
            raise ValueError(
                "progress_resolution must be in (0, 100], "
                f"got {self.progress_resolution}"
            )


@dataclass
class LoggingConfig:
    """Configuration for structured logging."""

    # Log level: debug, info, warning, error
    level: str = "info"

    # Log file path (None = stderr only)
    file: Path | None = None

    # Log format: text or json
    format: str = "text"

    # Also log to stderr when file is set
    include_stderr: bool = False

    # Rotation threshold in bytes (default 10MB)
    max_bytes: int = 10_485_760

    # Number of rotated files to keep
    backup_count: int = 5

    def __post_init__(self) -> None:
        """Validate configuration."""
        valid_levels = {"debug", "info", "warning", "error"}
        if self.level.lower() not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}, got {self.level}")
        valid_formats = {"text", "json"}
        if self.format.lower() not in valid_formats:
            raise ValueError(
                f"format must be one of {valid_formats}, got {self.format}"
            )


@dataclass
class ServerConfig:
    """Configuration for the HTTP server used by UI front-ends."""

    bind: str = "127.0.0.1"
    """Network address to bind to. Default localhost."""

    port: int = 8322
    """Port number for the HTTP server."""

    shutdown_timeout: float = 10.0
    """Seconds to wait for running conversions to stop on shutdown."""

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not 1 <= self.port <= 65535:
            raise ValueError(f"port must be 1-65535, got {self.port}")
        if self.shutdown_timeout <= 0:
            raise ValueError(
                f"shutdown_timeout must be positive, got {self.shutdown_timeout}"
            )


@dataclass
class MVCConfig:
    """Main configuration container.

    Aggregates all configuration sections.
    """

    tools: ToolPathsConfig = field(default_factory=ToolPathsConfig)
    conversion: ConversionConfig = field(default_factory=ConversionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    def get_tool_path(self, tool_name: str) -> Path | None:
        """Get configured path for a tool.

        Args:
            tool_name: Name of the tool (ffmpeg, ffprobe).

        Returns:
            Configured path or None if not configured.
        """
        return getattr(self.tools, tool_name.lower(), None)
