"""Hardware H.264 encoder detection.

The plan builder never branches on the operating system. It asks a
capability probe for a HostCapabilities value, which is either
software-only or names a hardware encoder that passed a test encode.

Functions in this module:
- platform_candidates: Hardware platforms worth trying on this OS
- check_encoder_works: Run a tiny test encode with a hardware encoder
- FFmpegCapabilityProbe: Detect HostCapabilities for an ffmpeg build
"""

import logging
import platform
import subprocess  # nosec B404 - subprocess is required for encoder probing
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from mobile_video_converter.tools.models import FFmpegInfo

logger = logging.getLogger(__name__)

SOFTWARE_H264_ENCODER = "libx264"

# Hardware H.264 encoders by platform
HARDWARE_H264_ENCODERS: dict[str, str] = {
    "videotoolbox": "h264_videotoolbox",
    "nvenc": "h264_nvenc",
    "qsv": "h264_qsv",
    "vaapi": "h264_vaapi",
    "amf": "h264_amf",
}

# Platforms tried in auto mode, in priority order, by OS
_AUTO_PRIORITY: dict[str, list[str]] = {
    "darwin": ["videotoolbox"],
    "windows": ["nvenc", "qsv", "amf"],
    "linux": ["nvenc", "qsv", "vaapi"],
}

# Timeout for a single hardware test encode (seconds)
TEST_ENCODE_TIMEOUT = 15


class CapabilityKind(Enum):
    """Whether the host can encode H.264 in hardware."""

    SOFTWARE_ONLY = "software-only"
    HARDWARE_AVAILABLE = "hardware-available"


@dataclass(frozen=True)
class HostCapabilities:
    """Result of host capability detection."""

    kind: CapabilityKind
    hw_encoder: str | None = None
    """FFmpeg encoder name (e.g. 'h264_videotoolbox') when hardware is available."""

    hw_platform: str | None = None
    """Hardware platform key (e.g. 'videotoolbox', 'nvenc')."""

    @classmethod
    def software_only(cls) -> "HostCapabilities":
        return cls(kind=CapabilityKind.SOFTWARE_ONLY)

    @classmethod
    def hardware(cls, hw_platform: str) -> "HostCapabilities":
        return cls(
            kind=CapabilityKind.HARDWARE_AVAILABLE,
            hw_encoder=HARDWARE_H264_ENCODERS[hw_platform],
            hw_platform=hw_platform,
        )

    @property
    def has_hardware_encoder(self) -> bool:
        return self.kind == CapabilityKind.HARDWARE_AVAILABLE

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "hw_encoder": self.hw_encoder,
            "hw_platform": self.hw_platform,
        }


class CapabilityProbe(Protocol):
    """Anything that can report the host's encoding capabilities."""

    def detect(self) -> HostCapabilities: ...


class StaticCapabilityProbe:
    """Capability probe returning a fixed value (software-only mode, tests)."""

    def __init__(self, capabilities: HostCapabilities) -> None:
        self._capabilities = capabilities

    def detect(self) -> HostCapabilities:
        return self._capabilities


def platform_candidates(system: str | None = None) -> list[str]:
    """Return hardware platforms to try in auto mode for an OS.

    Args:
        system: platform.system() value; detected when None.
    """
    system_name = (system or platform.system()).lower()
    return list(_AUTO_PRIORITY.get(system_name, []))


def hardware_test_command(
    ffmpeg_path: Path,
    hw_platform: str,
    vaapi_device: str = "/dev/dri/renderD128",
) -> list[str]:
    """Build a short synthetic encode used to prove an encoder works."""
    cmd = [str(ffmpeg_path), "-hide_banner", "-nostdin", "-loglevel", "error"]
    if hw_platform == "vaapi":
        cmd.extend(["-vaapi_device", vaapi_device])
    cmd.extend(["-f", "lavfi", "-i", "color=c=black:s=256x256:r=25:d=0.2"])
    if hw_platform == "vaapi":
        cmd.extend(["-vf", "format=nv12,hwupload"])
    cmd.extend(
        ["-frames:v", "5", "-c:v", HARDWARE_H264_ENCODERS[hw_platform], "-f", "null", "-"]
    )
    return cmd


def check_encoder_works(
    ffmpeg_path: Path,
    hw_platform: str,
    vaapi_device: str = "/dev/dri/renderD128",
) -> bool:
    """Check that a hardware encoder can actually encode on this host.

    Listing in `ffmpeg -encoders` only proves the build supports it; the
    device and driver must also be present, so run a test encode.

    Returns:
        True if the test encode succeeded.
    """
    cmd = hardware_test_command(ffmpeg_path, hw_platform, vaapi_device)
    try:
        result = subprocess.run(  # nosec B603
            cmd,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=TEST_ENCODE_TIMEOUT,
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.debug("Test encode with %s failed to run: %s", hw_platform, e)
        return False

    if result.returncode != 0:
        logger.debug(
            "Test encode with %s failed: %s", hw_platform, result.stderr.strip()
        )
        return False
    return True


class FFmpegCapabilityProbe:
    """Detect HostCapabilities from an ffmpeg build and the hw_mode setting."""

    def __init__(
        self,
        ffmpeg: FFmpegInfo,
        hw_mode: str = "auto",
        vaapi_device: str = "/dev/dri/renderD128",
        system: str | None = None,
    ) -> None:
        """Initialize the probe.

        Args:
            ffmpeg: Detected ffmpeg information.
            hw_mode: "auto", "none", or a platform key from
                HARDWARE_H264_ENCODERS.
            vaapi_device: Render node for VA-API test encodes.
            system: Override for platform.system() (tests).
        """
        self.ffmpeg = ffmpeg
        self.hw_mode = hw_mode.lower()
        self.vaapi_device = vaapi_device
        self.system = system

    def detect(self) -> HostCapabilities:
        """Return the first hardware platform that passes a test encode."""
        if self.hw_mode == "none":
            return HostCapabilities.software_only()

        if not self.ffmpeg.is_available() or self.ffmpeg.path is None:
            return HostCapabilities.software_only()

        if self.hw_mode == "auto":
            candidates = platform_candidates(self.system)
        else:
            candidates = [self.hw_mode]

        for hw_platform in candidates:
            encoder = HARDWARE_H264_ENCODERS.get(hw_platform)
            if encoder is None:
                continue
            # An empty encoder list means -encoders failed; rely on the test encode
            if self.ffmpeg.encoders and not self.ffmpeg.has_encoder(encoder):
                logger.debug("ffmpeg build has no %s encoder", encoder)
                continue
            if check_encoder_works(self.ffmpeg.path, hw_platform, self.vaapi_device):
                logger.info("Selected hardware encoder: %s", encoder)
                return HostCapabilities.hardware(hw_platform)

        if self.hw_mode != "auto":
            logger.warning(
                "Requested hardware encoder %s is not usable, using %s",
                HARDWARE_H264_ENCODERS.get(self.hw_mode, self.hw_mode),
                SOFTWARE_H264_ENCODER,
            )
        else:
            logger.info("No hardware H.264 encoder available, using software")
        return HostCapabilities.software_only()
