"""Encode profile: tuning parameters for the encode modes.

The built-in defaults produce a broadly playable H.264 Main@4.0 stream
with 128k AAC audio. A YAML file can override any field:

    crf: 20
    preset: medium
    audio_bitrate: 160k
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from mobile_video_converter.exceptions import ProfileValidationError

logger = logging.getLogger(__name__)

VALID_PRESETS = (
    "ultrafast",
    "superfast",
    "veryfast",
    "faster",
    "fast",
    "medium",
    "slow",
    "slower",
    "veryslow",
)

VALID_H264_PROFILES = ("baseline", "main", "high")

VALID_H264_LEVELS = (
    "3.0",
    "3.1",
    "3.2",
    "4.0",
    "4.1",
    "4.2",
    "5.0",
    "5.1",
    "5.2",
)

# Bitrate strings accepted by ffmpeg's -b:a ("128k", "1.5M", "96000")
_BITRATE_PATTERN = re.compile(r"^\d+(\.\d+)?[kKmM]?$")


@dataclass(frozen=True)
class EncodeProfile:
    """Validated encode tuning parameters."""

    crf: int = 23
    """Constant rate factor for libx264 (0-51, lower is better)."""

    preset: str = "fast"
    h264_profile: str = "main"
    h264_level: str = "4.0"
    pixel_format: str = "yuv420p"
    audio_bitrate: str = "128k"

    hardware_quality: int = 65
    """Quality knob for hardware encoders (1-100, higher is better)."""

    passthrough_compatible_streams: bool = True
    """Stream-copy an H.264 video or AAC audio stream inside an encode plan."""


class EncodeProfileModel(BaseModel):
    """Pydantic model for encode profile YAML."""

    model_config = ConfigDict(extra="forbid")

    crf: int = Field(default=23, ge=0, le=51)
    preset: str = "fast"
    h264_profile: str = "main"
    h264_level: str = "4.0"
    pixel_format: str = "yuv420p"
    audio_bitrate: str = "128k"
    hardware_quality: int = Field(default=65, ge=1, le=100)
    passthrough_compatible_streams: bool = True

    @field_validator("preset")
    @classmethod
    def validate_preset(cls, v: str) -> str:
        v = v.lower()
        if v not in VALID_PRESETS:
            raise ValueError(f"must be one of: {', '.join(VALID_PRESETS)}")
        return v

    @field_validator("h264_profile")
    @classmethod
    def validate_h264_profile(cls, v: str) -> str:
        v = v.lower()
        if v not in VALID_H264_PROFILES:
            raise ValueError(f"must be one of: {', '.join(VALID_H264_PROFILES)}")
        return v

    @field_validator("h264_level", mode="before")
    @classmethod
    def validate_h264_level(cls, v: Any) -> str:
        # YAML reads an unquoted 4.0 as a float
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            v = f"{float(v):.1f}"
        if not isinstance(v, str) or v not in VALID_H264_LEVELS:
            raise ValueError(f"must be one of: {', '.join(VALID_H264_LEVELS)}")
        return v

    @field_validator("audio_bitrate", mode="before")
    @classmethod
    def validate_audio_bitrate(cls, v: Any) -> str:
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        if not isinstance(v, str) or not _BITRATE_PATTERN.match(v):
            raise ValueError("must be a bitrate such as '128k'")
        return v


def _format_validation_error(error: ValidationError) -> tuple[str, str | None]:
    """Format the first pydantic error as 'field: message'."""
    errors = error.errors()
    if not errors:
        return f"Profile validation failed: {error}", None
    first_error = errors[0]
    loc = ".".join(str(x) for x in first_error.get("loc", []))
    msg = first_error.get("msg", str(error))
    if loc:
        return f"Profile validation failed: {loc}: {msg}", loc
    return f"Profile validation failed: {msg}", None


def load_profile_from_dict(data: dict[str, Any]) -> EncodeProfile:
    """Load and validate an encode profile from a dictionary.

    Raises:
        ProfileValidationError: If the data is invalid.
    """
    try:
        model = EncodeProfileModel.model_validate(data)
    except ValidationError as e:
        message, field = _format_validation_error(e)
        raise ProfileValidationError(message, field=field) from e
    return EncodeProfile(**model.model_dump())


def load_profile(profile_path: Path) -> EncodeProfile:
    """Load and validate an encode profile from a YAML file.

    Args:
        profile_path: Path to the YAML profile.

    Returns:
        Validated EncodeProfile.

    Raises:
        ProfileValidationError: If the file is missing or invalid.
    """
    if not profile_path.exists():
        raise ProfileValidationError(f"Profile file not found: {profile_path}")

    try:
        with open(profile_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ProfileValidationError(f"Invalid YAML syntax: {e}") from e
    except OSError as e:
        raise ProfileValidationError(f"Cannot read profile {profile_path}: {e}") from e

    # An empty file keeps every default
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ProfileValidationError("Profile file must be a YAML mapping")

    profile = load_profile_from_dict(data)
    logger.debug("Loaded encode profile from %s", profile_path)
    return profile
