"""Encode plan builder.

Turns a probed MediaDescriptor and the host capabilities into an
immutable EncodePlan: the conversion mode, a non-colliding output path
and the ordered ffmpeg arguments placed between input and output.

Decision order:
1. File already mobile compatible, or every stream can be passed
   through unchanged -> copy (remux only)
2. Host has a working hardware H.264 encoder -> hardware_encode
3. Otherwise -> software_encode (libx264, constant quality)
"""

import logging
import os
from collections.abc import Collection
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from mobile_video_converter.exceptions import PlanError
from mobile_video_converter.introspector.models import MediaDescriptor
from mobile_video_converter.policy.compatibility import is_aac, is_h264
from mobile_video_converter.policy.profile import EncodeProfile
from mobile_video_converter.tools.encoders import (
    SOFTWARE_H264_ENCODER,
    HostCapabilities,
)

logger = logging.getLogger(__name__)

OUTPUT_EXTENSION = ".mp4"

# Upper bound on "<stem>_N.mp4" candidates before giving up
MAX_NAME_ATTEMPTS = 10_000

FASTSTART_ARGS = ("-movflags", "+faststart")


class ConversionMode(Enum):
    """How a file is turned into a mobile-compatible MP4."""

    COPY = "copy"
    SOFTWARE_ENCODE = "software_encode"
    HARDWARE_ENCODE = "hardware_encode"


@dataclass(frozen=True)
class EncodePlan:
    """Immutable description of one conversion attempt."""

    mode: ConversionMode
    input_path: Path
    output_path: Path
    parameters: tuple[str, ...]
    """Encoder arguments placed between the input and the output path."""

    video_encoder: str = "copy"
    audio_encoder: str = "copy"
    duration: float = 0.0
    """Input duration in seconds, used to compute progress."""

    input_parameters: tuple[str, ...] = ()
    """Arguments that must precede -i (hardware device selection)."""

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "mode": self.mode.value,
            "input_path": str(self.input_path),
            "output_path": str(self.output_path),
            "parameters": list(self.parameters),
            "input_parameters": list(self.input_parameters),
            "video_encoder": self.video_encoder,
            "audio_encoder": self.audio_encoder,
            "duration": self.duration,
        }


def _same_path(a: Path, b: Path) -> bool:
    return os.path.normcase(str(a)) == os.path.normcase(str(b))


def prepare_output_dir(output_dir: Path) -> Path:
    """Create the output directory if needed and check it is writable.

    Returns:
        The absolute output directory.

    Raises:
        PlanError: If the directory cannot be created or written to.
    """
    output_dir = Path(output_dir).expanduser().absolute()
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PlanError(
            f"Cannot create output directory {output_dir}: {e}", path=output_dir
        ) from e
    if not output_dir.is_dir():
        raise PlanError(f"Output path is not a directory: {output_dir}", path=output_dir)
    if not os.access(output_dir, os.W_OK | os.X_OK):
        raise PlanError(
            f"Output directory is not writable: {output_dir}", path=output_dir
        )
    return output_dir


def _candidates(output_dir: Path, input_path: Path, reserved: Collection[Path]):
    """Yield <stem>.mp4, <stem>_1.mp4, ... skipping the input and reserved paths."""
    stem = input_path.stem
    for attempt in range(MAX_NAME_ATTEMPTS):
        suffix = f"_{attempt}" if attempt else ""
        candidate = output_dir / f"{stem}{suffix}{OUTPUT_EXTENSION}"
        if _same_path(candidate, input_path):
            continue
        if any(_same_path(candidate, r) for r in reserved):
            continue
        yield candidate


def resolve_output_path(
    output_dir: Path,
    input_path: Path,
    reserved: Collection[Path] = (),
) -> Path:
    """Pick a non-colliding output path for an input file.

    Tries <stem>.mp4, then <stem>_1.mp4, <stem>_2.mp4, ... and returns the
    first candidate that does not exist, is not the input file and is not
    reserved by another live task. Nothing is created; use
    claim_output_path() when the path is about to be written.

    Args:
        output_dir: Directory the output goes into.
        input_path: Source file; its stem names the output.
        reserved: Output paths held by live tasks.

    Raises:
        PlanError: If no free name is found.
    """
    output_dir = Path(output_dir).absolute()
    input_path = Path(input_path).absolute()

    for candidate in _candidates(output_dir, input_path, reserved):
        if not candidate.exists():
            return candidate

    raise PlanError(
        f"No free output name for {input_path.name} in {output_dir}",
        path=output_dir,
    )


def claim_output_path(
    output_dir: Path,
    input_path: Path,
    reserved: Collection[Path] = (),
) -> Path:
    """Pick a non-colliding output path and create it as an empty file.

    The file is created with O_CREAT | O_EXCL, so a name taken by another
    process between the existence check and the claim is skipped instead
    of overwritten. The empty placeholder belongs to the caller, which may
    then let ffmpeg overwrite it.

    Raises:
        PlanError: If no free name is found or the directory refuses writes.
    """
    output_dir = Path(output_dir).absolute()
    input_path = Path(input_path).absolute()

    for candidate in _candidates(output_dir, input_path, reserved):
        try:
            fd = os.open(candidate, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            continue
        except OSError as e:
            raise PlanError(
                f"Cannot create output file {candidate}: {e}", path=candidate
            ) from e
        os.close(fd)
        return candidate

    raise PlanError(
        f"No free output name for {input_path.name} in {output_dir}",
        path=output_dir,
    )


def discard_placeholder(path: Path) -> None:
    """Remove a claimed output that was never written (still empty)."""
    try:
        if path.stat().st_size == 0:
            path.unlink()
    except FileNotFoundError:
        return
    except OSError as e:
        logger.warning("Could not remove unused output placeholder %s: %s", path, e)


def _quality_to_qp(hardware_quality: int) -> int:
    """Map a 1-100 quality knob (higher is better) to a 0-51 QP."""
    qp = round(51 * (100 - hardware_quality) / 100)
    return max(0, min(51, qp))


def hardware_video_args(
    hw_platform: str,
    encoder: str,
    profile: EncodeProfile,
    vaapi_device: str = "/dev/dri/renderD128",
) -> tuple[list[str], list[str]]:
    """Build video encoder arguments for a hardware platform.

    Returns:
        Tuple of (input-side arguments, output-side video arguments).
    """
    qp = str(_quality_to_qp(profile.hardware_quality))
    input_args: list[str] = []
    args: list[str] = []

    if hw_platform == "vaapi":
        input_args.extend(["-vaapi_device", vaapi_device])
        args.extend(["-vf", "format=nv12,hwupload"])

    args.extend(["-c:v", encoder])

    if hw_platform == "videotoolbox":
        args.extend(["-q:v", str(profile.hardware_quality), "-allow_sw", "1"])
    elif hw_platform == "nvenc":
        args.extend(["-preset", "p4", "-rc", "vbr", "-cq", qp, "-b:v", "0"])
    elif hw_platform == "qsv":
        args.extend(["-global_quality", qp])
    elif hw_platform == "vaapi":
        args.extend(["-qp", qp])
    elif hw_platform == "amf":
        args.extend(["-quality", "balanced", "-rc", "cqp", "-qp_i", qp, "-qp_p", qp])

    args.extend(["-profile:v", profile.h264_profile])
    # Level names are only accepted as strings by these encoders
    if hw_platform in ("videotoolbox", "nvenc"):
        args.extend(["-level", profile.h264_level])
    if hw_platform != "vaapi":
        args.extend(["-pix_fmt", profile.pixel_format])
    return input_args, args


def software_video_args(profile: EncodeProfile) -> list[str]:
    """Build libx264 constant-quality arguments."""
    return [
        "-c:v",
        SOFTWARE_H264_ENCODER,
        "-preset",
        profile.preset,
        "-crf",
        str(profile.crf),
        "-profile:v",
        profile.h264_profile,
        "-level",
        profile.h264_level,
        "-pix_fmt",
        profile.pixel_format,
    ]


def stream_maps(descriptor: MediaDescriptor) -> list[str]:
    """Map exactly the video and audio streams the classifier looked at.

    Falls back to the first video stream and the first audio stream (if
    any) when the descriptor carries no stream indices.
    """
    video = descriptor.video_stream_index
    maps = ["-map", f"0:{video}" if video is not None else "0:v:0"]
    audio = descriptor.audio_stream_index
    if descriptor.has_audio and audio is not None:
        maps.extend(["-map", f"0:{audio}"])
    else:
        maps.extend(["-map", "0:a:0?"])
    return maps


def build_plan(
    descriptor: MediaDescriptor,
    host_caps: HostCapabilities,
    output_dir: Path,
    profile: EncodeProfile | None = None,
    reserved: Collection[Path] = (),
    output_path: Path | None = None,
    vaapi_device: str = "/dev/dri/renderD128",
) -> EncodePlan:
    """Build the encode plan for a probed file.

    Only the classified video stream and the first audio stream are
    carried over; other audio tracks, subtitles and data are dropped.
    A file whose streams are all passed through unchanged is reported as
    copy even when its container needed changing.

    Args:
        descriptor: Probed input file.
        host_caps: Host hardware encoding capabilities.
        output_dir: Directory for the converted file.
        profile: Encode tuning; built-in defaults when None.
        reserved: Output paths held by live tasks.
        output_path: Already reserved output path; skips name resolution.
        vaapi_device: Render node for VA-API encodes.

    Returns:
        Immutable EncodePlan.

    Raises:
        PlanError: If the output directory is unusable or no name is free.
    """
    profile = profile or EncodeProfile()
    output_dir = prepare_output_dir(output_dir)
    if output_path is None:
        output_path = resolve_output_path(output_dir, descriptor.path, reserved)

    input_args: list[str] = []
    params: list[str] = stream_maps(descriptor)

    if not descriptor.needs_conversion:
        mode = ConversionMode.COPY
        params.extend(["-c", "copy", "-sn", "-dn"])
        params.extend(FASTSTART_ARGS)
        plan = EncodePlan(
            mode=mode,
            input_path=descriptor.path,
            output_path=output_path,
            parameters=tuple(params),
            video_encoder="copy",
            audio_encoder="copy" if descriptor.has_audio else "none",
            duration=descriptor.duration,
        )
        logger.debug("Plan for %s: %s -> %s", descriptor.filename, mode.value, output_path)
        return plan

    passthrough = profile.passthrough_compatible_streams

    if host_caps.has_hardware_encoder and host_caps.hw_encoder and host_caps.hw_platform:
        mode = ConversionMode.HARDWARE_ENCODE
    else:
        mode = ConversionMode.SOFTWARE_ENCODE

    if passthrough and is_h264(descriptor.video_codec):
        video_encoder = "copy"
        params.extend(["-c:v", "copy"])
    elif mode == ConversionMode.HARDWARE_ENCODE:
        video_encoder = host_caps.hw_encoder
        input_args, video_args = hardware_video_args(
            host_caps.hw_platform, host_caps.hw_encoder, profile, vaapi_device
        )
        params.extend(video_args)
    else:
        video_encoder = SOFTWARE_H264_ENCODER
        params.extend(software_video_args(profile))

    if not descriptor.has_audio:
        audio_encoder = "none"
        params.append("-an")
    elif passthrough and is_aac(descriptor.audio_codec):
        audio_encoder = "copy"
        params.extend(["-c:a", "copy"])
    else:
        audio_encoder = "aac"
        params.extend(["-c:a", "aac", "-b:a", profile.audio_bitrate])

    # Every stream passed through: only the container changes
    if video_encoder == "copy" and audio_encoder in ("copy", "none"):
        mode = ConversionMode.COPY

    params.extend(["-sn", "-dn"])
    params.extend(FASTSTART_ARGS)

    logger.debug(
        "Plan for %s: %s (video=%s audio=%s) -> %s",
        descriptor.filename,
        mode.value,
        video_encoder,
        audio_encoder,
        output_path,
    )
    return EncodePlan(
        mode=mode,
        input_path=descriptor.path,
        output_path=output_path,
        parameters=tuple(params),
        video_encoder=video_encoder,
        audio_encoder=audio_encoder,
        duration=descriptor.duration,
        input_parameters=tuple(input_args),
    )
