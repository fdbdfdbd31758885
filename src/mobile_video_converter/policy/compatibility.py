"""Mobile compatibility classification.

A file is mobile compatible when its video is H.264, its audio (if any)
is AAC, and it lives in an MP4 container. Anything else needs conversion.

All functions are pure so they can be evaluated for display without
touching the file system.
"""

from __future__ import annotations

from pathlib import PurePath
from typing import Protocol

H264_NAMES = frozenset({"h264", "avc", "avc1"})
AAC_NAMES = frozenset({"aac"})

# ffprobe reports one demuxer for the whole QuickTime/ISO-BMFF family, so
# the extension decides between MP4 and MOV/3GP.
QUICKTIME_FAMILY = "mov,mp4,m4a,3gp,3g2,mj2"
MP4_EXTENSIONS = frozenset({".mp4", ".m4v"})


class StreamSummary(Protocol):
    """Fields the classifier reads from a media descriptor."""

    path: PurePath
    video_codec: str | None
    audio_codec: str | None
    container: str | None


def is_h264(codec: str | None) -> bool:
    """Return True for H.264/AVC codec names."""
    return codec is not None and codec.strip().lower() in H264_NAMES


def is_aac(codec: str | None) -> bool:
    """Return True for AAC codec names."""
    return codec is not None and codec.strip().lower() in AAC_NAMES


def is_mp4_container(format_name: str | None, path: PurePath | None = None) -> bool:
    """Return True when the container is MP4.

    Args:
        format_name: ffprobe format_name (comma-separated demuxer list).
        path: File path; consulted only for the shared QuickTime demuxer.
    """
    if not format_name:
        return False
    normalized = format_name.strip().lower()
    names = {name.strip() for name in normalized.split(",")}
    if "mp4" not in names:
        return False
    if normalized == QUICKTIME_FAMILY and path is not None:
        return path.suffix.lower() in MP4_EXTENSIONS
    return True


def describe_incompatibilities(
    video_codec: str | None,
    audio_codec: str | None,
    container: str | None,
    path: PurePath | None = None,
) -> list[str]:
    """List the reasons a file is not mobile compatible.

    Returns:
        Human-readable reasons; empty when the file is compatible.
    """
    reasons: list[str] = []
    if not is_h264(video_codec):
        reasons.append(f"video codec {video_codec or 'unknown'} is not H.264")
    # No audio stream means nothing to validate
    if audio_codec is not None and not is_aac(audio_codec):
        reasons.append(f"audio codec {audio_codec} is not AAC")
    if not is_mp4_container(container, path):
        reasons.append(f"container {container or 'unknown'} is not MP4")
    return reasons


def requires_conversion(
    video_codec: str | None,
    audio_codec: str | None,
    container: str | None,
    path: PurePath | None = None,
) -> bool:
    """Return True when any stream or the container is incompatible."""
    return bool(describe_incompatibilities(video_codec, audio_codec, container, path))


def classify(descriptor: StreamSummary) -> bool:
    """Return needs_conversion for a probed file."""
    return requires_conversion(
        descriptor.video_codec,
        descriptor.audio_codec,
        descriptor.container,
        descriptor.path,
    )
