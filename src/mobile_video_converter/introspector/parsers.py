"""Pure parsing functions for ffprobe JSON output.

These functions transform ffprobe JSON data into MediaDescriptor objects.
All functions are pure (no I/O, no side effects) for easy testing.
"""

from pathlib import Path

from mobile_video_converter.exceptions import ProbeError
from mobile_video_converter.introspector.models import MediaDescriptor
from mobile_video_converter.policy.compatibility import requires_conversion


def parse_duration(value: str | float | None) -> float:
    """Parse duration string from ffprobe into seconds.

    Args:
        value: Duration string from ffprobe (e.g., "3600.000") or None.

    Returns:
        Duration in seconds, or 0.0 if missing or unparseable.
    """
    if value is None:
        return 0.0
    try:
        duration = float(value)
    except (ValueError, TypeError):
        return 0.0
    # ffprobe can report NaN/negative durations for broken streams
    if duration != duration or duration < 0:
        return 0.0
    return duration


def parse_int(value: str | int | None) -> int:
    """Parse an integer field ("128000", 1920, "N/A"); invalid values give 0."""
    if value is None:
        return 0
    try:
        return max(int(value), 0)
    except (ValueError, TypeError):
        return 0


def _first_stream(streams: list[dict], codec_type: str) -> dict | None:
    for stream in streams:
        if stream.get("codec_type") != codec_type:
            continue
        # Embedded cover art is reported as a video stream
        if codec_type == "video" and stream.get("disposition", {}).get(
            "attached_pic"
        ):
            continue
        return stream
    return None


def _stream_index(stream: dict | None) -> int | None:
    if stream is None or not isinstance(stream.get("index"), int):
        return None
    return stream["index"]


def parse_ffprobe_output(path: Path, data: dict) -> MediaDescriptor:
    """Parse ffprobe JSON output into a MediaDescriptor.

    Args:
        path: Absolute path of the probed file.
        data: Parsed JSON from ffprobe -show_format -show_streams.

    Returns:
        MediaDescriptor with needs_conversion already classified.

    Raises:
        ProbeError: If the output contains no video stream.
    """
    streams = data.get("streams") or []
    fmt = data.get("format") or {}

    video = _first_stream(streams, "video")
    if video is None:
        raise ProbeError(f"No video stream found in {path.name}", path=path)
    audio = _first_stream(streams, "audio")

    video_codec = video.get("codec_name")
    audio_codec = audio.get("codec_name") if audio is not None else None
    container = fmt.get("format_name")

    duration = parse_duration(fmt.get("duration"))
    if duration == 0.0:
        duration = parse_duration(video.get("duration"))

    return MediaDescriptor(
        path=path,
        filename=path.name,
        video_codec=video_codec,
        audio_codec=audio_codec,
        container=container,
        duration=duration,
        width=parse_int(video.get("width")),
        height=parse_int(video.get("height")),
        bitrate=parse_int(fmt.get("bit_rate")),
        needs_conversion=requires_conversion(
            video_codec, audio_codec, container, path
        ),
        video_stream_index=_stream_index(video),
        audio_stream_index=_stream_index(audio),
    )
