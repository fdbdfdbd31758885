"""Media introspection: probe a file and describe its streams."""

from mobile_video_converter.introspector.ffprobe import FFprobeProber
from mobile_video_converter.introspector.interface import MediaProber
from mobile_video_converter.introspector.models import MediaDescriptor
from mobile_video_converter.introspector.parsers import (
    parse_duration,
    parse_ffprobe_output,
    parse_int,
)

__all__ = [
    "FFprobeProber",
    "MediaDescriptor",
    "MediaProber",
    "parse_duration",
    "parse_ffprobe_output",
    "parse_int",
]
