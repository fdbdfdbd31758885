"""Media descriptor produced by probing a file."""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class MediaDescriptor:
    """Normalized metadata for one input file.

    Created per probe request and never cached; needs_conversion is
    derived by the compatibility classifier when the descriptor is built.
    """

    path: Path
    filename: str
    video_codec: str | None
    audio_codec: str | None
    """Codec of the first audio stream, None when the file has no audio."""

    container: str | None
    """ffprobe format_name, e.g. 'matroska,webm' or 'mov,mp4,m4a,3gp,3g2,mj2'."""

    duration: float = 0.0
    width: int = 0
    height: int = 0
    bitrate: int = 0
    needs_conversion: bool = True
    video_stream_index: int | None = None
    """Absolute ffprobe index of the video stream that was classified."""

    audio_stream_index: int | None = None
    """Absolute ffprobe index of the audio stream that was classified."""

    @property
    def has_audio(self) -> bool:
        return self.audio_codec is not None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "path": str(self.path),
            "filename": self.filename,
            "video_codec": self.video_codec,
            "audio_codec": self.audio_codec,
            "container": self.container,
            "duration": self.duration,
            "width": self.width,
            "height": self.height,
            "bitrate": self.bitrate,
            "needs_conversion": self.needs_conversion,
            "video_stream_index": self.video_stream_index,
            "audio_stream_index": self.audio_stream_index,
        }
