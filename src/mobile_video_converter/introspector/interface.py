"""MediaProber interface for video metadata extraction."""

from pathlib import Path
from typing import Protocol

from mobile_video_converter.introspector.models import MediaDescriptor


class MediaProber(Protocol):
    """Protocol for media probe implementations.

    The conversion service only depends on this interface, so tests can
    substitute a prober that returns canned descriptors.
    """

    def probe(self, path: Path) -> MediaDescriptor:
        """Extract metadata from a video file.

        Args:
            path: Path to the video file.

        Returns:
            MediaDescriptor for the file.

        Raises:
            ProbeError: If the file cannot be probed.
            ToolNotFoundError: If the probe executable cannot be launched.
        """
        ...
