"""FFmpeg progress parsing.

ffmpeg is started with ``-progress pipe:2 -nostats`` so its diagnostic
stream carries blocks of key=value lines such as::

    frame=250
    fps=49.8
    out_time_us=10000000
    speed=1.99x
    progress=continue

Older builds or ``-stats`` output produce the classic single-line form
(``frame=  250 fps= 50 ... time=00:00:10.00 ... speed=2x``), which is
parsed as a fallback.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# Keys ffmpeg writes in -progress blocks
PROGRESS_KEYS = frozenset(
    {
        "frame",
        "fps",
        "bitrate",
        "total_size",
        "out_time_us",
        "out_time_ms",
        "out_time",
        "dup_frames",
        "drop_frames",
        "speed",
        "progress",
    }
)

_INT_KEYS = frozenset(
    {"frame", "total_size", "out_time_us", "out_time_ms", "dup_frames", "drop_frames"}
)

# Running progress stays below 100 until the output has been validated
RUNNING_PROGRESS_CAP = 99.0

_TIMESTAMP_PATTERN = re.compile(r"^(-)?(\d+):(\d{1,2}):(\d{1,2}(?:\.\d+)?)$")
_STATS_FIELD_PATTERN = re.compile(r"(\w+)=\s*(\S+)")


@dataclass
class FFmpegProgress:
    """Snapshot of ffmpeg progress values."""

    frame: int | None = None
    fps: float | None = None
    bitrate: str | None = None
    total_size: int | None = None
    out_time_us: int | None = None
    speed: str | None = None
    finished: bool = False

    @property
    def out_time_seconds(self) -> float | None:
        """Encoded output time in seconds."""
        if self.out_time_us is None:
            return None
        return self.out_time_us / 1_000_000

    def get_percent(self, duration: float | None) -> float:
        """Return progress as a percentage of duration, clamped to [0, 100]."""
        if not duration or duration <= 0:
            return 0.0
        seconds = self.out_time_seconds
        if seconds is None or seconds <= 0:
            return 0.0
        return min(100.0, seconds / duration * 100.0)


def parse_timestamp(value: str | None) -> float:
    """Parse an HH:MM:SS(.fff) timestamp into seconds.

    Negative timestamps (emitted before the first packet) and anything
    unparseable give 0.0.
    """
    if not value:
        return 0.0
    match = _TIMESTAMP_PATTERN.match(value.strip())
    if not match:
        return 0.0
    negative, hours, minutes, seconds = match.groups()
    if negative:
        return 0.0
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def parse_progress_line(line: str) -> dict:
    """Parse one key=value line from a -progress block.

    Returns:
        Dict with a single typed entry, or an empty dict for lines that
        are not progress keys or carry invalid values. ``N/A`` becomes None.
    """
    if "=" not in line:
        return {}
    key, _, value = line.partition("=")
    key = key.strip()
    value = value.strip()
    if key not in PROGRESS_KEYS:
        return {}

    if value == "N/A":
        return {key: None}

    if key == "out_time":
        return {"out_time_us": round(parse_timestamp(value) * 1_000_000)}
    if key == "progress":
        return {"progress": value}
    if key == "fps":
        try:
            return {"fps": float(value)}
        except ValueError:
            return {}
    if key in _INT_KEYS:
        try:
            number = int(value)
        except ValueError:
            return {}
        # ffmpeg's out_time_ms is actually in microseconds
        if key == "out_time_ms":
            return {"out_time_us": number}
        return {key: number}
    return {key: value}


def _apply(progress: FFmpegProgress, fields: dict) -> None:
    for key, value in fields.items():
        if key == "progress":
            progress.finished = value == "end"
        elif key == "out_time_us":
            # A negative timestamp precedes the first packet
            progress.out_time_us = max(value, 0) if value is not None else None
        elif hasattr(progress, key):
            setattr(progress, key, value)


def parse_progress_block(text: str) -> FFmpegProgress:
    """Parse a multi-line -progress block into an FFmpegProgress."""
    progress = FFmpegProgress()
    for line in text.splitlines():
        _apply(progress, parse_progress_line(line))
    return progress


def parse_stderr_progress(line: str) -> FFmpegProgress | None:
    """Parse a classic ffmpeg stats line.

    Returns:
        FFmpegProgress, or None if the line is not a stats line.
    """
    if "frame=" not in line or "time=" not in line:
        return None
    fields = dict(_STATS_FIELD_PATTERN.findall(line))
    progress = FFmpegProgress()
    try:
        progress.frame = int(fields["frame"])
    except (KeyError, ValueError):
        return None
    try:
        progress.fps = float(fields.get("fps", ""))
    except ValueError:
        progress.fps = None
    bitrate = fields.get("bitrate")
    progress.bitrate = None if bitrate in (None, "N/A") else bitrate
    speed = fields.get("speed")
    progress.speed = None if speed in (None, "N/A") else speed
    progress.out_time_us = round(parse_timestamp(fields.get("time")) * 1_000_000)
    return progress


def is_progress_line(line: str) -> bool:
    """Return True if a diagnostic line is a progress marker, not a message."""
    stripped = line.strip()
    if not stripped:
        return False
    key = stripped.partition("=")[0].strip()
    if "=" in stripped and (key in PROGRESS_KEYS or key.startswith("stream_")):
        return True
    return parse_stderr_progress(stripped) is not None


class ProgressTracker:
    """Turn diagnostic lines into monotonic progress percentages.

    feed() returns a new percentage only when it has grown by at least
    ``resolution`` since the last reported value, so callers publish one
    event per distinguishable change and never a decrease.
    """

    def __init__(
        self,
        duration: float,
        resolution: float = 0.1,
        cap: float = RUNNING_PROGRESS_CAP,
    ) -> None:
        self.duration = duration
        self.resolution = resolution
        self.cap = cap
        self.current = FFmpegProgress()
        self.percent = 0.0

    def feed(self, line: str) -> float | None:
        """Consume one line; return the new percentage if it advanced."""
        stats = parse_stderr_progress(line)
        if stats is not None:
            self.current = stats
        else:
            fields = parse_progress_line(line)
            if not fields:
                return None
            _apply(self.current, fields)

        percent = min(self.current.get_percent(self.duration), self.cap)
        if percent - self.percent >= self.resolution:
            self.percent = round(percent, 2)
            return self.percent
        return None
