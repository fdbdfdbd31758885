"""Integration fixtures: real ffmpeg/ffprobe and generated media."""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest


def _tool_available(name: str) -> bool:
    """Check if an external tool is available in PATH."""
    return shutil.which(name) is not None


def _encoders() -> set[str]:
    result = subprocess.run(
        ["ffmpeg", "-hide_banner", "-encoders"],
        capture_output=True,
        text=True,
        timeout=30,
    )
    names = set()
    for line in result.stdout.splitlines():
        parts = line.split()
        if len(parts) >= 2 and len(parts[0]) == 6:
            names.add(parts[1])
    return names


@pytest.fixture(scope="session")
def ffmpeg_encoders() -> set[str]:
    """Encoders exposed by the installed ffmpeg build."""
    if not _tool_available("ffmpeg"):
        pytest.skip("ffmpeg not available")
    return _encoders()


@pytest.fixture
def generate_video(tmp_path: Path, ffmpeg_encoders) -> Callable[..., Path]:
    """Factory that renders a short test clip with ffmpeg's lavfi sources."""

    def _generate(
        name: str,
        video_codec: str = "mpeg4",
        audio_codec: str | None = "mp2",
        duration: float = 2.0,
        second_audio_codec: str | None = None,
    ) -> Path:
        needed = {video_codec} | ({audio_codec} if audio_codec else set())
        if second_audio_codec:
            needed.add(second_audio_codec)
        missing = needed - ffmpeg_encoders
        if missing:
            pytest.skip(f"ffmpeg lacks encoder(s): {', '.join(sorted(missing))}")

        source = tmp_path / "media"
        source.mkdir(exist_ok=True)
        output = source / name
        cmd = [
            "ffmpeg",
            "-hide_banner",
            "-loglevel",
            "error",
            "-f",
            "lavfi",
            "-i",
            f"testsrc=duration={duration}:size=320x240:rate=25",
        ]
        if audio_codec:
            cmd += ["-f", "lavfi", "-i", f"sine=frequency=440:duration={duration}"]
        if audio_codec and second_audio_codec:
            cmd += ["-f", "lavfi", "-i", f"sine=frequency=880:duration={duration}"]
            cmd += ["-map", "0:v", "-map", "1:a", "-map", "2:a"]
        cmd += ["-c:v", video_codec, "-pix_fmt", "yuv420p"]
        if audio_codec and second_audio_codec:
            cmd += ["-c:a:0", audio_codec, "-c:a:1", second_audio_codec]
        elif audio_codec:
            cmd += ["-c:a", audio_codec]
        cmd += ["-shortest", str(output)]
        subprocess.run(cmd, check=True, capture_output=True, timeout=120)
        return output

    return _generate
