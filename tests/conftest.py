"""Shared test fixtures for Mobile Video Converter."""

import json
import os
import shutil
import sys
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from mobile_video_converter.introspector.models import MediaDescriptor
from mobile_video_converter.tools.models import (
    FFmpegInfo,
    FFprobeInfo,
    ToolRegistry,
    ToolStatus,
)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test isolation."""
    dir_path = tempfile.mkdtemp()
    yield Path(dir_path)
    shutil.rmtree(dir_path, ignore_errors=True)


@pytest.fixture(autouse=True)
def isolated_environment(temp_dir: Path):
    """Keep the user's ~/.mvc/config.toml and MVC_* variables out of tests."""
    clean_env = {k: v for k, v in os.environ.items() if not k.startswith("MVC_")}
    clean_env["MVC_CONFIG_PATH"] = str(temp_dir / "no-such-config.toml")
    with patch.dict(os.environ, clean_env, clear=True):
        yield


@pytest.fixture
def ffprobe_fixtures_dir() -> Path:
    """Return the path to the ffprobe fixtures directory."""
    return Path(__file__).parent / "fixtures" / "ffprobe"


def load_ffprobe_fixture(name: str) -> dict:
    """Load an ffprobe JSON fixture by name (without .json extension)."""
    fixture_path = Path(__file__).parent / "fixtures" / "ffprobe" / f"{name}.json"
    return json.loads(fixture_path.read_text())


@pytest.fixture
def mkv_hevc_fixture() -> dict:
    """HEVC + AC-3 in Matroska."""
    return load_ffprobe_fixture("mkv_hevc_ac3")


@pytest.fixture
def mp4_h264_aac_fixture() -> dict:
    """Already mobile compatible H.264 + AAC MP4."""
    return load_ffprobe_fixture("mp4_h264_aac")


@pytest.fixture
def mov_h264_pcm_fixture() -> dict:
    """H.264 + PCM in a QuickTime container."""
    return load_ffprobe_fixture("mov_h264_pcm")


@pytest.fixture
def no_audio_fixture() -> dict:
    """VP9 WebM without audio and without a format duration."""
    return load_ffprobe_fixture("webm_vp9_no_audio")


@pytest.fixture
def audio_only_fixture() -> dict:
    """MP3 with embedded cover art and no real video stream."""
    return load_ffprobe_fixture("mp3_cover_art")


@pytest.fixture
def cover_two_audio_fixture() -> dict:
    """H.264 M4V with cover art first and a second (MP3) audio track."""
    return load_ffprobe_fixture("m4v_cover_two_audio")


def make_descriptor(
    path: Path,
    video_codec: str | None = "hevc",
    audio_codec: str | None = "ac3",
    container: str | None = "matroska,webm",
    duration: float = 10.0,
    needs_conversion: bool | None = None,
) -> MediaDescriptor:
    """Build a MediaDescriptor, classifying it unless told otherwise."""
    from mobile_video_converter.policy.compatibility import requires_conversion

    if needs_conversion is None:
        needs_conversion = requires_conversion(video_codec, audio_codec, container, path)
    return MediaDescriptor(
        path=path,
        filename=path.name,
        video_codec=video_codec,
        audio_codec=audio_codec,
        container=container,
        duration=duration,
        width=1920,
        height=1080,
        needs_conversion=needs_conversion,
    )


def make_tool_registry(
    ffmpeg_path: Path | None = Path("/usr/bin/ffmpeg"),
    ffprobe_path: Path | None = Path("/usr/bin/ffprobe"),
) -> ToolRegistry:
    """Build a ToolRegistry; pass None to mark a tool missing."""
    ffmpeg = FFmpegInfo(
        path=ffmpeg_path,
        version="6.1" if ffmpeg_path else None,
        status=ToolStatus.AVAILABLE if ffmpeg_path else ToolStatus.MISSING,
        encoders={"libx264", "aac"},
    )
    ffprobe = FFprobeInfo(
        path=ffprobe_path,
        version="6.1" if ffprobe_path else None,
        status=ToolStatus.AVAILABLE if ffprobe_path else ToolStatus.MISSING,
    )
    return ToolRegistry(ffmpeg=ffmpeg, ffprobe=ffprobe)


class FakeProber:
    """MediaProber returning canned descriptors keyed by file name."""

    def __init__(self, descriptors: dict[str, MediaDescriptor] | None = None) -> None:
        self.descriptors = descriptors or {}
        self.calls: list[Path] = []

    def probe(self, path: Path) -> MediaDescriptor:
        from mobile_video_converter.exceptions import ProbeError

        path = Path(path).absolute()
        self.calls.append(path)
        if path.name not in self.descriptors:
            raise ProbeError(f"Cannot probe {path.name}", path=path)
        return self.descriptors[path.name]


@pytest.fixture
def descriptor_factory():
    """Factory fixture for MediaDescriptor objects."""
    return make_descriptor


@pytest.fixture
def tool_registry_factory():
    """Factory fixture for ToolRegistry objects."""
    return make_tool_registry


@pytest.fixture
def available_tools() -> ToolRegistry:
    """ToolRegistry with ffmpeg and ffprobe available."""
    return make_tool_registry()


@pytest.fixture
def fake_prober_class():
    """The FakeProber class, for tests that build their own descriptors."""
    return FakeProber


FAKE_FFMPEG_TEMPLATE = """\
#!{python}
import sys
import time

output = sys.argv[-1]
for us in (2500000, 5000000, 7500000):
    sys.stderr.write(f"out_time_us={{us}}\\nprogress=continue\\n")
    sys.stderr.flush()
if {slow}:
    time.sleep(30)
if {fail}:
    sys.stderr.write("Conversion failed!\\n")
    sys.exit(1)
with open(output, "wb") as f:
    f.write(b"\\0" * 2048)
sys.stderr.write("progress=end\\n")
"""


@pytest.fixture
def fake_ffmpeg(tmp_path: Path):
    """Factory for an executable script that behaves like a tiny ffmpeg.

    The script reports progress, then writes the last argument as the
    output file. ``slow=True`` makes it sleep until cancelled and
    ``fail=True`` makes it exit with status 1.
    """
    if sys.platform == "win32":
        pytest.skip("fake ffmpeg relies on a shebang script")

    def _make(slow: bool = False, fail: bool = False) -> Path:
        name = f"ffmpeg-{'slow' if slow else 'fast'}-{'fail' if fail else 'ok'}"
        path = tmp_path / "bin" / name
        path.parent.mkdir(exist_ok=True)
        path.write_text(
            FAKE_FFMPEG_TEMPLATE.format(python=sys.executable, slow=slow, fail=fail)
        )
        path.chmod(0o755)
        return path

    return _make
