"""Unit tests for mobile compatibility classification."""

from pathlib import Path

import pytest

from mobile_video_converter.policy.compatibility import (
    QUICKTIME_FAMILY,
    classify,
    describe_incompatibilities,
    is_aac,
    is_h264,
    is_mp4_container,
    requires_conversion,
)


class TestCodecNames:
    """Tests for codec name matching."""

    @pytest.mark.parametrize("name", ["h264", "H264", "avc", "avc1", " h264 "])
    def test_h264_aliases(self, name: str):
        assert is_h264(name) is True

    @pytest.mark.parametrize("name", ["hevc", "vp9", "mpeg4", "", None])
    def test_not_h264(self, name):
        assert is_h264(name) is False

    def test_aac(self):
        assert is_aac("aac") is True
        assert is_aac("AAC") is True

    @pytest.mark.parametrize("name", ["ac3", "mp3", "opus", None])
    def test_not_aac(self, name):
        assert is_aac(name) is False


class TestIsMp4Container:
    """Tests for container detection."""

    def test_plain_mp4(self):
        assert is_mp4_container("mp4") is True

    def test_matroska_is_not_mp4(self):
        assert is_mp4_container("matroska,webm") is False

    def test_missing_format(self):
        assert is_mp4_container(None) is False
        assert is_mp4_container("") is False

    def test_quicktime_family_with_mp4_extension(self):
        assert is_mp4_container(QUICKTIME_FAMILY, Path("clip.mp4")) is True
        assert is_mp4_container(QUICKTIME_FAMILY, Path("clip.M4V")) is True

    def test_quicktime_family_with_mov_extension(self):
        """The shared demuxer name does not make a .mov an MP4."""
        assert is_mp4_container(QUICKTIME_FAMILY, Path("camera.mov")) is False
        assert is_mp4_container(QUICKTIME_FAMILY, Path("phone.3gp")) is False

    def test_quicktime_family_without_path(self):
        assert is_mp4_container(QUICKTIME_FAMILY) is True


class TestRequiresConversion:
    """Tests for the conversion decision."""

    def test_compatible_file(self):
        assert (
            requires_conversion("h264", "aac", QUICKTIME_FAMILY, Path("a.mp4"))
            is False
        )

    def test_compatible_without_audio(self):
        assert requires_conversion("h264", None, "mp4") is False

    def test_wrong_video(self):
        assert requires_conversion("hevc", "aac", "mp4") is True

    def test_wrong_audio(self):
        assert requires_conversion("h264", "ac3", "mp4") is True

    def test_wrong_container(self):
        assert requires_conversion("h264", "aac", "matroska,webm") is True

    def test_unknown_video_codec(self):
        assert requires_conversion(None, "aac", "mp4") is True

    def test_reasons_list_every_problem(self):
        reasons = describe_incompatibilities("hevc", "ac3", "matroska,webm")
        assert reasons == [
            "video codec hevc is not H.264",
            "audio codec ac3 is not AAC",
            "container matroska,webm is not MP4",
        ]

    def test_no_reasons_for_compatible_file(self):
        assert describe_incompatibilities("h264", "aac", "mp4") == []

    def test_classify_descriptor(self, descriptor_factory):
        descriptor = descriptor_factory(
            Path("/videos/clip.mov"),
            video_codec="h264",
            audio_codec="aac",
            container=QUICKTIME_FAMILY,
        )
        assert classify(descriptor) is True
