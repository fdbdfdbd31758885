"""Tests for mobile_video_converter package."""


def test_package_imports():
    """Test that the package can be imported successfully."""
    import mobile_video_converter

    assert mobile_video_converter is not None


def test_package_version():
    """Test that the package has a version string."""
    from mobile_video_converter import __version__

    assert __version__ == "0.1.0"
