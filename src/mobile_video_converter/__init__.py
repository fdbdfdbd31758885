"""Mobile Video Converter - turn any video into a mobile-friendly MP4."""

__version__ = "0.1.0"
