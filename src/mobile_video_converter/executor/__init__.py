"""Transcode execution: process lifecycle for a single conversion."""

from mobile_video_converter.executor.transcode import (
    TaskSnapshot,
    TaskState,
    TranscodeTask,
    cleanup_partial,
    verify_output,
)

__all__ = [
    "TaskSnapshot",
    "TaskState",
    "TranscodeTask",
    "cleanup_partial",
    "verify_output",
]
