"""Structured logging for the converter.

Provides configurable logging with JSON format support, file rotation and
per-task context tags for concurrent conversions.
"""

from mobile_video_converter.logging.config import configure_logging
from mobile_video_converter.logging.context import (
    TaskContextFilter,
    clear_task_context,
    get_task_context,
    set_task_context,
    task_context,
)
from mobile_video_converter.logging.handlers import JSONFormatter

__all__ = [
    "JSONFormatter",
    "TaskContextFilter",
    "clear_task_context",
    "configure_logging",
    "get_task_context",
    "set_task_context",
    "task_context",
]
