"""Centralized exit codes for all CLI commands.

Exit code ranges:
    0: Success
    1-9: General errors
    10-19: Validation errors (config, profile, input)
    20-29: Target/file errors
    30-39: Tool/dependency errors
    40-49: Operation errors
    50-59: Analysis errors
"""

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit codes for mvc commands."""

    # Success (0)
    SUCCESS = 0

    # General errors (1-9)
    GENERAL_ERROR = 1
    INTERRUPTED = 2  # Ctrl+C / SIGINT (conventionally 130, but we use 2 for simplicity)

    # Validation errors (10-19)
    CONFIG_ERROR = 11
    PROFILE_INVALID = 12

    # Target/file errors (20-29)
    TARGET_NOT_FOUND = 20

    # Tool/dependency errors (30-39)
    TOOL_NOT_AVAILABLE = 30
    FFPROBE_NOT_FOUND = 32

    # Operation errors (40-49)
    OPERATION_FAILED = 40

    # Analysis errors (50-59)
    PARSE_ERROR = 51
