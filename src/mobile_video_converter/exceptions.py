"""Exceptions raised by the conversion engine.

Every per-file or per-task error derives from ConverterError so callers
can report it as a structured result instead of aborting a batch.
"""

from pathlib import Path


class ConverterError(Exception):
    """Base exception for conversion engine errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ToolNotFoundError(ConverterError):
    """Raised when ffmpeg or ffprobe cannot be found or launched.

    This is fatal for the session: nothing can be probed or converted
    until the tool is installed or configured.
    """

    def __init__(self, tool_name: str, hint: str = "") -> None:
        """Initialize tool not found error.

        Args:
            tool_name: Name of the missing executable.
            hint: Optional installation hint appended to the message.
        """
        self.tool_name = tool_name
        message = f"Required tool not available: {tool_name}."
        if hint:
            message = f"{message} {hint}"
        super().__init__(message)


class ProbeError(ConverterError):
    """Raised when an input file cannot be probed.

    Covers missing files, corrupt or unsupported containers and
    unparseable ffprobe output.
    """

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.path = path
        super().__init__(message)


class PlanError(ConverterError):
    """Raised when an encode plan cannot be built (e.g. unwritable output dir)."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.path = path
        super().__init__(message)


class ProcessSpawnError(ConverterError):
    """Raised when the OS refuses to launch the transcode process."""


class TranscodeFailure(ConverterError):
    """Raised when ffmpeg exits non-zero or produces an invalid output."""

    def __init__(
        self,
        message: str,
        return_code: int | None = None,
        detail: str = "",
    ) -> None:
        """Initialize transcode failure.

        Args:
            message: Short description of the failure.
            return_code: Exit status of the transcode process, if it ran.
            detail: Tail of the diagnostic stream.
        """
        self.return_code = return_code
        self.detail = detail
        super().__init__(message)


class TaskNotFoundError(ConverterError):
    """Raised when a task identifier is not known to the registry."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class TaskConflictError(ConverterError):
    """Raised when a task identifier is already used by a live task."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task already exists: {task_id}")


class OutputError(ConverterError):
    """Raised when a converted output file cannot be removed."""


class ProfileValidationError(ConverterError):
    """Raised when an encode profile file is invalid."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)
