"""Per-thread task context for log records.

Each transcode task runs on its own thread; binding the task id to that
thread lets every log line emitted on its behalf carry a short tag.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

_state = threading.local()


def set_task_context(task_id: str) -> None:
    """Bind a task id to the current thread."""
    _state.task_id = task_id


def get_task_context() -> str | None:
    """Return the task id bound to the current thread, if any."""
    return getattr(_state, "task_id", None)


def clear_task_context() -> None:
    """Remove the task id bound to the current thread."""
    _state.task_id = None


@contextmanager
def task_context(task_id: str) -> Iterator[None]:
    """Bind task_id to the current thread for the duration of the block."""
    previous = get_task_context()
    set_task_context(task_id)
    try:
        yield
    finally:
        if previous is None:
            clear_task_context()
        else:
            set_task_context(previous)


def format_task_tag(task_id: str | None) -> str:
    """Return the text-format tag for a task id ("[task:1a2b3c4d] ")."""
    if not task_id:
        return ""
    return f"[task:{task_id[:8]}] "


class TaskContextFilter(logging.Filter):
    """Inject task_id and task_tag attributes into every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        task_id = get_task_context()
        record.task_id = task_id
        record.task_tag = format_task_tag(task_id)
        return True
