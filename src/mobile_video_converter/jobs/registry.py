"""Task registry and scheduler.

The TaskRegistry is the only shared mutable structure of the engine: it
maps task ids to tasks and holds the output paths reserved by live
tasks, all behind one coarse lock. The TaskScheduler runs every
submitted task on its own daemon thread; there is no concurrency cap.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Collection
from pathlib import Path

from mobile_video_converter.exceptions import TaskConflictError, TaskNotFoundError
from mobile_video_converter.executor.transcode import TaskSnapshot, TranscodeTask
from mobile_video_converter.jobs.events import EventBus
from mobile_video_converter.policy.plan import claim_output_path

logger = logging.getLogger(__name__)


class TaskRegistry:
    """Thread-safe map of task id to TranscodeTask plus output reservations."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tasks: dict[str, TranscodeTask] = {}
        self._reserved: set[Path] = set()

    def add(self, task: TranscodeTask) -> None:
        """Register a task.

        A terminal task with the same id is replaced; a live one is not.

        Raises:
            TaskConflictError: If a live task already uses the id.
        """
        with self._lock:
            existing = self._tasks.get(task.task_id)
            if existing is not None and not existing.is_terminal:
                raise TaskConflictError(task.task_id)
            self._tasks[task.task_id] = task
            self._reserved.add(task.output_path)

    def get(self, task_id: str) -> TranscodeTask | None:
        with self._lock:
            return self._tasks.get(task_id)

    def is_live(self, task_id: str) -> bool:
        """Return True if a non-terminal task uses the id."""
        with self._lock:
            task = self._tasks.get(task_id)
            return task is not None and not task.is_terminal

    def remove(self, task_id: str) -> TranscodeTask:
        """Remove a terminal task.

        Raises:
            TaskNotFoundError: If the id is unknown.
            TaskConflictError: If the task is still live.
        """
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            if not task.is_terminal:
                raise TaskConflictError(task_id)
            del self._tasks[task_id]
            return task

    def reserve_output(
        self,
        output_dir: Path,
        input_path: Path,
        extra: Collection[Path] = (),
    ) -> Path:
        """Claim a free output path on disk and reserve it in one step.

        The path is created as an empty placeholder, so another process
        planning into the same directory cannot pick it as well.

        Raises:
            PlanError: If no free name is found.
        """
        with self._lock:
            path = claim_output_path(
                output_dir, input_path, self._reserved.union(extra)
            )
            self._reserved.add(path)
            return path

    def release_output(self, path: Path) -> None:
        with self._lock:
            self._reserved.discard(path)

    def is_reserved(self, path: Path) -> bool:
        with self._lock:
            return path in self._reserved

    def owner_of(self, path: Path) -> str | None:
        """Return the id of the live task writing to path, if any."""
        with self._lock:
            for task in self._tasks.values():
                if task.output_path == path and not task.is_terminal:
                    return task.task_id
        return None

    def tasks(self) -> list[TranscodeTask]:
        with self._lock:
            return list(self._tasks.values())

    def snapshots(self) -> list[TaskSnapshot]:
        """Return snapshots of every task, oldest first."""
        snapshots = [task.snapshot() for task in self.tasks()]
        return sorted(snapshots, key=lambda s: s.created_at)

    def active_count(self) -> int:
        return sum(1 for task in self.tasks() if not task.is_terminal)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)


class TaskScheduler:
    """Runs tasks concurrently, one daemon thread per task."""

    def __init__(self, registry: TaskRegistry, bus: EventBus) -> None:
        self.registry = registry
        self.bus = bus
        self._threads: dict[str, threading.Thread] = {}
        self._threads_lock = threading.Lock()

    def submit(self, task: TranscodeTask) -> None:
        """Register a task and start it on its own thread.

        Raises:
            TaskConflictError: If a live task already uses the id.
        """
        self.registry.add(task)
        task.announce()
        thread = threading.Thread(
            target=self._run_task,
            args=(task,),
            name=f"transcode-{task.task_id[:8]}",
            daemon=True,
        )
        with self._threads_lock:
            self._threads[task.task_id] = thread
        thread.start()

    def _run_task(self, task: TranscodeTask) -> None:
        try:
            task.run()
        finally:
            self.registry.release_output(task.output_path)
            with self._threads_lock:
                if self._threads.get(task.task_id) is threading.current_thread():
                    del self._threads[task.task_id]

    def _require(self, task_id: str) -> TranscodeTask:
        task = self.registry.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def cancel(self, task_id: str) -> bool:
        """Cancel a task by id.

        Returns:
            True if cancellation was requested, False if the task had
            already finished.

        Raises:
            TaskNotFoundError: If the id is unknown.
        """
        task = self._require(task_id)
        cancelled = task.cancel()
        if task.is_terminal:
            self.registry.release_output(task.output_path)
        return cancelled

    def status(self, task_id: str) -> TaskSnapshot:
        """Return a snapshot of a task.

        Raises:
            TaskNotFoundError: If the id is unknown.
        """
        return self._require(task_id).snapshot()

    def purge(self, task_id: str) -> TaskSnapshot:
        """Forget a terminal task.

        Raises:
            TaskNotFoundError: If the id is unknown.
            TaskConflictError: If the task is still live.
        """
        task = self.registry.remove(task_id)
        self.bus.forget(task_id)
        return task.snapshot()

    def wait(self, task_id: str, timeout: float | None = None) -> TaskSnapshot:
        """Block until a task is terminal (or the timeout expires)."""
        task = self._require(task_id)
        task.wait(timeout)
        return task.snapshot()

    def cancel_all(self) -> int:
        """Cancel every live task; returns how many were cancelled."""
        count = 0
        for task in self.registry.tasks():
            if not task.is_terminal and task.cancel():
                count += 1
        return count

    def shutdown(self, timeout: float | None = None) -> bool:
        """Cancel every live task and wait for all of them to finish.

        Returns:
            True if every task reached a terminal state in time.
        """
        cancelled = self.cancel_all()
        if cancelled:
            logger.info("Cancelling %d running conversion(s)", cancelled)
        deadline = None if timeout is None else time.monotonic() + timeout
        all_done = True
        for task in self.registry.tasks():
            remaining = None
            if deadline is not None:
                remaining = max(0.0, deadline - time.monotonic())
            if not task.wait(remaining):
                logger.warning("Task %s did not stop in time", task.task_id)
                all_done = False
        return all_done
