"""Transcode task: one conversion's process lifecycle.

A TranscodeTask owns the ffmpeg process for one EncodePlan. Its run()
method executes on the task's own thread: it spawns the process, reads
the diagnostic stream line by line, publishes progress and resolves to
exactly one terminal state.

    Pending -> Running -> Completed | Failed | Cancelled

Cancellation may be requested from any thread. The process gets SIGTERM
first and is killed if it is still alive after the grace period.

The output path arrives as an empty placeholder claimed by the planner.
A task only deletes its output after its own ffmpeg has started writing
it, and refuses to start when the path already holds someone else's data.
"""

from __future__ import annotations

import logging
import subprocess  # nosec B404 - subprocess is required for ffmpeg execution
import threading
from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from mobile_video_converter.exceptions import ProcessSpawnError, TranscodeFailure
from mobile_video_converter.jobs.events import ConversionProgress, TaskState
from mobile_video_converter.jobs.progress import ProgressTracker, is_progress_line
from mobile_video_converter.logging.context import task_context
from mobile_video_converter.policy.plan import EncodePlan, discard_placeholder

logger = logging.getLogger(__name__)

# Non-progress diagnostic lines kept for error detail
DIAGNOSTIC_TAIL_LINES = 40

DEFAULT_CANCEL_GRACE = 5.0

Publisher = Callable[[ConversionProgress], None]


@dataclass(frozen=True)
class TaskSnapshot:
    """Immutable view of a task at one point in time."""

    task_id: str
    state: TaskState
    progress: float
    input_path: Path
    output_path: Path
    mode: str
    error: str | None = None
    return_code: int | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""

        def _iso(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "task_id": self.task_id,
            "state": self.state.value,
            "progress": self.progress,
            "input_path": str(self.input_path),
            "output_path": str(self.output_path),
            "mode": self.mode,
            "error": self.error,
            "return_code": self.return_code,
            "created_at": _iso(self.created_at),
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
        }


def verify_output(output_path: Path) -> bool:
    """Check the output file exists and is non-empty."""
    if not output_path.exists():
        logger.error("Output file does not exist: %s", output_path)
        return False
    if output_path.stat().st_size == 0:
        logger.error("Output file is empty: %s", output_path)
        return False
    return True


def holds_data(path: Path) -> bool:
    """Return True when path exists and is not an empty placeholder."""
    try:
        return path.stat().st_size > 0
    except FileNotFoundError:
        return False


def cleanup_partial(path: Path) -> None:
    """Remove a partial output file left by a failed or cancelled run."""
    if path.exists():
        try:
            path.unlink()
            logger.info("Cleaned up partial output: %s", path)
        except OSError as e:
            logger.warning("Could not clean up partial output: %s", e)


class TranscodeTask:
    """One conversion: process handle, state, progress and outcome.

    All mutable fields are guarded by the task's own lock. Events are
    published while holding it, so a cancel racing with the task thread
    can never reorder the event stream.
    """

    def __init__(
        self,
        task_id: str,
        plan: EncodePlan,
        command: Sequence[str],
        publish: Publisher | None = None,
        cancel_grace: float = DEFAULT_CANCEL_GRACE,
        progress_resolution: float = 0.1,
    ) -> None:
        """Initialize a pending task.

        Args:
            task_id: Unique task identifier.
            plan: Encode plan being executed.
            command: Full ffmpeg command line.
            publish: Callback receiving every event for this task.
            cancel_grace: Seconds between SIGTERM and kill on cancel.
            progress_resolution: Smallest progress step that is published.
        """
        self.task_id = task_id
        self.plan = plan
        self.command = list(command)
        self._publish = publish
        self._cancel_grace = cancel_grace
        self._progress_resolution = progress_resolution

        self._lock = threading.RLock()
        self._done = threading.Event()
        self._state = TaskState.PENDING
        self._progress = 0.0
        self._error: str | None = None
        self._return_code: int | None = None
        self._process: subprocess.Popen | None = None
        self._cancel_requested = False
        self._exited = False
        self._owns_output = False
        self._kill_timer: threading.Timer | None = None
        self._created_at = datetime.now(timezone.utc)
        self._started_at: datetime | None = None
        self._finished_at: datetime | None = None

    @property
    def state(self) -> TaskState:
        with self._lock:
            return self._state

    @property
    def progress(self) -> float:
        with self._lock:
            return self._progress

    @property
    def output_path(self) -> Path:
        return self.plan.output_path

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def snapshot(self) -> TaskSnapshot:
        """Return an immutable copy of the task's current state."""
        with self._lock:
            return TaskSnapshot(
                task_id=self.task_id,
                state=self._state,
                progress=self._progress,
                input_path=self.plan.input_path,
                output_path=self.plan.output_path,
                mode=self.plan.mode.value,
                error=self._error,
                return_code=self._return_code,
                created_at=self._created_at,
                started_at=self._started_at,
                finished_at=self._finished_at,
            )

    def announce(self) -> None:
        """Publish the initial Pending event (before the thread starts)."""
        with self._lock:
            if self._state == TaskState.PENDING:
                self._emit()

    def _emit(self) -> None:
        # Caller holds the lock
        if self._publish is None:
            return
        output = (
            str(self.plan.output_path) if self._state == TaskState.COMPLETED else None
        )
        event = ConversionProgress(
            task_id=self.task_id,
            progress=self._progress,
            status=self._state,
            output_path=output,
            error=self._error,
        )
        try:
            self._publish(event)
        except Exception:
            logger.exception("Failed to publish event for task %s", self.task_id)

    def _finish(
        self,
        state: TaskState,
        error: str | None = None,
        return_code: int | None = None,
    ) -> None:
        """Move to a terminal state and publish the terminal event."""
        with self._lock:
            if self._state.is_terminal:
                return
            self._state = state
            self._error = error
            self._return_code = return_code
            self._finished_at = datetime.now(timezone.utc)
            self._process = None
            if self._kill_timer is not None:
                self._kill_timer.cancel()
                self._kill_timer = None
            if state == TaskState.COMPLETED:
                self._progress = 100.0
            self._emit()
            self._done.set()

    def run(self) -> TaskSnapshot:
        """Execute the task; blocks until it reaches a terminal state."""
        with task_context(self.task_id):
            try:
                self._run()
            except Exception as e:
                logger.exception("Transcode task crashed")
                self._kill_process()
                self._cleanup_output()
                self._finish(TaskState.FAILED, error=f"Internal error: {e}")
        return self.snapshot()

    def _spawn(self) -> subprocess.Popen | None:
        """Start ffmpeg and enter Running; None if the task cannot run."""
        with self._lock:
            if self._state != TaskState.PENDING:
                return None
            # The planner claims an empty file; anything else is not ours
            if holds_data(self.plan.output_path):
                message = f"Output file already exists: {self.plan.output_path}"
                logger.error("%s", message)
                self._finish(TaskState.FAILED, error=message)
                return None
            try:
                process = subprocess.Popen(  # nosec B603 - command built from plan
                    self.command,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.PIPE,
                    text=True,
                    errors="replace",
                )
            except OSError as e:
                error = ProcessSpawnError(f"Failed to start transcoder: {e}")
                logger.error("%s", error)
                discard_placeholder(self.plan.output_path)
                self._finish(TaskState.FAILED, error=str(error))
                return None

            self._process = process
            self._owns_output = True
            self._state = TaskState.RUNNING
            self._started_at = datetime.now(timezone.utc)
            self._emit()
        logger.info(
            "Started %s: %s -> %s",
            self.plan.mode.value,
            self.plan.input_path.name,
            self.plan.output_path,
        )
        return process

    def _run(self) -> None:
        process = self._spawn()
        if process is None:
            return

        tracker = ProgressTracker(
            self.plan.duration, resolution=self._progress_resolution
        )
        tail: deque[str] = deque(maxlen=DIAGNOSTIC_TAIL_LINES)

        assert process.stderr is not None
        try:
            for raw_line in process.stderr:
                line = raw_line.rstrip()
                if is_progress_line(line):
                    percent = tracker.feed(line)
                    if percent is not None:
                        self._update_progress(percent)
                elif line:
                    tail.append(line)
        except (ValueError, OSError) as e:
            # Pipe closed underneath us by a kill
            logger.debug("Diagnostic stream closed: %s", e)
        finally:
            process.stderr.close()

        return_code = process.wait()

        with self._lock:
            cancelled = self._cancel_requested
            # Past this point a late cancel cannot change the outcome
            self._exited = True

        if cancelled:
            self._cleanup_output()
            logger.info("Conversion cancelled (exit code %s)", return_code)
            self._finish(TaskState.CANCELLED, return_code=return_code)
            return

        if return_code != 0:
            failure = TranscodeFailure(
                f"ffmpeg exited with code {return_code}",
                return_code=return_code,
                detail="\n".join(tail),
            )
            self._fail(failure)
            return

        if not verify_output(self.plan.output_path):
            failure = TranscodeFailure(
                "ffmpeg reported success but the output is missing or empty",
                return_code=return_code,
                detail="\n".join(tail),
            )
            self._fail(failure)
            return

        logger.info("Conversion completed: %s", self.plan.output_path)
        self._finish(TaskState.COMPLETED, return_code=return_code)

    def _cleanup_output(self) -> None:
        # Only files written by our own ffmpeg process are removed
        if self._owns_output:
            cleanup_partial(self.plan.output_path)

    def _fail(self, failure: TranscodeFailure) -> None:
        self._cleanup_output()
        error = failure.message
        if failure.detail:
            error = f"{error}\n{failure.detail}"
        logger.error("Conversion failed: %s", failure.message)
        if failure.detail:
            logger.debug("ffmpeg diagnostics:\n%s", failure.detail)
        self._finish(TaskState.FAILED, error=error, return_code=failure.return_code)

    def _update_progress(self, percent: float) -> None:
        with self._lock:
            if self._state != TaskState.RUNNING or percent <= self._progress:
                return
            self._progress = percent
            self._emit()

    def cancel(self) -> bool:
        """Request cancellation.

        A pending task becomes Cancelled immediately. A running task gets
        SIGTERM now and a kill after the grace period; the task thread
        reports Cancelled once the process is gone.

        Returns:
            False if the task had already finished.
        """
        with self._lock:
            if self._state.is_terminal or self._exited:
                return False
            if self._cancel_requested:
                return True
            self._cancel_requested = True

            if self._state == TaskState.PENDING:
                logger.info("Cancelled task %s before start", self.task_id)
                discard_placeholder(self.plan.output_path)
                self._finish(TaskState.CANCELLED)
                return True

            process = self._process
            if process is not None and process.poll() is None:
                logger.info("Terminating transcode for task %s", self.task_id)
                try:
                    process.terminate()
                except OSError as e:
                    logger.debug("terminate() failed: %s", e)
                self._kill_timer = threading.Timer(self._cancel_grace, self._force_kill)
                self._kill_timer.daemon = True
                self._kill_timer.start()
        return True

    def _force_kill(self) -> None:
        with self._lock:
            process = self._process
            if process is None or process.poll() is not None:
                return
            logger.warning(
                "Transcoder for task %s ignored SIGTERM for %.1fs, killing",
                self.task_id,
                self._cancel_grace,
            )
        self._kill_process(process)

    def _kill_process(self, process: subprocess.Popen | None = None) -> None:
        if process is None:
            with self._lock:
                process = self._process
        if process is None or process.poll() is not None:
            return
        try:
            process.kill()
        except OSError as e:
            logger.debug("kill() failed: %s", e)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the task is terminal; False if the timeout expired."""
        return self._done.wait(timeout)
