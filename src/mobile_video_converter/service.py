"""Caller-facing conversion API.

ConversionService wires the prober, plan builder, command builder,
registry, scheduler and event bus together. Front-ends (CLI, HTTP
server, a desktop shell) talk only to this class.

Per-file problems never raise out of start_conversion(): they come back
as a rejected ConversionRequestResult so a batch keeps going.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path

from mobile_video_converter.config.models import MVCConfig
from mobile_video_converter.exceptions import (
    OutputError,
    PlanError,
    ProbeError,
    TaskConflictError,
    ToolNotFoundError,
)
from mobile_video_converter.executor.transcode import TaskSnapshot, TranscodeTask
from mobile_video_converter.introspector.ffprobe import FFprobeProber
from mobile_video_converter.introspector.interface import MediaProber
from mobile_video_converter.introspector.models import MediaDescriptor
from mobile_video_converter.jobs.events import EventBus, Subscription
from mobile_video_converter.jobs.registry import TaskRegistry, TaskScheduler
from mobile_video_converter.policy.plan import (
    EncodePlan,
    build_plan,
    discard_placeholder,
    prepare_output_dir,
)
from mobile_video_converter.policy.profile import EncodeProfile, load_profile
from mobile_video_converter.tools.detection import detect_all_tools, require_tool
from mobile_video_converter.tools.encoders import (
    CapabilityProbe,
    FFmpegCapabilityProbe,
    HostCapabilities,
)
from mobile_video_converter.tools.ffmpeg_builder import FFmpegCommandBuilder
from mobile_video_converter.tools.models import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversionRequestResult:
    """Outcome of a start_conversion() request."""

    accepted: bool
    task_id: str
    output_path: Path | None = None
    mode: str | None = None
    reason: str | None = None
    """Why the request was rejected."""

    tool_missing: bool = False
    """True when the rejection is caused by a missing ffmpeg/ffprobe."""

    @classmethod
    def rejected(
        cls, task_id: str, reason: str, tool_missing: bool = False
    ) -> ConversionRequestResult:
        return cls(
            accepted=False, task_id=task_id, reason=reason, tool_missing=tool_missing
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "accepted": self.accepted,
            "task_id": self.task_id,
            "output_path": str(self.output_path) if self.output_path else None,
            "mode": self.mode,
            "reason": self.reason,
        }


class ConversionService:
    """Probe, plan and run conversions; stream their progress."""

    def __init__(
        self,
        config: MVCConfig | None = None,
        tools: ToolRegistry | None = None,
        capabilities: HostCapabilities | None = None,
        profile: EncodeProfile | None = None,
        bus: EventBus | None = None,
        registry: TaskRegistry | None = None,
        prober: MediaProber | None = None,
        capability_probe: CapabilityProbe | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            config: Merged configuration; defaults when None.
            tools: Detected tools. When None, detection re-runs on every
                check_tool_available() call and lazily elsewhere.
            capabilities: Host capabilities; detected lazily when None.
            profile: Encode profile; loaded from config.conversion.profile
                or built-in defaults when None.
            bus: Event bus shared with front-ends.
            registry: Task registry.
            prober: Media prober; an FFprobeProber is built when None.
            capability_probe: Source of host capabilities when none are
                given; an FFmpegCapabilityProbe for the detected ffmpeg
                and the configured hw_mode when None.

        Raises:
            ProfileValidationError: If the configured profile is invalid.
        """
        self.config = config or MVCConfig()
        self._tools = tools
        self._tools_injected = tools is not None
        self._capabilities = capabilities
        self._capability_probe = capability_probe
        self._prober = prober
        self._prober_injected = prober is not None
        self._lock = threading.Lock()

        if profile is None and self.config.conversion.profile is not None:
            profile = load_profile(self.config.conversion.profile)
        self.profile = profile or EncodeProfile()

        self.bus = bus or EventBus()
        self.registry = registry or TaskRegistry()
        self.scheduler = TaskScheduler(self.registry, self.bus)

    # Tools and capabilities

    def _detect_tools(self) -> ToolRegistry:
        return detect_all_tools(
            ffmpeg_path=self.config.get_tool_path("ffmpeg"),
            ffprobe_path=self.config.get_tool_path("ffprobe"),
        )

    @property
    def tools(self) -> ToolRegistry:
        """Detected tools (detected on first access)."""
        with self._lock:
            if self._tools is None:
                self._tools = self._detect_tools()
            return self._tools

    def check_tool_available(self) -> bool:
        """Return True when both ffmpeg and ffprobe are usable.

        Without an injected registry the check re-runs detection, so a
        tool installed after startup is picked up.
        """
        if not self._tools_injected:
            fresh = self._detect_tools()
            with self._lock:
                self._tools = fresh
                # The prober is rebuilt from the fresh ffprobe location
                if not self._prober_injected:
                    self._prober = None
        return self.tools.all_available()

    @property
    def host_capabilities(self) -> HostCapabilities:
        """Hardware encoding capabilities, detected once per service."""
        with self._lock:
            if self._capabilities is not None:
                return self._capabilities
            capability_probe = self._capability_probe
        if capability_probe is None:
            capability_probe = FFmpegCapabilityProbe(
                self.tools.ffmpeg,
                hw_mode=self.config.conversion.hw_mode,
                vaapi_device=self.config.conversion.vaapi_device,
            )
        with self._lock:
            if self._capabilities is None:
                self._capabilities = capability_probe.detect()
            return self._capabilities

    def _get_prober(self) -> MediaProber:
        tools = self.tools
        with self._lock:
            if self._prober is None:
                self._prober = FFprobeProber(
                    require_tool(tools, "ffprobe"),
                    timeout=self.config.conversion.probe_timeout_seconds,
                )
            return self._prober

    # Probe and convert

    def probe(self, path: Path) -> MediaDescriptor:
        """Probe a file.

        Raises:
            ProbeError: If the file cannot be probed.
            ToolNotFoundError: If ffprobe is unavailable.
        """
        return self._get_prober().probe(Path(path))

    def start_conversion(
        self,
        input_path: Path,
        output_dir: Path,
        task_id: str | None = None,
    ) -> ConversionRequestResult:
        """Probe, plan and start converting one file.

        Args:
            input_path: File to convert.
            output_dir: Directory for the converted file.
            task_id: Caller-supplied id; a new UUID4 when None.

        Returns:
            Accepted result with the reserved output path, or a rejection
            carrying the reason.
        """
        task_id = task_id or str(uuid.uuid4())

        if self.registry.is_live(task_id):
            return ConversionRequestResult.rejected(
                task_id, str(TaskConflictError(task_id))
            )

        try:
            ffmpeg_path = require_tool(self.tools, "ffmpeg")
            descriptor = self.probe(Path(input_path))
        except ToolNotFoundError as e:
            logger.error("%s", e)
            return ConversionRequestResult.rejected(task_id, str(e), tool_missing=True)
        except ProbeError as e:
            logger.warning("Rejected %s: %s", input_path, e)
            return ConversionRequestResult.rejected(task_id, str(e))

        try:
            plan = self._plan(descriptor, Path(output_dir))
        except PlanError as e:
            logger.warning("Rejected %s: %s", input_path, e)
            return ConversionRequestResult.rejected(task_id, str(e))

        command = FFmpegCommandBuilder(ffmpeg_path).build(
            plan, threads=self.config.conversion.threads
        )
        task = TranscodeTask(
            task_id,
            plan,
            command,
            publish=self.bus.publish,
            cancel_grace=self.config.conversion.cancel_grace_seconds,
            progress_resolution=self.config.conversion.progress_resolution,
        )
        try:
            self.scheduler.submit(task)
        except TaskConflictError as e:
            self.registry.release_output(plan.output_path)
            discard_placeholder(plan.output_path)
            return ConversionRequestResult.rejected(task_id, str(e))

        logger.info(
            "Accepted %s as task %s (%s -> %s)",
            descriptor.filename,
            task_id,
            plan.mode.value,
            plan.output_path,
        )
        return ConversionRequestResult(
            accepted=True,
            task_id=task_id,
            output_path=plan.output_path,
            mode=plan.mode.value,
        )

    def plan(self, input_path: Path, output_dir: Path) -> EncodePlan:
        """Build the plan a conversion would use, without reserving or running it.

        Raises:
            ProbeError, PlanError, ToolNotFoundError
        """
        descriptor = self.probe(Path(input_path))
        output_dir = Path(output_dir)
        return build_plan(
            descriptor,
            self.host_capabilities,
            output_dir,
            profile=self.profile,
            reserved=self._reserved_paths(),
            vaapi_device=self.config.conversion.vaapi_device,
        )

    def _reserved_paths(self) -> set[Path]:
        return {
            task.output_path for task in self.registry.tasks() if not task.is_terminal
        }

    def _plan(self, descriptor: MediaDescriptor, output_dir: Path) -> EncodePlan:
        output_dir = prepare_output_dir(output_dir)
        output_path = self.registry.reserve_output(output_dir, descriptor.path)
        try:
            return build_plan(
                descriptor,
                self.host_capabilities,
                output_dir,
                profile=self.profile,
                output_path=output_path,
                vaapi_device=self.config.conversion.vaapi_device,
            )
        except PlanError:
            self.registry.release_output(output_path)
            discard_placeholder(output_path)
            raise

    # Task control

    def subscribe(self, task_id: str | None = None) -> Subscription:
        """Subscribe to conversion progress for one task or all tasks."""
        return self.bus.subscribe(task_id)

    def cancel(self, task_id: str) -> bool:
        """Cancel a conversion; False if it already finished.

        Raises:
            TaskNotFoundError: If the id is unknown.
        """
        return self.scheduler.cancel(task_id)

    def status(self, task_id: str) -> TaskSnapshot:
        """Raises TaskNotFoundError if the id is unknown."""
        return self.scheduler.status(task_id)

    def list_tasks(self) -> list[TaskSnapshot]:
        return self.registry.snapshots()

    def purge(self, task_id: str) -> TaskSnapshot:
        """Forget a finished task. Raises TaskNotFoundError/TaskConflictError."""
        return self.scheduler.purge(task_id)

    def wait(self, task_id: str, timeout: float | None = None) -> TaskSnapshot:
        return self.scheduler.wait(task_id, timeout)

    def delete_output(self, path: Path) -> None:
        """Delete a converted file.

        Raises:
            OutputError: If a live task is writing the file, the file does
                not exist, or the OS refuses to delete it.
        """
        path = Path(path).expanduser().absolute()
        owner = self.registry.owner_of(path)
        if owner is not None:
            raise OutputError(f"Output is still being written by task {owner}: {path}")
        if not path.is_file():
            raise OutputError(f"File not found: {path}")
        try:
            path.unlink()
        except OSError as e:
            raise OutputError(f"Could not delete {path}: {e}") from e
        logger.info("Deleted output %s", path)

    def shutdown(self, timeout: float | None = None) -> bool:
        """Cancel every live conversion and wait for them to stop."""
        if timeout is None:
            timeout = self.config.server.shutdown_timeout
        return self.scheduler.shutdown(timeout)
