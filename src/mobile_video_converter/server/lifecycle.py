"""Server lifecycle management.

Tracks uptime and coordinates graceful shutdown between the HTTP server
and the conversions still running when a stop signal arrives.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta


@dataclass
class ShutdownState:
    """Tracks shutdown progress for graceful termination."""

    initiated: datetime | None = None
    """UTC timestamp when shutdown was initiated, None if not shutting down."""

    timeout_deadline: datetime | None = None
    """UTC timestamp after which remaining conversions are killed."""

    tasks_remaining: int = 0
    """Count of conversions still live when shutdown began."""

    @property
    def is_shutting_down(self) -> bool:
        return self.initiated is not None

    @property
    def is_timed_out(self) -> bool:
        """Returns True if shutdown timeout has been exceeded."""
        if self.timeout_deadline is None:
            return False
        return datetime.now(UTC) >= self.timeout_deadline


@dataclass
class ServerLifecycle:
    """Startup time and shutdown state of the conversion server."""

    shutdown_timeout: float = 10.0
    """Seconds to wait for conversions to stop before giving up."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))

    shutdown_state: ShutdownState = field(default_factory=ShutdownState)

    @property
    def uptime_seconds(self) -> float:
        """Returns seconds since server startup."""
        return (datetime.now(UTC) - self.start_time).total_seconds()

    @property
    def is_shutting_down(self) -> bool:
        return self.shutdown_state.is_shutting_down

    def initiate_shutdown(self, tasks_remaining: int = 0) -> None:
        """Begin graceful shutdown.

        Idempotent: calls after the first have no effect.
        """
        if self.shutdown_state.initiated is not None:
            return

        now = datetime.now(UTC)
        self.shutdown_state.initiated = now
        self.shutdown_state.timeout_deadline = now + timedelta(
            seconds=self.shutdown_timeout
        )
        self.shutdown_state.tasks_remaining = tasks_remaining
