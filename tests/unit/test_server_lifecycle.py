"""Tests for server lifecycle and signal handling."""

import asyncio
import os
import signal
import sys
from datetime import timedelta

import pytest

from mobile_video_converter.server.lifecycle import ServerLifecycle
from mobile_video_converter.server.signals import (
    SHUTDOWN_SIGNALS,
    remove_signal_handlers,
    setup_signal_handlers,
)


class TestServerLifecycle:
    """Tests for ServerLifecycle."""

    def test_initial_state(self):
        lifecycle = ServerLifecycle()
        assert lifecycle.is_shutting_down is False
        assert lifecycle.shutdown_state.is_timed_out is False
        assert lifecycle.uptime_seconds >= 0

    def test_initiate_shutdown(self):
        lifecycle = ServerLifecycle(shutdown_timeout=30.0)
        lifecycle.initiate_shutdown(tasks_remaining=2)

        state = lifecycle.shutdown_state
        assert lifecycle.is_shutting_down is True
        assert state.tasks_remaining == 2
        assert state.timeout_deadline - state.initiated == timedelta(seconds=30.0)
        assert state.is_timed_out is False

    def test_initiate_shutdown_is_idempotent(self):
        lifecycle = ServerLifecycle()
        lifecycle.initiate_shutdown(tasks_remaining=1)
        first = lifecycle.shutdown_state.initiated
        lifecycle.initiate_shutdown(tasks_remaining=5)
        assert lifecycle.shutdown_state.initiated == first
        assert lifecycle.shutdown_state.tasks_remaining == 1

    def test_zero_timeout_is_timed_out(self):
        lifecycle = ServerLifecycle(shutdown_timeout=0.0)
        lifecycle.initiate_shutdown()
        assert lifecycle.shutdown_state.is_timed_out is True


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
@pytest.mark.asyncio
async def test_sigterm_starts_shutdown():
    loop = asyncio.get_running_loop()
    lifecycle = ServerLifecycle()
    shutdown_event = asyncio.Event()
    installed = setup_signal_handlers(loop, lifecycle, shutdown_event)
    try:
        assert installed == list(SHUTDOWN_SIGNALS)
        os.kill(os.getpid(), signal.SIGTERM)
        await asyncio.wait_for(shutdown_event.wait(), timeout=5.0)
        assert lifecycle.is_shutting_down is True
    finally:
        remove_signal_handlers(loop, installed)
