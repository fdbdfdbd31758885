"""Signal handling for graceful server shutdown."""

import asyncio
import logging
import signal

from mobile_video_converter.server.lifecycle import ServerLifecycle

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def setup_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    lifecycle: ServerLifecycle,
    shutdown_event: asyncio.Event,
) -> list[signal.Signals]:
    """Install SIGTERM/SIGINT handlers that start a graceful shutdown.

    Returns the signals that were installed. Loops without signal
    support (Windows) install nothing and rely on KeyboardInterrupt.
    """

    def _handle(sig: signal.Signals) -> None:
        if lifecycle.is_shutting_down:
            logger.warning("Received %s again, shutdown already in progress", sig.name)
            return
        logger.info("Received %s, shutting down", sig.name)
        lifecycle.initiate_shutdown()
        shutdown_event.set()

    installed: list[signal.Signals] = []
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, _handle, sig)
        except NotImplementedError:
            logger.debug("Signal handlers not supported on this event loop")
            break
        installed.append(sig)
    return installed


def remove_signal_handlers(
    loop: asyncio.AbstractEventLoop, installed: list[signal.Signals]
) -> None:
    for sig in installed:
        loop.remove_signal_handler(sig)
