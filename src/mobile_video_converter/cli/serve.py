"""mvc serve command: run the conversion HTTP API for UI front-ends."""

import asyncio
import logging
import os
import sys
from pathlib import Path

import click

from mobile_video_converter.cli.common import build_service, load_cli_config
from mobile_video_converter.cli.exit_codes import ExitCode
from mobile_video_converter.service import ConversionService

logger = logging.getLogger(__name__)


def _configure_server_logging(
    log_level: str | None,
    log_format: str | None,
    config_path: Path | None,
) -> None:
    """Reconfigure logging for server mode; stderr is always on."""
    from mobile_video_converter.config.logging_factory import (
        configure_logging_from_cli,
    )

    try:
        configure_logging_from_cli(
            config_path=config_path,
            level=log_level,
            format=log_format,
            include_stderr=True,
        )
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


async def run_server(
    service: ConversionService,
    bind: str,
    port: int,
    shutdown_timeout: float,
) -> int:
    """Run the HTTP server until SIGTERM/SIGINT.

    Returns:
        Exit code (0 for clean shutdown, non-zero for errors).
    """
    from aiohttp import web

    from mobile_video_converter.server.app import create_app
    from mobile_video_converter.server.lifecycle import ServerLifecycle
    from mobile_video_converter.server.signals import (
        remove_signal_handlers,
        setup_signal_handlers,
    )

    lifecycle = ServerLifecycle(shutdown_timeout=shutdown_timeout)
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = setup_signal_handlers(loop, lifecycle, shutdown_event)

    app = create_app(service, lifecycle)
    runner = web.AppRunner(app)
    await runner.setup()

    try:
        site = web.TCPSite(runner, bind, port)
        await site.start()

        logger.info(
            "Conversion server started on http://%s:%d (PID %d)",
            bind,
            port,
            os.getpid(),
        )
        logger.info("Health endpoint: http://%s:%d/health", bind, port)
        logger.info("Press Ctrl+C or send SIGTERM to stop")

        await shutdown_event.wait()

        active = service.registry.active_count()
        lifecycle.shutdown_state.tasks_remaining = active
        logger.info(
            "Shutdown initiated, cancelling %d conversion(s) (timeout %.1fs)",
            active,
            shutdown_timeout,
        )
        # Cancel before closing connections so event streams see the
        # terminal events and finish on their own
        stopped = await asyncio.to_thread(service.shutdown, shutdown_timeout)
        if not stopped:
            logger.warning("Some conversions did not stop before the timeout")

    except OSError as e:
        if e.errno == 98 or "Address already in use" in str(e):
            logger.error("Port %d is already in use", port)
            return ExitCode.GENERAL_ERROR
        if e.errno == 99 or "Cannot assign requested address" in str(e):
            logger.error("Cannot bind to address %s", bind)
            return ExitCode.GENERAL_ERROR
        logger.error("Server error: %s", e)
        return ExitCode.GENERAL_ERROR
    finally:
        remove_signal_handlers(loop, installed)
        await runner.cleanup()
        logger.info("Conversion server stopped")

    return ExitCode.SUCCESS


@click.command("serve")
@click.option(
    "--bind",
    type=str,
    default=None,
    help="Address to bind to (default: 127.0.0.1).",
)
@click.option(
    "--port",
    "-p",
    type=int,
    default=None,
    help="Port to bind to (default: 8322).",
)
@click.option(
    "--software-only",
    is_flag=True,
    help="Never use a hardware encoder.",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Override log level for server mode.",
)
@click.option(
    "--log-format",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default=None,
    help="Log format: text or json (default: text).",
)
@click.pass_context
def serve_command(
    ctx: click.Context,
    bind: str | None,
    port: int | None,
    software_only: bool,
    log_level: str | None,
    log_format: str | None,
) -> None:
    """Serve the conversion API over HTTP.

    Front-ends start conversions with POST /api/conversions and follow
    progress on GET /api/conversions/{id}/events (Server-Sent Events).
    On SIGTERM or SIGINT every running conversion is cancelled and its
    partial output removed.

    The server binds to localhost by default. It has no authentication;
    only expose it on other interfaces behind something that does.

    Configuration precedence (highest to lowest):
      1. CLI flags (--bind, --port, ...)
      2. Environment variables (MVC_SERVER_*)
      3. Config file (--config or ~/.mvc/config.toml)
      4. Default values

    \b
    Examples:
        mvc serve
        mvc serve --port 9000
        mvc --config ~/.mvc/config.toml serve --log-format json
    """
    config_path = (ctx.obj or {}).get("config_path")
    _configure_server_logging(log_level, log_format, config_path)

    config = load_cli_config(ctx)
    server_bind = bind if bind is not None else config.server.bind
    server_port = port if port is not None else config.server.port
    shutdown_timeout = config.server.shutdown_timeout

    if not 1 <= server_port <= 65535:
        logger.error("Port must be 1-65535, got %d", server_port)
        sys.exit(ExitCode.CONFIG_ERROR)
    if server_port < 1024:
        logger.warning("Port %d is privileged and may require root", server_port)

    service = build_service(config, software_only=software_only)
    if not service.check_tool_available():
        # Serve anyway: /health reports degraded and requests get 503
        for name in service.tools.get_missing_tools():
            logger.warning("%s not available; conversions will be rejected", name)

    logger.info(
        "Starting conversion server (bind=%s, port=%d, timeout=%.1fs)",
        server_bind,
        server_port,
        shutdown_timeout,
    )

    try:
        exit_code = asyncio.run(
            run_server(service, server_bind, server_port, shutdown_timeout)
        )
        sys.exit(exit_code)
    except KeyboardInterrupt:
        logger.info("Interrupted before server started")
        service.shutdown(shutdown_timeout)
        sys.exit(ExitCode.INTERRUPTED)
