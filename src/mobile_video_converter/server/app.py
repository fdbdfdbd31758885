"""HTTP application for server mode.

Exposes the ConversionService as a small JSON API plus a Server-Sent
Events stream per conversion, so a desktop or web front-end can drive
conversions and render progress.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from pathlib import Path

from aiohttp import web

from mobile_video_converter import __version__
from mobile_video_converter.exceptions import (
    OutputError,
    ProbeError,
    TaskConflictError,
    TaskNotFoundError,
    ToolNotFoundError,
)
from mobile_video_converter.jobs.events import ConversionProgress
from mobile_video_converter.policy.compatibility import describe_incompatibilities
from mobile_video_converter.server.lifecycle import ServerLifecycle
from mobile_video_converter.service import ConversionService

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

# Idle SSE streams send a comment this often so proxies keep them open
SSE_KEEPALIVE_SECONDS = 15.0


@dataclass
class HealthStatus:
    """Health check response payload."""

    status: str
    """Overall status: 'healthy', 'degraded', or 'unhealthy'."""

    tools: str
    """ffmpeg/ffprobe availability: 'available' or 'missing'."""

    active_tasks: int
    uptime_seconds: float
    version: str
    shutting_down: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


def shutdown_check_middleware(handler: Handler) -> Handler:
    """Decorator that returns 503 once shutdown has started."""

    async def wrapper(request: web.Request) -> web.StreamResponse:
        lifecycle: ServerLifecycle | None = request.app.get("lifecycle")
        if lifecycle and lifecycle.is_shutting_down:
            return _error("Service is shutting down", 503)
        return await handler(request)

    return wrapper


async def _read_json(request: web.Request) -> dict:
    """Parse a JSON object body or raise 400."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise web.HTTPBadRequest(
            text=json.dumps({"error": "Request body must be JSON"}),
            content_type="application/json",
        )
    if not isinstance(body, dict):
        raise web.HTTPBadRequest(
            text=json.dumps({"error": "Request body must be a JSON object"}),
            content_type="application/json",
        )
    return body


def _require_str(body: dict, key: str) -> str:
    value = body.get(key)
    if not isinstance(value, str) or not value:
        raise web.HTTPBadRequest(
            text=json.dumps({"error": f"'{key}' must be a non-empty string"}),
            content_type="application/json",
        )
    return value


async def health_handler(request: web.Request) -> web.Response:
    """Handle GET /health requests.

    Returns 200 when healthy, 503 when tools are missing or the server
    is shutting down.
    """
    service: ConversionService = request.app["service"]
    lifecycle: ServerLifecycle | None = request.app.get("lifecycle")

    tools_ok = await asyncio.to_thread(lambda: service.tools.all_available())
    shutting_down = lifecycle.is_shutting_down if lifecycle else False
    uptime = lifecycle.uptime_seconds if lifecycle else 0.0

    if shutting_down:
        status = "unhealthy"
    elif not tools_ok:
        status = "degraded"
    else:
        status = "healthy"

    health = HealthStatus(
        status=status,
        tools="available" if tools_ok else "missing",
        active_tasks=service.registry.active_count(),
        uptime_seconds=round(uptime, 1),
        version=__version__,
        shutting_down=shutting_down,
    )
    http_status = 200 if status == "healthy" else 503
    return web.json_response(health.to_dict(), status=http_status)


async def api_tools_handler(request: web.Request) -> web.Response:
    """Handle GET /api/tools: re-detect tools and report the encoder."""
    service: ConversionService = request.app["service"]

    def _check() -> dict:
        available = service.check_tool_available()
        tools = service.tools
        capabilities = (
            service.host_capabilities.to_dict()
            if tools.ffmpeg.is_available()
            else None
        )
        return {
            "available": available,
            "tools": {
                "ffmpeg": tools.ffmpeg.to_dict(),
                "ffprobe": tools.ffprobe.to_dict(),
            },
            "capabilities": capabilities,
        }

    return web.json_response(await asyncio.to_thread(_check))


async def api_probe_handler(request: web.Request) -> web.Response:
    """Handle POST /api/probe with body {"path": ...}."""
    service: ConversionService = request.app["service"]
    body = await _read_json(request)
    path = Path(_require_str(body, "path"))

    try:
        descriptor = await asyncio.to_thread(service.probe, path)
    except ToolNotFoundError as e:
        return _error(str(e), 503)
    except ProbeError as e:
        return _error(str(e), 422)

    reasons = describe_incompatibilities(
        descriptor.video_codec,
        descriptor.audio_codec,
        descriptor.container,
        descriptor.path,
    )
    return web.json_response({**descriptor.to_dict(), "reasons": reasons})


@shutdown_check_middleware
async def api_start_conversion_handler(request: web.Request) -> web.Response:
    """Handle POST /api/conversions.

    Body: {"input_path": ..., "output_dir": ..., "task_id": optional}.
    Returns 202 when accepted, 422 when the file was rejected and 503
    when ffmpeg or ffprobe is missing.
    """
    service: ConversionService = request.app["service"]
    body = await _read_json(request)
    input_path = Path(_require_str(body, "input_path"))
    output_dir = Path(_require_str(body, "output_dir"))
    task_id = body.get("task_id")
    if task_id is not None and (not isinstance(task_id, str) or not task_id):
        return _error("'task_id' must be a non-empty string", 400)

    result = await asyncio.to_thread(
        service.start_conversion, input_path, output_dir, task_id
    )
    if result.accepted:
        status = 202
    elif result.tool_missing:
        status = 503
    else:
        status = 422
    return web.json_response(result.to_dict(), status=status)


async def api_list_conversions_handler(request: web.Request) -> web.Response:
    service: ConversionService = request.app["service"]
    tasks = [snapshot.to_dict() for snapshot in service.list_tasks()]
    return web.json_response({"tasks": tasks, "total": len(tasks)})


async def api_conversion_detail_handler(request: web.Request) -> web.Response:
    service: ConversionService = request.app["service"]
    task_id = request.match_info["task_id"]
    try:
        snapshot = service.status(task_id)
    except TaskNotFoundError as e:
        return _error(str(e), 404)
    return web.json_response(snapshot.to_dict())


async def api_cancel_conversion_handler(request: web.Request) -> web.Response:
    """Handle DELETE /api/conversions/{task_id}.

    "cancelled" is false when the task had already finished.
    """
    service: ConversionService = request.app["service"]
    task_id = request.match_info["task_id"]
    try:
        cancelled = service.cancel(task_id)
    except TaskNotFoundError as e:
        return _error(str(e), 404)
    return web.json_response({"task_id": task_id, "cancelled": cancelled})


async def api_purge_conversion_handler(request: web.Request) -> web.Response:
    service: ConversionService = request.app["service"]
    task_id = request.match_info["task_id"]
    try:
        snapshot = service.purge(task_id)
    except TaskNotFoundError as e:
        return _error(str(e), 404)
    except TaskConflictError as e:
        return _error(str(e), 409)
    return web.json_response(snapshot.to_dict())


async def api_conversion_events_handler(request: web.Request) -> web.StreamResponse:
    """Handle GET /api/conversions/{task_id}/events as Server-Sent Events.

    The first event is the task's current state. The stream ends after
    the terminal event.
    """
    service: ConversionService = request.app["service"]
    task_id = request.match_info["task_id"]
    try:
        service.status(task_id)
    except TaskNotFoundError as e:
        return _error(str(e), 404)

    loop = asyncio.get_running_loop()
    events: asyncio.Queue[ConversionProgress] = asyncio.Queue()

    def _on_event(event: ConversionProgress) -> None:
        loop.call_soon_threadsafe(events.put_nowait, event)

    response = web.StreamResponse(
        headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }
    )
    await response.prepare(request)

    service.bus.add_listener(_on_event, task_id=task_id)
    try:
        while True:
            try:
                event = await asyncio.wait_for(
                    events.get(), timeout=SSE_KEEPALIVE_SECONDS
                )
            except asyncio.TimeoutError:
                await response.write(b": keepalive\n\n")
                continue
            payload = f"event: progress\ndata: {event.to_json()}\n\n"
            await response.write(payload.encode("utf-8"))
            if event.is_terminal:
                break
    except ConnectionResetError:
        logger.debug("Event stream client for %s disconnected", task_id)
    finally:
        service.bus.remove_listener(_on_event)

    return response


async def api_delete_output_handler(request: web.Request) -> web.Response:
    """Handle POST /api/outputs/delete with body {"path": ...}."""
    service: ConversionService = request.app["service"]
    body = await _read_json(request)
    path = Path(_require_str(body, "path"))
    try:
        await asyncio.to_thread(service.delete_output, path)
    except OutputError as e:
        return _error(str(e), 409)
    return web.json_response({"deleted": str(path)})


async def _shutdown_service(app: web.Application) -> None:
    """Cancel remaining conversions when the application stops."""
    service: ConversionService = app["service"]
    lifecycle: ServerLifecycle | None = app.get("lifecycle")
    timeout = lifecycle.shutdown_timeout if lifecycle else None
    stopped = await asyncio.to_thread(service.shutdown, timeout)
    if not stopped:
        logger.warning("Some conversions did not stop before the timeout")


def create_app(
    service: ConversionService, lifecycle: ServerLifecycle | None = None
) -> web.Application:
    """Create and configure the aiohttp Application.

    Args:
        service: Conversion service the handlers delegate to.
        lifecycle: Shutdown coordinator; set by the serve command.

    Returns:
        Configured aiohttp Application instance.
    """
    app = web.Application()
    app["service"] = service
    app["lifecycle"] = lifecycle

    app.router.add_get("/health", health_handler)
    app.router.add_get("/api/tools", api_tools_handler)
    app.router.add_post("/api/probe", api_probe_handler)
    app.router.add_get("/api/conversions", api_list_conversions_handler)
    app.router.add_post("/api/conversions", api_start_conversion_handler)
    app.router.add_get("/api/conversions/{task_id}", api_conversion_detail_handler)
    app.router.add_delete(
        "/api/conversions/{task_id}", api_cancel_conversion_handler
    )
    app.router.add_post(
        "/api/conversions/{task_id}/purge", api_purge_conversion_handler
    )
    app.router.add_get(
        "/api/conversions/{task_id}/events", api_conversion_events_handler
    )
    app.router.add_post("/api/outputs/delete", api_delete_output_handler)

    app.on_cleanup.append(_shutdown_service)

    return app
