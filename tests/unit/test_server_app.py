"""Tests for the conversion HTTP API."""

import asyncio
from pathlib import Path

import pytest
from aiohttp import web

from mobile_video_converter import __version__
from mobile_video_converter.server.app import create_app
from mobile_video_converter.server.lifecycle import ServerLifecycle
from mobile_video_converter.service import ConversionService
from mobile_video_converter.tools.encoders import HostCapabilities


@pytest.fixture
def videos_dir(tmp_path: Path) -> Path:
    source = tmp_path / "videos"
    source.mkdir()
    return source


@pytest.fixture
def make_app(videos_dir, descriptor_factory, tool_registry_factory, fake_prober_class):
    """Build an app around a service with a fake prober and ffmpeg."""

    def _make(ffmpeg_path: Path | None) -> tuple[web.Application, ConversionService]:
        service = ConversionService(
            tools=tool_registry_factory(ffmpeg_path=ffmpeg_path),
            capabilities=HostCapabilities.software_only(),
            prober=fake_prober_class(
                {"movie.mkv": descriptor_factory(videos_dir / "movie.mkv")}
            ),
        )
        app = create_app(service, ServerLifecycle(shutdown_timeout=10.0))
        return app, service

    return _make


def _parse_sse(body: str) -> list[str]:
    return [
        line[len("data: "):]
        for line in body.splitlines()
        if line.startswith("data: ")
    ]


@pytest.mark.asyncio
async def test_health_healthy(aiohttp_client, make_app, fake_ffmpeg):
    app, _ = make_app(fake_ffmpeg())
    client = await aiohttp_client(app)

    response = await client.get("/health")

    assert response.status == 200
    data = await response.json()
    assert data["status"] == "healthy"
    assert data["tools"] == "available"
    assert data["active_tasks"] == 0
    assert data["version"] == __version__


@pytest.mark.asyncio
async def test_health_degraded_without_tools(aiohttp_client, make_app):
    app, _ = make_app(None)
    client = await aiohttp_client(app)

    response = await client.get("/health")

    assert response.status == 503
    data = await response.json()
    assert data["status"] == "degraded"
    assert data["tools"] == "missing"


@pytest.mark.asyncio
async def test_health_unhealthy_while_shutting_down(aiohttp_client, make_app, fake_ffmpeg):
    app, _ = make_app(fake_ffmpeg())
    app["lifecycle"].initiate_shutdown()
    client = await aiohttp_client(app)

    response = await client.get("/health")

    assert response.status == 503
    data = await response.json()
    assert data["status"] == "unhealthy"
    assert data["shutting_down"] is True


@pytest.mark.asyncio
async def test_tools(aiohttp_client, make_app, fake_ffmpeg):
    app, _ = make_app(fake_ffmpeg())
    client = await aiohttp_client(app)

    response = await client.get("/api/tools")

    assert response.status == 200
    data = await response.json()
    assert data["available"] is True
    assert data["tools"]["ffprobe"]["status"] == "available"
    assert data["capabilities"]["kind"] == "software-only"


@pytest.mark.asyncio
async def test_probe(aiohttp_client, make_app, fake_ffmpeg, videos_dir):
    app, _ = make_app(fake_ffmpeg())
    client = await aiohttp_client(app)

    response = await client.post(
        "/api/probe", json={"path": str(videos_dir / "movie.mkv")}
    )

    assert response.status == 200
    data = await response.json()
    assert data["needs_conversion"] is True
    assert data["reasons"]


@pytest.mark.asyncio
async def test_probe_errors(aiohttp_client, make_app, fake_ffmpeg, videos_dir):
    app, _ = make_app(fake_ffmpeg())
    client = await aiohttp_client(app)

    unknown = await client.post(
        "/api/probe", json={"path": str(videos_dir / "other.avi")}
    )
    assert unknown.status == 422

    not_json = await client.post("/api/probe", data=b"{not json")
    assert not_json.status == 400

    no_path = await client.post("/api/probe", json={"file": "x"})
    assert no_path.status == 400
    assert "path" in (await no_path.json())["error"]


@pytest.mark.asyncio
async def test_conversion_streams_to_completion(
    aiohttp_client, make_app, fake_ffmpeg, videos_dir, tmp_path
):
    app, _ = make_app(fake_ffmpeg())
    client = await aiohttp_client(app)

    response = await client.post(
        "/api/conversions",
        json={
            "input_path": str(videos_dir / "movie.mkv"),
            "output_dir": str(tmp_path / "out"),
            "task_id": "job-1",
        },
    )
    assert response.status == 202
    accepted = await response.json()
    assert accepted["accepted"] is True
    assert accepted["task_id"] == "job-1"
    assert accepted["mode"] == "software_encode"

    events = await client.get("/api/conversions/job-1/events")
    assert events.status == 200
    assert events.headers["Content-Type"].startswith("text/event-stream")
    body = await events.text()
    statuses = _parse_sse(body)
    assert '"status": "completed"' in statuses[-1]
    assert '"progress": 100.0' in statuses[-1]

    detail = await client.get("/api/conversions/job-1")
    assert detail.status == 200
    assert (await detail.json())["state"] == "completed"

    listing = await client.get("/api/conversions")
    data = await listing.json()
    assert data["total"] == 1
    assert data["tasks"][0]["task_id"] == "job-1"

    purged = await client.post("/api/conversions/job-1/purge")
    assert purged.status == 200
    assert (await client.get("/api/conversions/job-1")).status == 404

    deleted = await client.post(
        "/api/outputs/delete", json={"path": accepted["output_path"]}
    )
    assert deleted.status == 200
    assert not Path(accepted["output_path"]).exists()


@pytest.mark.asyncio
async def test_start_rejections(aiohttp_client, make_app, videos_dir, tmp_path):
    app, _ = make_app(None)
    client = await aiohttp_client(app)

    missing_tool = await client.post(
        "/api/conversions",
        json={
            "input_path": str(videos_dir / "movie.mkv"),
            "output_dir": str(tmp_path / "out"),
        },
    )
    assert missing_tool.status == 503
    assert (await missing_tool.json())["accepted"] is False

    bad_id = await client.post(
        "/api/conversions",
        json={
            "input_path": str(videos_dir / "movie.mkv"),
            "output_dir": str(tmp_path / "out"),
            "task_id": 7,
        },
    )
    assert bad_id.status == 400


@pytest.mark.asyncio
async def test_start_unprobeable_file(
    aiohttp_client, make_app, fake_ffmpeg, videos_dir, tmp_path
):
    app, _ = make_app(fake_ffmpeg())
    client = await aiohttp_client(app)

    response = await client.post(
        "/api/conversions",
        json={
            "input_path": str(videos_dir / "other.avi"),
            "output_dir": str(tmp_path / "out"),
        },
    )

    assert response.status == 422
    assert "Cannot probe" in (await response.json())["reason"]


@pytest.mark.asyncio
async def test_start_refused_while_shutting_down(
    aiohttp_client, make_app, fake_ffmpeg, videos_dir, tmp_path
):
    app, service = make_app(fake_ffmpeg())
    app["lifecycle"].initiate_shutdown()
    client = await aiohttp_client(app)

    response = await client.post(
        "/api/conversions",
        json={
            "input_path": str(videos_dir / "movie.mkv"),
            "output_dir": str(tmp_path / "out"),
        },
    )

    assert response.status == 503
    assert service.list_tasks() == []


@pytest.mark.asyncio
async def test_cancel_running_conversion(
    aiohttp_client, make_app, fake_ffmpeg, videos_dir, tmp_path
):
    app, service = make_app(fake_ffmpeg(slow=True))
    client = await aiohttp_client(app)

    response = await client.post(
        "/api/conversions",
        json={
            "input_path": str(videos_dir / "movie.mkv"),
            "output_dir": str(tmp_path / "out"),
            "task_id": "slow",
        },
    )
    assert response.status == 202
    output_path = (await response.json())["output_path"]

    live_delete = await client.post("/api/outputs/delete", json={"path": output_path})
    assert live_delete.status == 409

    live_purge = await client.post("/api/conversions/slow/purge")
    assert live_purge.status == 409

    cancelled = await client.delete("/api/conversions/slow")
    assert cancelled.status == 200
    assert await cancelled.json() == {"task_id": "slow", "cancelled": True}

    events = await client.get("/api/conversions/slow/events")
    body = await events.text()
    assert '"status": "cancelled"' in _parse_sse(body)[-1]

    snapshot = await asyncio.to_thread(service.wait, "slow", 10.0)
    assert snapshot.state.value == "cancelled"

    again = await client.delete("/api/conversions/slow")
    assert (await again.json())["cancelled"] is False


@pytest.mark.asyncio
async def test_unknown_task_routes(aiohttp_client, make_app, fake_ffmpeg):
    app, _ = make_app(fake_ffmpeg())
    client = await aiohttp_client(app)

    assert (await client.get("/api/conversions/nope")).status == 404
    assert (await client.delete("/api/conversions/nope")).status == 404
    assert (await client.post("/api/conversions/nope/purge")).status == 404
    assert (await client.get("/api/conversions/nope/events")).status == 404


@pytest.mark.asyncio
async def test_delete_missing_output(aiohttp_client, make_app, fake_ffmpeg, tmp_path):
    app, _ = make_app(fake_ffmpeg())
    client = await aiohttp_client(app)

    response = await client.post(
        "/api/outputs/delete", json={"path": str(tmp_path / "ghost.mp4")}
    )

    assert response.status == 409
    assert "not found" in (await response.json())["error"]
