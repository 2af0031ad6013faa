import httpx
import pytest
import pytest_asyncio

import main
from core.context import ToolConfig
from util.enums import JobStatus


@pytest_asyncio.fixture
async def client(ctx):
    main.app.state.context = ctx
    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    del main.app.state.context


@pytest.mark.asyncio
async def test_health_and_root(client):
    r = await client.get("/healthz")
    assert r.status_code == 200 and r.json() == {"ok": True}

    r = await client.get("/")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_formats(client):
    r = await client.get("/api/v1/formats")
    assert r.status_code == 200
    body = r.json()
    assert "720p" in body["videoQualities"]
    assert "mp3" in body["audioFormats"]
    assert "mp4" in body["videoFormats"]


@pytest.mark.asyncio
async def test_create_then_stream_audio(client, ctx):
    r = await client.post(
        "/api/v1/jobs",
        json={
            "sourceUrl": "https://media.example/watch?bytes=250000&title=Live%20Set",
            "mediaKind": "audio",
            "containerExtension": "mp3",
        },
    )
    assert r.status_code == 201
    created = r.json()
    assert created["title"] == "Live Set"
    assert created["sourceProfile"] == "generic"

    r = await client.get(created["streamUrl"])
    assert r.status_code == 200
    assert r.headers["content-type"] == "audio/mpeg"
    assert r.headers["content-disposition"] == 'attachment; filename="Live Set.mp3"'
    assert "content-length" not in r.headers
    assert len(r.content) == 250000

    r = await client.get(f"/api/v1/jobs/{created['id']}")
    assert r.status_code == 200
    job = r.json()
    assert job["status"] == JobStatus.completed.value
    assert job["bytesForwarded"] == 250000
    assert job["completedAt"] is not None


@pytest.mark.asyncio
async def test_list_jobs_newest_first(client):
    ids = []
    for n in range(3):
        r = await client.post(
            "/api/v1/jobs", json={"sourceUrl": f"https://media.example/{n}?title=t{n}"}
        )
        ids.append(r.json()["id"])

    r = await client.get("/api/v1/jobs", params={"limit": 2})
    assert r.status_code == 200
    assert [j["id"] for j in r.json()] == [ids[2], ids[1]]


@pytest.mark.asyncio
async def test_validation_errors(client):
    r = await client.post("/api/v1/jobs", json={})
    assert r.status_code == 422
    r = await client.post("/api/v1/jobs", json={"sourceUrl": "  "})
    assert r.status_code == 400
    r = await client.get("/api/v1/jobs", params={"limit": 0})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_unknown_job_is_404(client):
    assert (await client.get("/api/v1/jobs/nope")).status_code == 404
    assert (await client.get("/api/v1/stream/nope")).status_code == 404


@pytest.mark.asyncio
async def test_second_stream_is_conflict(client):
    r = await client.post(
        "/api/v1/jobs", json={"sourceUrl": "https://media.example/x?bytes=100"}
    )
    stream_url = r.json()["streamUrl"]
    assert (await client.get(stream_url)).status_code == 200
    assert (await client.get(stream_url)).status_code == 409


@pytest.mark.asyncio
async def test_spawn_failure_is_500(client, ctx):
    r = await client.post(
        "/api/v1/jobs", json={"sourceUrl": "https://media.example/x?title=a"}
    )
    ctx.tools = ToolConfig(acquisition=("/nonexistent/yt-dlp",), transcode=ctx.tools.transcode)
    job_id = r.json()["id"]
    r = await client.get(f"/api/v1/stream/{job_id}")
    assert r.status_code == 500
    assert (await client.get(f"/api/v1/jobs/{job_id}")).json()["status"] == "failed"
