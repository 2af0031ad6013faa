import asyncio
import time

import pytest

from repository.job_repository import JobRepository
from repository.namespaces import JOB_INDEX
from util.enums import JobStatus, MediaKind, SourceProfile


async def _create(jobs: JobRepository, url="https://media.example/a", **kw):
    params = dict(
        source_url=url,
        media_kind=MediaKind.audio,
        quality_selector="128k",
        container_extension="mp3",
        source_profile=SourceProfile.generic,
    )
    params.update(kw)
    return await jobs.create(**params)


@pytest.mark.asyncio
async def test_create_and_get_round_trip(jobs):
    job = await _create(jobs, title="hello")
    loaded = await jobs.get(job.id)
    assert loaded == job
    assert loaded.status == JobStatus.created
    assert loaded.completedAt is None


@pytest.mark.asyncio
async def test_ids_are_unique(jobs):
    ids = {(await _create(jobs)).id for _ in range(20)}
    assert len(ids) == 20


@pytest.mark.asyncio
async def test_get_unknown_returns_none(jobs):
    assert await jobs.get("missing") is None
    assert await jobs.get("") is None


@pytest.mark.asyncio
async def test_list_recent_is_newest_first(jobs):
    first = await _create(jobs, url="https://media.example/1")
    await asyncio.sleep(0.01)
    second = await _create(jobs, url="https://media.example/2")
    await asyncio.sleep(0.01)
    third = await _create(jobs, url="https://media.example/3")

    listed = await jobs.list_recent(10)
    assert [j.id for j in listed] == [third.id, second.id, first.id]
    assert [j.id for j in await jobs.list_recent(2)] == [third.id, second.id]


@pytest.mark.asyncio
async def test_status_only_moves_forward(jobs):
    job = await _create(jobs)
    assert await jobs.advance(job.id, JobStatus.streaming)
    assert not await jobs.advance(job.id, JobStatus.acquiring)
    assert not await jobs.advance(job.id, JobStatus.streaming)
    assert await jobs.get_status(job.id) == JobStatus.streaming


@pytest.mark.asyncio
async def test_finalize_sets_completed_at_once(jobs):
    job = await _create(jobs)
    await jobs.advance(job.id, JobStatus.acquiring)
    assert await jobs.finalize(job.id, JobStatus.completed, bytes_forwarded=42)
    done = await jobs.get(job.id)
    assert done.status == JobStatus.completed
    assert done.completedAt is not None and done.completedAt >= done.createdAt
    assert done.bytesForwarded == 42

    # terminal rows are frozen
    assert not await jobs.finalize(job.id, JobStatus.failed, error="late")
    assert not await jobs.advance(job.id, JobStatus.streaming)
    again = await jobs.get(job.id)
    assert again.status == JobStatus.completed
    assert again.completedAt == done.completedAt


@pytest.mark.asyncio
async def test_failed_records_error(jobs):
    job = await _create(jobs)
    await jobs.finalize(job.id, JobStatus.failed, error="failed to start yt-dlp")
    failed = await jobs.get(job.id)
    assert failed.status == JobStatus.failed
    assert failed.error == "failed to start yt-dlp"
    assert failed.completedAt is not None


@pytest.mark.asyncio
async def test_terminal_status_is_required_for_finalize(jobs):
    job = await _create(jobs)
    with pytest.raises(ValueError):
        await jobs.finalize(job.id, JobStatus.streaming)
    with pytest.raises(ValueError):
        await jobs.advance(job.id, JobStatus.completed)


@pytest.mark.asyncio
async def test_completed_at_iff_terminal(jobs):
    a = await _create(jobs)
    b = await _create(jobs)
    c = await _create(jobs)
    await jobs.advance(b.id, JobStatus.streaming)
    await jobs.finalize(c.id, JobStatus.failed)
    for job in await jobs.list_recent(10):
        assert job.status in set(JobStatus)
        assert (job.completedAt is not None) == job.status.terminal
    assert (await jobs.get(a.id)).status == JobStatus.created


@pytest.mark.asyncio
async def test_set_title(jobs):
    job = await _create(jobs)
    await jobs.set_title(job.id, "Resolved")
    assert (await jobs.get(job.id)).title == "Resolved"


@pytest.mark.asyncio
async def test_ttl_applies_when_configured(redis):
    jobs = JobRepository(redis, ttl_seconds=60)
    job = await _create(jobs)
    ttl = await redis.ttl(f"mediastream:jobs:{job.id}")
    assert 0 < ttl <= 60


@pytest.mark.asyncio
async def test_expired_rows_leave_the_index(redis):
    jobs = JobRepository(redis, ttl_seconds=60)
    long_ago = time.time() - 3600
    # an expired row, and an old row whose TTL was refreshed by later writes
    await redis.zadd(JOB_INDEX, {"expired": long_ago, "refreshed": long_ago})
    await redis.hset("mediastream:jobs:refreshed", mapping={"status": "streaming"})

    fresh = await _create(jobs)

    members = {m.decode() for m in await redis.zrange(JOB_INDEX, 0, -1)}
    assert members == {"refreshed", fresh.id}


@pytest.mark.asyncio
async def test_index_is_left_alone_without_ttl(redis, jobs):
    await redis.zadd(JOB_INDEX, {"old": time.time() - 3600})
    await _create(jobs)
    assert await redis.zscore(JOB_INDEX, "old") is not None


@pytest.mark.asyncio
async def test_claim_moves_created_to_acquiring_once(jobs):
    job = await _create(jobs)
    assert await jobs.claim(job.id)
    assert await jobs.get_status(job.id) == JobStatus.acquiring
    assert not await jobs.claim(job.id)
    assert not await jobs.claim("missing")


@pytest.mark.asyncio
async def test_concurrent_claims_have_one_winner(jobs):
    job = await _create(jobs)
    results = await asyncio.gather(*(jobs.claim(job.id) for _ in range(8)))
    assert results.count(True) == 1


@pytest.mark.asyncio
async def test_claim_refuses_terminal_jobs(jobs):
    job = await _create(jobs)
    await jobs.finalize(job.id, JobStatus.failed)
    assert not await jobs.claim(job.id)
    assert (await jobs.get(job.id)).status == JobStatus.failed
