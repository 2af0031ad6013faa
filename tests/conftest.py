from __future__ import annotations

import os
import sys
from pathlib import Path

# Settings are read at import time; pin a test environment first.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["REQUIRE_TOOLS"] = "false"

import pytest
from fakeredis import FakeServer, aioredis as fake_aioredis

from core.buffer_pool import BufferPool
from core.context import AppContext, PipelineOptions, ToolConfig
from repository.job_repository import JobRepository
from util.errors import SinkClosed

FAKES = Path(__file__).parent / "fakes"


class CollectingSink:
    """In-memory ResponseSink; `accept` bytes are taken before the client 'leaves'."""

    def __init__(self, accept: int | None = None) -> None:
        self.data = bytearray()
        self.flushes = 0
        self.writes = 0
        self._accept = accept
        self.closed = False

    async def write(self, data) -> None:
        if self.closed or (
            self._accept is not None and len(self.data) + len(data) > self._accept
        ):
            self.closed = True
            raise SinkClosed()
        self.data += bytes(data)
        self.writes += 1

    async def flush(self) -> None:
        if self.closed:
            raise SinkClosed()
        self.flushes += 1


@pytest.fixture
def fake_tools() -> ToolConfig:
    return ToolConfig(
        acquisition=(sys.executable, str(FAKES / "fake_ytdlp.py")),
        transcode=(sys.executable, str(FAKES / "fake_ffmpeg.py")),
    )


@pytest.fixture
def redis():
    return fake_aioredis.FakeRedis(server=FakeServer())


@pytest.fixture
def jobs(redis) -> JobRepository:
    return JobRepository(redis)


@pytest.fixture
def options() -> PipelineOptions:
    return PipelineOptions(title_timeout=10.0, flush_every=64 * 1024, reap_timeout=5.0)


@pytest.fixture
def ctx(jobs, fake_tools, options) -> AppContext:
    return AppContext(
        jobs=jobs,
        buffers=BufferPool(64 * 1024, capacity=4),
        tools=fake_tools,
        options=options,
    )


@pytest.fixture
def make_sink():
    return CollectingSink
