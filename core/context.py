# core/context.py
import logging
import shutil
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple
from redis.asyncio import Redis
from config.settings import Settings
from core.buffer_pool import BufferPool
from repository.job_repository import JobRepository
from util.enums import LateFailurePolicy
from util.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolConfig:
    """Command prefixes for the two external tools (executable plus fixed args)."""

    acquisition: Tuple[str, ...]
    transcode: Tuple[str, ...]

    @classmethod
    def from_settings(cls, s: Settings) -> "ToolConfig":
        tools = cls(
            acquisition=(_locate(s.YTDLP_PATH),),
            transcode=(_locate(s.FFMPEG_PATH),),
        )
        missing = tools.missing()
        if missing:
            if s.REQUIRE_TOOLS:
                raise ConfigurationError(f"media tools not found: {', '.join(missing)}")
            logger.warning("tools.missing %s", " ".join(missing))
        return tools

    def missing(self) -> List[str]:
        return [
            cmd[0]
            for cmd in (self.acquisition, self.transcode)
            if not cmd or shutil.which(cmd[0]) is None
        ]


def _locate(path: str) -> str:
    return shutil.which(path) or path


@dataclass(frozen=True)
class PipelineOptions:
    title_timeout: float = 30.0
    flush_every: int = 512 * 1024
    deadline: Optional[float] = None
    reap_timeout: float = 5.0
    late_failure_policy: LateFailurePolicy = LateFailurePolicy.COMPLETE_PARTIAL

    @classmethod
    def from_settings(cls, s: Settings) -> "PipelineOptions":
        return cls(
            title_timeout=s.TITLE_TIMEOUT_SECONDS,
            flush_every=s.STREAM_FLUSH_BYTES,
            deadline=s.PIPELINE_TIMEOUT_SECONDS,
            reap_timeout=s.REAP_TIMEOUT_SECONDS,
            late_failure_policy=s.LATE_FAILURE_POLICY,
        )


@dataclass
class AppContext:
    """
    Everything jobs share, built once at startup:
    ledger, buffer pool, tool commands, tuning knobs and the live-job registry.
    """

    jobs: JobRepository
    buffers: BufferPool
    tools: ToolConfig
    options: PipelineOptions = field(default_factory=PipelineOptions)
    live_jobs: Set[str] = field(default_factory=set)


def build_context(redis: Redis, s: Settings) -> AppContext:
    return AppContext(
        jobs=JobRepository(redis, ttl_seconds=s.LEDGER_TTL_SECONDS),
        buffers=BufferPool(s.STREAM_BUFFER_BYTES, capacity=s.BUFFER_POOL_SIZE),
        tools=ToolConfig.from_settings(s),
        options=PipelineOptions.from_settings(s),
    )
