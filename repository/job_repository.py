# repository/job_repository.py
import logging
import time
from typing import Dict, Final, List, Optional
from uuid import uuid4
from redis.asyncio import Redis
from redis.exceptions import WatchError
from model.job import Job
from repository.namespaces import JOB_INDEX, JOBS
from util.enums import STATUS_ORDER, JobStatus, MediaKind, SourceProfile

KEY_PREFIX: Final[str] = JOBS
logger = logging.getLogger(__name__)


def _text(v) -> str:
    return v.decode("utf-8") if isinstance(v, (bytes, bytearray)) else str(v)


def _decode(h: Dict) -> Dict[str, str]:
    return {_text(k): _text(v) for k, v in h.items()}


class JobRepository:
    """
    Redis ledger of jobs.
    - One hash per job under `mediastream:jobs:<id>`.
    - A sorted set indexes ids by creation time for newest-first listing.
    - Status only moves forward; terminal writes set completedAt once.
    - claim() is the one compare-and-set: created -> acquiring for a stream.
    """

    def __init__(self, redis: Redis, ttl_seconds: int = 0) -> None:
        self._r = redis
        self._ttl = int(ttl_seconds)

    @staticmethod
    def _key(job_id: str) -> str:
        return f"{KEY_PREFIX}:{job_id}"

    async def _expire(self, job_id: str) -> None:
        if self._ttl > 0:
            await self._r.expire(self._key(job_id), self._ttl)

    async def _prune_index(self) -> None:
        """Drop index ids whose hash expired. Rows refresh their TTL on every
        write, so an old score alone does not mean the row is gone."""
        if self._ttl <= 0:
            return
        cutoff = time.time() - self._ttl
        stale = await self._r.zrangebyscore(JOB_INDEX, "-inf", cutoff)
        gone = [r for r in stale if not await self._r.exists(self._key(_text(r)))]
        if gone:
            await self._r.zrem(JOB_INDEX, *gone)
            logger.info("ledger.index.pruned count=%d", len(gone))

    # ---------------- Core CRUD ----------------

    async def create(
        self,
        *,
        source_url: str,
        media_kind: MediaKind,
        quality_selector: str,
        container_extension: str,
        source_profile: SourceProfile,
        title: str = "",
    ) -> Job:
        job = Job(
            id=str(uuid4()),
            sourceUrl=source_url,
            mediaKind=media_kind,
            qualitySelector=quality_selector,
            containerExtension=container_extension,
            title=title,
            sourceProfile=source_profile,
            status=JobStatus.created,
            createdAt=time.time(),
        )
        await self.put(job)
        await self._r.zadd(JOB_INDEX, {job.id: job.createdAt})
        await self._prune_index()
        return job

    async def put(self, job: Job) -> None:
        mapping = {
            "id": job.id,
            "sourceUrl": job.sourceUrl,
            "mediaKind": job.mediaKind.value,
            "qualitySelector": job.qualitySelector,
            "containerExtension": job.containerExtension,
            "title": job.title,
            "sourceProfile": job.sourceProfile.value,
            "status": job.status.value,
            "createdAt": repr(job.createdAt),
            "completedAt": "" if job.completedAt is None else repr(job.completedAt),
            "bytesForwarded": str(job.bytesForwarded or 0),
            "error": job.error or "",
        }
        await self._r.hset(self._key(job.id), mapping=mapping)
        await self._expire(job.id)

    async def get(self, job_id: str) -> Optional[Job]:
        if not job_id:
            return None
        raw = await self._r.hgetall(self._key(job_id))
        if not raw:
            return None
        h = _decode(raw)
        try:
            return Job(
                id=h["id"],
                sourceUrl=h["sourceUrl"],
                mediaKind=MediaKind(h["mediaKind"]),
                qualitySelector=h.get("qualitySelector") or "best",
                containerExtension=h["containerExtension"],
                title=h.get("title", ""),
                sourceProfile=SourceProfile(h.get("sourceProfile") or "generic"),
                status=JobStatus(h["status"]),
                createdAt=float(h["createdAt"]),
                completedAt=float(h["completedAt"]) if h.get("completedAt") else None,
                bytesForwarded=int(h.get("bytesForwarded") or 0),
                error=h.get("error") or None,
            )
        except (KeyError, ValueError):
            logger.error("ledger.decode.error job=%s", job_id)
            return None

    async def list_recent(self, limit: int = 100) -> List[Job]:
        ids = await self._r.zrevrange(JOB_INDEX, 0, max(0, limit) - 1)
        out: List[Job] = []
        for raw_id in ids or []:
            job = await self.get(_text(raw_id))
            if job is not None:
                out.append(job)
        return out

    # ---------------- Mutations ----------------

    async def set_title(self, job_id: str, title: str) -> None:
        await self._r.hset(self._key(job_id), mapping={"title": title})
        await self._expire(job_id)

    async def get_status(self, job_id: str) -> Optional[JobStatus]:
        v = await self._r.hget(self._key(job_id), "status")
        if v is None:
            return None
        if isinstance(v, (bytes, bytearray)):
            v = v.decode("utf-8")
        return JobStatus(v) if v else None

    async def claim(self, job_id: str) -> bool:
        """
        Atomically move `created` -> `acquiring`.
        Exactly one caller wins, also across workers sharing this Redis.
        """
        key = self._key(job_id)
        async with self._r.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                current = await pipe.hget(key, "status")
                if current is None or _text(current) != JobStatus.created.value:
                    await pipe.unwatch()
                    return False
                pipe.multi()
                pipe.hset(key, mapping={"status": JobStatus.acquiring.value})
                if self._ttl > 0:
                    pipe.expire(key, self._ttl)
                await pipe.execute()
            except WatchError:
                logger.info("ledger.claim.lost job=%s", job_id)
                return False
        return True

    async def advance(self, job_id: str, status: JobStatus) -> bool:
        """Move a live job forward. Refuses backwards moves and terminal targets."""
        if status.terminal:
            raise ValueError("use finalize() for terminal statuses")
        current = await self.get_status(job_id)
        if current is None or current.terminal:
            return False
        if STATUS_ORDER[status] <= STATUS_ORDER[current]:
            return False
        await self._r.hset(self._key(job_id), mapping={"status": status.value})
        await self._expire(job_id)
        return True

    async def finalize(
        self,
        job_id: str,
        status: JobStatus,
        *,
        bytes_forwarded: int = 0,
        error: Optional[str] = None,
    ) -> bool:
        """Terminal transition; completedAt is written together with the status."""
        if not status.terminal:
            raise ValueError("finalize() needs completed or failed")
        current = await self.get_status(job_id)
        if current is None or current.terminal:
            return False
        await self._r.hset(
            self._key(job_id),
            mapping={
                "status": status.value,
                "completedAt": repr(time.time()),
                "bytesForwarded": str(bytes_forwarded),
                "error": error or "",
            },
        )
        await self._expire(job_id)
        return True
