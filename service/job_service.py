# service/job_service.py
import asyncio
import logging
from typing import Dict, List, Optional
from core.arguments import (
    DEFAULT_CONTAINER,
    build_acquisition_args,
    build_transcode_args,
    codec_row,
    detect_source_profile,
    normalize_quality,
)
from core.context import AppContext
from core.forwarder import ForwardResult, ResponseSink, forward
from core.pipeline import ProcessPipeline
from core.titles import resolve_title
from model.api import CreateJobRequest, CreateJobResponse
from model.job import Job
from util.constants import InternalURIs
from util.enums import ErrorMessage, JobStatus, LateFailurePolicy, PipelineState
from util.errors import AppError, PipelineError, SpawnError
from util.functions import content_disposition
from util.timing import timed

logger = logging.getLogger(__name__)

# Pipeline milestones that the ledger mirrors.
_LEDGER_STATUS: Dict[PipelineState, JobStatus] = {
    PipelineState.ACQUISITION_STARTED: JobStatus.acquiring,
    PipelineState.STREAMING: JobStatus.streaming,
}


class JobStream:
    """A started pipeline bound to one job, waiting for a response sink."""

    def __init__(self, service: "JobService", job: Job, pipeline: ProcessPipeline) -> None:
        self._service = service
        self.job = job
        self.pipeline = pipeline
        row = codec_row(job.mediaKind, job.containerExtension)
        self.media_type = row.content_type
        self.headers = {
            "Content-Disposition": content_disposition(job.title, row.container),
            "Cache-Control": "no-cache",
        }

    async def run(self, sink: ResponseSink) -> ForwardResult:
        """
        Forward bytes, then tear down and finalize the ledger row.
        Client disconnects come back as a ForwardResult, not an exception.
        """
        ctx = self._service.ctx
        result = ForwardResult()
        try:
            with timed(logger, "stream.forward", job=self.job.id) as fields:
                result = await forward(
                    self.pipeline,
                    sink,
                    ctx.buffers,
                    flush_every=ctx.options.flush_every,
                    deadline=ctx.options.deadline,
                    label=self.job.id,
                )
                fields["bytes"] = result.bytes_forwarded
                fields["client_gone"] = result.client_gone
        except asyncio.CancelledError:
            result = ForwardResult(error=PipelineError("stream cancelled"))
            raise
        except Exception as e:
            logger.error("stream.forward.error job=%s err=%s", self.job.id, e)
            result = ForwardResult(bytes_forwarded=result.bytes_forwarded, error=e)
        finally:
            await self.pipeline.close()
            self._service.release(self.job.id)
            await self._service.finalize(self.job.id, self.pipeline, result)
        return result


class JobService:
    def __init__(self, ctx: AppContext) -> None:
        self.ctx = ctx
        self._jobs = ctx.jobs

    # ---------------- Create / read ----------------

    async def create_job(self, req: CreateJobRequest) -> CreateJobResponse:
        """
        Validate, write the `created` row, then resolve the display title.
        Nothing is written when the URL is blank.
        """
        url = (req.sourceUrl or "").strip()
        if not url:
            raise AppError.of(ErrorMessage.URL_REQUIRED)

        kind = req.mediaKind
        profile = detect_source_profile(url)
        quality = normalize_quality(kind, req.qualitySelector)
        container = codec_row(kind, req.containerExtension or DEFAULT_CONTAINER[kind]).container

        job = await self._jobs.create(
            source_url=url,
            media_kind=kind,
            quality_selector=quality,
            container_extension=container,
            source_profile=profile,
        )
        title = await resolve_title(
            url, profile, self.ctx.tools.acquisition, self.ctx.options.title_timeout
        )
        await self._jobs.set_title(job.id, title)
        logger.info(
            "job.created job=%s kind=%s quality=%s ext=%s profile=%s",
            job.id,
            kind.value,
            quality,
            container,
            profile.value,
        )
        return CreateJobResponse(
            id=job.id,
            title=title,
            sourceProfile=profile,
            streamUrl=InternalURIs.stream_for(job.id),
        )

    async def get_job(self, job_id: str) -> Job:
        job = await self._jobs.get(job_id)
        if job is None:
            raise AppError.of(ErrorMessage.JOB_NOT_FOUND)
        return job

    async def list_jobs(self, limit: int) -> List[Job]:
        jobs = await self._jobs.list_recent(limit)
        logger.info("job.list count=%d", len(jobs))
        return jobs

    # ---------------- Streaming ----------------

    def release(self, job_id: str) -> None:
        self.ctx.live_jobs.discard(job_id)

    def _pipeline_for(self, job: Job) -> ProcessPipeline:
        tools = self.ctx.tools
        acquisition = [
            *tools.acquisition,
            *build_acquisition_args(
                job.sourceUrl, job.mediaKind, job.qualitySelector, job.sourceProfile
            ),
        ]
        transcode = [
            *tools.transcode,
            *build_transcode_args(
                job.mediaKind, job.containerExtension, job.qualitySelector
            ),
        ]

        async def _mirror(state: PipelineState) -> None:
            status = _LEDGER_STATUS.get(state)
            if status is not None:
                await self._jobs.advance(job.id, status)

        return ProcessPipeline(
            acquisition,
            transcode,
            label=job.id,
            reap_timeout=self.ctx.options.reap_timeout,
            on_state=_mirror,
        )

    async def open_stream(self, job_id: str) -> JobStream:
        """
        Start the pipeline before any response header is committed, so spawn
        failures can still surface as a 500.
        """
        job = await self.get_job(job_id)
        if job_id in self.ctx.live_jobs:
            raise AppError.of(ErrorMessage.JOB_BUSY)
        if job.status != JobStatus.created:
            raise AppError.of(ErrorMessage.JOB_ALREADY_STREAMED)
        # Ledger-side compare-and-set; the live set only covers this process.
        if not await self._jobs.claim(job_id):
            raise AppError.of(ErrorMessage.JOB_BUSY)

        self.ctx.live_jobs.add(job_id)
        pipeline = self._pipeline_for(job)
        try:
            await pipeline.start()
        except SpawnError as e:
            self.release(job_id)
            await self._finalize_quietly(job_id, JobStatus.failed, 0, str(e))
            raise AppError.of(ErrorMessage.SPAWN_FAILED) from e
        except Exception as e:
            logger.error("stream.start.error job=%s err=%s", job_id, e)
            await pipeline.close()
            self.release(job_id)
            await self._finalize_quietly(job_id, JobStatus.failed, 0, str(e))
            raise AppError.of(ErrorMessage.INTERNAL_ERROR) from e

        logger.info("stream.start job=%s title=%s", job_id, job.title)
        return JobStream(self, job, pipeline)

    # ---------------- Finalization ----------------

    def _terminal_status(
        self, pipeline: ProcessPipeline, result: ForwardResult
    ) -> tuple[JobStatus, Optional[str]]:
        failure = pipeline.upstream_failure()
        if failure is not None:
            logger.warning("pipeline.upstream.failed job=%s %s", pipeline.label, failure)

        if result.fatal:
            return JobStatus.failed, str(result.error) or type(result.error).__name__
        if failure is None:
            return JobStatus.completed, None
        if result.bytes_forwarded == 0 and not result.client_gone:
            return JobStatus.failed, str(failure)
        if self.ctx.options.late_failure_policy == LateFailurePolicy.FAIL:
            return JobStatus.failed, str(failure)
        # Headers already went out; the partial body stands.
        return JobStatus.completed, f"partial: {failure}"

    async def finalize(
        self, job_id: str, pipeline: ProcessPipeline, result: ForwardResult
    ) -> JobStatus:
        status, error = self._terminal_status(pipeline, result)
        await self._finalize_quietly(job_id, status, result.bytes_forwarded, error)
        logger.info(
            "stream.done job=%s status=%s bytes=%d client_gone=%s",
            job_id,
            status.value,
            result.bytes_forwarded,
            result.client_gone,
        )
        return status

    async def _finalize_quietly(
        self, job_id: str, status: JobStatus, bytes_forwarded: int, error: Optional[str]
    ) -> None:
        try:
            await self._jobs.finalize(
                job_id, status, bytes_forwarded=bytes_forwarded, error=error
            )
        except Exception as e:
            logger.error("ledger.finalize.error job=%s status=%s err=%s", job_id, status.value, e)
