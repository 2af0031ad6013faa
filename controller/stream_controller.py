# controller/stream_controller.py
from fastapi import APIRouter, Depends
from core.sinks import PipelineStreamResponse
from service.job_service import JobService
from util.constants import InternalURIs
from controller.controller_dependencies import get_job_service, rate_limit_dependencies

stream_router = APIRouter(dependencies=rate_limit_dependencies())


@stream_router.get(InternalURIs.STREAM)
async def stream_job(
    job_id: str,
    service: JobService = Depends(get_job_service),
) -> PipelineStreamResponse:
    stream = await service.open_stream(job_id)
    return PipelineStreamResponse(
        stream.run, media_type=stream.media_type, headers=stream.headers
    )
