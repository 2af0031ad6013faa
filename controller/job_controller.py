# controller/job_controller.py
from typing import List
from fastapi import APIRouter, Depends, Query, status
from config.settings import settings
from model.api import CreateJobRequest, CreateJobResponse
from model.job import Job
from service.job_service import JobService
from util.constants import InternalURIs
from controller.controller_dependencies import get_job_service, rate_limit_dependencies

job_router = APIRouter()


@job_router.post(
    InternalURIs.JOBS,
    response_model=CreateJobResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=rate_limit_dependencies(),
)
async def create_job(
    payload: CreateJobRequest,
    service: JobService = Depends(get_job_service),
) -> CreateJobResponse:
    return await service.create_job(payload)


@job_router.get(InternalURIs.JOBS, response_model=List[Job])
async def list_jobs(
    limit: int = Query(default=settings.LEDGER_LIST_LIMIT, ge=1, le=1000),
    service: JobService = Depends(get_job_service),
) -> List[Job]:
    return await service.list_jobs(limit)


@job_router.get(InternalURIs.JOB, response_model=Job)
async def get_job(
    job_id: str,
    service: JobService = Depends(get_job_service),
) -> Job:
    return await service.get_job(job_id)
