# controller/controller_dependencies.py
from typing import List
from fastapi import Depends, Request
from fastapi.params import Depends as DependsParam
from fastapi_limiter.depends import RateLimiter
from config.settings import settings
from core.context import AppContext
from service.job_service import JobService
from util.enums import ErrorMessage
from util.errors import AppError


def get_app_context(request: Request) -> AppContext:
    ctx = getattr(request.app.state, "context", None)
    if ctx is None:
        raise AppError.of(ErrorMessage.INTERNAL_ERROR)
    return ctx


def get_job_service(ctx: AppContext = Depends(get_app_context)) -> JobService:
    return JobService(ctx)


def rate_limit_dependencies() -> List[DependsParam]:
    """Per-client limiter on mutating routes; off when RATE_LIMIT_ENABLED=false."""
    if not settings.RATE_LIMIT_ENABLED:
        return []
    return [
        Depends(
            RateLimiter(
                times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
            )
        )
    ]
