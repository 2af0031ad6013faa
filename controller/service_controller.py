# controller/service_controller.py
from fastapi import APIRouter
from core.arguments import format_catalogue
from model.api import FormatInfo, ServiceInfo
from util.constants import SERVICE_NAME, SERVICE_VERSION, InternalURIs

service_router = APIRouter()


@service_router.get(InternalURIs.ROOT, response_model=ServiceInfo)
async def service_info() -> ServiceInfo:
    return ServiceInfo(
        status="ok", message=f"{SERVICE_NAME} is running", version=SERVICE_VERSION
    )


@service_router.get(InternalURIs.HEALTH)
async def healthz():
    return {"ok": True}


@service_router.get(InternalURIs.FORMATS, response_model=FormatInfo)
async def list_formats() -> FormatInfo:
    """Qualities and containers accepted by POST /jobs."""
    return FormatInfo(**format_catalogue())
