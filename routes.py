# routes.py
from fastapi import FastAPI
from controller.job_controller import job_router
from controller.service_controller import service_router
from controller.stream_controller import stream_router


def register_routes(app: FastAPI) -> None:
    """Register & Access control controllers here."""
    app.include_router(service_router)
    app.include_router(job_router)
    app.include_router(stream_router)
