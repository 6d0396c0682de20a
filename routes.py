# routes.py
from fastapi import FastAPI
from controller.batch_controller import batch_router
from controller.callback_controller import callback_router
from controller.job_controller import job_router


def register_routes(app: FastAPI) -> None:
    """Register & Access control controllers here."""
    app.include_router(job_router)
    app.include_router(callback_router)
    app.include_router(batch_router)
