# main.py
import logging
import routes
from contextlib import asynccontextmanager
from typing import Optional
from util.enums import Color, Environment
from fastapi import FastAPI, Request
from starlette.middleware.cors import CORSMiddleware
from config.settings import settings
from fastapi.responses import JSONResponse
from model.api import HealthResponse
from service.container import ServiceContainer, build_container
from util.constants import InternalURIs
from util.errors import WorkerError
from util.logger import init_logger

logger = logging.getLogger(__name__)


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(fastApi: FastAPI):
        init_logger()
        print(f"{Color.GREEN}Initializing...{Color.RESET}")
        services = container or build_container(settings)
        fastApi.state.container = services
        await services.start()
        print(f"{Color.BLUE}Server Started{Color.RESET}")

        try:
            yield
        finally:
            try:
                await services.stop()
            except Exception as e:
                print("Error stopping services:", e)

            print(f"{Color.RED}Server Shutdown{Color.RESET}")

    app: FastAPI = FastAPI(lifespan=lifespan, title="Recognition Orchestrator")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.ALLOWED_ORIGIN],
        allow_credentials=True,  # Allow cookies and other credentials
        allow_methods=["GET", "POST"],  # Allowed HTTP Methods
        allow_headers=["Authorization", "Content-Type", "Accept"],  # Allowed HTTP Headers
    )

    @app.get(InternalURIs.HEALTHZ, response_model=HealthResponse)
    async def healthz(request: Request) -> HealthResponse:
        services: ServiceContainer = request.app.state.container
        return HealthResponse(
            ok=True,
            activeJobs=services.jobs.count_active(),
            activeBatches=services.batches.count_processing(),
            connections=services.broadcaster.connection_count(),
        )

    @app.exception_handler(WorkerError)
    async def worker_error_handler(request: Request, exc: WorkerError):
        logger.error("worker.error path=%s err=%s", request.url.path, exc)
        return JSONResponse(
            status_code=502,
            content={
                "ok": False,
                "error": "worker_unavailable",
                "message": str(exc),
            },
        )

    routes.register_routes(app)
    return app


app: FastAPI = create_app()

if __name__ == "__main__":
    import uvicorn

    reload = settings.APP_ENV == Environment.DEV
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=reload)
