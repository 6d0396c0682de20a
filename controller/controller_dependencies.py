# controller/controller_dependencies.py
from fastapi import HTTPException, Request
from service.batch_service import BatchService
from service.callback_service import CallbackService
from service.container import ServiceContainer
from service.job_service import JobService
from service.submission_service import SubmissionService

# multipart boundaries and form fields on top of the file bytes
MULTIPART_SLACK_BYTES = 64 * 1024


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_submission_service(request: Request) -> SubmissionService:
    return get_container(request).submissions


def get_job_service(request: Request) -> JobService:
    return get_container(request).job_service


def get_callback_service(request: Request) -> CallbackService:
    return get_container(request).callbacks


def get_batch_service(request: Request) -> BatchService:
    return get_container(request).batch_service


def _reject_oversized(request: Request, max_bytes: int, max_mb: int) -> None:
    # Fast pre-check via Content-Length if present
    cl = request.headers.get("content-length")
    if cl and cl.isdigit() and int(cl) > max_bytes + MULTIPART_SLACK_BYTES:
        # JSON envelope for 413
        raise HTTPException(
            status_code=413,
            detail={
                "ok": False,
                "error": "file_too_large",
                "maxMb": max_mb,
            },
        )


async def enforce_max_upload_size(request: Request) -> None:
    config = get_container(request).config
    _reject_oversized(request, config.max_file_bytes, config.MAX_FILE_MB)


async def enforce_max_batch_size(request: Request) -> None:
    config = get_container(request).config
    _reject_oversized(
        request, config.max_file_bytes * config.BATCH_MAX_FILES, config.MAX_FILE_MB
    )
