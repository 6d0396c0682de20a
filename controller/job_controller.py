# controller/job_controller.py
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import StreamingResponse
from model.api import (
    JobResultResponse,
    JobStatusResponse,
    JobSubmitResponse,
    WorkerStatusResponse,
)
from service.job_service import JobService
from service.submission_service import SubmissionService
from util.constants import InternalURIs
from controller.controller_dependencies import (
    enforce_max_upload_size,
    get_job_service,
    get_submission_service,
)

job_router = APIRouter(tags=["jobs"])

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


@job_router.post(
    InternalURIs.JOBS,
    response_model=JobSubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(enforce_max_upload_size)],
)
async def submit_job(
    file: UploadFile = File(...),
    callbackUrl: str = Form(""),
    priority: int = Form(5),
    useCache: bool = Form(True),
    service: SubmissionService = Depends(get_submission_service),
) -> JobSubmitResponse:
    data = await file.read()
    return await service.submit(
        data=data,
        filename=file.filename or "upload",
        content_type=file.content_type,
        callback_url=callbackUrl,
        priority=priority,
        use_cache=useCache,
    )


@job_router.get(InternalURIs.JOB, response_model=JobStatusResponse)
async def get_job_status(
    job_id: str, service: JobService = Depends(get_job_service)
) -> JobStatusResponse:
    return await service.get_status(job_id)


@job_router.get(InternalURIs.JOB_RESULT, response_model=JobResultResponse)
async def get_job_result(
    job_id: str, service: JobService = Depends(get_job_service)
) -> JobResultResponse:
    return await service.get_result(job_id)


@job_router.get(InternalURIs.JOB_WORKER_STATUS, response_model=WorkerStatusResponse)
async def get_worker_status(
    job_id: str, service: JobService = Depends(get_job_service)
) -> WorkerStatusResponse:
    return await service.worker_status(job_id)


@job_router.get(InternalURIs.JOB_STREAM)
async def stream_job(job_id: str, service: JobService = Depends(get_job_service)):
    subscriber = await service.open_stream(job_id)
    return StreamingResponse(
        subscriber.events(), media_type="text/event-stream", headers=SSE_HEADERS
    )
