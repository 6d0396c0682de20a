# controller/batch_controller.py
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import StreamingResponse
from model.api import BatchSubmitResponse
from service.batch_service import BatchService
from util.constants import InternalURIs
from controller.controller_dependencies import enforce_max_batch_size, get_batch_service
from controller.job_controller import SSE_HEADERS

batch_router = APIRouter(tags=["batches"])


@batch_router.post(
    InternalURIs.BATCHES,
    response_model=BatchSubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(enforce_max_batch_size)],
)
async def submit_batch(
    files: list[UploadFile] = File(...),
    priority: int = Form(1),
    useCache: bool = Form(True),
    service: BatchService = Depends(get_batch_service),
) -> BatchSubmitResponse:
    parts = [
        (f.filename or f"upload-{i}", await f.read(), f.content_type)
        for i, f in enumerate(files)
    ]
    return await service.submit_batch(parts, priority=priority, use_cache=useCache)


@batch_router.get(InternalURIs.BATCH_PROGRESS)
async def stream_batch_progress(
    batch_id: str, service: BatchService = Depends(get_batch_service)
):
    subscriber = await service.open_stream(batch_id)
    return StreamingResponse(
        subscriber.events(), media_type="text/event-stream", headers=SSE_HEADERS
    )
