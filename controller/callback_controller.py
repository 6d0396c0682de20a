# controller/callback_controller.py
import logging
from typing import Any
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from model.api import CallbackAck, CallbackRequest
from service.callback_service import CallbackService
from util.constants import InternalURIs
from controller.controller_dependencies import get_callback_service

logger = logging.getLogger(__name__)

callback_router = APIRouter(tags=["callbacks"])


async def _read_payload(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        # empty or non-JSON body; validation below reports it
        return None


@callback_router.post(InternalURIs.JOB_CALLBACK, response_model=CallbackAck)
async def receive_callback(
    job_id: str,
    request: Request,
    service: CallbackService = Depends(get_callback_service),
) -> CallbackAck:
    """The worker always gets a 200; problems are ours to log, not its to retry."""
    payload = await _read_payload(request)
    try:
        body = CallbackRequest.model_validate(payload)
    except ValidationError as e:
        logger.warning("callback.malformed job=%s errors=%d", job_id, e.error_count())
        return CallbackAck(ok=False)
    await service.handle(
        job_id,
        body.status,
        answers=body.answers,
        metadata=body.metadata,
        error_message=body.errorMessage,
    )
    return CallbackAck()
