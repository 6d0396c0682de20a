# service/callback_service.py
import logging
from typing import Any
from model.api import WorkerAnswer, parse_result
from repository.job_repository import JobRepository, TransitionOutcome
from service.lifecycle import JobLifecycle
from util.functions import clip_text

logger = logging.getLogger(__name__)

DEFAULT_WORKER_ERROR = "Unknown worker error"


class CallbackService:
    """
    Applies the worker's push notification. State update + notify only;
    no outbound calls, so it cannot stall when the worker is slow.
    """

    def __init__(self, jobs: JobRepository, lifecycle: JobLifecycle) -> None:
        self._jobs = jobs
        self._lifecycle = lifecycle

    async def handle(
        self,
        job_id: str,
        worker_status: str,
        answers: list[WorkerAnswer] | None = None,
        metadata: Any = None,
        error_message: str | None = None,
    ) -> bool:
        """Returns True when the callback moved the job to a terminal state."""
        if await self._jobs.get(job_id) is None:
            logger.warning("callback.unknown job=%s status=%s", job_id, worker_status)
            return False

        status = (worker_status or "").strip().lower()
        logger.info(
            "callback.received job=%s status=%s answers=%d",
            job_id,
            status,
            len(answers or []),
        )
        if status == "completed":
            res = await self._lifecycle.complete(
                job_id, parse_result(answers, metadata), source="callback"
            )
        else:
            message = clip_text(error_message) if error_message else DEFAULT_WORKER_ERROR
            res = await self._lifecycle.fail(job_id, message, source="callback")

        if res.outcome is TransitionOutcome.not_found:
            logger.warning("callback.evicted job=%s", job_id)
        elif res.outcome is TransitionOutcome.already_terminal:
            logger.info(
                "callback.duplicate job=%s current=%s",
                job_id,
                res.job.status.value if res.job else "?",
            )
        return res.applied
