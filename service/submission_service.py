# service/submission_service.py
import logging
from datetime import timedelta
from uuid import uuid4
from config.settings import Settings, settings as default_settings
from model.api import JobSubmitResponse
from model.job import JobRecord, SourceMeta
from repository.job_repository import JobRepository
from service.lifecycle import JobLifecycle
from service.reconciler import Reconciler
from service.validation import validate_image, validate_priority
from util.constants import JOB_PRIORITY_RANGE, InternalURIs
from util.errors import SubmissionError

logger = logging.getLogger(__name__)

JOB_ID_PLACEHOLDER = "{jobId}"


class SubmissionService:
    def __init__(
        self,
        jobs: JobRepository,
        worker,
        lifecycle: JobLifecycle,
        reconciler: Reconciler,
        config: Settings = default_settings,
    ) -> None:
        self._jobs = jobs
        self._worker = worker
        self._lifecycle = lifecycle
        self._reconciler = reconciler
        self._max_bytes = config.max_file_bytes
        self._eta = timedelta(seconds=config.ESTIMATED_COMPLETION_SECONDS)
        # worker calls back into this service when the client gives no URL
        self._default_callback = config.PUBLIC_BASE_URL.rstrip("/") + InternalURIs.JOB_CALLBACK.format(
            job_id=JOB_ID_PLACEHOLDER
        )

    async def submit(
        self,
        *,
        data: bytes,
        filename: str,
        content_type: str | None,
        callback_url: str = "",
        priority: int = 5,
        use_cache: bool = True,
    ) -> JobSubmitResponse:
        """
        Validate, record, forward to the worker, start one reconciliation watch.
        - Validation failures raise before any record exists.
        - A worker refusal leaves the job failed (visible via status/stream)
          and the acknowledgment says so; no watch is started.
        """
        validate_priority(priority, JOB_PRIORITY_RANGE)
        validate_image(
            data=data, filename=filename, content_type=content_type, max_bytes=self._max_bytes
        )

        job_id = str(uuid4())
        callback_url = (callback_url or "").strip() or self._default_callback
        callback_url = callback_url.replace(JOB_ID_PLACEHOLDER, job_id)
        job = await self._jobs.create(
            JobRecord(
                job_id=job_id,
                source=SourceMeta(
                    filename=filename, size=len(data), content_type=content_type
                ),
                callback_url=callback_url,
                priority=priority,
                use_cache=use_cache,
            )
        )
        logger.info(
            "job.submit.start job=%s file=%s bytes=%d priority=%d",
            job_id,
            filename,
            len(data),
            priority,
        )

        status = "submitted"
        try:
            external_id = await self._worker.submit(
                data=data,
                filename=filename,
                content_type=content_type or "application/octet-stream",
                callback_url=callback_url,
                priority=priority,
                use_cache=use_cache,
            )
        except SubmissionError as e:
            logger.error("job.submit.error job=%s err=%s", job_id, e)
            await self._lifecycle.fail(
                job_id, f"Worker submission failed: {e}", source="submit"
            )
            status = "failed"
        else:
            res = await self._lifecycle.mark_processing(job_id, external_id)
            if res.applied:
                self._reconciler.watch(job_id)
            logger.info(
                "job.submit.ok job=%s external=%s outcome=%s",
                job_id,
                external_id,
                res.outcome.value,
            )

        return JobSubmitResponse(
            jobId=job_id,
            status=status,
            estimatedCompletionTime=job.created_at + self._eta,
            callbackUrl=callback_url,
            submittedAt=job.created_at,
        )
