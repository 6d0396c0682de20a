# service/job_service.py
import logging
from core.broadcaster import Broadcaster
from core.streaming import Subscriber
from model.api import JobResultResponse, JobStatusResponse, StreamEvent, WorkerStatusResponse
from model.job import JobRecord, JobStatus
from repository.job_repository import JobRepository
from util.enums import ErrorMessage
from util.errors import AppError, TransientQueryError

logger = logging.getLogger(__name__)


class JobService:
    """Read side of a job: status, result, worker status and the event stream."""

    def __init__(self, jobs: JobRepository, worker, broadcaster: Broadcaster) -> None:
        self._jobs = jobs
        self._worker = worker
        self._broadcaster = broadcaster

    async def get_job(self, job_id: str) -> JobRecord:
        job = await self._jobs.get(job_id)
        if job is None:
            raise AppError.of(ErrorMessage.JOB_NOT_FOUND, job_id)
        return job

    async def get_status(self, job_id: str) -> JobStatusResponse:
        return JobStatusResponse.of(await self.get_job(job_id))

    async def get_result(self, job_id: str) -> JobResultResponse:
        job = await self.get_job(job_id)
        if job.status is not JobStatus.completed or job.result is None:
            raise AppError.of(ErrorMessage.RESULT_NOT_READY, f"status is {job.status.value}")
        return JobResultResponse.of(job.result)

    async def worker_status(self, job_id: str) -> WorkerStatusResponse:
        job = await self.get_job(job_id)
        if job.external_job_id is None:
            return WorkerStatusResponse(jobId=job_id, workerStatus="not_submitted")
        try:
            reported = await self._worker.get_status(job.external_job_id)
        except TransientQueryError as e:
            logger.warning("job.worker_status.error job=%s err=%s", job_id, e)
            raise AppError.of(ErrorMessage.WORKER_UNAVAILABLE, str(e)) from e
        return WorkerStatusResponse(
            jobId=job_id, externalJobId=job.external_job_id, workerStatus=reported.status
        )

    async def open_stream(self, job_id: str) -> Subscriber:
        """
        Subscribe to a job's events. The job is re-read after subscribing so
        a terminal transition that lands in between is still delivered.
        """
        await self.get_job(job_id)
        sub = self._broadcaster.subscribe(job_id)
        job = await self._jobs.get(job_id)
        if job is None:
            # evicted between the two reads
            sub.close()
        elif job.is_terminal:
            sub.push(StreamEvent.for_terminal_job(job))
        logger.info("job.stream.open job=%s", job_id)
        return sub
