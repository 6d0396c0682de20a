# service/lifecycle.py
import logging
from config.settings import Settings, settings as default_settings
from core.broadcaster import Broadcaster
from model.api import StreamEvent
from model.job import JobResult, JobStatus
from repository.job_repository import JobRepository, TransitionResult

logger = logging.getLogger(__name__)


class JobLifecycle:
    """
    Transition + notify, in that order, for every caller that moves a job.
    Events are only published for transitions that actually applied, so a
    losing racer never emits a second terminal event.
    """

    def __init__(
        self,
        jobs: JobRepository,
        broadcaster: Broadcaster,
        config: Settings = default_settings,
    ) -> None:
        self._jobs = jobs
        self._broadcaster = broadcaster
        self._cleanup_grace = config.CLEANUP_GRACE_SECONDS

    async def mark_processing(self, job_id: str, external_job_id: str) -> TransitionResult:
        res = await self._jobs.transition(
            job_id, JobStatus.processing, external_job_id=external_job_id
        )
        if res.applied:
            self.notify(job_id, "Recognition is running on the worker")
        return res

    async def complete(self, job_id: str, result: JobResult, *, source: str) -> TransitionResult:
        res = await self._jobs.transition(job_id, JobStatus.completed, result=result)
        self._finish(job_id, res, source)
        return res

    async def fail(self, job_id: str, message: str, *, source: str) -> TransitionResult:
        res = await self._jobs.transition(job_id, JobStatus.failed, error_message=message)
        self._finish(job_id, res, source)
        return res

    def notify(
        self, job_id: str, message: str, status: JobStatus = JobStatus.processing
    ) -> bool:
        return self._broadcaster.publish(
            job_id, StreamEvent.status_change(job_id, status.value, message)
        )

    def _finish(self, job_id: str, res: TransitionResult, source: str) -> None:
        if not res.applied or res.job is None:
            logger.info(
                "job.finish.skipped job=%s outcome=%s source=%s",
                job_id,
                res.outcome.value,
                source,
            )
            return
        self._broadcaster.publish(job_id, StreamEvent.for_terminal_job(res.job))
        self._jobs.schedule_cleanup(job_id, self._cleanup_grace)
        logger.info(
            "job.finish job=%s status=%s source=%s", job_id, res.job.status.value, source
        )
