# repository/job_repository.py
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional
from model.job import JobRecord, JobResult, JobStatus
from util.errors import DuplicateJobError
from util.functions import utcnow

logger = logging.getLogger(__name__)


class TransitionOutcome(str, Enum):
    applied = "applied"
    already_terminal = "already_terminal"
    not_found = "not_found"


@dataclass(frozen=True)
class TransitionResult:
    outcome: TransitionOutcome
    job: Optional[JobRecord]

    @property
    def applied(self) -> bool:
        return self.outcome is TransitionOutcome.applied


class JobRepository:
    """
    In-process registry of job state, the single source of truth for status.

    Flow:
    - create() on submit; transition() is the only way a record changes.
    - A per-job lock serialises transitions of one id, so the first terminal
      transition wins and later ones are reported as already_terminal.
    - Terminal jobs are evicted by the maintenance sweep once their cleanup
      deadline passes.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, JobRecord] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._cleanup_at: Dict[str, datetime] = {}

    def _lock(self, job_id: str) -> asyncio.Lock:
        lock = self._locks.get(job_id)
        if lock is None:
            lock = self._locks[job_id] = asyncio.Lock()
        return lock

    # ---------------- Core CRUD ----------------

    async def create(self, job: JobRecord) -> JobRecord:
        async with self._lock(job.job_id):
            if job.job_id in self._jobs:
                raise DuplicateJobError(job.job_id)
            job = job.model_copy(
                update={"status": JobStatus.submitted, "result": None, "error_message": None}
            )
            self._jobs[job.job_id] = job
        logger.debug("jobs.create job=%s", job.job_id)
        return job

    async def get(self, job_id: str) -> Optional[JobRecord]:
        if not job_id:
            return None
        return self._jobs.get(job_id)

    async def list_active(self) -> List[JobRecord]:
        return [j for j in list(self._jobs.values()) if not j.is_terminal]

    async def remove(self, job_id: str) -> bool:
        async with self._lock(job_id):
            removed = self._jobs.pop(job_id, None) is not None
            self._cleanup_at.pop(job_id, None)
        self._locks.pop(job_id, None)
        if removed:
            logger.debug("jobs.remove job=%s", job_id)
        return removed

    def count(self) -> int:
        return len(self._jobs)

    def count_active(self) -> int:
        return sum(1 for j in self._jobs.values() if not j.is_terminal)

    # ---------------- State machine ----------------

    async def transition(
        self,
        job_id: str,
        new_status: JobStatus,
        *,
        result: Optional[JobResult] = None,
        error_message: Optional[str] = None,
        external_job_id: Optional[str] = None,
    ) -> TransitionResult:
        """
        Atomically move a job to `new_status`.
        - Terminal records are never touched (already_terminal, current snapshot).
        - `result` is only kept on completed, `error_message` only on failed.
        - `external_job_id` can be set once; a different value is rejected.
        """
        async with self._lock(job_id):
            current = self._jobs.get(job_id)
            if current is None:
                return TransitionResult(TransitionOutcome.not_found, None)
            if current.is_terminal:
                logger.debug(
                    "jobs.transition.ignored job=%s current=%s requested=%s",
                    job_id,
                    current.status.value,
                    new_status.value,
                )
                return TransitionResult(TransitionOutcome.already_terminal, current)

            if (
                external_job_id is not None
                and current.external_job_id is not None
                and external_job_id != current.external_job_id
            ):
                raise ValueError(
                    f"external job id already set for {job_id}: {current.external_job_id}"
                )

            now = utcnow()
            update = {"status": new_status, "updated_at": now}
            if external_job_id is not None:
                update["external_job_id"] = external_job_id
            if new_status is JobStatus.completed:
                update["result"] = result if result is not None else JobResult()
                update["completed_at"] = now
            elif new_status is JobStatus.failed:
                update["error_message"] = error_message or "Job failed"
                update["completed_at"] = now

            updated = current.model_copy(update=update)
            self._jobs[job_id] = updated

        logger.info(
            "jobs.transition job=%s from=%s to=%s",
            job_id,
            current.status.value,
            new_status.value,
        )
        return TransitionResult(TransitionOutcome.applied, updated)

    # ---------------- Cleanup bookkeeping ----------------

    def schedule_cleanup(self, job_id: str, delay_seconds: float) -> None:
        if job_id in self._jobs:
            self._cleanup_at[job_id] = utcnow() + timedelta(seconds=delay_seconds)

    def due_for_cleanup(self, now: Optional[datetime] = None) -> List[str]:
        now = now or utcnow()
        return [jid for jid, at in list(self._cleanup_at.items()) if at <= now]
