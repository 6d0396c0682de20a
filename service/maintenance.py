# service/maintenance.py
import logging
from datetime import datetime
from typing import Optional
from core.broadcaster import Broadcaster
from repository.batch_repository import BatchRepository
from repository.job_repository import JobRepository
from service.batch_service import BatchService
from service.reconciler import Reconciler
from util.functions import utcnow

logger = logging.getLogger(__name__)


class MaintenanceService:
    """Evicts finished jobs and batches once their cleanup grace has passed."""

    def __init__(
        self,
        jobs: JobRepository,
        batches: BatchRepository,
        broadcaster: Broadcaster,
        reconciler: Reconciler,
        batch_service: BatchService,
    ) -> None:
        self._jobs = jobs
        self._batches = batches
        self._broadcaster = broadcaster
        self._reconciler = reconciler
        self._batch_service = batch_service

    async def run(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        evicted = 0
        for job_id in self._jobs.due_for_cleanup(now):
            self._broadcaster.close(job_id)
            self._reconciler.forget(job_id)
            if await self._jobs.remove(job_id):
                evicted += 1
        for batch_id in self._batches.due_for_cleanup(now):
            self._broadcaster.close(batch_id)
            self._batch_service.forget(batch_id)
            if await self._batches.remove(batch_id):
                evicted += 1

        logger.info(
            "maintenance.run evicted=%d jobs=%d active=%d batches=%d connections=%d watches=%d",
            evicted,
            self._jobs.count(),
            self._jobs.count_active(),
            self._batches.count_processing(),
            self._broadcaster.connection_count(),
            self._reconciler.watch_count(),
        )
        return evicted
