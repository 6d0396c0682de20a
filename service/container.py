# service/container.py
import logging
from dataclasses import dataclass, field
from typing import List, Optional
from config.settings import Settings, settings as default_settings
from core.broadcaster import Broadcaster
from core.periodic import PeriodicTask
from core.worker_client import WorkerClient
from repository.batch_repository import BatchRepository
from repository.job_repository import JobRepository
from service.batch_service import BatchService
from service.callback_service import CallbackService
from service.job_service import JobService
from service.lifecycle import JobLifecycle
from service.maintenance import MaintenanceService
from service.reconciler import Reconciler
from service.submission_service import SubmissionService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Process-wide singletons shared by the controllers and background loops."""

    config: Settings
    worker: WorkerClient
    jobs: JobRepository
    batches: BatchRepository
    broadcaster: Broadcaster
    lifecycle: JobLifecycle
    reconciler: Reconciler
    submissions: SubmissionService
    callbacks: CallbackService
    job_service: JobService
    batch_service: BatchService
    maintenance: MaintenanceService
    tasks: List[PeriodicTask] = field(default_factory=list)

    async def start(self) -> None:
        for task in self.tasks:
            await task.start()
        logger.info("container.start tasks=%d", len(self.tasks))

    async def stop(self) -> None:
        for task in self.tasks:
            await task.stop()
        self.broadcaster.close_all()
        await self.worker.aclose()
        logger.info("container.stop")


def build_container(
    config: Settings = default_settings, worker: Optional[WorkerClient] = None
) -> ServiceContainer:
    worker = worker or WorkerClient(config)
    jobs = JobRepository()
    batches = BatchRepository()
    broadcaster = Broadcaster(config)
    lifecycle = JobLifecycle(jobs, broadcaster, config)
    reconciler = Reconciler(jobs, worker, lifecycle, config)
    batch_service = BatchService(batches, worker, broadcaster, config)
    maintenance = MaintenanceService(jobs, batches, broadcaster, reconciler, batch_service)

    container = ServiceContainer(
        config=config,
        worker=worker,
        jobs=jobs,
        batches=batches,
        broadcaster=broadcaster,
        lifecycle=lifecycle,
        reconciler=reconciler,
        submissions=SubmissionService(jobs, worker, lifecycle, reconciler, config),
        callbacks=CallbackService(jobs, lifecycle),
        job_service=JobService(jobs, worker, broadcaster),
        batch_service=batch_service,
        maintenance=maintenance,
    )
    container.tasks = [
        PeriodicTask("reconcile", config.RECONCILE_INTERVAL_SECONDS, reconciler.sweep),
        PeriodicTask("batch-poll", config.BATCH_POLL_INTERVAL_SECONDS, batch_service.poll),
        PeriodicTask("maintenance", config.MAINTENANCE_INTERVAL_SECONDS, maintenance.run),
    ]
    return container
