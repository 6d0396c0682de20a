"""
Pytest configuration and shared fixtures for the recognition orchestrator tests.
"""
import asyncio
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union

import pytest

from config.settings import Settings
from core.broadcaster import Broadcaster
from core.worker_client import WorkerBatchProgress, WorkerJobStatus
from model.api import StreamEvent
from model.job import Answer, JobRecord, JobResult, JobStatus, ResultMetadata, SourceMeta
from repository.batch_repository import BatchRepository
from repository.job_repository import JobRepository
from service.container import build_container
from service.lifecycle import JobLifecycle
from service.reconciler import Reconciler
from util.errors import SubmissionError
from util.functions import utcnow

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 2048


# ============================================================================
# Fakes
# ============================================================================

class FakeWorkerClient:
    """In-memory stand-in for WorkerClient; scripted per external id."""

    def __init__(self):
        self.submissions: List[Dict[str, Any]] = []
        self.batch_submissions: List[Dict[str, Any]] = []
        self.statuses: Dict[str, Union[WorkerJobStatus, Exception]] = {}
        self.results: Dict[str, Union[JobResult, Exception]] = {}
        self.progress: Dict[str, Union[WorkerBatchProgress, Exception]] = {}
        self.submit_error: Optional[Exception] = None
        self.status_delay: Dict[str, float] = {}
        self.status_calls: List[str] = []
        self.result_calls: List[str] = []
        self.closed = False
        self._seq = 0

    async def submit(self, *, data, filename, content_type, callback_url, priority, use_cache):
        if self.submit_error is not None:
            raise self.submit_error
        self._seq += 1
        self.submissions.append(
            {
                "filename": filename,
                "size": len(data),
                "content_type": content_type,
                "callback_url": callback_url,
                "priority": priority,
                "use_cache": use_cache,
            }
        )
        return f"ext-{self._seq}"

    async def submit_batch(self, *, files, priority, use_cache):
        if self.submit_error is not None:
            raise self.submit_error
        self._seq += 1
        self.batch_submissions.append(
            {"files": list(files), "priority": priority, "use_cache": use_cache}
        )
        return f"batch-ext-{self._seq}"

    async def get_status(self, external_job_id):
        self.status_calls.append(external_job_id)
        delay = self.status_delay.get(external_job_id)
        if delay:
            await asyncio.sleep(delay)
        value = self.statuses.get(external_job_id, WorkerJobStatus(status="processing"))
        if isinstance(value, Exception):
            raise value
        return value

    async def get_result(self, external_job_id):
        self.result_calls.append(external_job_id)
        value = self.results.get(external_job_id, JobResult())
        if isinstance(value, Exception):
            raise value
        return value

    async def get_batch_progress(self, external_batch_id):
        value = self.progress.get(external_batch_id, WorkerBatchProgress(0, 0))
        if isinstance(value, Exception):
            raise value
        return value

    async def aclose(self):
        self.closed = True


class RecordingBroadcaster(Broadcaster):
    """Broadcaster that also remembers every published event."""

    def __init__(self, config):
        super().__init__(config)
        self.published: List[tuple] = []

    def publish(self, subject_id: str, event: StreamEvent) -> bool:
        self.published.append((subject_id, event))
        return super().publish(subject_id, event)

    def events_for(self, subject_id: str, event_type: Optional[str] = None) -> List[StreamEvent]:
        return [
            e
            for sid, e in self.published
            if sid == subject_id and (event_type is None or e.type == event_type)
        ]


# ============================================================================
# Helpers
# ============================================================================

def make_result(count: int = 5) -> JobResult:
    return JobResult(
        answers=tuple(
            Answer(
                question_number=i,
                question_label=str(i),
                extracted_text=f"x = {i}",
                latex_formula=f"x = {i}",
                confidence=0.9,
            )
            for i in range(1, count + 1)
        ),
        metadata=ResultMetadata(total_questions_detected=count, model_version="test"),
    )


async def seed_job(
    jobs: JobRepository,
    job_id: str = "job-1",
    *,
    age_seconds: float = 0,
    external_job_id: Optional[str] = "ext-job-1",
) -> JobRecord:
    """Create a job `age_seconds` old, moved to processing when it has an external id."""
    job = await jobs.create(
        JobRecord(
            job_id=job_id,
            created_at=utcnow() - timedelta(seconds=age_seconds),
            source=SourceMeta(filename="page.jpg", size=2048, content_type="image/jpeg"),
            callback_url=f"http://localhost/cb/{job_id}",
        )
    )
    if external_job_id is not None:
        res = await jobs.transition(
            job_id, JobStatus.processing, external_job_id=external_job_id
        )
        job = res.job
    return job


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def test_settings():
    """Settings with fast retries and tight worker timeouts."""
    return Settings(
        APP_ENV="prod",
        PUBLIC_BASE_URL="http://orchestrator.test",
        WORKER_BASE_URL="http://worker.test",
        WORKER_TIMEOUT_SECONDS=0.2,
        SUBMIT_MAX_ATTEMPTS=3,
        SUBMIT_BACKOFF_SECONDS=0,
        STREAM_HEARTBEAT_SECONDS=0.05,
        STREAM_QUEUE_SIZE=4,
    )


@pytest.fixture
def fake_worker():
    return FakeWorkerClient()


@pytest.fixture
def jobs():
    return JobRepository()


@pytest.fixture
def batches():
    return BatchRepository()


@pytest.fixture
def broadcaster(test_settings):
    return RecordingBroadcaster(test_settings)


@pytest.fixture
def lifecycle(jobs, broadcaster, test_settings):
    return JobLifecycle(jobs, broadcaster, test_settings)


@pytest.fixture
def reconciler(jobs, fake_worker, lifecycle, test_settings):
    return Reconciler(jobs, fake_worker, lifecycle, test_settings)


@pytest.fixture
def container(test_settings, fake_worker):
    return build_container(test_settings, worker=fake_worker)


async def drain(subscriber) -> List[bytes]:
    """Collect every frame of a subscriber that is going to close on its own."""
    return [frame async for frame in subscriber.events()]
