"""
Tests for batch submission, monotonic progress merging and the progress poll.
"""
import asyncio
from datetime import timedelta

import pytest

from conftest import JPEG_BYTES, drain
from core.worker_client import WorkerBatchProgress
from model.batch import BatchRecord, BatchStatus
from repository.batch_repository import BatchRepository
from service.batch_service import BatchService
from util.errors import AppError, JobValidationError, SubmissionError, TransientQueryError
from util.functions import utcnow


def _files(n, ctype="image/jpeg"):
    return [(f"page-{i}.jpg", JPEG_BYTES, ctype) for i in range(n)]


@pytest.fixture
def batch_service(batches, fake_worker, broadcaster, test_settings):
    return BatchService(batches, fake_worker, broadcaster, test_settings)


class TestApplyProgress:
    """Test BatchRepository.apply_progress"""

    @pytest.mark.asyncio
    async def test_counts_never_decrease_or_overflow(self):
        repo = BatchRepository()
        await repo.create(BatchRecord(batch_id="b", external_batch_id="x", total_items=10))
        reports = [(3, 1), (2, 0), (3, 9), (1, 1), (8, 5), (12, 0), (10, 0)]

        seen = []
        for c, f in reports:
            await repo.apply_progress("b", completed=c, failed=f)
            batch = await repo.get("b")
            seen.append(batch.finished_items)
            assert batch.finished_items <= batch.total_items

        assert seen == sorted(seen)
        final = await repo.get("b")
        assert final.status is BatchStatus.completed
        assert final.finished_items == 10

    @pytest.mark.asyncio
    async def test_unchanged_report_returns_same_record(self):
        repo = BatchRepository()
        created = await repo.create(
            BatchRecord(batch_id="b", external_batch_id="x", total_items=4)
        )

        assert await repo.apply_progress("b", completed=0, failed=0) is created
        assert await repo.apply_progress("missing", completed=1, failed=0) is None

    @pytest.mark.asyncio
    async def test_empty_batch_starts_completed(self):
        repo = BatchRepository()
        batch = await repo.create(BatchRecord(batch_id="b", external_batch_id="x", total_items=0))

        assert batch.status is BatchStatus.completed
        assert batch.progress_percentage == 100.0


class TestSubmitBatch:
    """Test BatchService.submit_batch"""

    @pytest.mark.asyncio
    async def test_submit_creates_batch(self, batch_service, batches, fake_worker):
        ack = await batch_service.submit_batch(_files(5), priority=2)

        assert ack.totalItems == 5
        assert ack.status == "processing"
        assert ack.progressStreamUrl == f"/api/v1/batches/{ack.batchId}/progress"
        batch = await batches.get(ack.batchId)
        assert batch.external_batch_id == "batch-ext-1"
        assert fake_worker.batch_submissions[0]["priority"] == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [0, 21])
    async def test_batch_size_bounds(self, batch_service, count):
        with pytest.raises(JobValidationError) as exc:
            await batch_service.submit_batch(_files(count))
        assert exc.value.status_code == 400

    @pytest.mark.asyncio
    async def test_priority_bounds(self, batch_service):
        with pytest.raises(JobValidationError):
            await batch_service.submit_batch(_files(2), priority=6)

    @pytest.mark.asyncio
    async def test_bad_file_rejects_whole_batch(self, batch_service, fake_worker):
        files = _files(2) + [("notes.txt", b"hello", "text/plain")]

        with pytest.raises(JobValidationError) as exc:
            await batch_service.submit_batch(files)

        assert exc.value.status_code == 415
        assert fake_worker.batch_submissions == []

    @pytest.mark.asyncio
    async def test_worker_refusal_records_nothing(self, batch_service, batches, fake_worker):
        fake_worker.submit_error = SubmissionError("worker rejected submission (400)")

        with pytest.raises(AppError) as exc:
            await batch_service.submit_batch(_files(3))

        assert exc.value.status_code == 502
        assert await batches.list_processing() == []


class TestPoll:
    """Scenario E and poll edge cases"""

    @pytest.mark.asyncio
    async def test_batch_completes_exactly_at_total(
        self, batch_service, batches, fake_worker, broadcaster
    ):
        ack = await batch_service.submit_batch(_files(5))
        ext = (await batches.get(ack.batchId)).external_batch_id
        subscriber = await batch_service.open_stream(ack.batchId)

        statuses = []
        for c, f in [(2, 0), (4, 0), (5, 0)]:
            fake_worker.progress[ext] = WorkerBatchProgress(completed=c, failed=f)
            await batch_service.poll()
            statuses.append((await batches.get(ack.batchId)).status)

        assert statuses == [BatchStatus.processing, BatchStatus.processing, BatchStatus.completed]
        events = broadcaster.events_for(ack.batchId, "progress")
        assert [e.payload["completedItems"] for e in events] == [2, 4, 5]
        assert events[-1].payload["progressPercentage"] == 100.0
        frames = await asyncio.wait_for(drain(subscriber), timeout=2)
        assert len(frames) == 5  # connection, snapshot, three updates
        assert await batch_service.poll() == 0

    @pytest.mark.asyncio
    async def test_unchanged_counts_publish_nothing(
        self, batch_service, batches, fake_worker, broadcaster
    ):
        ack = await batch_service.submit_batch(_files(3))
        ext = (await batches.get(ack.batchId)).external_batch_id
        fake_worker.progress[ext] = WorkerBatchProgress(completed=1, failed=0)

        await batch_service.poll()
        await batch_service.poll()

        assert len(broadcaster.events_for(ack.batchId, "progress")) == 1

    @pytest.mark.asyncio
    async def test_query_failure_is_tolerated(self, batch_service, batches, fake_worker):
        ack = await batch_service.submit_batch(_files(3))
        ext = (await batches.get(ack.batchId)).external_batch_id
        fake_worker.progress[ext] = TransientQueryError("timeout")

        assert await batch_service.poll() == 1
        assert (await batches.get(ack.batchId)).status is BatchStatus.processing

    @pytest.mark.asyncio
    async def test_watch_abandoned_after_ceiling(self, batch_service, batches, fake_worker):
        ack = await batch_service.submit_batch(_files(3))
        later = utcnow() + timedelta(seconds=1801)

        await batch_service.poll(later)

        assert await batch_service.poll(later) == 0
        assert batches.due_for_cleanup(later + timedelta(seconds=1801)) == [ack.batchId]
