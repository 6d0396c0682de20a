# service/batch_service.py
import asyncio
import logging
from datetime import datetime
from typing import Optional, Sequence
from uuid import uuid4
from config.settings import Settings, settings as default_settings
from core.broadcaster import Broadcaster
from core.streaming import Subscriber
from core.worker_client import FilePart
from model.api import BatchSubmitResponse, StreamEvent
from model.batch import BatchRecord, BatchStatus
from repository.batch_repository import BatchRepository
from service.validation import validate_batch_size, validate_image, validate_priority
from util.constants import BATCH_PRIORITY_RANGE, InternalURIs
from util.enums import ErrorMessage
from util.errors import AppError, SubmissionError, TransientQueryError
from util.functions import elapsed_seconds, utcnow
from util.timing import timed

logger = logging.getLogger(__name__)


class BatchService:
    """
    Batch submission plus the progress poll.

    Flow:
    - submit_batch validates every file, forwards the whole batch, then
      records it. A worker refusal records nothing.
    - poll() asks the worker for counts of every processing batch, merges
      them monotonically and publishes a progress event when they changed.
    - A completed batch gets its final event (which closes the stream) and a
      cleanup deadline; a batch past the watch ceiling is abandoned.
    """

    def __init__(
        self,
        batches: BatchRepository,
        worker,
        broadcaster: Broadcaster,
        config: Settings = default_settings,
    ) -> None:
        self._batches = batches
        self._worker = worker
        self._broadcaster = broadcaster
        self._max_files = config.BATCH_MAX_FILES
        self._max_bytes = config.max_file_bytes
        self._watch_ceiling = config.BATCH_WATCH_MAX_SECONDS
        self._cleanup_grace = config.CLEANUP_GRACE_SECONDS
        self._abandoned: set[str] = set()

    async def submit_batch(
        self,
        files: Sequence[FilePart],
        priority: int = 1,
        use_cache: bool = True,
    ) -> BatchSubmitResponse:
        validate_batch_size(len(files), self._max_files)
        validate_priority(priority, BATCH_PRIORITY_RANGE)
        for name, data, ctype in files:
            validate_image(data=data, filename=name, content_type=ctype, max_bytes=self._max_bytes)

        try:
            external_id = await self._worker.submit_batch(
                files=files, priority=priority, use_cache=use_cache
            )
        except SubmissionError as e:
            logger.error("batch.submit.error files=%d err=%s", len(files), e)
            raise AppError.of(ErrorMessage.WORKER_UNAVAILABLE, str(e)) from e

        batch = await self._batches.create(
            BatchRecord(
                batch_id=str(uuid4()),
                external_batch_id=external_id,
                total_items=len(files),
                priority=priority,
                use_cache=use_cache,
            )
        )
        logger.info(
            "batch.submit.ok batch=%s external=%s files=%d",
            batch.batch_id,
            external_id,
            len(files),
        )
        return BatchSubmitResponse(
            batchId=batch.batch_id,
            progressStreamUrl=InternalURIs.BATCH_PROGRESS.format(batch_id=batch.batch_id),
            totalItems=batch.total_items,
            status=BatchStatus.processing.value,
        )

    async def get_batch(self, batch_id: str) -> BatchRecord:
        batch = await self._batches.get(batch_id)
        if batch is None:
            raise AppError.of(ErrorMessage.BATCH_NOT_FOUND, batch_id)
        return batch

    async def open_stream(self, batch_id: str) -> Subscriber:
        """Subscribe and seed the stream with the current counts."""
        await self.get_batch(batch_id)
        sub = self._broadcaster.subscribe(batch_id)
        batch = await self._batches.get(batch_id)
        if batch is None:
            sub.close()
        else:
            sub.push(StreamEvent.batch_progress(batch))
        return sub

    # ---------------- Progress poll ----------------

    async def poll(self, now: Optional[datetime] = None) -> int:
        """One progress pass over every processing batch. Returns batches polled."""
        now = now or utcnow()
        watched = [
            b for b in await self._batches.list_processing() if b.batch_id not in self._abandoned
        ]
        if not watched:
            return 0
        with timed(logger, "batch.poll", level=logging.DEBUG, batches=len(watched)):
            await asyncio.gather(*(self._poll_one(b, now) for b in watched))
        return len(watched)

    async def _poll_one(self, batch: BatchRecord, now: datetime) -> None:
        if elapsed_seconds(batch.created_at, now) > self._watch_ceiling:
            self._abandon(batch)
            return
        try:
            progress = await self._worker.get_batch_progress(batch.external_batch_id)
        except TransientQueryError as e:
            logger.warning("batch.poll.error batch=%s err=%s", batch.batch_id, e)
            return

        updated = await self._batches.apply_progress(
            batch.batch_id, completed=progress.completed, failed=progress.failed
        )
        if updated is None or updated is batch:
            return
        self._broadcaster.publish(batch.batch_id, StreamEvent.batch_progress(updated))
        if updated.status is BatchStatus.completed:
            self._batches.schedule_cleanup(batch.batch_id, self._cleanup_grace)
            logger.info(
                "batch.completed batch=%s completed=%d failed=%d",
                batch.batch_id,
                updated.completed_items,
                updated.failed_items,
            )

    def _abandon(self, batch: BatchRecord) -> None:
        self._abandoned.add(batch.batch_id)
        logger.warning(
            "batch.watch.abandoned batch=%s finished=%d/%d",
            batch.batch_id,
            batch.finished_items,
            batch.total_items,
        )
        self._broadcaster.close(batch.batch_id)
        self._batches.schedule_cleanup(batch.batch_id, self._cleanup_grace)

    def forget(self, batch_id: str) -> None:
        self._abandoned.discard(batch_id)
