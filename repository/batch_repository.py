# repository/batch_repository.py
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from model.batch import BatchRecord, BatchStatus
from util.functions import utcnow

logger = logging.getLogger(__name__)


class BatchRepository:
    """
    Aggregate counters for batches. Counts only move forward and
    completed + failed never exceeds total.
    """

    def __init__(self) -> None:
        self._batches: Dict[str, BatchRecord] = {}
        self._lock = asyncio.Lock()
        self._cleanup_at: Dict[str, datetime] = {}

    async def create(self, batch: BatchRecord) -> BatchRecord:
        async with self._lock:
            if batch.batch_id in self._batches:
                raise ValueError(f"batch already exists: {batch.batch_id}")
            if batch.total_items == 0:
                batch = batch.model_copy(update={"status": BatchStatus.completed})
            self._batches[batch.batch_id] = batch
        return batch

    async def get(self, batch_id: str) -> Optional[BatchRecord]:
        return self._batches.get(batch_id)

    async def list_processing(self) -> List[BatchRecord]:
        return [
            b for b in list(self._batches.values()) if b.status is BatchStatus.processing
        ]

    async def remove(self, batch_id: str) -> bool:
        async with self._lock:
            self._cleanup_at.pop(batch_id, None)
            return self._batches.pop(batch_id, None) is not None

    def count_processing(self) -> int:
        return sum(1 for b in self._batches.values() if b.status is BatchStatus.processing)

    async def apply_progress(
        self, batch_id: str, *, completed: int, failed: int
    ) -> Optional[BatchRecord]:
        """
        Merge a worker progress report into the batch.
        - Each count is the max of what we had and what was reported.
        - Overflow past total is trimmed from the newly reported side,
          never below the previous values.
        - Status flips to completed exactly when the sum reaches total.
        """
        async with self._lock:
            current = self._batches.get(batch_id)
            if current is None:
                return None
            if current.status is BatchStatus.completed:
                return current

            total = current.total_items
            c = max(current.completed_items, min(max(completed, 0), total))
            f = max(current.failed_items, max(failed, 0))
            if c + f > total:
                f = max(current.failed_items, total - c)
            if c + f > total:
                c = total - f

            status = BatchStatus.completed if c + f == total else BatchStatus.processing
            if (
                c == current.completed_items
                and f == current.failed_items
                and status is current.status
            ):
                return current
            updated = current.model_copy(
                update={
                    "completed_items": c,
                    "failed_items": f,
                    "status": status,
                    "updated_at": utcnow(),
                }
            )
            self._batches[batch_id] = updated

        logger.info(
            "batches.progress batch=%s completed=%d failed=%d total=%d status=%s",
            batch_id,
            c,
            f,
            total,
            status.value,
        )
        return updated

    def schedule_cleanup(self, batch_id: str, delay_seconds: float) -> None:
        if batch_id in self._batches:
            self._cleanup_at[batch_id] = utcnow() + timedelta(seconds=delay_seconds)

    def due_for_cleanup(self, now: Optional[datetime] = None) -> List[str]:
        now = now or utcnow()
        return [bid for bid, at in list(self._cleanup_at.items()) if at <= now]
