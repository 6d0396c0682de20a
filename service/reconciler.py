# service/reconciler.py
"""Polling backstop for jobs whose callback has not arrived.

The callback is the fast path; this sweep detects completions the worker
never reported, tolerates transient query trouble, and enforces the
absolute force-timeout so no job stays open forever.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, Optional
from config.settings import Settings, settings as default_settings
from model.job import JobRecord
from repository.job_repository import JobRepository
from service.lifecycle import JobLifecycle
from util.errors import TransientQueryError
from util.functions import clip_text, elapsed_seconds, utcnow
from util.timing import timed

logger = logging.getLogger(__name__)

IN_PROGRESS_STATUSES: FrozenSet[str] = frozenset({"processing", "pending", "queued"})


@dataclass
class _Watch:
    job_id: str
    unknown_since: Optional[datetime] = None
    failing_since: Optional[datetime] = None
    last_notice_minute: int = 0


class Reconciler:
    def __init__(
        self,
        jobs: JobRepository,
        worker,
        lifecycle: JobLifecycle,
        config: Settings = default_settings,
    ) -> None:
        self._jobs = jobs
        self._worker = worker
        self._lifecycle = lifecycle
        self._safety_margin = config.SAFETY_MARGIN_SECONDS
        self._force_timeout = config.FORCE_TIMEOUT_SECONDS
        self._unknown_grace = config.UNKNOWN_STATUS_GRACE_SECONDS
        self._failure_grace = config.QUERY_FAILURE_GRACE_SECONDS
        self._notice_after = config.PROGRESS_EVENT_MIN_ELAPSED_SECONDS
        self._concurrency = max(1, config.RECONCILE_CONCURRENCY)
        # status query + result fetch, each bounded by the client timeout
        self._job_budget = config.WORKER_TIMEOUT_SECONDS * 2 + 1
        self._watches: Dict[str, _Watch] = {}

    # ---------------- Watches ----------------

    def watch(self, job_id: str) -> bool:
        if job_id in self._watches:
            return False
        self._watches[job_id] = _Watch(job_id)
        logger.debug("reconcile.watch.start job=%s", job_id)
        return True

    def is_watching(self, job_id: str) -> bool:
        return job_id in self._watches

    def forget(self, job_id: str) -> None:
        self._watches.pop(job_id, None)

    def watch_count(self) -> int:
        return len(self._watches)

    # ---------------- Sweep ----------------

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """
        One reconciliation pass. Returns the number of jobs examined.
        Per-job checks run concurrently with their own time budget, so one
        hung worker call never holds up the rest of the pass.
        """
        now = now or utcnow()
        active = await self._jobs.list_active()

        active_ids = {j.job_id for j in active}
        for job_id in list(self._watches):
            if job_id not in active_ids:
                # job reached a terminal state or was evicted
                self._watches.pop(job_id, None)
                logger.debug("reconcile.watch.end job=%s", job_id)

        due = [j for j in active if elapsed_seconds(j.created_at, now) > self._safety_margin]
        if not due:
            return 0

        sem = asyncio.Semaphore(self._concurrency)

        async def _one(job: JobRecord) -> None:
            async with sem:
                try:
                    await asyncio.wait_for(self._check(job, now), timeout=self._job_budget)
                except asyncio.TimeoutError:
                    logger.warning("reconcile.job.timeout job=%s", job.job_id)
                    await self._on_query_failure(job, now, "status check timed out")
                except Exception:
                    logger.exception("reconcile.job.error job=%s", job.job_id)

        with timed(logger, "reconcile.sweep", jobs=len(due), active=len(active)):
            await asyncio.gather(*(_one(j) for j in due))
        return len(due)

    async def _check(self, job: JobRecord, now: datetime) -> None:
        elapsed = elapsed_seconds(job.created_at, now)
        if elapsed > self._force_timeout:
            await self._timeout(job, f"Job timed out after {int(elapsed // 60)} minutes")
            return

        if job.external_job_id is None:
            # submission still in flight; only the force-timeout applies
            return

        watch = self._watches.setdefault(job.job_id, _Watch(job.job_id))
        logger.info(
            "reconcile.check job=%s external=%s elapsed=%ds",
            job.job_id,
            job.external_job_id,
            int(elapsed),
        )
        try:
            reported = await self._worker.get_status(job.external_job_id)
        except TransientQueryError as e:
            await self._on_query_failure(job, now, str(e))
            return

        watch.failing_since = None
        status = reported.status
        if status == "completed":
            watch.unknown_since = None
            await self._recover_missed_callback(job, reported.result, now)
        elif status in IN_PROGRESS_STATUSES:
            watch.unknown_since = None
            self._throttled_notice(
                watch, elapsed, "Still processing on the worker (elapsed: {m} min)"
            )
        elif status == "timeout_suspected":
            watch.unknown_since = None
            self._throttled_notice(
                watch, elapsed, "Processing is taking longer than expected (elapsed: {m} min)"
            )
        else:
            # worker-reported "failed" included; escalates only once it persists
            await self._on_unknown_status(job, watch, status, now, reported.error_message)

    # ---------------- Outcomes ----------------

    async def _recover_missed_callback(
        self, job: JobRecord, inline_result, now: datetime
    ) -> None:
        logger.warning("reconcile.missed_callback job=%s", job.job_id)
        result = inline_result
        if result is None:
            try:
                result = await self._worker.get_result(job.external_job_id)
            except TransientQueryError as e:
                await self._on_query_failure(job, now, f"result fetch failed: {e}")
                return
        res = await self._lifecycle.complete(job.job_id, result, source="reconcile")
        if res.applied:
            self.forget(job.job_id)

    async def _timeout(self, job: JobRecord, message: str) -> None:
        logger.warning("reconcile.timeout job=%s msg=%s", job.job_id, message)
        await self._lifecycle.fail(job.job_id, message, source="reconcile")
        self.forget(job.job_id)

    async def _on_unknown_status(
        self,
        job: JobRecord,
        watch: _Watch,
        status: str,
        now: datetime,
        worker_error: Optional[str] = None,
    ) -> None:
        if watch.unknown_since is None:
            watch.unknown_since = now
        lasting = elapsed_seconds(watch.unknown_since, now)
        logger.warning(
            "reconcile.unknown_status job=%s status=%s for=%ds",
            job.job_id,
            status,
            int(lasting),
        )
        if lasting >= self._unknown_grace:
            message = f"Job timed out: worker status unknown ({status}) for {int(lasting)}s"
            if worker_error:
                message = f"{message}: {clip_text(worker_error)}"
            await self._timeout(job, message)

    async def _on_query_failure(self, job: JobRecord, now: datetime, reason: str) -> None:
        watch = self._watches.setdefault(job.job_id, _Watch(job.job_id))
        if watch.failing_since is None:
            watch.failing_since = now
        lasting = elapsed_seconds(watch.failing_since, now)
        logger.warning(
            "reconcile.query_failed job=%s for=%ds err=%s", job.job_id, int(lasting), reason
        )
        if lasting >= self._failure_grace:
            await self._timeout(
                job, f"Job timed out: worker unreachable for {int(lasting)}s ({reason})"
            )

    def _throttled_notice(self, watch: _Watch, elapsed: float, template: str) -> None:
        if elapsed < self._notice_after:
            return
        minute = int(elapsed // 60)
        if minute <= watch.last_notice_minute:
            return
        watch.last_notice_minute = minute
        self._lifecycle.notify(watch.job_id, template.format(m=minute))
