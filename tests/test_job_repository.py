"""
Unit tests for JobRepository: creation, the transition state machine and
cleanup bookkeeping.
"""
import asyncio
from datetime import timedelta

import pytest
from pydantic import ValidationError

from conftest import make_result, seed_job
from model.job import JobRecord, JobStatus, SourceMeta
from repository.job_repository import JobRepository, TransitionOutcome
from util.errors import DuplicateJobError
from util.functions import utcnow


def _record(job_id="job-1", **kw):
    return JobRecord(
        job_id=job_id,
        source=SourceMeta(filename="a.png", size=10, content_type="image/png"),
        callback_url="http://localhost/cb",
        **kw,
    )


class TestCreate:
    """Test record creation"""

    @pytest.mark.asyncio
    async def test_create_forces_submitted(self):
        repo = JobRepository()
        job = await repo.create(_record(status=JobStatus.completed, error_message="x"))

        assert job.status is JobStatus.submitted
        assert job.error_message is None
        assert (await repo.get("job-1")).status is JobStatus.submitted

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self):
        repo = JobRepository()
        await repo.create(_record())

        with pytest.raises(DuplicateJobError):
            await repo.create(_record())

    @pytest.mark.asyncio
    async def test_get_unknown_and_empty_id(self):
        repo = JobRepository()
        assert await repo.get("nope") is None
        assert await repo.get("") is None


class TestTransition:
    """Test the state machine"""

    @pytest.mark.asyncio
    async def test_processing_sets_external_id(self):
        repo = JobRepository()
        await repo.create(_record())

        res = await repo.transition("job-1", JobStatus.processing, external_job_id="ext-9")

        assert res.outcome is TransitionOutcome.applied
        assert res.job.status is JobStatus.processing
        assert res.job.external_job_id == "ext-9"
        assert res.job.completed_at is None

    @pytest.mark.asyncio
    async def test_conflicting_external_id_rejected(self):
        repo = JobRepository()
        await seed_job(repo, external_job_id="ext-1")

        with pytest.raises(ValueError):
            await repo.transition("job-1", JobStatus.processing, external_job_id="ext-2")

    @pytest.mark.asyncio
    async def test_completed_keeps_result_only(self):
        repo = JobRepository()
        await seed_job(repo)

        res = await repo.transition(
            "job-1", JobStatus.completed, result=make_result(3), error_message="ignored"
        )

        assert res.applied
        assert len(res.job.result.answers) == 3
        assert res.job.error_message is None
        assert res.job.completed_at is not None

    @pytest.mark.asyncio
    async def test_failed_defaults_message(self):
        repo = JobRepository()
        await seed_job(repo)

        res = await repo.transition("job-1", JobStatus.failed)

        assert res.job.error_message == "Job failed"
        assert res.job.result is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("first", [JobStatus.completed, JobStatus.failed])
    @pytest.mark.parametrize(
        "second", [JobStatus.submitted, JobStatus.processing, JobStatus.completed, JobStatus.failed]
    )
    async def test_terminal_states_are_closed(self, first, second):
        repo = JobRepository()
        await seed_job(repo)
        done = (await repo.transition("job-1", first, result=make_result(1))).job

        res = await repo.transition("job-1", second, error_message="late")

        assert res.outcome is TransitionOutcome.already_terminal
        assert res.job == done
        assert await repo.get("job-1") == done

    @pytest.mark.asyncio
    async def test_completed_result_cannot_be_edited_through_snapshot(self):
        """Test that a stored result is immutable down to answers and metadata"""
        repo = JobRepository()
        await seed_job(repo)
        await repo.transition("job-1", JobStatus.completed, result=make_result(2))
        snap = await repo.get("job-1")

        with pytest.raises(ValidationError):
            snap.result.answers[0].extracted_text = "edited"
        with pytest.raises(ValidationError):
            snap.result.metadata.model_version = "edited"
        with pytest.raises(ValidationError):
            snap.result = None

        stored = (await repo.get("job-1")).result
        assert stored.answers[0].extracted_text == "x = 1"
        assert stored.metadata.model_version == "test"

    @pytest.mark.asyncio
    async def test_unknown_job_not_found(self):
        repo = JobRepository()
        res = await repo.transition("missing", JobStatus.failed)
        assert res.outcome is TransitionOutcome.not_found
        assert res.job is None

    @pytest.mark.asyncio
    async def test_concurrent_terminal_transitions_single_winner(self):
        """Test that racing completions and failures leave exactly one outcome"""
        repo = JobRepository()
        await seed_job(repo)

        results = await asyncio.gather(
            *[
                repo.transition(
                    "job-1",
                    JobStatus.completed if i % 2 else JobStatus.failed,
                    result=make_result(2),
                    error_message=f"fail {i}",
                )
                for i in range(20)
            ]
        )

        winners = [r for r in results if r.applied]
        assert len(winners) == 1
        final = await repo.get("job-1")
        assert final == winners[0].job
        if final.status is JobStatus.completed:
            assert final.result is not None and final.error_message is None
        else:
            assert final.result is None and final.error_message is not None


class TestQueriesAndCleanup:
    """Test listing, counting and eviction bookkeeping"""

    @pytest.mark.asyncio
    async def test_list_active_excludes_terminal(self):
        repo = JobRepository()
        await seed_job(repo, "a")
        await seed_job(repo, "b", external_job_id="ext-b")
        await repo.transition("b", JobStatus.failed)

        active = await repo.list_active()

        assert [j.job_id for j in active] == ["a"]
        assert repo.count() == 2
        assert repo.count_active() == 1

    @pytest.mark.asyncio
    async def test_cleanup_due_after_grace(self):
        repo = JobRepository()
        await seed_job(repo)
        repo.schedule_cleanup("job-1", 60)

        assert repo.due_for_cleanup() == []
        assert repo.due_for_cleanup(utcnow() + timedelta(seconds=61)) == ["job-1"]

        assert await repo.remove("job-1")
        assert await repo.get("job-1") is None
        assert repo.due_for_cleanup(utcnow() + timedelta(seconds=61)) == []

    def test_schedule_cleanup_unknown_is_noop(self):
        repo = JobRepository()
        repo.schedule_cleanup("ghost", 0)
        assert repo.due_for_cleanup() == []
