from datetime import datetime, timedelta, timezone

import pytest

from semdomains.batch.jobs import JobFailedError, JobNotFoundError, JobStatus, JobStore


@pytest.fixture
def jobs(conn):
    return JobStore(conn)


def _later(minutes: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=minutes)


def test_create_start_and_checkpoint(jobs):
    job = jobs.create(job_id="lote-1", offset=5)
    assert job.status is JobStatus.PENDING
    assert job.current_offset == 5

    assert jobs.start("lote-1").status is JobStatus.RUNNING
    jobs.checkpoint("lote-1", offset=7, processed=2, succeeded=1, failed=0, skipped=1)

    stored = jobs.require("lote-1")
    assert (stored.current_offset, stored.processed, stored.succeeded, stored.skipped) == (7, 2, 1, 1)
    assert jobs.finish("lote-1").status is JobStatus.COMPLETED


def test_generated_ids_are_unique(jobs):
    assert jobs.create().job_id != jobs.create().job_id
    assert len(jobs.list_jobs()) == 2
    assert jobs.list_jobs(status=JobStatus.RUNNING) == []


def test_unknown_job_raises(jobs):
    with pytest.raises(JobNotFoundError):
        jobs.require("nope")
    with pytest.raises(JobNotFoundError):
        jobs.checkpoint("nope", offset=1, processed=1, succeeded=1, failed=0, skipped=0)
    assert jobs.is_cancel_requested("nope") is False


def test_cancelling_pending_job_is_immediate(jobs):
    jobs.create(job_id="lote-1")

    job = jobs.request_cancel("lote-1")

    assert job.status is JobStatus.CANCELLED
    assert job.cancel_requested


def test_cancelling_running_job_only_sets_flag(jobs):
    jobs.create(job_id="lote-1")
    jobs.start("lote-1")

    job = jobs.request_cancel("lote-1")

    assert job.status is JobStatus.RUNNING
    assert jobs.is_cancel_requested("lote-1")


def test_stalled_job_is_requeued_from_last_checkpoint(jobs):
    jobs.create(job_id="lote-1")
    jobs.start("lote-1")
    jobs.checkpoint("lote-1", offset=12, processed=12, succeeded=10, failed=2, skipped=0)

    outcomes = jobs.recover_stalled(stalled_after=900, now=_later(16))

    assert [(o.job_id, o.recovered, o.last_offset, o.strategy) for o in outcomes] == [
        ("lote-1", True, 12, "auto-retry")
    ]
    job = jobs.require("lote-1")
    assert job.status is JobStatus.PENDING
    assert job.current_offset == 12
    assert job.recovery_attempts == 1
    log = jobs.recovery_log("lote-1")
    assert [(row["recovery_attempt"], row["success"]) for row in log] == [(1, 1)]


def test_recent_checkpoint_is_not_stalled(jobs):
    jobs.create(job_id="lote-1")
    jobs.start("lote-1")

    assert jobs.recover_stalled(stalled_after=900, now=_later(5)) == []
    assert jobs.require("lote-1").status is JobStatus.RUNNING


def test_too_many_recoveries_marks_job_as_error(jobs):
    jobs.create(job_id="lote-1")
    for _ in range(2):
        jobs.start("lote-1")
        jobs.recover_stalled(stalled_after=900, max_attempts=1, now=_later(16))

    job = jobs.require("lote-1")
    assert job.status is JobStatus.ERROR
    assert "recovery" in job.error_message
    assert [row["strategy"] for row in jobs.recovery_log("lote-1")] == ["auto-retry", "mark-error"]
    with pytest.raises(JobFailedError):
        jobs.start("lote-1")


def test_failed_job_cannot_restart(jobs):
    jobs.create(job_id="lote-1")
    jobs.fail("lote-1", "disk full")

    with pytest.raises(JobFailedError, match="disk full"):
        jobs.start("lote-1")
