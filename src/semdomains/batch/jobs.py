"""Persisted batch jobs: checkpoints, cooperative cancellation and recovery."""
from __future__ import annotations

import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from semdomains.utils.text import parse_iso, utcnow_iso

logger = logging.getLogger(__name__)

SEED_JOB_KIND = "seed_semantic_lexicon"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    ERROR = "error"


class JobFailedError(RuntimeError):
    """The job is in the terminal ``error`` state and needs an operator."""


class JobNotFoundError(LookupError):
    pass


@dataclass
class Job:
    job_id: str
    kind: str
    status: JobStatus
    current_offset: int
    processed: int
    succeeded: int
    failed: int
    skipped: int
    cancel_requested: bool
    recovery_attempts: int
    error_message: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Job":
        return cls(
            job_id=row["job_id"],
            kind=row["kind"],
            status=JobStatus(row["status"]),
            current_offset=int(row["current_offset"]),
            processed=int(row["processed"]),
            succeeded=int(row["succeeded"]),
            failed=int(row["failed"]),
            skipped=int(row["skipped"]),
            cancel_requested=bool(row["cancel_requested"]),
            recovery_attempts=int(row["recovery_attempts"]),
            error_message=row["error_message"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def as_dict(self) -> dict[str, object]:
        return {
            "job_id": self.job_id,
            "kind": self.kind,
            "status": self.status.value,
            "current_offset": self.current_offset,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "cancel_requested": self.cancel_requested,
            "recovery_attempts": self.recovery_attempts,
            "error_message": self.error_message,
            "updated_at": self.updated_at,
        }


@dataclass
class RecoveryOutcome:
    job_id: str
    attempt: int
    recovered: bool
    last_offset: int
    strategy: str


class JobStore:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def create(self, kind: str = SEED_JOB_KIND, *, job_id: str | None = None, offset: int = 0) -> Job:
        job_id = job_id or uuid.uuid4().hex
        now = utcnow_iso()
        self.conn.execute(
            """
            INSERT INTO annotation_jobs (job_id, kind, status, current_offset, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (job_id, kind, JobStatus.PENDING.value, int(offset), now, now),
        )
        self.conn.commit()
        logger.info("Created job", extra={"job_id": job_id, "kind": kind, "offset": offset})
        return self.require(job_id)

    def get(self, job_id: str) -> Job | None:
        row = self.conn.execute("SELECT * FROM annotation_jobs WHERE job_id = ?;", (job_id,)).fetchone()
        return Job.from_row(row) if row is not None else None

    def require(self, job_id: str) -> Job:
        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Unknown job: {job_id}")
        return job

    def list_jobs(self, *, status: JobStatus | None = None, limit: int = 20) -> list[Job]:
        if status is None:
            rows = self.conn.execute(
                "SELECT * FROM annotation_jobs ORDER BY updated_at DESC LIMIT ?;", (limit,)
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM annotation_jobs WHERE status = ? ORDER BY updated_at DESC LIMIT ?;",
                (JobStatus(status).value, limit),
            ).fetchall()
        return [Job.from_row(row) for row in rows]

    def start(self, job_id: str) -> Job:
        job = self.require(job_id)
        if job.status is JobStatus.ERROR:
            raise JobFailedError(f"Job {job_id} is in error state: {job.error_message}")
        if job.status in (JobStatus.PENDING, JobStatus.RUNNING):
            self._update(job_id, status=JobStatus.RUNNING.value)
        return self.require(job_id)

    def checkpoint(
        self,
        job_id: str,
        *,
        offset: int,
        processed: int,
        succeeded: int,
        failed: int,
        skipped: int,
    ) -> None:
        self._update(
            job_id,
            current_offset=offset,
            processed=processed,
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
        )

    def request_cancel(self, job_id: str) -> Job:
        job = self.require(job_id)
        if job.status is JobStatus.PENDING:
            self._update(job_id, cancel_requested=1, status=JobStatus.CANCELLED.value)
        elif job.status is JobStatus.RUNNING:
            self._update(job_id, cancel_requested=1)
        logger.info("Cancellation requested", extra={"job_id": job_id, "status": job.status.value})
        return self.require(job_id)

    def is_cancel_requested(self, job_id: str) -> bool:
        row = self.conn.execute(
            "SELECT cancel_requested FROM annotation_jobs WHERE job_id = ?;", (job_id,)
        ).fetchone()
        return bool(row[0]) if row is not None else False

    def finish(self, job_id: str, status: JobStatus = JobStatus.COMPLETED) -> Job:
        self._update(job_id, status=JobStatus(status).value)
        return self.require(job_id)

    def fail(self, job_id: str, message: str) -> Job:
        self._update(job_id, status=JobStatus.ERROR.value, error_message=message)
        logger.error("Job failed", extra={"job_id": job_id, "error": message})
        return self.require(job_id)

    def recover_stalled(
        self,
        *,
        stalled_after: float = 15 * 60.0,
        max_attempts: int = 3,
        now: datetime | None = None,
    ) -> list[RecoveryOutcome]:
        """Requeue running jobs with no checkpoint for *stalled_after* seconds.

        A recovered job returns to ``pending`` and resumes from its last
        checkpoint. Past *max_attempts* recoveries it is marked ``error``.
        """

        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=stalled_after)
        outcomes: list[RecoveryOutcome] = []

        for job in self.list_jobs(status=JobStatus.RUNNING, limit=1_000_000):
            if parse_iso(job.updated_at) >= cutoff:
                continue
            attempt = job.recovery_attempts + 1
            if attempt > max_attempts:
                message = f"Job stalled after {job.recovery_attempts} automatic recovery attempt(s)"
                self._update(
                    job.job_id,
                    status=JobStatus.ERROR.value,
                    error_message=message,
                    recovery_attempts=attempt,
                )
                outcome = RecoveryOutcome(job.job_id, attempt, False, job.current_offset, "mark-error")
                self._log_recovery(outcome, error_message="Maximum recovery attempts exceeded")
                logger.error("Stalled job marked as error", extra={"job_id": job.job_id, "attempt": attempt})
            else:
                self._update(
                    job.job_id,
                    status=JobStatus.PENDING.value,
                    error_message=None,
                    recovery_attempts=attempt,
                )
                outcome = RecoveryOutcome(job.job_id, attempt, True, job.current_offset, "auto-retry")
                self._log_recovery(outcome)
                logger.warning(
                    "Stalled job requeued",
                    extra={"job_id": job.job_id, "attempt": attempt, "offset": job.current_offset},
                )
            outcomes.append(outcome)
        return outcomes

    def recovery_log(self, job_id: str) -> list[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM job_recovery_log WHERE job_id = ? ORDER BY recovery_attempt;", (job_id,)
        ).fetchall()

    def _log_recovery(self, outcome: RecoveryOutcome, error_message: str | None = None) -> None:
        self.conn.execute(
            """
            INSERT INTO job_recovery_log (
              job_id, recovery_attempt, strategy, success, error_message, last_offset, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                outcome.job_id,
                outcome.attempt,
                outcome.strategy,
                int(outcome.recovered),
                error_message,
                outcome.last_offset,
                utcnow_iso(),
            ),
        )
        self.conn.commit()

    def _update(self, job_id: str, **fields: object) -> None:
        fields["updated_at"] = utcnow_iso()
        assignments = ", ".join(f"{column} = :{column}" for column in fields)
        cursor = self.conn.execute(
            f"UPDATE annotation_jobs SET {assignments} WHERE job_id = :job_id;",
            {**fields, "job_id": job_id},
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise JobNotFoundError(f"Unknown job: {job_id}")


__all__ = [
    "Job",
    "JobFailedError",
    "JobNotFoundError",
    "JobStatus",
    "JobStore",
    "RecoveryOutcome",
    "SEED_JOB_KIND",
]
