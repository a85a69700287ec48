"""Resumable seeding of the semantic lexicon from the candidate-word queue."""
from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable

from tqdm import tqdm

from semdomains.common.config import ResolverSettings
from semdomains.lexicon.repository import LexiconRepository
from semdomains.resolution.models import Token
from semdomains.resolution.resolver import TieredResolver
from semdomains.schemas import BatchSeedRequest

from .jobs import JobStatus, JobStore, SEED_JOB_KIND

logger = logging.getLogger(__name__)


@dataclass
class SeedProgress:
    job_id: str
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    next_offset: int = 0
    has_more: bool = False
    by_source: dict[str, int] = field(default_factory=dict)
    status: str = JobStatus.PENDING.value

    def as_dict(self) -> dict[str, object]:
        return {
            "job_id": self.job_id,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "next_offset": self.next_offset,
            "has_more": self.has_more,
            "by_source": dict(self.by_source),
            "status": self.status,
        }


class BatchSeeder:
    """Classify queued candidate words and persist them to the semantic lexicon.

    Items run sequentially. The job row is checkpointed after every item, so
    an interrupted batch resumes at the first unprocessed candidate, and a
    cancellation flag set from elsewhere is honoured between items. After an
    item that went all the way to the external classifier the seeder sleeps
    ``batch_delay_seconds`` to stay under the gateway's rate limit.
    If the job row or the candidate queue itself fails, the job is marked
    ``error`` and the exception propagates.
    """

    def __init__(
        self,
        resolver: TieredResolver,
        repository: LexiconRepository,
        jobs: JobStore,
        *,
        settings: ResolverSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.resolver = resolver
        self.repository = repository
        self.jobs = jobs
        self.settings = settings or ResolverSettings()
        self._sleep = sleep

    def seed(self, request: BatchSeedRequest) -> SeedProgress:
        job = self.jobs.get(request.job_id) if request.job_id else None
        if job is None:
            job = self.jobs.create(SEED_JOB_KIND, job_id=request.job_id, offset=request.offset)

        if job.status in (JobStatus.COMPLETED, JobStatus.CANCELLED):
            logger.info("Job already finished", extra={"job_id": job.job_id, "status": job.status.value})
            return SeedProgress(
                job_id=job.job_id,
                next_offset=job.current_offset,
                has_more=job.current_offset < self.repository.count_candidates(),
                status=job.status.value,
            )

        job = self.jobs.start(job.job_id)
        offset = job.current_offset
        totals = {
            "processed": job.processed,
            "succeeded": job.succeeded,
            "failed": job.failed,
            "skipped": job.skipped,
        }
        progress = SeedProgress(job_id=job.job_id, next_offset=offset)
        by_source: Counter[str] = Counter()
        cancelled = False

        try:
            candidates = self.repository.candidate_words(limit=request.limit, offset=offset)
            logger.info(
                "Seeding batch",
                extra={"job_id": job.job_id, "offset": offset, "candidates": len(candidates)},
            )

            for index, candidate in enumerate(
                tqdm(candidates, desc="Seeding semantic lexicon", unit="word", disable=None)
            ):
                if self.jobs.is_cancel_requested(job.job_id):
                    cancelled = True
                    logger.info("Job cancelled between items", extra={"job_id": job.job_id, "offset": offset})
                    break

                outcome, source, reached_external = self._seed_one(
                    candidate.word, candidate.pos, candidate.origin
                )
                setattr(progress, outcome, getattr(progress, outcome) + 1)
                totals[outcome] += 1
                if source is not None:
                    by_source[source] += 1
                progress.processed += 1
                totals["processed"] += 1
                offset += 1
                self.jobs.checkpoint(job.job_id, offset=offset, **totals)

                if reached_external and index < len(candidates) - 1 and self.settings.batch_delay_seconds > 0:
                    self._sleep(self.settings.batch_delay_seconds)

            has_more = offset < self.repository.count_candidates()
        except Exception as exc:
            # Per-item errors never get here; this is the job row or queue itself failing.
            self.jobs.fail(job.job_id, f"Batch aborted at offset {offset}: {exc}")
            raise

        progress.next_offset = offset
        progress.by_source = dict(by_source)
        progress.has_more = has_more
        if cancelled:
            status = JobStatus.CANCELLED
        elif progress.has_more:
            status = JobStatus.PENDING
        else:
            status = JobStatus.COMPLETED
        progress.status = self.jobs.finish(job.job_id, status).status.value

        logger.info("Seeding batch finished", extra=progress.as_dict())
        return progress

    def _seed_one(
        self, word: str, pos: str | None, origin: str | None
    ) -> tuple[str, str | None, bool]:
        """Return (outcome, classifying source, whether the external tier ran)."""

        reached_external = False
        try:
            if self.repository.in_semantic_lexicon(word):
                return "skipped", None, False
            token = Token.from_surface(word, pos=pos)
            resolution = self.resolver.explain(token)
            reached_external = resolution.reached_external
            classification = resolution.classification
            if not classification.is_resolved:
                logger.info("Candidate left unclassified", extra={"word": word})
                return "failed", None, reached_external
            self.repository.save_classification(
                token.normalized,
                classification,
                lemma=token.lemma,
                pos=token.pos,
                origin=origin or SEED_JOB_KIND,
            )
        except Exception:
            logger.exception("Failed to seed candidate", extra={"word": word})
            return "failed", None, reached_external
        return "succeeded", classification.source.value, reached_external


__all__ = ["BatchSeeder", "SeedProgress"]
