import sqlite3

import pytest

from semdomains.batch.jobs import JobFailedError, JobStatus, JobStore
from semdomains.batch.seeding import BatchSeeder
from semdomains.common.config import ResolverSettings
from semdomains.resolution.models import Classification, ClassificationSource
from semdomains.resolution.resolver import TieredResolver
from semdomains.schemas import BatchSeedRequest


class FakeClassifier:
    def __init__(self, on_call=None, error=None):
        self.on_call = on_call
        self.error = error
        self.calls: list[str] = []

    def classify(self, token, context):
        self.calls.append(token.normalized)
        if self.on_call is not None:
            self.on_call()
        if self.error is not None:
            raise self.error
        return Classification("SE.AMO", 0.9, ClassificationSource.LLM, justification="fake")


class SleepRecorder:
    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def settings():
    return ResolverSettings(batch_delay_seconds=1.5)


@pytest.fixture
def jobs(conn):
    return JobStore(conn)


@pytest.fixture
def sleeper():
    return SleepRecorder()


def _seeder(conn, repository, jobs, settings, sleeper, classifier=None):
    resolver = TieredResolver.build(conn, classifier=classifier, settings=settings)
    return BatchSeeder(resolver, repository, jobs, settings=settings, sleep=sleeper)


def test_batches_resume_from_checkpoint(conn, seeded_repository, jobs, settings, sleeper):
    seeded_repository.add_candidates(["xiru", "pampa", "minuano"])
    classifier = FakeClassifier()
    seeder = _seeder(conn, seeded_repository, jobs, settings, sleeper, classifier)

    first = seeder.seed(BatchSeedRequest(limit=2, job_id="lote"))

    assert (first.processed, first.next_offset, first.has_more) == (2, 2, True)
    assert first.status == JobStatus.PENDING.value
    assert sleeper.calls == [1.5]

    second = seeder.seed(BatchSeedRequest(limit=2, job_id="lote"))

    assert (second.processed, second.next_offset, second.has_more) == (1, 3, False)
    assert second.status == JobStatus.COMPLETED.value
    assert classifier.calls == ["xiru", "pampa", "minuano"]
    job = jobs.require("lote")
    assert (job.processed, job.succeeded) == (3, 3)
    assert seeded_repository.lookup_semantic("minuano").source == "llm"


def test_outcomes_are_counted_by_kind_and_source(conn, seeded_repository, jobs, settings, sleeper):
    seeded_repository.add_candidates(["cavalo", "gateado", "xiru", "e"])
    seeder = _seeder(conn, seeded_repository, jobs, settings, sleeper)

    progress = seeder.seed(BatchSeedRequest(limit=10))

    assert (progress.succeeded, progress.failed, progress.skipped) == (2, 1, 1)
    assert progress.by_source == {"dialectal": 1, "stopword": 1}
    assert progress.status == JobStatus.COMPLETED.value
    assert sleeper.calls == []
    assert seeded_repository.lookup_semantic("gateado").domain_code == "NA.FA.01"
    assert not seeded_repository.in_semantic_lexicon("xiru")


def test_finished_job_is_not_rerun(conn, seeded_repository, jobs, settings, sleeper):
    seeded_repository.add_candidates(["xiru"])
    classifier = FakeClassifier()
    seeder = _seeder(conn, seeded_repository, jobs, settings, sleeper, classifier)
    seeder.seed(BatchSeedRequest(job_id="lote"))

    again = seeder.seed(BatchSeedRequest(job_id="lote"))

    assert again.processed == 0
    assert again.status == JobStatus.COMPLETED.value
    assert classifier.calls == ["xiru"]


def test_cancellation_is_honoured_between_items(conn, seeded_repository, jobs, settings, sleeper):
    seeded_repository.add_candidates(["xiru", "pampa", "minuano"])
    classifier = FakeClassifier(on_call=lambda: jobs.request_cancel("lote"))
    seeder = _seeder(conn, seeded_repository, jobs, settings, sleeper, classifier)

    progress = seeder.seed(BatchSeedRequest(job_id="lote"))

    assert progress.processed == 1
    assert progress.next_offset == 1
    assert progress.status == JobStatus.CANCELLED.value
    assert classifier.calls == ["xiru"]
    assert jobs.require("lote").status is JobStatus.CANCELLED


def test_unexpected_errors_fail_the_item_not_the_batch(conn, seeded_repository, jobs, settings, sleeper, caplog):
    seeded_repository.add_candidates(["xiru", "cavalo"])
    classifier = FakeClassifier(error=RuntimeError("boom"))
    seeder = _seeder(conn, seeded_repository, jobs, settings, sleeper, classifier)

    progress = seeder.seed(BatchSeedRequest())

    assert (progress.failed, progress.skipped) == (1, 1)
    assert progress.status == JobStatus.COMPLETED.value
    assert "Failed to seed candidate" in caplog.text


def test_error_job_refuses_to_start(conn, seeded_repository, jobs, settings, sleeper):
    seeded_repository.add_candidates(["xiru"])
    jobs.create(job_id="lote")
    jobs.fail("lote", "stalled")
    seeder = _seeder(conn, seeded_repository, jobs, settings, sleeper)

    with pytest.raises(JobFailedError):
        seeder.seed(BatchSeedRequest(job_id="lote"))


def test_lookup_errors_fail_the_item_not_the_batch(conn, seeded_repository, jobs, settings, sleeper, monkeypatch):
    seeded_repository.add_candidates(["xiru", "e"])
    in_lexicon = seeded_repository.in_semantic_lexicon

    def flaky_lookup(word):
        if word == "xiru":
            raise sqlite3.OperationalError("database is locked")
        return in_lexicon(word)

    monkeypatch.setattr(seeded_repository, "in_semantic_lexicon", flaky_lookup)
    seeder = _seeder(conn, seeded_repository, jobs, settings, sleeper)

    progress = seeder.seed(BatchSeedRequest())

    assert (progress.failed, progress.succeeded) == (1, 1)
    assert progress.status == JobStatus.COMPLETED.value


def test_pacing_follows_external_calls_even_when_saving_fails(
    conn, seeded_repository, jobs, settings, sleeper, monkeypatch
):
    seeded_repository.add_candidates(["xiru", "pampa"])

    def broken_save(*args, **kwargs):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(seeded_repository, "save_classification", broken_save)
    seeder = _seeder(conn, seeded_repository, jobs, settings, sleeper, FakeClassifier())

    progress = seeder.seed(BatchSeedRequest())

    assert progress.failed == 2
    assert sleeper.calls == [1.5]


def test_checkpoint_failure_marks_job_as_error(conn, seeded_repository, jobs, settings, sleeper, monkeypatch):
    seeded_repository.add_candidates(["xiru"])

    def broken_checkpoint(job_id, **counters):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(jobs, "checkpoint", broken_checkpoint)
    seeder = _seeder(conn, seeded_repository, jobs, settings, sleeper)

    with pytest.raises(sqlite3.OperationalError):
        seeder.seed(BatchSeedRequest(job_id="lote"))

    job = jobs.require("lote")
    assert job.status is JobStatus.ERROR
    assert "disk I/O error" in job.error_message
