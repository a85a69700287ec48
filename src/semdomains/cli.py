"""Command line interface for semantic-domain annotation."""
from __future__ import annotations

import argparse
import json
import logging
import sqlite3
import sys
from pathlib import Path

from semdomains.batch.jobs import JobFailedError, JobStatus, JobStore
from semdomains.batch.seeding import BatchSeeder
from semdomains.common.config import ResolverSettings, get_config_paths, load_environment
from semdomains.lexicon.loader import load_dialectal_lexicon, load_semantic_lexicon, load_synonyms
from semdomains.lexicon.repository import LexiconRepository
from semdomains.resolution.cache import ClassificationCache
from semdomains.resolution.llm_classifier import ClassifierError, GeminiDomainClassifier
from semdomains.resolution.models import Context, Token
from semdomains.resolution.propagation import SynonymGraph, SynonymPropagator
from semdomains.resolution.resolver import TieredResolver
from semdomains.resolution.validation import apply_human_validation
from semdomains.schemas import BatchSeedRequest, ClassificationRequest, ValidationOverride
from semdomains.taxonomy import DomainTaxonomy, default_taxonomy
from semdomains.utils.sql import connect_sqlite, ensure_schema
from semdomains.utils.text import utcnow_iso

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)


def _open(args: argparse.Namespace) -> sqlite3.Connection:
    conn = connect_sqlite(str(args.db_path))
    ensure_schema(conn)
    return conn


def _taxonomy(conn: sqlite3.Connection) -> DomainTaxonomy:
    has_rows = conn.execute("SELECT 1 FROM semantic_taxonomy LIMIT 1;").fetchone()
    if has_rows is None:
        return default_taxonomy()
    return DomainTaxonomy.from_connection(conn)


def _build_resolver(
    args: argparse.Namespace,
    conn: sqlite3.Connection,
    taxonomy: DomainTaxonomy,
) -> TieredResolver:
    settings: ResolverSettings = args.settings
    classifier = None
    if not getattr(args, "no_llm", False):
        try:
            classifier = GeminiDomainClassifier.from_env(taxonomy=taxonomy, settings=settings)
        except ClassifierError as exc:
            logger.warning("External classifier disabled", extra={"reason": str(exc)})
    return TieredResolver.build(conn, classifier=classifier, taxonomy=taxonomy, settings=settings)


def _run_init_db(args: argparse.Namespace) -> None:
    conn = _open(args)
    try:
        count = default_taxonomy().store(conn)
    finally:
        conn.close()
    print(f"[{utcnow_iso()}] Initialized {args.db_path} with {count} domain codes")


def _run_import(args: argparse.Namespace) -> None:
    path = Path(args.path)
    conn = _open(args)
    try:
        repository = LexiconRepository(conn)
        taxonomy = _taxonomy(conn)
        if args.kind == "semantic":
            count = load_semantic_lexicon(path, repository, taxonomy=taxonomy)
        elif args.kind == "dialectal":
            count = load_dialectal_lexicon(path, repository, taxonomy=taxonomy)
        elif args.kind == "synonyms":
            count = load_synonyms(path, repository)
        else:
            if not path.is_file():
                raise FileNotFoundError(f"Candidate list '{path}' does not exist")
            words = [line.strip() for line in path.read_text(encoding="utf-8").splitlines()]
            count = repository.add_candidates((word for word in words if word), origin=path.name)
    finally:
        conn.close()
    print(f"[{utcnow_iso()}] Imported {count} {args.kind} record(s) from {path}")


def _run_classify(args: argparse.Namespace) -> None:
    request = ClassificationRequest(
        word=args.word, left=args.left, right=args.right, pos=args.pos, lemma=args.lemma
    )
    conn = _open(args)
    try:
        resolver = _build_resolver(args, conn, _taxonomy(conn))
        token = Token.from_surface(request.word, lemma=request.lemma, pos=request.pos)
        resolution = resolver.explain(token, Context(request.left, request.right))
    finally:
        conn.close()

    payload = {
        "word": token.normalized,
        **resolution.classification.as_dict(),
        "tiers": resolution.tiers_attempted,
    }
    if args.json:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return
    result = resolution.classification
    print(
        "{} → {} ({:.2f}, {}){}".format(
            token.normalized,
            result.domain_code,
            result.confidence,
            result.source.value,
            f" via {result.inherited_from}" if result.inherited_from else "",
        )
    )


def _run_validate(args: argparse.Namespace) -> None:
    override = ValidationOverride(
        token=args.word,
        domain_code=args.code,
        justification=args.justification,
        scope=args.scope,
        left=args.left,
        right=args.right,
    )
    conn = _open(args)
    try:
        cache = ClassificationCache(conn, ttl_seconds=args.settings.cache_ttl_seconds)
        ack = apply_human_validation(cache, override, conn=conn, taxonomy=_taxonomy(conn))
    finally:
        conn.close()
    print(
        f"[{utcnow_iso()}] {ack.token} → {ack.domain_code} (scope={ack.scope}, "
        f"replaced={ack.replaced_entries}, audit={ack.audit_id})"
    )


def _run_propagate(args: argparse.Namespace) -> None:
    conn = _open(args)
    try:
        resolver = _build_resolver(args, conn, _taxonomy(conn))
        seed = resolver.explain(args.word)
        if not seed.classification.is_resolved:
            raise ValueError(f"Cannot propagate from unclassified word '{seed.token.normalized}'")
        propagator = SynonymPropagator.from_settings(SynonymGraph.from_connection(conn), args.settings)
        stored = propagator.propagate_and_store(
            resolver.cache or ClassificationCache(conn),
            {seed.token.normalized: seed.classification},
            max_hops=args.max_hops,
        )
    finally:
        conn.close()

    print(
        f"[{utcnow_iso()}] {seed.token.normalized} ({seed.classification.domain_code}) "
        f"propagated to {len(stored)} synonym(s)"
    )
    for label in stored:
        print(
            f"  {label.word:<20} {label.classification.domain_code:<12} "
            f"{label.classification.confidence:.3f}  hops={label.hops}"
        )


def _run_seed(args: argparse.Namespace) -> None:
    request = BatchSeedRequest(limit=args.limit, offset=args.offset, job_id=args.job_id)
    conn = _open(args)
    try:
        resolver = _build_resolver(args, conn, _taxonomy(conn))
        seeder = BatchSeeder(
            resolver,
            LexiconRepository(conn),
            JobStore(conn),
            settings=args.settings,
        )
        progress = seeder.seed(request)
    finally:
        conn.close()

    print(
        "[{}] Job {}: processed {} (ok {}, failed {}, skipped {}) next_offset={} has_more={} status={}".format(
            utcnow_iso(),
            progress.job_id,
            progress.processed,
            progress.succeeded,
            progress.failed,
            progress.skipped,
            progress.next_offset,
            progress.has_more,
            progress.status,
        )
    )
    if progress.by_source:
        print("  by source: " + ", ".join(f"{k}={v}" for k, v in sorted(progress.by_source.items())))


def _run_jobs_status(args: argparse.Namespace) -> None:
    conn = _open(args)
    try:
        store = JobStore(conn)
        if args.job_id:
            jobs = [store.require(args.job_id)]
        else:
            jobs = store.list_jobs(status=JobStatus(args.status) if args.status else None)
    finally:
        conn.close()

    if not jobs:
        print("No jobs to display.")
        return
    header = f"{'Job':<32} | {'Status':<9} | {'Offset':>6} | {'OK':>5} | {'Fail':>5} | {'Skip':>5}"
    print(header)
    print("-" * len(header))
    for job in jobs:
        print(
            f"{job.job_id:<32} | {job.status.value:<9} | {job.current_offset:>6} | "
            f"{job.succeeded:>5} | {job.failed:>5} | {job.skipped:>5}"
        )
        if job.error_message:
            print(f"  error: {job.error_message}")


def _run_jobs_cancel(args: argparse.Namespace) -> None:
    conn = _open(args)
    try:
        job = JobStore(conn).request_cancel(args.job_id)
    finally:
        conn.close()
    print(f"[{utcnow_iso()}] Cancellation requested for {job.job_id} (status={job.status.value})")


def _run_jobs_recover(args: argparse.Namespace) -> None:
    settings: ResolverSettings = args.settings
    conn = _open(args)
    try:
        outcomes = JobStore(conn).recover_stalled(
            stalled_after=settings.stalled_after_seconds,
            max_attempts=settings.max_recovery_attempts,
        )
    finally:
        conn.close()
    recovered = sum(1 for outcome in outcomes if outcome.recovered)
    print(f"[{utcnow_iso()}] Recovered {recovered}/{len(outcomes)} stalled job(s)")
    for outcome in outcomes:
        print(
            f"  {outcome.job_id} attempt={outcome.attempt} strategy={outcome.strategy} "
            f"offset={outcome.last_offset}"
        )


def _run_stats(args: argparse.Namespace) -> None:
    conn = _open(args)
    try:
        counts = LexiconRepository(conn).counts()
        cache_stats = ClassificationCache(conn).stats()
    finally:
        conn.close()
    for table, count in counts.items():
        print(f"{table:<20} {count:>8}")
    print(f"{'semantic_cache':<20} {cache_stats['entries']:>8} (hits={cache_stats['hits']})")
    by_source = cache_stats.get("by_source") or {}
    if isinstance(by_source, dict):
        for source, count in by_source.items():
            print(f"  {source:<18} {count:>8}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="semdomains",
        description="Semantic-domain annotation for song-lyric vocabulary",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--db", default=str(get_config_paths()["database"]), help="Database path")
    parser.add_argument("--env-file", default=None, help="Explicit .env file to load")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    init_db = subparsers.add_parser("init-db", help="Create tables and store the default taxonomy")
    init_db.set_defaults(handler=_run_init_db)

    importer = subparsers.add_parser("import", help="Import dictionaries and candidate words")
    importer.add_argument(
        "kind",
        choices=["semantic", "dialectal", "synonyms", "candidates"],
        help="Kind of file to import",
    )
    importer.add_argument("path", help="JSON file (or one-word-per-line text for candidates)")
    importer.set_defaults(handler=_run_import)

    classify = subparsers.add_parser("classify", help="Resolve the semantic domain of a word")
    classify.add_argument("word", help="Word to classify")
    classify.add_argument("--left", default="", help="Left context")
    classify.add_argument("--right", default="", help="Right context")
    classify.add_argument("--pos", default=None, help="Universal Dependencies POS tag")
    classify.add_argument("--lemma", default=None, help="Lemma of the word")
    classify.add_argument("--no-llm", action="store_true", help="Skip the external classifier")
    classify.add_argument("--json", action="store_true", help="Print the result as JSON")
    classify.set_defaults(handler=_run_classify)

    validate = subparsers.add_parser("validate", help="Record a human classification")
    validate.add_argument("word", help="Word being validated")
    validate.add_argument("code", help="Domain code to assign")
    validate.add_argument("--justification", required=True, help="Why this code is correct")
    validate.add_argument("--scope", choices=["occurrence", "all"], default="occurrence")
    validate.add_argument("--left", default="", help="Left context (occurrence scope)")
    validate.add_argument("--right", default="", help="Right context (occurrence scope)")
    validate.set_defaults(handler=_run_validate)

    propagate = subparsers.add_parser("propagate", help="Propagate a word's domain to its synonyms")
    propagate.add_argument("word", help="Seed word")
    propagate.add_argument("--max-hops", type=int, default=None, help="Traversal depth limit")
    propagate.add_argument("--no-llm", action="store_true", help="Skip the external classifier")
    propagate.set_defaults(handler=_run_propagate)

    seed = subparsers.add_parser("seed", help="Seed the semantic lexicon from candidate words")
    seed.add_argument("--limit", type=int, default=50, help="Candidates per batch")
    seed.add_argument("--offset", type=int, default=0, help="Starting offset for a new job")
    seed.add_argument("--job-id", default=None, help="Resume or name a job")
    seed.add_argument("--no-llm", action="store_true", help="Skip the external classifier")
    seed.set_defaults(handler=_run_seed)

    jobs = subparsers.add_parser("jobs", help="Batch job management")
    jobs_subparsers = jobs.add_subparsers(dest="jobs_command", required=True)
    jobs_status = jobs_subparsers.add_parser("status", help="Show job progress")
    jobs_status.add_argument("job_id", nargs="?", default=None, help="Job to show")
    jobs_status.add_argument(
        "--status", choices=[status.value for status in JobStatus], default=None
    )
    jobs_status.set_defaults(handler=_run_jobs_status)
    jobs_cancel = jobs_subparsers.add_parser("cancel", help="Request cooperative cancellation")
    jobs_cancel.add_argument("job_id", help="Job to cancel")
    jobs_cancel.set_defaults(handler=_run_jobs_cancel)
    jobs_recover = jobs_subparsers.add_parser("recover", help="Requeue stalled running jobs")
    jobs_recover.set_defaults(handler=_run_jobs_recover)

    stats = subparsers.add_parser("stats", help="Show lexicon and cache counts")
    stats.set_defaults(handler=_run_stats)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:  # pragma: no cover - delegated to argparse
        return exc.code

    _configure_logging(args.verbose)

    try:
        load_environment(args.env_file)
        args.settings = ResolverSettings.from_env()
        args.db_path = Path(args.db).expanduser().resolve() if args.db != ":memory:" else args.db
        args.handler(args)
    except (FileNotFoundError, OSError, ValueError, LookupError, JobFailedError, sqlite3.Error) as error:
        logger.error("Command failed", exc_info=False, extra={"error": str(error)})
        print(f"error: {error}", file=sys.stderr)
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
