"""SQLite helpers for the semantic-domain store."""
from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Sequence

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS semantic_taxonomy (
      code    TEXT PRIMARY KEY,
      name    TEXT NOT NULL,
      parent  TEXT,
      level   INTEGER NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS semantic_lexicon (
      word         TEXT PRIMARY KEY,
      lemma        TEXT,
      pos          TEXT,
      domain_code  TEXT NOT NULL,
      confidence   REAL NOT NULL,
      source       TEXT NOT NULL,
      origin       TEXT,
      updated_at   TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS dialectal_lexicon (
      word             TEXT PRIMARY KEY,
      domain_code      TEXT NOT NULL,
      alternates_json  TEXT NOT NULL DEFAULT '[]',
      confidence       REAL NOT NULL,
      pos_class        TEXT,
      definition       TEXT,
      justification    TEXT,
      updated_at       TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS lexical_synonyms (
      word     TEXT NOT NULL,
      synonym  TEXT NOT NULL,
      PRIMARY KEY (word, synonym)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS semantic_cache (
      token          TEXT NOT NULL,
      context_hash   TEXT NOT NULL,
      lemma          TEXT,
      pos            TEXT,
      domain_code    TEXT NOT NULL,
      confidence     REAL NOT NULL,
      source         TEXT NOT NULL,
      justification  TEXT,
      inherited_from TEXT,
      hits           INTEGER NOT NULL DEFAULT 0,
      created_at     TEXT NOT NULL,
      updated_at     TEXT NOT NULL,
      PRIMARY KEY (token, context_hash)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS human_validations (
      id             INTEGER PRIMARY KEY AUTOINCREMENT,
      token          TEXT NOT NULL,
      context_hash   TEXT NOT NULL,
      domain_code    TEXT NOT NULL,
      justification  TEXT NOT NULL,
      scope          TEXT NOT NULL,
      created_at     TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS candidate_words (
      id      INTEGER PRIMARY KEY AUTOINCREMENT,
      word    TEXT NOT NULL UNIQUE,
      pos     TEXT,
      origin  TEXT
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS annotation_jobs (
      job_id             TEXT PRIMARY KEY,
      kind               TEXT NOT NULL,
      status             TEXT NOT NULL,
      current_offset     INTEGER NOT NULL DEFAULT 0,
      processed          INTEGER NOT NULL DEFAULT 0,
      succeeded          INTEGER NOT NULL DEFAULT 0,
      failed             INTEGER NOT NULL DEFAULT 0,
      skipped            INTEGER NOT NULL DEFAULT 0,
      cancel_requested   INTEGER NOT NULL DEFAULT 0,
      recovery_attempts  INTEGER NOT NULL DEFAULT 0,
      error_message      TEXT,
      created_at         TEXT NOT NULL,
      updated_at         TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS job_recovery_log (
      id                INTEGER PRIMARY KEY AUTOINCREMENT,
      job_id            TEXT NOT NULL,
      recovery_attempt  INTEGER NOT NULL,
      strategy          TEXT NOT NULL,
      success           INTEGER NOT NULL,
      error_message     TEXT,
      last_offset       INTEGER,
      created_at        TEXT NOT NULL
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_lexical_synonyms_synonym
    ON lexical_synonyms(synonym);
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_annotation_jobs_status
    ON annotation_jobs(status);
    """,
)


def connect_sqlite(path: str) -> sqlite3.Connection:
    """Connect to a SQLite database ensuring directories and pragmas."""

    if path != ":memory:":
        db_path = Path(path)
        if db_path.parent and not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)

    logger.info("Opening SQLite database", extra={"path": path})
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    if path != ":memory:":
        conn.execute("PRAGMA journal_mode = WAL;")
        conn.execute("PRAGMA synchronous = NORMAL;")
    return conn


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Ensure the semantic-domain tables exist in *conn*."""

    logger.debug("Ensuring semantic-domain tables")
    for statement in SCHEMA_STATEMENTS:
        conn.execute(statement)
    conn.commit()


def _prepare_named_parameters(rows: Sequence[dict[str, object]]) -> tuple[str, tuple[str, ...]]:
    columns = tuple(rows[0].keys())
    placeholders = ", ".join(f":{col}" for col in columns)
    column_list = ", ".join(columns)
    return f"({column_list}) VALUES ({placeholders})", columns


def upsert_rows(
    conn: sqlite3.Connection,
    table: str,
    rows: list[dict[str, object]],
    *,
    key: Sequence[str] = (),
) -> None:
    """Insert *rows* into *table*, updating non-key columns on a *key* conflict."""

    if not rows:
        return

    values_sql, columns = _prepare_named_parameters(rows)
    sql = f"INSERT INTO {table} {values_sql}"
    if key:
        update_assignments = ", ".join(
            f"{col} = excluded.{col}" for col in columns if col not in key
        )
        conflict = ", ".join(key)
        if update_assignments:
            sql = f"{sql} ON CONFLICT({conflict}) DO UPDATE SET {update_assignments}"
        else:
            sql = f"{sql} ON CONFLICT({conflict}) DO NOTHING"

    conn.executemany(sql, rows)
    conn.commit()


def fetch_all(conn: sqlite3.Connection, query: str, params: tuple[object, ...] = ()) -> list[sqlite3.Row]:
    """Execute *query* with *params* and return all rows."""

    cursor = conn.execute(query, params)
    return cursor.fetchall()


__all__ = [
    "connect_sqlite",
    "ensure_schema",
    "upsert_rows",
    "fetch_all",
    "SCHEMA_STATEMENTS",
]
