from __future__ import annotations

import logging
import sqlite3
import time
from typing import Callable, Dict, Optional, Tuple

from semdomains.utils.text import ALL_CONTEXTS, utcnow_iso

from .models import Classification, ClassificationSource

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]


class ClassificationCache:
    """Context-keyed classification cache.

    A short-lived in-memory layer (``ttl_seconds``) sits over the persistent
    ``semantic_cache`` table. Rows are written once; only :meth:`override`
    (human validation) may replace an existing row. Callers own the instance
    and pass it to the resolver explicitly.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._conn = conn
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._memory: Dict[CacheKey, Tuple[Classification, float]] = {}

    def get(self, token: str, ctx_hash: str, *, count_hit: bool = True) -> Optional[Classification]:
        key = (token, ctx_hash)
        cached = self._memory.get(key)
        if cached is not None:
            classification, stored_at = cached
            if self._clock() - stored_at < self._ttl:
                if count_hit:
                    self._bump_hits(key)
                return classification
            del self._memory[key]

        row = self._conn.execute(
            "SELECT * FROM semantic_cache WHERE token = ? AND context_hash = ?;",
            key,
        ).fetchone()
        if row is None:
            return None
        classification = _row_to_classification(row)
        self._memory[key] = (classification, self._clock())
        if count_hit:
            self._bump_hits(key)
        return classification

    def put(
        self,
        token: str,
        ctx_hash: str,
        classification: Classification,
        *,
        lemma: str | None = None,
        pos: str | None = None,
    ) -> bool:
        """Store *classification* unless the key already has a row."""

        if not classification.is_resolved:
            return False
        now = utcnow_iso()
        cursor = self._conn.execute(
            """
            INSERT INTO semantic_cache (
              token, context_hash, lemma, pos, domain_code, confidence, source,
              justification, inherited_from, hits, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
            ON CONFLICT(token, context_hash) DO NOTHING
            """,
            (
                token,
                ctx_hash,
                lemma,
                pos,
                classification.domain_code,
                classification.confidence,
                classification.source.value,
                classification.justification,
                classification.inherited_from,
                now,
                now,
            ),
        )
        self._conn.commit()
        written = cursor.rowcount == 1
        if written:
            self._memory[(token, ctx_hash)] = (classification, self._clock())
        return written

    def override(
        self,
        token: str,
        ctx_hash: str,
        domain_code: str,
        justification: str,
    ) -> Classification:
        """Write a trusted human classification, replacing any existing row."""

        classification = Classification(
            domain_code=domain_code,
            confidence=1.0,
            source=ClassificationSource.HUMAN,
            justification=justification,
        )
        now = utcnow_iso()
        self._conn.execute(
            """
            INSERT INTO semantic_cache (
              token, context_hash, domain_code, confidence, source,
              justification, hits, created_at, updated_at
            )
            VALUES (?, ?, ?, 1.0, ?, ?, 0, ?, ?)
            ON CONFLICT(token, context_hash) DO UPDATE SET
              domain_code = excluded.domain_code,
              confidence = excluded.confidence,
              source = excluded.source,
              justification = excluded.justification,
              inherited_from = NULL,
              updated_at = excluded.updated_at
            """,
            (token, ctx_hash, domain_code, ClassificationSource.HUMAN.value, justification, now, now),
        )
        self._conn.commit()
        self.invalidate(token)
        self._memory[(token, ctx_hash)] = (classification, self._clock())
        return classification

    def human_override(self, token: str, ctx_hash: str) -> Optional[Classification]:
        """Return the human override for this occurrence, else the token-wide one.

        Not counted as a cache hit; the cache tier reads the same key next.
        """

        for key_hash in (ctx_hash, ALL_CONTEXTS):
            entry = self.get(token, key_hash, count_hit=False)
            if entry is not None and entry.source is ClassificationSource.HUMAN:
                return entry
        return None

    def best_for(self, token: str) -> Optional[Classification]:
        row = self._conn.execute(
            """
            SELECT * FROM semantic_cache
             WHERE token = ?
             ORDER BY confidence DESC, updated_at DESC
             LIMIT 1
            """,
            (token,),
        ).fetchone()
        return _row_to_classification(row) if row is not None else None

    def has_entry(self, token: str, ctx_hash: str | None = None) -> bool:
        if ctx_hash is None:
            row = self._conn.execute(
                "SELECT 1 FROM semantic_cache WHERE token = ? LIMIT 1;", (token,)
            ).fetchone()
        else:
            row = self._conn.execute(
                "SELECT 1 FROM semantic_cache WHERE token = ? AND context_hash = ?;",
                (token, ctx_hash),
            ).fetchone()
        return row is not None

    def clear_contexts(self, token: str, *, keep: str = ALL_CONTEXTS) -> int:
        """Delete every row for *token* except the one under *keep*, human rows included."""

        cursor = self._conn.execute(
            "DELETE FROM semantic_cache WHERE token = ? AND context_hash != ?;",
            (token, keep),
        )
        self._conn.commit()
        self.invalidate(token)
        return cursor.rowcount

    def invalidate(self, token: str | None = None) -> None:
        if token is None:
            self._memory.clear()
            return
        for key in [key for key in self._memory if key[0] == token]:
            del self._memory[key]

    def stats(self) -> dict[str, object]:
        totals = self._conn.execute(
            "SELECT COUNT(*), COALESCE(SUM(hits), 0) FROM semantic_cache;"
        ).fetchone()
        by_source = {
            row[0]: row[1]
            for row in self._conn.execute(
                "SELECT source, COUNT(*) FROM semantic_cache GROUP BY source ORDER BY source;"
            )
        }
        return {
            "entries": int(totals[0]),
            "hits": int(totals[1]),
            "memory_entries": len(self._memory),
            "by_source": by_source,
        }

    def _bump_hits(self, key: CacheKey) -> None:
        self._conn.execute(
            "UPDATE semantic_cache SET hits = hits + 1 WHERE token = ? AND context_hash = ?;",
            key,
        )
        self._conn.commit()


def _row_to_classification(row: sqlite3.Row) -> Classification:
    return Classification(
        domain_code=str(row["domain_code"]),
        confidence=float(row["confidence"]),
        source=ClassificationSource(row["source"]),
        justification=row["justification"],
        inherited_from=row["inherited_from"],
    )
