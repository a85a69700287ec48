from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from semdomains.resolution.models import Classification, ClassificationSource
from semdomains.utils.sql import fetch_all, upsert_rows
from semdomains.utils.text import normalize_token, utcnow_iso

logger = logging.getLogger(__name__)


@dataclass
class SemanticEntry:
    word: str
    domain_code: str
    confidence: float
    source: str = ClassificationSource.LEXICON.value
    lemma: Optional[str] = None
    pos: Optional[str] = None
    origin: Optional[str] = None

    def to_classification(self) -> Classification:
        return Classification(
            domain_code=self.domain_code,
            confidence=self.confidence,
            source=ClassificationSource.LEXICON,
            justification=f"Léxico semântico ({self.origin or self.source})",
        )


@dataclass
class DialectalEntry:
    word: str
    domain_code: str
    confidence: float
    alternates: List[str] = field(default_factory=list)
    pos_class: Optional[str] = None
    definition: Optional[str] = None
    justification: Optional[str] = None

    def to_classification(self) -> Classification:
        return Classification(
            domain_code=self.domain_code,
            confidence=self.confidence,
            source=ClassificationSource.DIALECTAL,
            justification=self.justification or f"Dicionário dialetal: {self.definition or self.word}",
            alternates=tuple(self.alternates),
        )


@dataclass
class CandidateWord:
    id: int
    word: str
    pos: Optional[str]
    origin: Optional[str]


class LexiconRepository:
    """SQLite access to the semantic lexicon, dialectal dictionary and synonyms."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    # ---------------------------
    # lookups
    # ---------------------------

    def lookup_semantic(self, word: str) -> SemanticEntry | None:
        row = self.conn.execute(
            "SELECT * FROM semantic_lexicon WHERE word = ?;", (normalize_token(word),)
        ).fetchone()
        if row is None:
            return None
        return SemanticEntry(
            word=row["word"],
            domain_code=row["domain_code"],
            confidence=_safe_float(row["confidence"]),
            source=row["source"],
            lemma=row["lemma"],
            pos=row["pos"],
            origin=row["origin"],
        )

    def lookup_dialectal(self, word: str) -> DialectalEntry | None:
        row = self.conn.execute(
            "SELECT * FROM dialectal_lexicon WHERE word = ?;", (normalize_token(word),)
        ).fetchone()
        if row is None:
            return None
        return DialectalEntry(
            word=row["word"],
            domain_code=row["domain_code"],
            confidence=_safe_float(row["confidence"]),
            alternates=_load_list(row["alternates_json"]),
            pos_class=row["pos_class"],
            definition=row["definition"],
            justification=row["justification"],
        )

    def in_semantic_lexicon(self, word: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM semantic_lexicon WHERE word = ?;", (normalize_token(word),)
        ).fetchone()
        return row is not None

    def candidate_words(self, *, limit: int, offset: int = 0) -> list[CandidateWord]:
        """Return candidates in insertion order so offsets stay stable across runs."""

        rows = fetch_all(
            self.conn,
            "SELECT id, word, pos, origin FROM candidate_words ORDER BY id LIMIT ? OFFSET ?;",
            (int(limit), int(offset)),
        )
        return [
            CandidateWord(id=row["id"], word=row["word"], pos=row["pos"], origin=row["origin"])
            for row in rows
        ]

    def count_candidates(self) -> int:
        return int(self.conn.execute("SELECT COUNT(*) FROM candidate_words;").fetchone()[0])

    def counts(self) -> dict[str, int]:
        tables = ("semantic_lexicon", "dialectal_lexicon", "lexical_synonyms", "candidate_words")
        return {
            table: int(self.conn.execute(f"SELECT COUNT(*) FROM {table};").fetchone()[0])
            for table in tables
        }

    # ---------------------------
    # writes
    # ---------------------------

    def upsert_semantic(self, entries: Iterable[SemanticEntry]) -> int:
        now = utcnow_iso()
        rows: list[dict[str, object]] = [
            {
                "word": normalize_token(entry.word),
                "lemma": normalize_token(entry.lemma) or None,
                "pos": entry.pos,
                "domain_code": entry.domain_code,
                "confidence": float(entry.confidence),
                "source": entry.source,
                "origin": entry.origin,
                "updated_at": now,
            }
            for entry in entries
            if normalize_token(entry.word)
        ]
        upsert_rows(self.conn, "semantic_lexicon", rows, key=("word",))
        return len(rows)

    def upsert_dialectal(self, entries: Iterable[DialectalEntry]) -> int:
        now = utcnow_iso()
        rows: list[dict[str, object]] = [
            {
                "word": normalize_token(entry.word),
                "domain_code": entry.domain_code,
                "alternates_json": json.dumps(list(entry.alternates), ensure_ascii=False),
                "confidence": float(entry.confidence),
                "pos_class": entry.pos_class,
                "definition": entry.definition,
                "justification": entry.justification,
                "updated_at": now,
            }
            for entry in entries
            if normalize_token(entry.word)
        ]
        upsert_rows(self.conn, "dialectal_lexicon", rows, key=("word",))
        return len(rows)

    def save_classification(
        self,
        word: str,
        classification: Classification,
        *,
        lemma: str | None = None,
        pos: str | None = None,
        origin: str | None = None,
    ) -> None:
        """Persist a resolved classification as a semantic-lexicon entry."""

        if not classification.is_resolved:
            raise ValueError(f"Refusing to store unclassified result for {word!r}")
        self.upsert_semantic(
            [
                SemanticEntry(
                    word=word,
                    domain_code=classification.domain_code,
                    confidence=classification.confidence,
                    source=classification.source.value,
                    lemma=lemma,
                    pos=pos,
                    origin=origin,
                )
            ]
        )

    def add_synonyms(self, pairs: Iterable[tuple[str, str]]) -> int:
        rows: list[dict[str, object]] = []
        seen: set[tuple[str, str]] = set()
        for left, right in pairs:
            a, b = normalize_token(left), normalize_token(right)
            if not a or not b or a == b:
                continue
            key = (a, b) if a < b else (b, a)
            if key in seen:
                continue
            seen.add(key)
            rows.append({"word": key[0], "synonym": key[1]})
        upsert_rows(self.conn, "lexical_synonyms", rows, key=("word", "synonym"))
        return len(rows)

    def add_candidates(self, words: Iterable[str | tuple[str, str | None]], *, origin: str | None = None) -> int:
        """Append candidate words; words already queued keep their position."""

        added = 0
        for item in words:
            word, pos = (item, None) if isinstance(item, str) else item
            key = normalize_token(word)
            if not key:
                continue
            cursor = self.conn.execute(
                "INSERT OR IGNORE INTO candidate_words (word, pos, origin) VALUES (?, ?, ?);",
                (key, (pos or "").upper() or None, origin),
            )
            added += cursor.rowcount
        self.conn.commit()
        return added


def _safe_float(value: object, default: float = 0.0) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def _load_list(raw: object) -> list[str]:
    if not raw:
        return []
    try:
        data = json.loads(str(raw))
    except json.JSONDecodeError:
        logger.warning("Malformed alternates payload", extra={"payload": raw})
        return []
    return [str(item) for item in data] if isinstance(data, list) else []
