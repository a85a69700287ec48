"""Text normalization and hashing utilities for semantic-domain tooling."""
from __future__ import annotations

import hashlib
import logging
import re
import unicodedata
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

ALL_CONTEXTS = "*"

_EDGE_PUNCT_RE = re.compile(r"^[^\w]+|[^\w]+$", re.UNICODE)
_SPACE_RE = re.compile(r"\s+")


def strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_token(text: str | None) -> str:
    """Normalize a lyric token for lookups.

    Lowercases, strips surrounding punctuation and whitespace, and removes
    diacritics so ``Coração,`` and ``coracao`` share a key. Inner hyphens and
    apostrophes survive (``pura-folha``, ``d'água``).
    """

    if not text:
        return ""
    value = unicodedata.normalize("NFKC", text).strip()
    value = _EDGE_PUNCT_RE.sub("", value)
    value = strip_diacritics(value.lower())
    return _SPACE_RE.sub(" ", value).strip()


def context_hash(left: str | None = "", right: str | None = "") -> str:
    """Return the 16-hex-char digest used to key context-sensitive cache rows."""

    combined = f"{left or ''}|{right or ''}".lower()
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()[:16]


def utcnow_iso() -> str:
    """Return the current UTC timestamp in ISO-8601 format with a trailing 'Z'."""

    now = datetime.now(timezone.utc).replace(microsecond=0)
    return now.isoformat().replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
