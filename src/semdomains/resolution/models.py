from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from semdomains.taxonomy import UNCLASSIFIED_CODE
from semdomains.utils.text import context_hash, normalize_token


class ClassificationSource(str, Enum):
    HUMAN = "human"
    STOPWORD = "stopword"
    CACHE = "cache"
    LEXICON = "lexicon"
    MORPHOLOGY = "morphology"
    DIALECTAL = "dialectal"
    SYNONYM = "synonym"
    LLM = "llm"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class Token:
    surface: str
    normalized: str
    lemma: Optional[str] = None
    pos: Optional[str] = None

    @classmethod
    def from_surface(
        cls,
        surface: str,
        *,
        lemma: str | None = None,
        pos: str | None = None,
    ) -> "Token":
        return cls(
            surface=surface,
            normalized=normalize_token(surface),
            lemma=normalize_token(lemma) or None,
            pos=(pos or "").strip().upper() or None,
        )

    def derive(self, normalized: str) -> "Token":
        """Return a token for a base form stripped out of this one."""

        return Token(surface=normalized, normalized=normalized, lemma=None, pos=self.pos)


@dataclass(frozen=True)
class Context:
    left: str = ""
    right: str = ""

    @property
    def hash(self) -> str:
        return context_hash(self.left, self.right)

    def sentence(self, token: Token) -> str:
        return f"{self.left} **{token.surface}** {self.right}".strip()


@dataclass(frozen=True)
class Classification:
    domain_code: str
    confidence: float
    source: ClassificationSource
    justification: Optional[str] = None
    inherited_from: Optional[str] = None
    alternates: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", _clamp(self.confidence))
        if not isinstance(self.source, ClassificationSource):
            object.__setattr__(self, "source", ClassificationSource(self.source))

    @property
    def is_resolved(self) -> bool:
        return self.source is not ClassificationSource.UNCLASSIFIED

    @classmethod
    def unclassified(cls, justification: str | None = None) -> "Classification":
        return cls(
            domain_code=UNCLASSIFIED_CODE,
            confidence=0.0,
            source=ClassificationSource.UNCLASSIFIED,
            justification=justification or "No tier produced a confident classification",
        )

    def with_source(self, source: ClassificationSource) -> "Classification":
        return Classification(
            domain_code=self.domain_code,
            confidence=self.confidence,
            source=source,
            justification=self.justification,
            inherited_from=self.inherited_from,
            alternates=self.alternates,
        )

    def as_dict(self) -> dict[str, object]:
        return {
            "domain": self.domain_code,
            "confidence": round(self.confidence, 4),
            "source": self.source.value,
            "justification": self.justification,
            "inherited_from": self.inherited_from,
            "alternates": list(self.alternates),
        }


@dataclass
class Resolution:
    """Outcome of one resolver walk, with the tiers that were consulted."""

    token: Token
    classification: Classification
    tiers_attempted: list[str] = field(default_factory=list)

    @property
    def reached_external(self) -> bool:
        return "llm" in self.tiers_attempted


def _clamp(value: object) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if number != number:
        return 0.0
    return max(0.0, min(1.0, number))
