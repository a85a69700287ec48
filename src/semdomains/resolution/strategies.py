"""Resolution tiers, one object per stage of the lookup chain.

Every tier exposes ``name`` and ``attempt(token, context)`` and returns either
a classification or ``None`` (a miss). Thresholds, taxonomy checks and cache
write-back live in :class:`~semdomains.resolution.resolver.TieredResolver`;
tiers only look things up.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from semdomains.common.types import ExternalClassifier
from semdomains.taxonomy import PENDING_CODE
from semdomains.utils.text import normalize_token

from .cache import ClassificationCache
from .llm_classifier import ClassifierError
from .models import Classification, ClassificationSource, Context, Token
from .morphology import MorphologicalRuleMatcher
from .propagation import PROPAGATION_CONTEXT

logger = logging.getLogger(__name__)

BaseFormResolver = Callable[[Token, Context, int], Optional[Classification]]

STOPWORD_DOMAIN = "MG"

# Portuguese closed-class words, already normalized (no diacritics).
PORTUGUESE_STOPWORDS: frozenset[str] = frozenset(
    {
        # articles and contractions
        "a", "o", "as", "os", "um", "uma", "uns", "umas",
        "ao", "aos", "do", "da", "dos", "das", "no", "na", "nos", "nas",
        "num", "numa", "pelo", "pela", "pelos", "pelas", "dum", "duma",
        "pro", "pra", "pros", "pras",
        # prepositions
        "de", "em", "por", "para", "com", "sem", "sob", "sobre", "entre",
        "ate", "desde", "contra", "perante", "apos", "tras",
        # conjunctions
        "e", "ou", "mas", "porem", "que", "se", "como", "porque", "pois",
        "quando", "nem", "logo", "embora", "conforme",
        # pronouns
        "eu", "tu", "ele", "ela", "nos", "vos", "eles", "elas", "voce", "voces",
        "me", "te", "lhe", "lhes", "mim", "ti", "si", "comigo", "contigo",
        "meu", "minha", "meus", "minhas", "teu", "tua", "teus", "tuas",
        "seu", "sua", "seus", "suas", "nosso", "nossa", "nossos", "nossas",
        "este", "esta", "estes", "estas", "esse", "essa", "esses", "essas",
        "aquele", "aquela", "aqueles", "aquelas", "isto", "isso", "aquilo",
        "quem", "qual", "quais", "cujo", "cuja",
    }
)

CLOSED_CLASS_POS: frozenset[str] = frozenset({"ADP", "DET", "CCONJ", "SCONJ", "PRON"})


class Tier:
    """Base tier: a name, an ``attempt`` and a flag for base-form resolution."""

    name = "tier"
    # Whether the tier may resolve base forms stripped by derivational rules.
    resolves_bases = False

    def attempt(self, token: Token, context: Context) -> Classification | None:
        raise NotImplementedError

    def attempt_base(self, token: Token, context: Context, depth: int) -> Classification | None:
        return self.attempt(token, context)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class HumanOverrideTier(Tier):
    name = "human"

    def __init__(self, cache: ClassificationCache) -> None:
        self.cache = cache

    def attempt(self, token: Token, context: Context) -> Classification | None:
        return self.cache.human_override(token.normalized, context.hash)


class StopwordTier(Tier):
    name = "stopword"

    def __init__(
        self,
        stopwords: frozenset[str] = PORTUGUESE_STOPWORDS,
        closed_class_pos: frozenset[str] = CLOSED_CLASS_POS,
    ) -> None:
        self.stopwords = frozenset(normalize_token(word) for word in stopwords)
        self.closed_class_pos = closed_class_pos

    def attempt(self, token: Token, context: Context) -> Classification | None:
        if token.normalized in self.stopwords:
            return Classification(
                domain_code=STOPWORD_DOMAIN,
                confidence=1.0,
                source=ClassificationSource.STOPWORD,
                justification="Palavra gramatical (classe fechada)",
            )
        if token.pos in self.closed_class_pos:
            return Classification(
                domain_code=STOPWORD_DOMAIN,
                confidence=0.99,
                source=ClassificationSource.STOPWORD,
                justification=f"Classe gramatical fechada ({token.pos})",
            )
        return None


class CacheTier(Tier):
    name = "cache"

    def __init__(self, cache: ClassificationCache) -> None:
        self.cache = cache

    def attempt(self, token: Token, context: Context) -> Classification | None:
        entry = self.cache.get(token.normalized, context.hash)
        if entry is None:
            return None
        return entry.with_source(ClassificationSource.CACHE)


class LexiconTier(Tier):
    name = "lexicon"
    resolves_bases = True

    def __init__(self, repository) -> None:
        self.repository = repository

    def attempt(self, token: Token, context: Context) -> Classification | None:
        for key in _lookup_keys(token):
            entry = self.repository.lookup_semantic(key)
            if entry is not None:
                return entry.to_classification()
        return None


class MorphologyTier(Tier):
    name = "morphology"
    resolves_bases = True

    def __init__(
        self,
        matcher: MorphologicalRuleMatcher | None = None,
        base_resolver: BaseFormResolver | None = None,
    ) -> None:
        self.matcher = matcher or MorphologicalRuleMatcher()
        # Bound by the resolver so stripped base forms go back through the chain.
        self.base_resolver = base_resolver

    def attempt(self, token: Token, context: Context) -> Classification | None:
        return self.attempt_base(token, context, 0)

    def attempt_base(self, token: Token, context: Context, depth: int) -> Classification | None:
        resolve_base = None
        if self.base_resolver is not None:
            base_resolver = self.base_resolver

            def resolve_base(base: str, next_depth: int) -> Classification | None:
                return base_resolver(token.derive(base), context, next_depth)

        match = self.matcher.match(
            token.normalized,
            pos=token.pos,
            resolve_base=resolve_base,
            depth=depth,
        )
        return match.to_classification() if match is not None else None


class DialectalTier(Tier):
    name = "dialectal"
    resolves_bases = True

    def __init__(self, repository) -> None:
        self.repository = repository

    def attempt(self, token: Token, context: Context) -> Classification | None:
        for key in _lookup_keys(token):
            entry = self.repository.lookup_dialectal(key)
            if entry is None:
                continue
            if entry.domain_code == PENDING_CODE:
                logger.debug("Dialectal entry awaiting classification", extra={"token": key})
                return None
            return entry.to_classification()
        return None


class PropagatedLabelTier(Tier):
    """Read labels stored by an earlier synonym propagation run."""

    name = "propagated"
    resolves_bases = True

    def __init__(self, cache: ClassificationCache) -> None:
        self.cache = cache

    def attempt(self, token: Token, context: Context) -> Classification | None:
        return self.cache.get(token.normalized, PROPAGATION_CONTEXT)


class SynonymInheritanceTier(Tier):
    """Borrow the domain of the best-classified direct synonym.

    Lexicon entries are preferred; failing those, the synonym's strongest
    cache row (propagated labels included) is used.
    """

    name = "synonym"
    resolves_bases = True

    def __init__(self, repository, propagator, cache: ClassificationCache | None = None) -> None:
        self.repository = repository
        self.propagator = propagator
        self.cache = cache

    def attempt(self, token: Token, context: Context) -> Classification | None:
        label = self.propagator.inherit(token.normalized, self._lookup)
        return label.classification if label is not None else None

    def _lookup(self, word: str) -> Classification | None:
        entry = self.repository.lookup_semantic(word)
        if entry is None:
            entry = self.repository.lookup_dialectal(word)
            if entry is not None and entry.domain_code == PENDING_CODE:
                entry = None
        if entry is not None:
            return entry.to_classification()
        if self.cache is not None:
            return self.cache.best_for(word)
        return None


class ExternalClassifierTier(Tier):
    name = "llm"

    def __init__(self, classifier: ExternalClassifier) -> None:
        self.classifier = classifier

    def attempt(self, token: Token, context: Context) -> Classification | None:
        try:
            return self.classifier.classify(token, context)
        except ClassifierError as exc:
            logger.warning(
                "External classifier failed; treating as a miss",
                extra={"token": token.normalized, "error": str(exc)},
            )
            return None


def _lookup_keys(token: Token) -> list[str]:
    keys = [token.normalized]
    if token.lemma and token.lemma != token.normalized:
        keys.append(token.lemma)
    return keys


__all__ = [
    "CLOSED_CLASS_POS",
    "PORTUGUESE_STOPWORDS",
    "CacheTier",
    "DialectalTier",
    "ExternalClassifierTier",
    "HumanOverrideTier",
    "LexiconTier",
    "MorphologyTier",
    "PropagatedLabelTier",
    "StopwordTier",
    "SynonymInheritanceTier",
    "Tier",
]
