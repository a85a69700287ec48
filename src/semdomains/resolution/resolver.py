"""Tiered lookup resolver.

The resolver walks an ordered list of tiers and stops at the first one whose
candidate clears that tier's confidence threshold and names a code the
taxonomy knows. Successful lookups below the cache are written back to the
cache (write-once); the unclassified terminal state is never cached, so a
later run gets another chance at the word.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Iterable, Sequence

from semdomains.common.config import ResolverSettings
from semdomains.common.types import ExternalClassifier, ResolutionTier
from semdomains.lexicon.repository import LexiconRepository
from semdomains.taxonomy import DomainTaxonomy, default_taxonomy

from .cache import ClassificationCache
from .models import Classification, ClassificationSource, Context, Resolution, Token
from .morphology import MorphologicalRuleMatcher
from .propagation import SynonymGraph, SynonymPropagator
from .strategies import (
    CacheTier,
    DialectalTier,
    ExternalClassifierTier,
    HumanOverrideTier,
    LexiconTier,
    MorphologyTier,
    PropagatedLabelTier,
    StopwordTier,
    SynonymInheritanceTier,
    Tier,
)

logger = logging.getLogger(__name__)

CACHEABLE_SOURCES = frozenset(
    {
        ClassificationSource.LEXICON,
        ClassificationSource.MORPHOLOGY,
        ClassificationSource.DIALECTAL,
        ClassificationSource.SYNONYM,
        ClassificationSource.LLM,
    }
)


class TieredResolver:
    def __init__(
        self,
        tiers: Sequence[ResolutionTier],
        *,
        cache: ClassificationCache | None = None,
        taxonomy: DomainTaxonomy | None = None,
        settings: ResolverSettings | None = None,
    ) -> None:
        self.tiers: tuple[ResolutionTier, ...] = tuple(tiers)
        for tier in self.tiers:
            if not isinstance(tier, ResolutionTier):
                raise TypeError(f"{tier!r} does not implement the tier interface")
        self.cache = cache
        self.taxonomy = taxonomy or default_taxonomy()
        self.settings = settings or ResolverSettings()
        for tier in self.tiers:
            if isinstance(tier, MorphologyTier) and tier.base_resolver is None:
                tier.base_resolver = self._resolve_base

    @classmethod
    def build(
        cls,
        conn: sqlite3.Connection,
        *,
        classifier: ExternalClassifier | None = None,
        taxonomy: DomainTaxonomy | None = None,
        settings: ResolverSettings | None = None,
        cache: ClassificationCache | None = None,
        matcher: MorphologicalRuleMatcher | None = None,
    ) -> "TieredResolver":
        """Assemble the default tier chain over *conn*.

        The external tier is only added when a *classifier* is supplied.
        """

        settings = settings or ResolverSettings()
        cache = cache or ClassificationCache(conn, ttl_seconds=settings.cache_ttl_seconds)
        repository = LexiconRepository(conn)
        matcher = matcher or MorphologicalRuleMatcher(max_depth=settings.max_derivation_depth)

        tiers: list[Tier] = [
            HumanOverrideTier(cache),
            StopwordTier(),
            CacheTier(cache),
            LexiconTier(repository),
            MorphologyTier(matcher),
            DialectalTier(repository),
            PropagatedLabelTier(cache),
        ]
        if settings.enable_synonym_tier:
            propagator = SynonymPropagator.from_settings(SynonymGraph.from_connection(conn), settings)
            tiers.append(SynonymInheritanceTier(repository, propagator, cache))
        if classifier is not None:
            tiers.append(ExternalClassifierTier(classifier))

        return cls(tiers, cache=cache, taxonomy=taxonomy, settings=settings)

    @property
    def tier_names(self) -> list[str]:
        return [tier.name for tier in self.tiers]

    def resolve(
        self,
        token: Token | str,
        context: Context | None = None,
        *,
        pos: str | None = None,
        lemma: str | None = None,
    ) -> Classification:
        return self.explain(token, context, pos=pos, lemma=lemma).classification

    def explain(
        self,
        token: Token | str,
        context: Context | None = None,
        *,
        pos: str | None = None,
        lemma: str | None = None,
    ) -> Resolution:
        if isinstance(token, str):
            token = Token.from_surface(token, lemma=lemma, pos=pos)
        context = context or Context()
        attempted: list[str] = []

        if not token.normalized:
            return Resolution(token, Classification.unclassified("Empty token"), attempted)

        for tier in self.tiers:
            attempted.append(tier.name)
            candidate = self._accept(tier, token, tier.attempt(token, context))
            if candidate is None:
                continue
            logger.debug(
                "Token resolved",
                extra={
                    "token": token.normalized,
                    "tier": tier.name,
                    "domain": candidate.domain_code,
                    "confidence": candidate.confidence,
                },
            )
            self._write_back(token, context, candidate)
            return Resolution(token, candidate, attempted)

        logger.info("Token left unclassified", extra={"token": token.normalized, "tiers": attempted})
        return Resolution(token, Classification.unclassified(), attempted)

    def resolve_many(
        self,
        tokens: Iterable[Token | str],
        context: Context | None = None,
    ) -> list[Classification]:
        return [self.resolve(token, context) for token in tokens]

    def _accept(self, tier: ResolutionTier, token: Token, candidate: Classification | None) -> Classification | None:
        if candidate is None or not candidate.is_resolved:
            return None
        if candidate.domain_code not in self.taxonomy:
            logger.warning(
                "Tier returned a domain code missing from the taxonomy",
                extra={"token": token.normalized, "tier": tier.name, "domain": candidate.domain_code},
            )
            return None
        threshold = self.settings.threshold(tier.name)
        if candidate.confidence < threshold:
            logger.debug(
                "Candidate below tier threshold",
                extra={
                    "token": token.normalized,
                    "tier": tier.name,
                    "confidence": candidate.confidence,
                    "threshold": threshold,
                },
            )
            return None
        return candidate

    def _resolve_base(self, token: Token, context: Context, depth: int) -> Classification | None:
        """Resolve a base form stripped by a derivational rule.

        Only base-capable tiers take part; a base is never sent to the cache,
        the human overrides or the external classifier.
        """

        for tier in self.tiers:
            if not getattr(tier, "resolves_bases", False):
                continue
            candidate = self._accept(tier, token, tier.attempt_base(token, context, depth))
            if candidate is not None:
                return candidate
        return None

    def _write_back(self, token: Token, context: Context, classification: Classification) -> None:
        if self.cache is None or classification.source not in CACHEABLE_SOURCES:
            return
        self.cache.put(
            token.normalized,
            context.hash,
            classification,
            lemma=token.lemma,
            pos=token.pos,
        )


__all__ = ["CACHEABLE_SOURCES", "TieredResolver"]
