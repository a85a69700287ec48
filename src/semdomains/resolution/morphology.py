"""Suffix/prefix rules for Portuguese lyric vocabulary.

Domain rules assign a field directly (``-logia`` → science). Derivational
rules (diminutives and augmentatives) never assign a field of their own: the
suffix is stripped, candidate base forms are rebuilt and resolved, and the
base's domain is inherited.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from semdomains.utils.text import normalize_token

from .models import Classification, ClassificationSource

logger = logging.getLogger(__name__)

MIN_STEM_LENGTH = 3

BaseResolver = Callable[[str, int], Optional[Classification]]


@dataclass(frozen=True)
class SuffixRule:
    suffix: str
    domain_code: str | None
    confidence: float
    label: str
    restorations: tuple[str, ...] = ()
    pos: frozenset[str] | None = None

    @property
    def derivational(self) -> bool:
        return self.domain_code is None


@dataclass(frozen=True)
class PrefixRule:
    prefix: str
    domain_code: str
    confidence: float
    label: str
    pos: frozenset[str] | None = None


@dataclass(frozen=True)
class RuleMatch:
    domain_code: str
    confidence: float
    pattern: str
    label: str
    base: str | None = None
    base_classification: Classification | None = None

    def to_classification(self) -> Classification:
        if self.base is not None and self.base_classification is not None:
            justification = (
                f"{self.label}: inherits {self.domain_code} from base '{self.base}'"
            )
            alternates = self.base_classification.alternates
        else:
            justification = f"{self.label}: pattern '{self.pattern}'"
            alternates = ()
        return Classification(
            domain_code=self.domain_code,
            confidence=self.confidence,
            source=ClassificationSource.MORPHOLOGY,
            justification=justification,
            inherited_from=self.base,
            alternates=alternates,
        )


def _suffix(
    suffix: str,
    domain_code: str | None,
    confidence: float,
    label: str,
    *,
    restorations: Sequence[str] = (),
    pos: Iterable[str] | None = None,
) -> SuffixRule:
    return SuffixRule(
        suffix=normalize_token(suffix),
        domain_code=domain_code,
        confidence=confidence,
        label=label,
        restorations=tuple(restorations),
        pos=frozenset(pos) if pos is not None else None,
    )


def _prefix(
    prefix: str,
    domain_code: str,
    confidence: float,
    label: str,
    *,
    pos: Iterable[str] | None = None,
) -> PrefixRule:
    return PrefixRule(
        prefix=normalize_token(prefix),
        domain_code=domain_code,
        confidence=confidence,
        label=label,
        pos=frozenset(pos) if pos is not None else None,
    )


DERIVATION_CONFIDENCE = 0.90

DEFAULT_SUFFIX_RULES: tuple[SuffixRule, ...] = (
    # diminutives (rioplatense -ito/-ita is common in gaúcho lyrics)
    _suffix("zinho", None, DERIVATION_CONFIDENCE, "Diminutivo", restorations=("",)),
    _suffix("zinha", None, DERIVATION_CONFIDENCE, "Diminutivo", restorations=("",)),
    _suffix("inho", None, DERIVATION_CONFIDENCE, "Diminutivo", restorations=("o", "e", "")),
    _suffix("inha", None, DERIVATION_CONFIDENCE, "Diminutivo", restorations=("a", "")),
    _suffix("zito", None, DERIVATION_CONFIDENCE, "Diminutivo platino", restorations=("",)),
    _suffix("ito", None, DERIVATION_CONFIDENCE, "Diminutivo platino", restorations=("o", "")),
    _suffix("ita", None, DERIVATION_CONFIDENCE, "Diminutivo platino", restorations=("a", "")),
    # augmentatives
    _suffix("zao", None, DERIVATION_CONFIDENCE, "Aumentativo", restorations=("",)),
    _suffix("zona", None, DERIVATION_CONFIDENCE, "Aumentativo", restorations=("",)),
    _suffix("ao", None, DERIVATION_CONFIDENCE, "Aumentativo", restorations=("o", "a")),
    _suffix("ona", None, DERIVATION_CONFIDENCE, "Aumentativo", restorations=("a", "o")),
    # domain-bearing suffixes
    _suffix("mente", "MG", 0.85, "Advérbio em -mente"),
    _suffix("logia", "CC.CIT", 0.80, "Área de conhecimento"),
    _suffix("ite", "SB", 0.80, "Inflamação/doença", pos=("NOUN",)),
    _suffix("ismo", "AB.FIL", 0.75, "Doutrina ou sistema"),
    _suffix("dade", "AB", 0.75, "Substantivo abstrato"),
    _suffix("cao", "AC", 0.72, "Nome de ação"),
    _suffix("eiro", "AP.TRA", 0.75, "Ofício ou agente", pos=("NOUN",)),
    _suffix("eira", "AP.TRA", 0.72, "Ofício ou agente", pos=("NOUN",)),
    _suffix("ar", "AC", 0.75, "Infinitivo verbal", pos=("VERB",)),
    _suffix("er", "AC", 0.75, "Infinitivo verbal", pos=("VERB",)),
    _suffix("ir", "AC", 0.75, "Infinitivo verbal", pos=("VERB",)),
)

DEFAULT_PREFIX_RULES: tuple[PrefixRule, ...] = (
    _prefix("psico", "SB.MEN", 0.75, "Prefixo psico-"),
    _prefix("eletro", "CC.CIT", 0.72, "Prefixo eletro-"),
    _prefix("hidro", "NA", 0.70, "Prefixo hidro-"),
    _prefix("agro", "AP.TRA.RUR", 0.70, "Prefixo agro-"),
    _prefix("bio", "CC.CIT", 0.70, "Prefixo bio-"),
)


class MorphologicalRuleMatcher:
    """Longest-pattern-first matcher over suffix then prefix rules."""

    def __init__(
        self,
        suffix_rules: Iterable[SuffixRule] = DEFAULT_SUFFIX_RULES,
        prefix_rules: Iterable[PrefixRule] = DEFAULT_PREFIX_RULES,
        *,
        min_stem_length: int = MIN_STEM_LENGTH,
        max_depth: int = 2,
    ) -> None:
        # sorted() is stable, so equal-length rules keep registration order
        self.suffix_rules: tuple[SuffixRule, ...] = tuple(
            sorted(suffix_rules, key=lambda rule: len(rule.suffix), reverse=True)
        )
        self.prefix_rules: tuple[PrefixRule, ...] = tuple(
            sorted(prefix_rules, key=lambda rule: len(rule.prefix), reverse=True)
        )
        self.min_stem_length = min_stem_length
        self.max_depth = max_depth

    def match(
        self,
        normalized: str,
        *,
        pos: str | None = None,
        resolve_base: BaseResolver | None = None,
        depth: int = 0,
    ) -> RuleMatch | None:
        for rule in self._candidate_suffixes(normalized, pos):
            if not rule.derivational:
                return RuleMatch(
                    domain_code=rule.domain_code or "",
                    confidence=rule.confidence,
                    pattern=f"-{rule.suffix}",
                    label=rule.label,
                )
            inherited = self._match_derivation(normalized, rule, resolve_base, depth)
            if inherited is not None:
                return inherited

        for rule in self._candidate_prefixes(normalized, pos):
            return RuleMatch(
                domain_code=rule.domain_code,
                confidence=rule.confidence,
                pattern=f"{rule.prefix}-",
                label=rule.label,
            )
        return None

    def base_forms(self, normalized: str, rule: SuffixRule) -> list[str]:
        stem = normalized[: -len(rule.suffix)]
        bases: list[str] = []
        for ending in rule.restorations:
            base = stem + ending
            if len(base) >= self.min_stem_length and base != normalized and base not in bases:
                bases.append(base)
        return bases

    def _match_derivation(
        self,
        normalized: str,
        rule: SuffixRule,
        resolve_base: BaseResolver | None,
        depth: int,
    ) -> RuleMatch | None:
        if resolve_base is None or depth >= self.max_depth:
            return None
        for base in self.base_forms(normalized, rule):
            resolved = resolve_base(base, depth + 1)
            if resolved is None or not resolved.is_resolved:
                continue
            logger.debug(
                "Derivation resolved through base form",
                extra={"token": normalized, "base": base, "domain": resolved.domain_code},
            )
            return RuleMatch(
                domain_code=resolved.domain_code,
                confidence=min(resolved.confidence, rule.confidence),
                pattern=f"-{rule.suffix}",
                label=rule.label,
                base=base,
                base_classification=resolved,
            )
        return None

    def _candidate_suffixes(self, normalized: str, pos: str | None) -> Iterable[SuffixRule]:
        for rule in self.suffix_rules:
            if rule.pos is not None and pos not in rule.pos:
                continue
            if not normalized.endswith(rule.suffix):
                continue
            if len(normalized) - len(rule.suffix) < self.min_stem_length:
                continue
            yield rule

    def _candidate_prefixes(self, normalized: str, pos: str | None) -> Iterable[PrefixRule]:
        for rule in self.prefix_rules:
            if rule.pos is not None and pos not in rule.pos:
                continue
            if not normalized.startswith(rule.prefix):
                continue
            if len(normalized) - len(rule.prefix) < self.min_stem_length:
                continue
            yield rule
