"""Label propagation over the lexical synonym graph.

Labels flow outward from classified seed words along breadth-first hop
distances in the ``networkx`` graph, losing ``decay`` confidence per hop.
Shortest-path distances make cycles (A-B-C-A) harmless, and the search is
cut off at ``max_hops``.

Known limitation: synonyms of a polysemous word inherit whichever sense the
seed carries; there is no sense disambiguation.
"""
from __future__ import annotations

import logging
import sqlite3
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Optional

import networkx as nx

from semdomains.common.config import ResolverSettings
from semdomains.utils.text import normalize_token

from .cache import ClassificationCache
from .models import Classification, ClassificationSource

logger = logging.getLogger(__name__)

PROPAGATION_CONTEXT = "synonym_propagation"

ClassificationLookup = Callable[[str], Optional[Classification]]


class SynonymGraph:
    """Undirected synonym graph over normalized tokens, backed by ``nx.Graph``."""

    def __init__(self, graph: nx.Graph | None = None) -> None:
        self._graph = graph if graph is not None else nx.Graph()

    @classmethod
    def from_edges(cls, pairs: Iterable[tuple[str, str]]) -> "SynonymGraph":
        G = nx.Graph()
        for left, right in pairs:
            a, b = normalize_token(left), normalize_token(right)
            if not a or not b or a == b:
                continue
            G.add_edge(a, b)
        return cls(G)

    @classmethod
    def from_connection(cls, conn: sqlite3.Connection) -> "SynonymGraph":
        rows = conn.execute("SELECT word, synonym FROM lexical_synonyms;").fetchall()
        graph = cls.from_edges((row[0], row[1]) for row in rows)
        logger.debug(
            "Loaded synonym graph",
            extra={"nodes": len(graph), "edges": graph.edge_count},
        )
        return graph

    def neighbors(self, word: str) -> frozenset[str]:
        key = normalize_token(word)
        if not self._graph.has_node(key):
            return frozenset()
        return frozenset(self._graph.neighbors(key))

    def hop_distances(self, word: str, cutoff: int) -> dict[str, int]:
        """Breadth-first hop counts from *word*, at most *cutoff* hops out."""

        key = normalize_token(word)
        if not self._graph.has_node(key):
            return {}
        return dict(nx.single_source_shortest_path_length(self._graph, key, cutoff=cutoff))

    @property
    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    def __contains__(self, word: object) -> bool:
        return isinstance(word, str) and self._graph.has_node(normalize_token(word))

    def __len__(self) -> int:
        return self._graph.number_of_nodes()


@dataclass(frozen=True)
class PropagatedLabel:
    word: str
    classification: Classification
    hops: int
    seeds: tuple[str, ...] = field(default_factory=tuple)


@dataclass
class _Proposal:
    confidence: float
    hops: int
    seed: str


class SynonymPropagator:
    def __init__(
        self,
        graph: SynonymGraph,
        *,
        decay: float = 0.85,
        inherit_decay: float = 0.80,
        min_confidence: float = 0.50,
        max_hops: int = 2,
    ) -> None:
        self.graph = graph
        self.decay = float(decay)
        self.inherit_decay = float(inherit_decay)
        self.min_confidence = float(min_confidence)
        self.max_hops = int(max_hops)

    @classmethod
    def from_settings(cls, graph: SynonymGraph, settings: ResolverSettings) -> "SynonymPropagator":
        return cls(
            graph,
            decay=settings.propagation_decay,
            inherit_decay=settings.inherit_decay,
            min_confidence=settings.propagation_min_confidence,
            max_hops=settings.max_hops,
        )

    def propagate(
        self,
        seeds: Mapping[str, Classification],
        *,
        max_hops: int | None = None,
    ) -> dict[str, PropagatedLabel]:
        """Propose labels for unlabelled words reachable from *seeds*.

        When several seeds reach the same word with different domains, the
        domain with the highest summed confidence wins; ties go to the
        lexicographically smaller code.
        """

        limit = self.max_hops if max_hops is None else int(max_hops)
        seed_map = {
            normalize_token(word): classification
            for word, classification in seeds.items()
            if classification.is_resolved
        }
        proposals: dict[str, dict[str, list[_Proposal]]] = defaultdict(lambda: defaultdict(list))

        for seed in sorted(seed_map):
            classification = seed_map[seed]
            for word, hops in sorted(self.graph.hop_distances(seed, limit).items()):
                if hops == 0 or word in seed_map:
                    continue
                confidence = classification.confidence * self.decay**hops
                if confidence < self.min_confidence:
                    continue
                proposals[word][classification.domain_code].append(_Proposal(confidence, hops, seed))

        labels: dict[str, PropagatedLabel] = {}
        for word, by_code in proposals.items():
            ranked = sorted(
                by_code.items(),
                key=lambda item: (-sum(p.confidence for p in item[1]), item[0]),
            )
            code, winners = ranked[0]
            nearest = min(winners, key=lambda p: (p.hops, -p.confidence, p.seed))
            labels[word] = PropagatedLabel(
                word=word,
                classification=Classification(
                    domain_code=code,
                    confidence=max(p.confidence for p in winners),
                    source=ClassificationSource.SYNONYM,
                    justification=(
                        f"Propagado de '{nearest.seed}' via sinônimos ({nearest.hops} salto(s))"
                    ),
                    inherited_from=nearest.seed,
                    alternates=tuple(other for other, _ in ranked[1:]),
                ),
                hops=nearest.hops,
                seeds=tuple(sorted({p.seed for p in winners})),
            )
        logger.info(
            "Synonym propagation complete",
            extra={"seeds": len(seed_map), "proposals": len(labels), "max_hops": limit},
        )
        return labels

    def inherit(self, word: str, lookup: ClassificationLookup) -> PropagatedLabel | None:
        """Borrow the best label among *word*'s directly connected synonyms."""

        best: tuple[str, Classification] | None = None
        for neighbor in sorted(self.graph.neighbors(word)):
            found = lookup(neighbor)
            if found is None or not found.is_resolved:
                continue
            if best is None or found.confidence > best[1].confidence:
                best = (neighbor, found)
        if best is None:
            return None

        neighbor, found = best
        return PropagatedLabel(
            word=normalize_token(word),
            classification=Classification(
                domain_code=found.domain_code,
                confidence=found.confidence * self.inherit_decay,
                source=ClassificationSource.SYNONYM,
                justification=f"Herdado do sinônimo '{neighbor}'",
                inherited_from=neighbor,
            ),
            hops=1,
            seeds=(neighbor,),
        )

    def propagate_and_store(
        self,
        cache: ClassificationCache,
        seeds: Mapping[str, Classification],
        *,
        max_hops: int | None = None,
    ) -> list[PropagatedLabel]:
        """Propagate and persist proposals for words with no cache entry yet."""

        stored: list[PropagatedLabel] = []
        for word, label in sorted(self.propagate(seeds, max_hops=max_hops).items()):
            if cache.has_entry(word):
                logger.debug("Skipping propagation target with cache entry", extra={"token": word})
                continue
            if cache.put(word, PROPAGATION_CONTEXT, label.classification):
                stored.append(label)
        return stored


__all__ = [
    "PROPAGATION_CONTEXT",
    "PropagatedLabel",
    "SynonymGraph",
    "SynonymPropagator",
]
