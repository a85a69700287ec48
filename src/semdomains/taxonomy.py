"""Hierarchical semantic-domain taxonomy (N1 → N4)."""
from __future__ import annotations

import json
import logging
import re
import sqlite3
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

logger = logging.getLogger(__name__)

MAX_LEVEL = 4
UNCLASSIFIED_CODE = "NC"
PENDING_CODE = "PENDING"

_CODE_RE = re.compile(r"^[A-Z]{2}(\.[A-Z0-9]{2,3}){0,3}$")


class TaxonomyError(ValueError):
    """Raised when a domain code is malformed or missing from the taxonomy."""


@dataclass(frozen=True)
class DomainNode:
    code: str
    name: str
    parent: str | None
    level: int


DEFAULT_DOMAINS: tuple[tuple[str, str], ...] = (
    ("NA", "Natureza e Paisagem"),
    ("NA.FA", "Fauna"),
    ("NA.FA.01", "Equinos e Animais de Montaria"),
    ("NA.FA.02", "Gado e Pecuária"),
    ("NA.FA.03", "Aves"),
    ("NA.FL", "Flora"),
    ("NA.FN", "Fenômenos Naturais"),
    ("NA.EC", "Elementos Celestes"),
    ("NA.GE", "Geografia e Paisagem"),
    ("AP", "Atividades e Práticas"),
    ("AP.TRA", "Trabalho"),
    ("AP.TRA.RUR", "Trabalho Rural"),
    ("AP.TRA.RUR.01", "Lida com o Gado"),
    ("AP.ALI", "Alimentação e Culinária"),
    ("AP.DES", "Transporte e Deslocamento"),
    ("AC", "Ações e Processos"),
    ("AC.MD", "Movimento e Deslocamento"),
    ("AC.MD.LOC", "Locomoção"),
    ("AC.MI", "Manipulação e Interação"),
    ("AC.TR", "Transformação"),
    ("AC.PS", "Percepção Sensorial Ativa"),
    ("AC.EC", "Expressão e Comunicação Física"),
    ("CC", "Cultura e Conhecimento"),
    ("CC.ART", "Arte e Expressão Cultural"),
    ("CC.ART.MUS", "Música"),
    ("CC.ART.POE", "Literatura em Poesia"),
    ("CC.REL", "Religiosidade e Espiritualidade"),
    ("CC.EDU", "Educação e Aprendizado"),
    ("CC.CIT", "Ciência e Tecnologia"),
    ("CC.COM", "Comunicação e Mídia"),
    ("SE", "Sentimentos e Emoções"),
    ("SE.ALE", "Alegria e Felicidade"),
    ("SE.AMO", "Amor e Afeto"),
    ("SE.TRI", "Tristeza e Saudade"),
    ("SE.MED", "Medo e Ansiedade"),
    ("SE.RAI", "Raiva e Frustração"),
    ("AB", "Abstrações"),
    ("AB.FIL", "Conceitos Filosóficos e Éticos"),
    ("AB.FIL.MOR", "Valores Morais"),
    ("AB.SOC", "Conceitos Sociais e Políticos"),
    ("AB.EXI", "Conceitos Existenciais e Metafísicos"),
    ("OA", "Objetos e Artefatos"),
    ("OA.VES", "Vestimenta e Pilcha"),
    ("OA.ARR", "Arreios e Encilhas"),
    ("OA.FER", "Ferramentas e Utensílios"),
    ("EL", "Estruturas e Lugares"),
    ("EL.CON", "Construções"),
    ("EL.LOC", "Locais"),
    ("SP", "Sociedade e Política"),
    ("SP.POL", "Processos Políticos"),
    ("SP.EST", "Estrutura Social"),
    ("SP.GOV", "Governo e Estado"),
    ("SB", "Saúde e Bem-Estar"),
    ("SB.TRA", "Tratamentos e Cuidados Médicos"),
    ("SB.MEN", "Saúde Mental e Psicologia"),
    ("MG", "Marcadores Gramaticais"),
)


def parent_code(code: str) -> str | None:
    if "." not in code:
        return None
    return code.rsplit(".", 1)[0]


def code_level(code: str) -> int:
    return code.count(".") + 1


class DomainTaxonomy:
    """Read-only mapping of domain codes to nodes.

    Construction validates the whole hierarchy: codes must be well formed, no
    deeper than N4, and every non-root code's segment prefix must exist.
    """

    def __init__(self, entries: Iterable[tuple[str, str]]):
        nodes: dict[str, DomainNode] = {}
        for raw_code, name in entries:
            code = (raw_code or "").strip().upper()
            if not _CODE_RE.match(code):
                raise TaxonomyError(f"Malformed domain code: {raw_code!r}")
            level = code_level(code)
            if level > MAX_LEVEL:
                raise TaxonomyError(f"Domain code deeper than N{MAX_LEVEL}: {code}")
            if code in nodes:
                raise TaxonomyError(f"Duplicate domain code: {code}")
            nodes[code] = DomainNode(code=code, name=name, parent=parent_code(code), level=level)

        for node in nodes.values():
            if node.parent is not None and node.parent not in nodes:
                raise TaxonomyError(
                    f"Domain code {node.code} has no parent {node.parent} in the taxonomy"
                )

        self._nodes: Mapping[str, DomainNode] = MappingProxyType(nodes)

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and code in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[DomainNode]:
        return iter(self._nodes.values())

    @property
    def nodes(self) -> Mapping[str, DomainNode]:
        return self._nodes

    def get(self, code: str) -> DomainNode:
        try:
            return self._nodes[code]
        except KeyError:
            raise TaxonomyError(f"Unknown domain code: {code}") from None

    def require(self, code: str) -> str:
        """Return *code* normalized to upper case, raising if it is unknown."""

        normalized = (code or "").strip().upper()
        self.get(normalized)
        return normalized

    def ancestors(self, code: str) -> list[DomainNode]:
        """Return the chain from the N1 root down to *code* (inclusive)."""

        chain: list[DomainNode] = []
        current: str | None = self.get(code).code
        while current is not None:
            node = self._nodes[current]
            chain.append(node)
            current = node.parent
        chain.reverse()
        return chain

    def children(self, code: str | None = None) -> list[DomainNode]:
        return sorted(
            (node for node in self._nodes.values() if node.parent == code),
            key=lambda node: node.code,
        )

    def roots(self) -> list[DomainNode]:
        return self.children(None)

    def as_rows(self) -> list[dict[str, object]]:
        return [
            {"code": node.code, "name": node.name, "parent": node.parent, "level": node.level}
            for node in sorted(self._nodes.values(), key=lambda node: node.code)
        ]

    @classmethod
    def from_json(cls, path: str | Path) -> "DomainTaxonomy":
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        if isinstance(raw, dict):
            return cls(raw.items())
        if isinstance(raw, list):
            return cls((str(item["code"]), str(item.get("name", item["code"]))) for item in raw)
        raise TaxonomyError(f"Unsupported taxonomy JSON root type: {type(raw).__name__}")

    @classmethod
    def from_connection(cls, conn: sqlite3.Connection) -> "DomainTaxonomy":
        rows = conn.execute("SELECT code, name FROM semantic_taxonomy ORDER BY level, code;").fetchall()
        if not rows:
            raise TaxonomyError("semantic_taxonomy table is empty; run `semdomains init-db`")
        return cls((row[0], row[1]) for row in rows)

    def store(self, conn: sqlite3.Connection) -> int:
        rows = self.as_rows()
        conn.executemany(
            """
            INSERT INTO semantic_taxonomy (code, name, parent, level)
            VALUES (:code, :name, :parent, :level)
            ON CONFLICT(code) DO UPDATE SET name = excluded.name
            """,
            rows,
        )
        conn.commit()
        logger.info("Stored taxonomy", extra={"codes": len(rows)})
        return len(rows)


@lru_cache(maxsize=1)
def default_taxonomy() -> DomainTaxonomy:
    """Return the built-in taxonomy, built once per process."""

    return DomainTaxonomy(DEFAULT_DOMAINS)


__all__ = [
    "DEFAULT_DOMAINS",
    "DomainNode",
    "DomainTaxonomy",
    "PENDING_CODE",
    "TaxonomyError",
    "UNCLASSIFIED_CODE",
    "default_taxonomy",
]
