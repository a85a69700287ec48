"""Dictionary import: semantic lexicon, dialectal dictionary and synonym lists.

Input is JSON. Records are validated with pydantic; malformed records are
logged and skipped so one bad headword does not sink an import.
"""
from __future__ import annotations

import json
import logging
import unicodedata
from pathlib import Path
from typing import Any, Iterable, List, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from semdomains.taxonomy import PENDING_CODE, DomainTaxonomy, TaxonomyError, default_taxonomy
from semdomains.utils.text import normalize_token

from .repository import DialectalEntry, LexiconRepository, SemanticEntry

logger = logging.getLogger(__name__)

CATEGORY_CONFIDENCE = 0.95
DEFINITION_PREVIEW_CHARS = 100

# Thematic categories used by the regional dictionaries.
CATEGORY_TO_DOMAIN_MAP: dict[str, str] = {
    "fauna": "NA.FA",
    "flora": "NA.FL",
    "clima": "NA.FN",
    "fenomenos_naturais": "NA.FN",
    "elementos_celestes": "NA.EC",
    "geografia_natural": "NA.GE",
    "geografia": "NA.GE",
    "lida_campeira": "AP.TRA.RUR",
    "trabalho_rural": "AP.TRA.RUR",
    "gastronomia": "AP.ALI",
    "transporte": "AP.DES",
    "movimento": "AC.MD",
    "locomocao": "AC.MD.LOC",
    "manipulacao": "AC.MI",
    "transformacao_fisica": "AC.TR",
    "percepcao_ativa": "AC.PS",
    "expressao_fisica": "AC.EC",
    "musica_danca": "CC.ART.MUS",
    "literatura": "CC.ART",
    "poesia": "CC.ART.POE",
    "tradicoes": "CC",
    "religiosidade": "CC.REL",
    "educacao": "CC.EDU",
    "ciencia": "CC.CIT",
    "comunicacao": "CC.COM",
    "sentimentos": "SE",
    "alegria": "SE.ALE",
    "amor": "SE.AMO",
    "tristeza": "SE.TRI",
    "saudade": "SE.TRI",
    "medo": "SE.MED",
    "raiva": "SE.RAI",
    "filosofia": "AB.FIL",
    "etica": "AB.FIL.MOR",
    "politica_abstrata": "AB.SOC",
    "existencial": "AB.EXI",
    "vestimenta": "OA.VES",
    "arreios": "OA.ARR",
    "ferramentas": "OA.FER",
    "utensilios": "OA.FER",
    "construcoes": "EL.CON",
    "locais": "EL.LOC",
    "politica": "SP.POL",
    "social": "SP.EST",
    "familia": "SP.EST",
    "governo": "SP.GOV",
    "saude": "SB",
    "medicina": "SB.TRA",
    "psicologia": "SB.MEN",
}

# Grammatical-class abbreviations (lower-cased) → (code, confidence).
# Nouns need context, so they stay pending.
DIALECTAL_POS_TO_DOMAIN: dict[str, tuple[str, float]] = {
    "s.m.": (PENDING_CODE, 0.50),
    "s.f.": (PENDING_CODE, 0.50),
    "tr.dir.": ("AC", 0.85),
    "v.t.d.": ("AC", 0.85),
    "int.": ("AC", 0.85),
    "intr.": ("AC", 0.85),
    "v.int.": ("AC", 0.85),
    "v.pron.": ("AC", 0.85),
    "adj.": ("SE", 0.80),
    "fraseol.": ("CC", 0.90),
    "loc.": ("EL", 0.70),
    "loc.interj.": ("SE", 0.90),
    "loc.adv.": ("MG", 0.85),
    "adv.": ("MG", 0.90),
}


class SemanticLexiconRecord(BaseModel):
    word: str = Field(validation_alias=AliasChoices("word", "palavra"))
    domain_code: str = Field(validation_alias=AliasChoices("domain_code", "tagset_codigo"))
    confidence: float = Field(default=0.95, validation_alias=AliasChoices("confidence", "confianca"))
    lemma: Optional[str] = Field(default=None, validation_alias=AliasChoices("lemma", "lema"))
    pos: Optional[str] = None

    @field_validator("domain_code", mode="before")
    def upper_code(cls, v: str) -> str:
        return str(v or "").strip().upper()

    @field_validator("confidence", mode="after")
    def check_confidence(cls, v: float) -> float:
        if not (0.0 <= v <= 1.0):
            raise ValueError(f"confidence {v} out of [0,1]")
        return v


class DialectalRecord(BaseModel):
    headword: str = Field(validation_alias=AliasChoices("headword", "verbete", "word"))
    categories: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("categories", "categorias_tematicas"),
    )
    pos_class: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("pos_class", "classe_gramatical"),
    )
    definitions: List[Any] = Field(
        default_factory=list,
        validation_alias=AliasChoices("definitions", "definicoes"),
    )

    @field_validator("categories", mode="before")
    def normalize_categories(cls, v: Optional[List[str]]) -> List[str]:
        if v is None:
            return []
        return [_category_key(str(item)) for item in v if str(item).strip()]

    def first_definition(self) -> Optional[str]:
        for item in self.definitions:
            text = item.get("texto") or item.get("text") if isinstance(item, dict) else item
            if isinstance(text, str) and text.strip():
                text = text.strip()
                if len(text) > DEFINITION_PREVIEW_CHARS:
                    return text[:DEFINITION_PREVIEW_CHARS].rstrip() + "..."
                return text
        return None


class SynonymRecord(BaseModel):
    word: str = Field(validation_alias=AliasChoices("word", "palavra"))
    synonyms: List[str] = Field(default_factory=list, validation_alias=AliasChoices("synonyms", "sinonimos"))


def _category_key(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value.strip().lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.replace(" ", "_").replace("-", "_")


def _read_json(path: str | Path) -> Any:
    json_path = Path(path)
    if not json_path.is_file():
        raise FileNotFoundError(f"Dictionary file '{json_path}' does not exist")
    return json.loads(json_path.read_text(encoding="utf-8"))


def _as_records(raw: Any) -> list[dict[str, Any]]:
    if isinstance(raw, list):
        return [item for item in raw if isinstance(item, dict)]
    if isinstance(raw, dict):
        for key in ("entries", "verbetes", "items"):
            if isinstance(raw.get(key), list):
                return [item for item in raw[key] if isinstance(item, dict)]
    raise ValueError("Expected a JSON list of entries")


def dialectal_entry_from_record(record: DialectalRecord) -> DialectalEntry:
    """Map a dictionary record to a domain through its categories, then its class."""

    mapped = [
        CATEGORY_TO_DOMAIN_MAP[category]
        for category in record.categories
        if category in CATEGORY_TO_DOMAIN_MAP
    ]
    definition = record.first_definition()

    if mapped:
        primary = mapped[0]
        alternates = [code for code in dict.fromkeys(mapped[1:]) if code != primary]
        return DialectalEntry(
            word=record.headword,
            domain_code=primary,
            confidence=CATEGORY_CONFIDENCE,
            alternates=alternates,
            pos_class=record.pos_class,
            definition=definition,
            justification=f"Palavra dialetal - categoria: {record.categories[0]}",
        )

    pos_key = (record.pos_class or "").strip().lower()
    code, confidence = DIALECTAL_POS_TO_DOMAIN.get(pos_key, (PENDING_CODE, 0.50))
    justification = (
        f"Palavra dialetal - POS: {record.pos_class} → {code}"
        if code != PENDING_CODE
        else None
    )
    return DialectalEntry(
        word=record.headword,
        domain_code=code,
        confidence=confidence,
        pos_class=record.pos_class,
        definition=definition,
        justification=justification,
    )


def load_semantic_lexicon(
    path: str | Path,
    repository: LexiconRepository,
    *,
    taxonomy: DomainTaxonomy | None = None,
    origin: str | None = None,
) -> int:
    taxonomy = taxonomy or default_taxonomy()
    origin = origin or Path(path).name
    entries: list[SemanticEntry] = []
    for raw in _as_records(_read_json(path)):
        try:
            record = SemanticLexiconRecord.model_validate(raw)
            code = taxonomy.require(record.domain_code)
        except (ValidationError, TaxonomyError) as exc:
            logger.warning("Skipping invalid lexicon record", extra={"record": raw, "error": str(exc)})
            continue
        entries.append(
            SemanticEntry(
                word=record.word,
                domain_code=code,
                confidence=record.confidence,
                lemma=record.lemma,
                pos=(record.pos or "").upper() or None,
                origin=origin,
            )
        )
    count = repository.upsert_semantic(entries)
    logger.info("Imported semantic lexicon", extra={"path": str(path), "entries": count})
    return count


def load_dialectal_lexicon(
    path: str | Path,
    repository: LexiconRepository,
    *,
    taxonomy: DomainTaxonomy | None = None,
) -> int:
    taxonomy = taxonomy or default_taxonomy()
    entries: list[DialectalEntry] = []
    for raw in _as_records(_read_json(path)):
        try:
            record = DialectalRecord.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Skipping invalid dialectal record", extra={"record": raw, "error": str(exc)})
            continue
        entry = dialectal_entry_from_record(record)
        if entry.domain_code != PENDING_CODE and entry.domain_code not in taxonomy:
            logger.warning(
                "Dialectal mapping produced an unknown code",
                extra={"word": entry.word, "domain": entry.domain_code},
            )
            continue
        entries.append(entry)
    count = repository.upsert_dialectal(entries)
    logger.info("Imported dialectal lexicon", extra={"path": str(path), "entries": count})
    return count


def iter_synonym_pairs(raw: Any) -> Iterable[tuple[str, str]]:
    if isinstance(raw, dict) and not any(key in raw for key in ("entries", "items")):
        records = [{"word": word, "synonyms": synonyms} for word, synonyms in raw.items()]
    else:
        records = _as_records(raw)
    for item in records:
        try:
            record = SynonymRecord.model_validate(item)
        except ValidationError as exc:
            logger.warning("Skipping invalid synonym record", extra={"record": item, "error": str(exc)})
            continue
        for synonym in record.synonyms:
            if normalize_token(synonym):
                yield record.word, synonym


def load_synonyms(path: str | Path, repository: LexiconRepository) -> int:
    count = repository.add_synonyms(iter_synonym_pairs(_read_json(path)))
    logger.info("Imported synonyms", extra={"path": str(path), "pairs": count})
    return count


__all__ = [
    "CATEGORY_TO_DOMAIN_MAP",
    "DIALECTAL_POS_TO_DOMAIN",
    "DialectalRecord",
    "SemanticLexiconRecord",
    "SynonymRecord",
    "dialectal_entry_from_record",
    "load_dialectal_lexicon",
    "load_semantic_lexicon",
    "load_synonyms",
]
