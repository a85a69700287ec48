from .loader import load_dialectal_lexicon, load_semantic_lexicon, load_synonyms
from .repository import CandidateWord, DialectalEntry, LexiconRepository, SemanticEntry

__all__ = [
    "CandidateWord",
    "DialectalEntry",
    "LexiconRepository",
    "SemanticEntry",
    "load_dialectal_lexicon",
    "load_semantic_lexicon",
    "load_synonyms",
]
