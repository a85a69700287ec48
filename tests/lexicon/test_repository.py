import pytest

from semdomains.lexicon.repository import SemanticEntry
from semdomains.resolution.models import Classification, ClassificationSource


def test_candidates_keep_insertion_order(repository):
    assert repository.add_candidates(["Tropeiro", ("pialar", "verb"), "tropeiro", "  "]) == 2
    assert repository.add_candidates(["chimarrão"], origin="letras") == 1

    first = repository.candidate_words(limit=2)
    rest = repository.candidate_words(limit=10, offset=2)

    assert [c.word for c in first] == ["tropeiro", "pialar"]
    assert first[1].pos == "VERB"
    assert [(c.word, c.origin) for c in rest] == [("chimarrao", "letras")]
    assert repository.count_candidates() == 3


def test_save_classification_upserts_semantic_lexicon(repository):
    repository.upsert_semantic([SemanticEntry(word="Pampa", domain_code="NA", confidence=0.6)])
    repository.save_classification(
        "pampa",
        Classification("NA.GE", 0.9, ClassificationSource.LLM),
        origin="seed",
    )

    entry = repository.lookup_semantic("PAMPA")
    assert entry.domain_code == "NA.GE"
    assert entry.source == "llm"
    assert entry.origin == "seed"
    assert repository.in_semantic_lexicon("pampa")


def test_unclassified_results_are_not_saved(repository):
    with pytest.raises(ValueError):
        repository.save_classification("xiru", Classification.unclassified())
    assert not repository.in_semantic_lexicon("xiru")


def test_counts(seeded_repository):
    counts = seeded_repository.counts()

    assert counts["semantic_lexicon"] == 3
    assert counts["dialectal_lexicon"] == 2
    assert counts["candidate_words"] == 0
