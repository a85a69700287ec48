from semdomains.resolution.models import Classification, ClassificationSource
from semdomains.utils.text import ALL_CONTEXTS


def _lexicon(code: str = "NA.FA.01", confidence: float = 0.95) -> Classification:
    return Classification(code, confidence, ClassificationSource.LEXICON)


def test_put_is_write_once(cache):
    assert cache.put("cavalo", "abc", _lexicon())
    assert not cache.put("cavalo", "abc", _lexicon("SE.AMO", 0.99))

    assert cache.get("cavalo", "abc").domain_code == "NA.FA.01"


def test_unclassified_results_are_not_stored(cache):
    assert not cache.put("xiru", "abc", Classification.unclassified())
    assert not cache.has_entry("xiru")


def test_memory_layer_expires_after_ttl(conn, cache, clock):
    cache.put("cavalo", "abc", _lexicon())
    conn.execute("UPDATE semantic_cache SET domain_code = 'NA.FA' WHERE token = 'cavalo';")
    conn.commit()

    assert cache.get("cavalo", "abc").domain_code == "NA.FA.01"

    clock.advance(61)
    assert cache.get("cavalo", "abc").domain_code == "NA.FA"


def test_hits_are_counted(cache):
    cache.put("cavalo", "abc", _lexicon())
    cache.get("cavalo", "abc")
    cache.get("cavalo", "abc")

    stats = cache.stats()
    assert stats["entries"] == 1
    assert stats["hits"] == 2
    assert stats["by_source"] == {"lexicon": 1}


def test_override_replaces_existing_row(cache):
    cache.put("cavalo", "abc", _lexicon())
    result = cache.override("cavalo", "abc", "AP.TRA.RUR", "curadoria")

    assert result.source is ClassificationSource.HUMAN
    stored = cache.get("cavalo", "abc")
    assert stored.domain_code == "AP.TRA.RUR"
    assert stored.confidence == 1.0
    assert stored.source is ClassificationSource.HUMAN


def test_human_override_falls_back_to_token_wide_entry(cache):
    cache.put("cavalo", "abc", _lexicon())
    assert cache.human_override("cavalo", "abc") is None

    cache.override("cavalo", ALL_CONTEXTS, "NA.FA", "sempre fauna")
    assert cache.human_override("cavalo", "zzz").domain_code == "NA.FA"


def test_clear_contexts_keeps_only_token_wide_row(cache):
    cache.put("cavalo", "abc", _lexicon())
    cache.override("cavalo", "ghi", "NA.FA", "curadoria")
    cache.override("cavalo", ALL_CONTEXTS, "NA.FA.01", "sempre equino")
    cache.put("boi", "abc", _lexicon("NA.FA.02"))

    assert cache.clear_contexts("cavalo") == 2
    assert not cache.has_entry("cavalo", "abc")
    assert not cache.has_entry("cavalo", "ghi")
    assert cache.has_entry("cavalo", ALL_CONTEXTS)
    assert cache.has_entry("boi", "abc")


def test_best_for_returns_highest_confidence(cache):
    cache.put("cavalo", "abc", _lexicon("NA.FA", 0.7))
    cache.put("cavalo", "def", _lexicon("NA.FA.01", 0.95))

    assert cache.best_for("cavalo").domain_code == "NA.FA.01"
    assert cache.best_for("boi") is None


def test_human_override_lookup_is_not_a_hit(cache):
    cache.put("cavalo", "abc", _lexicon())
    cache.override("boi", ALL_CONTEXTS, "NA.FA.02", "gado")

    cache.human_override("cavalo", "abc")
    cache.human_override("boi", "abc")
    cache.get("cavalo", "abc", count_hit=False)

    assert cache.stats()["hits"] == 0
