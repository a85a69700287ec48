import hashlib

from semdomains.utils.text import context_hash, normalize_token, parse_iso, utcnow_iso


def test_normalize_token_strips_accents_case_and_punctuation():
    assert normalize_token("Coração,") == "coracao"
    assert normalize_token("  «Querência»  ") == "querencia"
    assert normalize_token("PURA-FOLHA!") == "pura-folha"
    assert normalize_token("d'água") == "d'agua"


def test_normalize_token_handles_empty_input():
    assert normalize_token("") == ""
    assert normalize_token(None) == ""
    assert normalize_token("...") == ""


def test_context_hash_matches_truncated_sha256():
    expected = hashlib.sha256("no lombo|do pingo".encode("utf-8")).hexdigest()[:16]

    assert context_hash("No Lombo", "do PINGO") == expected
    assert len(context_hash("", "")) == 16
    assert context_hash("a", "b") != context_hash("b", "a")


def test_timestamps_round_trip():
    stamp = utcnow_iso()
    assert stamp.endswith("Z")
    assert parse_iso(stamp).tzinfo is not None
