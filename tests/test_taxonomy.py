import json

import pytest

from semdomains.taxonomy import DomainTaxonomy, TaxonomyError, default_taxonomy


def test_default_taxonomy_is_consistent():
    taxonomy = default_taxonomy()

    assert "NA.FA.01" in taxonomy
    assert "na.fa.01" not in taxonomy
    assert [node.code for node in taxonomy.ancestors("AP.TRA.RUR.01")] == [
        "AP",
        "AP.TRA",
        "AP.TRA.RUR",
        "AP.TRA.RUR.01",
    ]
    assert taxonomy.get("NA.FA.01").level == 3
    assert {node.code for node in taxonomy.children("NA.FA")} == {"NA.FA.01", "NA.FA.02", "NA.FA.03"}
    assert default_taxonomy() is taxonomy


def test_require_normalizes_and_rejects_unknown():
    taxonomy = default_taxonomy()

    assert taxonomy.require(" se.amo ") == "SE.AMO"
    with pytest.raises(TaxonomyError):
        taxonomy.require("XX.YY")


@pytest.mark.parametrize(
    "entries",
    [
        [("NA", "Natureza"), ("NA.FA.01", "Equinos")],
        [("natureza", "Natureza")],
        [("NA", "Natureza"), ("NA", "Outra")],
        [("NA", "N"), ("NA.FA", "F"), ("NA.FA.01", "E"), ("NA.FA.01.02", "X"), ("NA.FA.01.02.03", "Y")],
    ],
)
def test_invalid_hierarchies_raise(entries):
    with pytest.raises(TaxonomyError):
        DomainTaxonomy(entries)


def test_store_and_load_round_trip(conn):
    loaded = DomainTaxonomy.from_connection(conn)

    assert len(loaded) == len(default_taxonomy())
    assert loaded.get("CC.ART.MUS").parent == "CC.ART"


def test_from_connection_requires_rows():
    from semdomains.utils.sql import connect_sqlite, ensure_schema

    empty = connect_sqlite(":memory:")
    ensure_schema(empty)
    with pytest.raises(TaxonomyError):
        DomainTaxonomy.from_connection(empty)


def test_from_json(tmp_path):
    path = tmp_path / "taxonomy.json"
    path.write_text(json.dumps({"MG": "Marcadores", "SE": "Sentimentos", "SE.AMO": "Amor"}), encoding="utf-8")

    taxonomy = DomainTaxonomy.from_json(path)

    assert [node.code for node in taxonomy.roots()] == ["MG", "SE"]
