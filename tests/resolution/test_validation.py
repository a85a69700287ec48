import pytest
from pydantic import ValidationError

from semdomains.resolution.models import Classification, ClassificationSource
from semdomains.resolution.validation import apply_human_validation
from semdomains.schemas import ValidationOverride
from semdomains.taxonomy import TaxonomyError
from semdomains.utils.text import ALL_CONTEXTS, context_hash


def test_occurrence_scope_pins_one_context(conn, cache):
    override = ValidationOverride(
        token="Cavalo",
        domain_code="ap.tra.rur",
        justification="Cavalo de serviço",
        left="encilhei o",
        right="cedo",
    )

    ack = apply_human_validation(cache, override, conn=conn)

    assert ack.token == "cavalo"
    assert ack.domain_code == "AP.TRA.RUR"
    assert ack.context_hash == context_hash("encilhei o", "cedo")
    assert cache.human_override("cavalo", ack.context_hash).domain_code == "AP.TRA.RUR"
    assert cache.human_override("cavalo", context_hash("outro", "verso")) is None

    audit = conn.execute("SELECT token, scope, justification FROM human_validations;").fetchall()
    assert [tuple(row) for row in audit] == [("cavalo", "occurrence", "Cavalo de serviço")]


def test_all_scope_drops_machine_rows(conn, cache):
    machine = Classification("NA.FA.01", 0.95, ClassificationSource.LEXICON)
    cache.put("cavalo", "h1", machine)
    cache.put("cavalo", "h2", machine)

    ack = apply_human_validation(
        cache,
        ValidationOverride(token="cavalo", domain_code="NA.FA", justification="fauna", scope="all"),
        conn=conn,
    )

    assert ack.context_hash == ALL_CONTEXTS
    assert ack.replaced_entries == 2
    assert not cache.has_entry("cavalo", "h1")
    assert cache.human_override("cavalo", "h1").domain_code == "NA.FA"


def test_unknown_code_is_rejected(conn, cache):
    override = ValidationOverride(token="cavalo", domain_code="ZZ.ZZ", justification="x")

    with pytest.raises(TaxonomyError):
        apply_human_validation(cache, override, conn=conn)
    assert not cache.has_entry("cavalo")


def test_justification_is_required():
    with pytest.raises(ValidationError):
        ValidationOverride(token="cavalo", domain_code="NA.FA", justification="   ")

    with pytest.raises(ValidationError):
        ValidationOverride(token="cavalo", domain_code="NA.FA", justification="ok", scope="song")


def test_all_scope_replaces_earlier_occurrence_override(conn, cache):
    apply_human_validation(
        cache,
        ValidationOverride(token="cavalo", domain_code="SE", justification="metáfora", left="o", right="corria"),
        conn=conn,
    )

    ack = apply_human_validation(
        cache,
        ValidationOverride(token="cavalo", domain_code="NA.FA.01", justification="equino", scope="all"),
        conn=conn,
    )

    assert ack.replaced_entries == 1
    assert cache.human_override("cavalo", context_hash("o", "corria")).domain_code == "NA.FA.01"
