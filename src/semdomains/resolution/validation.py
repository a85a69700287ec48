from __future__ import annotations

import logging
import sqlite3

from semdomains.schemas import ValidationAck, ValidationOverride
from semdomains.taxonomy import DomainTaxonomy, default_taxonomy
from semdomains.utils.text import ALL_CONTEXTS, context_hash, utcnow_iso

from .cache import ClassificationCache

logger = logging.getLogger(__name__)


def apply_human_validation(
    cache: ClassificationCache,
    override: ValidationOverride,
    *,
    conn: sqlite3.Connection,
    taxonomy: DomainTaxonomy | None = None,
) -> ValidationAck:
    """Record a curator's classification, bypassing the resolver.

    ``occurrence`` scope pins the token in one context; ``all`` pins it
    everywhere and drops every other cache row for the token, earlier
    occurrence overrides included, so the newest decision wins. Unknown codes
    raise ``TaxonomyError`` so the curator sees the mistake.
    """

    taxonomy = taxonomy or default_taxonomy()
    code = taxonomy.require(override.domain_code)

    replaced = 0
    if override.scope == "all":
        key_hash = ALL_CONTEXTS
        replaced = cache.clear_contexts(override.token)
    else:
        key_hash = context_hash(override.left, override.right)

    cache.override(override.token, key_hash, code, override.justification)

    cursor = conn.execute(
        """
        INSERT INTO human_validations (token, context_hash, domain_code, justification, scope, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (override.token, key_hash, code, override.justification, override.scope, utcnow_iso()),
    )
    conn.commit()

    logger.info(
        "Applied human validation",
        extra={"token": override.token, "domain": code, "scope": override.scope, "replaced": replaced},
    )
    return ValidationAck(
        token=override.token,
        domain_code=code,
        scope=override.scope,
        context_hash=key_hash,
        replaced_entries=replaced,
        audit_id=int(cursor.lastrowid or 0),
    )
