import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from semdomains.lexicon.repository import (  # noqa: E402
    DialectalEntry,
    LexiconRepository,
    SemanticEntry,
)
from semdomains.resolution.cache import ClassificationCache  # noqa: E402
from semdomains.taxonomy import default_taxonomy  # noqa: E402
from semdomains.utils.sql import connect_sqlite, ensure_schema  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def conn():
    connection = connect_sqlite(":memory:")
    ensure_schema(connection)
    default_taxonomy().store(connection)
    yield connection
    connection.close()


@pytest.fixture
def repository(conn):
    return LexiconRepository(conn)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(conn, clock):
    return ClassificationCache(conn, ttl_seconds=60, clock=clock)


@pytest.fixture
def seeded_repository(repository):
    repository.upsert_semantic(
        [
            SemanticEntry(word="cavalo", domain_code="NA.FA.01", confidence=0.95, origin="core"),
            SemanticEntry(word="saudade", domain_code="SE.TRI", confidence=0.95, origin="core"),
            SemanticEntry(word="gado", domain_code="NA.FA.02", confidence=0.92, origin="core"),
        ]
    )
    repository.upsert_dialectal(
        [
            DialectalEntry(
                word="gateado",
                domain_code="NA.FA.01",
                confidence=0.95,
                alternates=["OA.ARR"],
                pos_class="adj.",
                definition="Cavalo de pelagem amarelada com listra escura no lombo.",
            ),
            DialectalEntry(word="bagual", domain_code="PENDING", confidence=0.5, pos_class="s.m."),
        ]
    )
    return repository
