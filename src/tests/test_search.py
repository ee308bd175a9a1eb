from __future__ import annotations

"""Tests for similarity search and the vector stores."""

import pytest
from sqlalchemy.exc import OperationalError

from src.rag.embeddings import HashEmbedder
from src.rag.errors import SUBSYSTEM_DATABASE, ConfigMissingError, UpstreamFailureError
from src.rag.search import DEFAULT_SIMILARITY_THRESHOLD, SimilaritySearch, validate_threshold
from src.rag.types import SearchResult
from src.tests.fakes import RecordingEngine
from src.vectorstore.inmemory import InMemoryVectorStore
from src.vectorstore.pgvector import PgVectorStore, format_vector, normalize_connection_uri

pytestmark = pytest.mark.anyio


def build_search(threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> SimilaritySearch:
    embedder = HashEmbedder(dimension=256)
    return SimilaritySearch(
        embedder=embedder,
        store=InMemoryVectorStore(),
        default_threshold=threshold,
    )


def test_default_threshold() -> None:
    assert DEFAULT_SIMILARITY_THRESHOLD == 0.8
    assert build_search().default_threshold == 0.8


@pytest.mark.parametrize("threshold", [0.0, -0.1, 1.5])
def test_threshold_outside_range_is_rejected(threshold: float) -> None:
    with pytest.raises(ValueError):
        validate_threshold(threshold)
    with pytest.raises(ValueError):
        build_search(threshold)


def test_threshold_of_one_is_allowed() -> None:
    assert validate_threshold(1.0) == 1.0


async def test_search_returns_single_best_match() -> None:
    search = build_search(threshold=0.5)
    await search.ensure_schema()
    await search.add_document("c1", "Helplines", "women helpline number 1091")
    await search.add_document("c2", "Travel", "safety while travelling by train at night")

    result = await search.search("women helpline number 1091")

    assert result is not None
    assert result.title == "Helplines"
    assert result.contents == "women helpline number 1091"
    assert result.similarity == pytest.approx(1.0)


async def test_search_returns_none_below_threshold() -> None:
    search = build_search()
    await search.add_document("c1", "Helplines", "women helpline number 1091")

    assert await search.search("workplace harassment committee") is None


async def test_search_on_empty_store_returns_none() -> None:
    assert await build_search().search("anything") is None


async def test_per_call_threshold_is_validated() -> None:
    with pytest.raises(ValueError):
        await build_search().search("query", threshold=2.0)


def test_in_memory_match_must_exceed_threshold() -> None:
    embedder = HashEmbedder(dimension=256)
    store = InMemoryVectorStore()
    vector = embedder.embed("self defense classes")
    store.insert("c1", "Self-defense", "self defense classes", vector)

    other = embedder.embed("cyber stalking report")
    assert store.top_match(vector, 0.99) is not None
    assert store.top_match(other, 0.5) is None


def test_format_vector() -> None:
    assert format_vector([0.5, 1, -0.25]) == "[0.5,1.0,-0.25]"


def test_normalize_connection_uri() -> None:
    assert normalize_connection_uri("postgres://u@h/db") == "postgresql+psycopg://u@h/db"
    assert normalize_connection_uri("postgresql://u@h/db") == "postgresql+psycopg://u@h/db"
    assert normalize_connection_uri("postgresql+psycopg://u@h/db") == "postgresql+psycopg://u@h/db"


def test_pgvector_without_connection_string_reports_config_error() -> None:
    store = PgVectorStore(connection_uri=None)
    with pytest.raises(ConfigMissingError) as excinfo:
        store.top_match([0.0] * 1536, 0.8)
    assert excinfo.value.subsystem == SUBSYSTEM_DATABASE
    assert "POSTGRES_URL" in str(excinfo.value)


def test_pgvector_health_without_connection_string() -> None:
    report = PgVectorStore(connection_uri="").health()
    assert report["ok"] is False


def test_pgvector_rejects_unsafe_table_name() -> None:
    with pytest.raises(ValueError):
        PgVectorStore(connection_uri=None, table="data; DROP TABLE users")


def recording_store(engine: RecordingEngine, **kwargs) -> PgVectorStore:
    store = PgVectorStore(connection_uri="postgresql://safety@db/safety", **kwargs)
    store._engine = engine
    return store


def test_pgvector_top_match_runs_single_ranked_query() -> None:
    engine = RecordingEngine(
        rows=[{"title": "Helplines", "contents": "Call 1091.", "similarity": 0.93}]
    )

    result = recording_store(engine).top_match([0.5, 0.25], 0.8)

    assert result == SearchResult(title="Helplines", contents="Call 1091.", similarity=0.93)
    [(sql, params)] = engine.executed
    assert sql == (
        "SELECT title, contents, 1 - (vector <=> CAST(:embedding AS vector)) AS similarity "
        "FROM data "
        "WHERE 1 - (vector <=> CAST(:embedding AS vector)) > :threshold "
        "ORDER BY similarity DESC "
        "LIMIT 1"
    )
    assert params == {"embedding": "[0.5,0.25]", "threshold": 0.8}


def test_pgvector_top_match_without_rows_returns_none() -> None:
    assert recording_store(RecordingEngine()).top_match([1.0], 0.8) is None


def test_pgvector_insert_binds_vector_literal() -> None:
    engine = RecordingEngine()

    recording_store(engine).insert("c1", "Travel", "Share your live location.", [1, 0.5])

    [(sql, params)] = engine.executed
    assert sql == (
        "INSERT INTO data (chunk_id, title, contents, vector) "
        "VALUES (:chunk_id, :title, :contents, CAST(:embedding AS vector))"
    )
    assert params == {
        "chunk_id": "c1",
        "title": "Travel",
        "contents": "Share your live location.",
        "embedding": "[1.0,0.5]",
    }


def test_pgvector_ensure_schema_creates_extension_and_table() -> None:
    engine = RecordingEngine()

    recording_store(engine, table="safety_docs", dimension=4).ensure_schema()

    statements = [sql for sql, _ in engine.executed]
    assert statements == [
        "CREATE EXTENSION IF NOT EXISTS vector",
        "CREATE TABLE IF NOT EXISTS safety_docs (id SERIAL PRIMARY KEY, "
        "chunk_id TEXT NOT NULL, title TEXT NOT NULL, contents TEXT NOT NULL, "
        "vector vector(4))",
    ]


@pytest.mark.parametrize(
    "operation",
    [
        lambda store: store.top_match([0.1], 0.8),
        lambda store: store.insert("c1", "t", "c", [0.1]),
        lambda store: store.ensure_schema(),
    ],
)
def test_pgvector_driver_errors_become_upstream_failures(operation) -> None:
    engine = RecordingEngine(
        error=OperationalError("SELECT 1", {}, Exception("server closed the connection"))
    )

    with pytest.raises(UpstreamFailureError) as excinfo:
        operation(recording_store(engine))

    assert excinfo.value.subsystem == SUBSYSTEM_DATABASE
    assert isinstance(excinfo.value.__cause__, OperationalError)


def test_pgvector_health_reports_reachable_store() -> None:
    engine = RecordingEngine()

    assert recording_store(engine).health() == {"backend": "postgres", "ok": True, "table": "data"}
    assert engine.executed == [("SELECT 1", None)]
