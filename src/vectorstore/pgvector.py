from __future__ import annotations

"""Postgres + pgvector similarity store."""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from src.rag.errors import SUBSYSTEM_DATABASE, ConfigMissingError, UpstreamFailureError
from src.rag.types import SearchResult

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def format_vector(vector: list[float]) -> str:
    """Format an embedding as a pgvector literal."""
    return "[" + ",".join(repr(float(value)) for value in vector) + "]"


def normalize_connection_uri(uri: str) -> str:
    """Point bare Postgres URIs at the psycopg 3 driver."""
    for prefix in ("postgres://", "postgresql://"):
        if uri.startswith(prefix):
            return "postgresql+psycopg://" + uri[len(prefix):]
    return uri


@dataclass
class PgVectorStore:
    """Similarity store backed by a Postgres table with a vector column.

    The engine is created lazily. A missing connection string is reported
    with ``ConfigMissingError`` on every call instead of an empty result.
    """
    connection_uri: str | None
    table: str = "data"
    dimension: int = 1536
    _engine: Engine | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if not _IDENTIFIER.match(self.table):
            raise ValueError(f"Invalid table name: {self.table}")

    def _get_engine(self) -> Engine:
        if self._engine is not None:
            return self._engine
        if not self.connection_uri:
            raise ConfigMissingError(
                SUBSYSTEM_DATABASE,
                "POSTGRES_URL environment variable is not set. Please check your .env file.",
            )
        self._engine = create_engine(
            normalize_connection_uri(self.connection_uri), pool_pre_ping=True
        )
        return self._engine

    def ensure_schema(self) -> None:
        """Create the vector extension and document table when missing."""
        engine = self._get_engine()
        try:
            with engine.begin() as conn:
                conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                conn.execute(
                    text(
                        f"CREATE TABLE IF NOT EXISTS {self.table} ("
                        "id SERIAL PRIMARY KEY, "
                        "chunk_id TEXT NOT NULL, "
                        "title TEXT NOT NULL, "
                        "contents TEXT NOT NULL, "
                        f"vector vector({self.dimension}))"
                    )
                )
        except SQLAlchemyError as exc:
            raise UpstreamFailureError(SUBSYSTEM_DATABASE, str(exc)) from exc
        logger.info("vector_schema_ready", extra={"table": self.table, "dimension": self.dimension})

    def insert(self, chunk_id: str, title: str, contents: str, vector: list[float]) -> None:
        """Insert a document row with its embedding."""
        engine = self._get_engine()
        statement = text(
            f"INSERT INTO {self.table} (chunk_id, title, contents, vector) "
            "VALUES (:chunk_id, :title, :contents, CAST(:embedding AS vector))"
        )
        try:
            with engine.begin() as conn:
                conn.execute(
                    statement,
                    {
                        "chunk_id": chunk_id,
                        "title": title,
                        "contents": contents,
                        "embedding": format_vector(vector),
                    },
                )
        except SQLAlchemyError as exc:
            raise UpstreamFailureError(SUBSYSTEM_DATABASE, str(exc)) from exc

    def top_match(self, vector: list[float], threshold: float) -> SearchResult | None:
        """Return the single closest row whose cosine similarity exceeds ``threshold``."""
        engine = self._get_engine()
        statement = text(
            "SELECT title, contents, 1 - (vector <=> CAST(:embedding AS vector)) AS similarity "
            f"FROM {self.table} "
            "WHERE 1 - (vector <=> CAST(:embedding AS vector)) > :threshold "
            "ORDER BY similarity DESC "
            "LIMIT 1"
        )
        try:
            with engine.connect() as conn:
                row = conn.execute(
                    statement,
                    {"embedding": format_vector(vector), "threshold": threshold},
                ).mappings().first()
        except SQLAlchemyError as exc:
            raise UpstreamFailureError(SUBSYSTEM_DATABASE, str(exc)) from exc
        if row is None:
            return None
        return SearchResult(
            title=row["title"],
            contents=row["contents"],
            similarity=float(row["similarity"]),
        )

    def health(self) -> dict[str, Any]:
        """Verify configuration and connectivity with ``SELECT 1``."""
        try:
            engine = self._get_engine()
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except ConfigMissingError as exc:
            return {"backend": "postgres", "ok": False, "detail": str(exc)}
        except SQLAlchemyError as exc:
            logger.error("vector_store_unreachable", extra={"detail": type(exc).__name__})
            return {"backend": "postgres", "ok": False, "detail": type(exc).__name__}
        return {"backend": "postgres", "ok": True, "table": self.table}
