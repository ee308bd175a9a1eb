from __future__ import annotations

"""Embedding-based top-1 similarity search over the document store."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from src.rag.embeddings import EmbeddingProvider
from src.rag.types import SearchResult

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.8


class SimilarityStore(Protocol):
    """Storage backend able to rank stored vectors by cosine similarity."""

    def ensure_schema(self) -> None:
        raise NotImplementedError

    def insert(self, chunk_id: str, title: str, contents: str, vector: list[float]) -> None:
        raise NotImplementedError

    def top_match(self, vector: list[float], threshold: float) -> SearchResult | None:
        raise NotImplementedError


def validate_threshold(threshold: float) -> float:
    """Reject similarity thresholds outside ``(0, 1]``."""
    if not 0.0 < threshold <= 1.0:
        raise ValueError(f"Similarity threshold must be in (0, 1], got {threshold}")
    return float(threshold)


@dataclass
class SimilaritySearch:
    """Embed queries and documents and delegate ranking to the store."""
    embedder: EmbeddingProvider
    store: SimilarityStore
    default_threshold: float = DEFAULT_SIMILARITY_THRESHOLD

    def __post_init__(self) -> None:
        validate_threshold(self.default_threshold)

    async def search(self, query: str, threshold: float | None = None) -> SearchResult | None:
        """Return the best document above the threshold, or None."""
        resolved = validate_threshold(self.default_threshold if threshold is None else threshold)
        vector = await asyncio.to_thread(self.embedder.embed, query)
        result = await asyncio.to_thread(self.store.top_match, vector, resolved)
        if result is None:
            logger.info(
                "similarity_search_complete",
                extra={"matched": False, "threshold": resolved, "query_length": len(query)},
            )
            return None
        logger.info(
            "similarity_search_complete",
            extra={
                "matched": True,
                "threshold": resolved,
                "similarity": round(result.similarity, 4),
                "title": result.title,
            },
        )
        return result

    async def add_document(self, chunk_id: str, title: str, contents: str) -> None:
        """Embed ``contents`` and insert it into the store."""
        vector = await asyncio.to_thread(self.embedder.embed, contents)
        await asyncio.to_thread(self.store.insert, chunk_id, title, contents, vector)
        logger.info("document_added", extra={"chunk_id": chunk_id, "title": title})

    async def ensure_schema(self) -> None:
        """Create the backing schema when the store needs one."""
        await asyncio.to_thread(self.store.ensure_schema)
