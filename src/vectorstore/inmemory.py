from __future__ import annotations

"""In-memory similarity store for local testing and small datasets."""

import math
from dataclasses import dataclass, field

from src.rag.types import SearchResult, StoredDocument


@dataclass
class InMemoryVectorStore:
    """Simple in-memory store with cosine similarity top-1 lookup."""
    documents: list[StoredDocument] = field(default_factory=list)

    def ensure_schema(self) -> None:
        """Nothing to create for the in-memory backend."""
        return None

    def insert(self, chunk_id: str, title: str, contents: str, vector: list[float]) -> None:
        """Store a document with a precomputed embedding."""
        self.documents.append(
            StoredDocument(chunk_id=chunk_id, title=title, contents=contents, embedding=vector)
        )

    def top_match(self, vector: list[float], threshold: float) -> SearchResult | None:
        """Return the most similar document scoring above ``threshold``."""
        best: SearchResult | None = None
        for document in self.documents:
            similarity = self._cosine_similarity(vector, document.embedding)
            if similarity <= threshold:
                continue
            if best is None or similarity > best.similarity:
                best = SearchResult(
                    title=document.title,
                    contents=document.contents,
                    similarity=similarity,
                )
        return best

    def _cosine_similarity(self, a: list[float], b: list[float]) -> float:
        """Compute cosine similarity between two vectors."""
        dot = sum(x * y for x, y in zip(a, b))
        norm_a = math.sqrt(sum(x * x for x in a))
        norm_b = math.sqrt(sum(y * y for y in b))
        if norm_a == 0.0 or norm_b == 0.0:
            return 0.0
        return dot / (norm_a * norm_b)

    def health(self) -> dict[str, str | bool]:
        """Return health information for the store."""
        return {
            "backend": "memory",
            "ok": True,
        }
