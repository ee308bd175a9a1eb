from __future__ import annotations

"""Core data types for classification, documents and retrieval."""

from dataclasses import dataclass, field
from enum import Enum


class QueryClassification(str, Enum):
    """Intent labels produced by the query classifier."""
    GREETING = "GREETING"
    RELEVANT = "RELEVANT"
    IRRELEVANT = "IRRELEVANT"
    INAPPROPRIATE = "INAPPROPRIATE"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class Classification:
    """Parsed classifier output with the raw model text kept for logging."""
    label: QueryClassification
    raw: str


@dataclass(frozen=True)
class StoredDocument:
    """Document row persisted in the similarity store."""
    chunk_id: str
    title: str
    contents: str
    embedding: list[float] = field(default_factory=list, repr=False)


@dataclass(frozen=True)
class SearchResult:
    """Best match returned by a similarity search."""
    title: str
    contents: str
    similarity: float
