from __future__ import annotations

"""Embedding providers and configuration validation."""

import hashlib
import math
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

from openai import OpenAI, OpenAIError

from src.rag.errors import (
    SUBSYSTEM_EMBEDDING,
    ConfigMissingError,
    UpstreamFailureError,
)

_TOKEN_RE = re.compile(r"[a-z0-9]+")


class EmbeddingError(UpstreamFailureError):
    """Raised when embeddings fail or are invalid."""

    def __init__(self, message: str) -> None:
        super().__init__(SUBSYSTEM_EMBEDDING, message)


class EmbeddingProvider(Protocol):
    """Protocol for embedding providers."""
    dimension: int

    def embed(self, text: str) -> list[float]:
        """Return an embedding vector for the provided text."""
        raise NotImplementedError


def validate_vector(vector: list[float], dimension: int) -> list[float]:
    """Validate and normalize embedding vectors."""
    if len(vector) != dimension:
        raise EmbeddingError(
            f"Embedding dimension mismatch: expected {dimension}, got {len(vector)}"
        )
    cleaned: list[float] = []
    for value in vector:
        if not isinstance(value, (int, float)):
            raise EmbeddingError("Embedding contains a non-numeric value")
        if not math.isfinite(value):
            raise EmbeddingError("Embedding contains a non-finite value")
        cleaned.append(float(value))
    return cleaned


@dataclass
class HashEmbedder:
    """Deterministic hash-based embedder for testing or offline use."""
    dimension: int = 1536

    def embed(self, text: str) -> list[float]:
        """Embed text using token hashing and L2 normalization."""
        tokens = _TOKEN_RE.findall(text.lower())
        if not tokens:
            return validate_vector([0.0] * self.dimension, self.dimension)
        vector = [0.0] * self.dimension
        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            idx = int.from_bytes(digest[:4], "big") % self.dimension
            vector[idx] += 1.0
        return validate_vector(self._l2_normalize(vector), self.dimension)

    def _l2_normalize(self, vector: list[float]) -> list[float]:
        """Normalize vector magnitude to 1.0."""
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]


_OPENAI_MODEL_DIMENSIONS = {
    "text-embedding-ada-002": 1536,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
}


def resolve_openai_dimension(model: str) -> int | None:
    return _OPENAI_MODEL_DIMENSIONS.get(model)


@dataclass(frozen=True)
class EmbeddingConfigReport:
    """Result of checking the embedding width against the model and the vector column."""
    provider: str
    model: str | None
    configured_dimension: int
    expected_dimension: int | None
    ok: bool
    status: str
    detail: str | None = None
    action: str | None = None


def _failed_report(
    provider: str,
    model: str | None,
    dimension: int,
    detail: str,
    action: str,
    expected: int | None = None,
) -> EmbeddingConfigReport:
    return EmbeddingConfigReport(
        provider, model, dimension, expected, ok=False, status="error", detail=detail, action=action
    )


def build_embedding_config_report(
    provider: str, model: str | None, dimension: int, store_dimension: int | None = None
) -> EmbeddingConfigReport:
    """Check that embeddings will fit the similarity store.

    ``store_dimension`` is the width of the pgvector column. Every query
    embedding must match it exactly, otherwise each search fails.
    """
    name = provider.lower().strip() or "openai"
    if name not in {"openai", "hash"}:
        return _failed_report(
            name, model, dimension,
            "Unsupported embedding provider.",
            "Set EMBEDDING_PROVIDER to openai or hash.",
        )
    if dimension <= 0:
        return _failed_report(
            name, model, dimension,
            "EMBEDDING_DIMENSION must be a positive integer.",
            "Set EMBEDDING_DIMENSION to the width of the vector column.",
        )
    if name == "openai" and not model:
        return _failed_report(
            name, None, dimension,
            "OPENAI_EMBEDDING_MODEL is required for OpenAI embeddings.",
            "Set OPENAI_EMBEDDING_MODEL in .env.",
        )

    model_dimension = resolve_openai_dimension(model) if name == "openai" and model else None
    if name == "hash":
        model = None
    for expected in (model_dimension, store_dimension):
        if expected is not None and expected != dimension:
            return _failed_report(
                name, model, dimension,
                "EMBEDDING_DIMENSION does not match the model or vector column dimension.",
                f"Set EMBEDDING_DIMENSION to {expected}.",
                expected=expected,
            )

    expected_dimension = model_dimension or store_dimension
    if name == "openai" and model_dimension is None:
        return EmbeddingConfigReport(
            name, model, dimension, expected_dimension, True, "warning",
            "Model dimension cannot be auto-validated. Confirm EMBEDDING_DIMENSION manually.",
        )
    return EmbeddingConfigReport(
        name, model, dimension, expected_dimension or dimension, True, "ok"
    )


@dataclass
class OpenAIEmbedder:
    """Embedding provider using OpenAI embeddings API.

    The SDK client is created on first use so that a missing key surfaces
    as a ``ConfigMissingError`` during the request instead of at startup.
    """
    api_key: str | None
    model: str
    dimension: int = 1536
    client: Any = field(default=None, repr=False)

    def _get_client(self) -> Any:
        if self.client is not None:
            return self.client
        if not self.api_key:
            raise ConfigMissingError(
                SUBSYSTEM_EMBEDDING, "OPENAI_API_KEY is required for OpenAIEmbedder"
            )
        self.client = OpenAI(api_key=self.api_key)
        return self.client

    def embed(self, text: str) -> list[float]:
        """Embed text using the OpenAI embeddings API."""
        client = self._get_client()
        try:
            response = client.embeddings.create(model=self.model, input=text)
        except OpenAIError as exc:
            raise EmbeddingError(str(exc)) from exc
        vector = list(response.data[0].embedding)
        return validate_vector(vector, self.dimension)
