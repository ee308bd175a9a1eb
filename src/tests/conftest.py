from __future__ import annotations

"""Shared pytest fixtures and test environment defaults."""

import os
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ["RAG_VECTORSTORE"] = "memory"
os.environ["EMBEDDING_PROVIDER"] = "hash"
os.environ["EMBEDDING_DIMENSION"] = "256"
os.environ["RAG_METRICS_ENABLED"] = "true"
os.environ["RAG_ENV"] = "production"
os.environ["RAG_LLM_PROVIDER"] = "openai"
os.environ["OPENAI_API_KEY"] = ""
os.environ["POSTGRES_URL"] = ""

from src.rag.types import SearchResult  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def safety_document() -> SearchResult:
    return SearchResult(
        title="Emergency numbers",
        contents=(
            "Call 100 for police. Call 1091 for the women helpline. "
            "Share your live location with a trusted contact when travelling at night."
        ),
        similarity=0.91,
    )
