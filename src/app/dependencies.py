from __future__ import annotations

from functools import lru_cache

from src.agents.router import ChatRouter
from src.app.settings import settings
from src.rag.classifier import QueryClassifier
from src.rag.composer import build_composer
from src.rag.embeddings import (
    EmbeddingConfigReport,
    EmbeddingProvider,
    HashEmbedder,
    OpenAIEmbedder,
    build_embedding_config_report,
)
from src.rag.llm import OllamaCompletionClient, OpenAICompletionClient, build_completion_client
from src.rag.rewriter import LLMQueryRewriter
from src.rag.search import SimilaritySearch
from src.vectorstore.inmemory import InMemoryVectorStore
from src.vectorstore.pgvector import PgVectorStore


@lru_cache
def get_completion_client() -> OpenAICompletionClient | OllamaCompletionClient:
    return build_completion_client(
        settings.llm_provider,
        api_key_openai=settings.openai_api_key,
        openai_base_url=settings.openai_base_url,
        openai_model=settings.openai_chat_model,
        ollama_base_url=settings.ollama_base_url,
        ollama_model=settings.ollama_model,
        timeout=settings.llm_timeout,
    )


@lru_cache
def get_similarity_search() -> SimilaritySearch:
    embedder = build_embedder()
    return SimilaritySearch(
        embedder=embedder,
        store=build_vectorstore(),
        default_threshold=settings.similarity_threshold,
    )


@lru_cache
def get_chat_router() -> ChatRouter:
    client = get_completion_client()
    return ChatRouter(
        classifier=QueryClassifier(
            client=client, allow_inappropriate=settings.inappropriate_enabled
        ),
        rewriter=LLMQueryRewriter(client=client),
        search=get_similarity_search(),
        composer=build_composer(settings.composer_mode, client),
        unknown_policy=settings.unknown_policy,
    )


def reset_dependency_caches() -> None:
    get_chat_router.cache_clear()
    get_similarity_search.cache_clear()
    get_completion_client.cache_clear()


def get_embedding_config_report() -> EmbeddingConfigReport:
    provider = settings.embedding_provider
    model = None
    if provider.lower().strip() in {"", "openai"}:
        model = settings.openai_embedding_model
    store_dimension = None
    if settings.vectorstore_backend.lower().strip() == "postgres":
        store_dimension = settings.vector_dimension
    return build_embedding_config_report(
        provider, model, settings.embedding_dimension, store_dimension=store_dimension
    )


def build_embedder() -> EmbeddingProvider:
    provider = settings.embedding_provider.lower().strip()
    if provider == "hash":
        return HashEmbedder(dimension=settings.embedding_dimension)
    if provider in {"", "openai"}:
        return OpenAIEmbedder(
            api_key=settings.openai_api_key,
            model=settings.openai_embedding_model,
            dimension=settings.embedding_dimension,
        )
    raise ValueError(f"Unsupported embedding provider: {provider}")


def build_vectorstore() -> InMemoryVectorStore | PgVectorStore:
    backend = settings.vectorstore_backend.lower().strip()
    if backend == "memory":
        return InMemoryVectorStore()
    return PgVectorStore(
        connection_uri=settings.postgres_url,
        table=settings.postgres_table,
        dimension=settings.vector_dimension,
    )
