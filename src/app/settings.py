from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _optional_float(raw: str | None) -> float | None:
    if raw is None or not raw.strip():
        return None
    return float(raw)


@dataclass(frozen=True)
class Settings:
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    openai_chat_model: str = os.getenv("OPENAI_CHAT_MODEL", "gpt-4o-mini")
    openai_embedding_model: str = os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-ada-002")
    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "openai")
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "1536"))
    llm_provider: str = os.getenv("RAG_LLM_PROVIDER", "openai")
    llm_timeout: float | None = _optional_float(os.getenv("RAG_LLM_TIMEOUT"))
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    ollama_model: str = os.getenv("OLLAMA_MODEL", "llama3.1")
    vectorstore_backend: str = os.getenv("RAG_VECTORSTORE", "postgres")
    postgres_url: str | None = os.getenv("POSTGRES_URL")
    postgres_table: str = os.getenv("RAG_PG_TABLE", "data")
    vector_dimension: int = int(os.getenv("RAG_VECTOR_DIMENSION", "1536"))
    similarity_threshold: float = float(os.getenv("RAG_SIMILARITY_THRESHOLD", "0.8"))
    composer_mode_raw: str = os.getenv("RAG_COMPOSER", "extraction")
    unknown_policy_raw: str = os.getenv("RAG_UNKNOWN_POLICY", "relevant")
    inappropriate_enabled: bool = os.getenv("RAG_INAPPROPRIATE_ENABLED", "true").lower() in {
        "1",
        "true",
        "yes",
    }
    environment_raw: str = os.getenv("RAG_ENV", "production")
    api_host: str = os.getenv("RAG_API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("RAG_API_PORT", "8000"))
    log_level: str = os.getenv("RAG_LOG_LEVEL", "INFO")
    metrics_enabled: bool = os.getenv("RAG_METRICS_ENABLED", "true").lower() in {"1", "true", "yes"}

    @property
    def composer_mode(self) -> str:
        return os.getenv("RAG_COMPOSER", self.composer_mode_raw)

    @property
    def unknown_policy(self) -> str:
        return os.getenv("RAG_UNKNOWN_POLICY", self.unknown_policy_raw)

    @property
    def environment(self) -> str:
        return os.getenv("RAG_ENV", self.environment_raw).strip().lower()

    @property
    def expose_error_details(self) -> bool:
        return self.environment != "production"


settings = Settings()
