from __future__ import annotations

"""Tests for the HTTP surface of the chat assistant."""

import httpx
import pytest

from src.agents.router import ChatRouter
from src.app.dependencies import get_chat_router, reset_dependency_caches
from src.app.main import app
from src.rag.composer import ExtractionComposer
from src.rag.errors import (
    SUBSYSTEM_COMPLETION,
    SUBSYSTEM_DATABASE,
    ConfigMissingError,
)
from src.rag.guardrails import GREETING_RESPONSES
from src.rag.types import QueryClassification
from src.tests.fakes import (
    FailingClassifier,
    FakeClassifier,
    FakeRewriter,
    FakeSearch,
    ScriptedCompletionClient,
)

pytestmark = pytest.mark.anyio


@pytest.fixture(autouse=True)
def clean_overrides():
    reset_dependency_caches()
    yield
    app.dependency_overrides.clear()
    reset_dependency_caches()


def get_client() -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


def use_router(router: ChatRouter) -> None:
    app.dependency_overrides[get_chat_router] = lambda: router


def relevant_router(client: ScriptedCompletionClient, search: FakeSearch) -> ChatRouter:
    return ChatRouter(
        classifier=FakeClassifier(QueryClassification.RELEVANT),
        rewriter=FakeRewriter(),
        search=search,
        composer=ExtractionComposer(client=client),
    )


def failing_router(error: Exception) -> ChatRouter:
    return ChatRouter(
        classifier=FailingClassifier(error),
        rewriter=FakeRewriter(),
        search=FakeSearch(),
        composer=ExtractionComposer(client=ScriptedCompletionClient()),
    )


async def test_health_endpoint() -> None:
    async with get_client() as client:
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_vectorstore_health_for_memory_backend() -> None:
    async with get_client() as client:
        response = await client.get("/health/vectorstore")
    assert response.status_code == 200
    payload = response.json()
    assert payload["backend"] == "memory"
    assert payload["ok"] is True


async def test_embedding_health_reports_hash_provider() -> None:
    async with get_client() as client:
        response = await client.get("/health/embedding")
    assert response.status_code == 200
    payload = response.json()
    assert payload["provider"] == "hash"
    assert payload["ok"] is True


async def test_chat_returns_json_answer(safety_document) -> None:
    use_router(
        relevant_router(
            ScriptedCompletionClient(replies=["Call 100 for police."]),
            FakeSearch(result=safety_document),
        )
    )
    async with get_client() as client:
        response = await client.post("/api/chat", json={"message": "police number?"})

    assert response.status_code == 200
    assert response.json() == {"response": "Call 100 for police."}
    assert response.headers["X-Request-ID"]


async def test_request_id_is_echoed() -> None:
    async with get_client() as client:
        response = await client.get("/health", headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Request-ID"] == "req-42"


async def test_greeting_is_json_even_when_streaming_requested() -> None:
    use_router(
        ChatRouter(
            classifier=FakeClassifier(QueryClassification.GREETING),
            rewriter=FakeRewriter(),
            search=FakeSearch(),
            composer=ExtractionComposer(client=ScriptedCompletionClient()),
        )
    )
    async with get_client() as client:
        response = await client.post("/api/chat", json={"message": "hi", "stream": True})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    assert response.json()["response"] in GREETING_RESPONSES


async def test_chat_streams_raw_text(safety_document) -> None:
    use_router(
        relevant_router(
            ScriptedCompletionClient(stream_chunks=["Call 100", " for police"]),
            FakeSearch(result=safety_document),
        )
    )
    async with get_client() as client:
        response = await client.post(
            "/api/chat", json={"message": "police number?", "stream": True}
        )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["connection"] == "keep-alive"
    assert response.text == "Call 100 for police"


async def test_stream_without_key_is_config_error(safety_document) -> None:
    use_router(
        relevant_router(
            ScriptedCompletionClient(
                stream_error=ConfigMissingError(SUBSYSTEM_COMPLETION, "OPENAI_API_KEY is required")
            ),
            FakeSearch(result=safety_document),
        )
    )
    async with get_client() as client:
        response = await client.post("/api/chat", json={"message": "police?", "stream": True})

    assert response.status_code == 503
    assert response.json()["error"].startswith("OpenAI API configuration error")


async def test_missing_openai_key_returns_503_without_details() -> None:
    use_router(failing_router(ConfigMissingError(SUBSYSTEM_COMPLETION, "OPENAI_API_KEY missing")))
    async with get_client() as client:
        response = await client.post("/api/chat", json={"message": "hello"})

    assert response.status_code == 503
    assert response.json() == {
        "error": "OpenAI API configuration error. Please check environment variables."
    }


async def test_missing_database_url_is_distinguishable(monkeypatch) -> None:
    monkeypatch.setenv("RAG_ENV", "development")
    use_router(failing_router(ConfigMissingError(SUBSYSTEM_DATABASE, "POSTGRES_URL is not set")))
    async with get_client() as client:
        response = await client.post("/api/chat", json={"message": "helpline?"})

    assert response.status_code == 503
    payload = response.json()
    assert payload["error"] == "Database configuration error. Please check environment variables."
    assert payload["details"] == "POSTGRES_URL is not set"


async def test_unexpected_failure_returns_500() -> None:
    use_router(failing_router(RuntimeError("boom")))
    async with get_client() as client:
        response = await client.post("/api/chat", json={"message": "hello"})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


async def test_malformed_body_is_rejected() -> None:
    async with get_client() as client:
        response = await client.post("/api/chat", json={"stream": True})
    assert response.status_code == 422


async def test_default_wiring_without_credentials_returns_503() -> None:
    async with get_client() as client:
        response = await client.post("/api/chat", json={"message": "How do I stay safe?"})

    assert response.status_code == 503
    assert response.json()["error"].startswith("OpenAI API configuration error")


async def test_metrics_count_chat_routes(safety_document) -> None:
    use_router(
        relevant_router(
            ScriptedCompletionClient(replies=["Call 1091."]),
            FakeSearch(result=safety_document),
        )
    )
    async with get_client() as client:
        await client.post("/api/chat", json={"message": "helpline?"})
        response = await client.get("/metrics")

    assert response.status_code == 200
    assert "chat_routes_total" in response.text
    assert 'outcome="answered"' in response.text


def test_run_serves_app_with_uvicorn(monkeypatch) -> None:
    import src.app.main as main_module

    calls: list[tuple[object, dict]] = []
    monkeypatch.setattr(
        main_module.uvicorn, "run", lambda target, **kwargs: calls.append((target, kwargs))
    )

    main_module.run()

    [(target, kwargs)] = calls
    assert target is app
    assert kwargs["host"] == main_module.settings.api_host
    assert kwargs["port"] == main_module.settings.api_port
    assert kwargs["log_level"] == main_module.settings.log_level.strip().lower()
