from __future__ import annotations

"""FastAPI application entrypoint for the women's safety chat assistant."""

import asyncio
import logging
import uuid

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from src.agents.router import ChatRouter
from src.app.dependencies import (
    get_chat_router,
    get_embedding_config_report,
    get_similarity_search,
)
from src.app.metrics import metrics_middleware, metrics_response, record_chat_route
from src.app.schemas import (
    ChatRequest,
    ChatResponse,
    EmbeddingHealthResponse,
    ErrorResponse,
    HealthResponse,
    VectorStoreHealthResponse,
)
from src.app.settings import settings
from src.rag.errors import (
    SUBSYSTEM_COMPLETION,
    SUBSYSTEM_DATABASE,
    SUBSYSTEM_EMBEDDING,
    ConfigMissingError,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Women's Safety Assistant", version="0.1.0")

INTERNAL_ERROR = "Internal server error"
CONFIG_ERROR_MESSAGES = {
    SUBSYSTEM_COMPLETION: "OpenAI API configuration error. Please check environment variables.",
    SUBSYSTEM_EMBEDDING: "OpenAI API configuration error. Please check environment variables.",
    SUBSYSTEM_DATABASE: "Database configuration error. Please check environment variables.",
}
STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _configure_logging() -> None:
    """Configure root logging using environment settings."""
    level_name = settings.log_level.strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


_configure_logging()


def _config_error_response(exc: ConfigMissingError) -> JSONResponse:
    """Build the 503 payload for a missing credential or connection string."""
    payload = {
        "error": CONFIG_ERROR_MESSAGES.get(
            exc.subsystem, "Service configuration error. Please check environment variables."
        )
    }
    if settings.expose_error_details:
        payload["details"] = str(exc)
    return JSONResponse(payload, status_code=503)


def _internal_error_response() -> JSONResponse:
    return JSONResponse({"error": INTERNAL_ERROR}, status_code=500)


@app.exception_handler(Exception)
async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_error", exc_info=exc)
    return _internal_error_response()


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Attach or create a request ID for traceability."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    """Capture request metrics before returning the response."""
    return await metrics_middleware(request, call_next)


@app.get("/metrics")
async def metrics():
    """Expose Prometheus-style metrics."""
    return metrics_response()


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Simple health probe for uptime checks."""
    return HealthResponse(status="ok")


@app.get("/health/vectorstore", response_model=VectorStoreHealthResponse)
async def vectorstore_health() -> VectorStoreHealthResponse:
    """Check that the similarity store is configured and reachable."""
    store = get_similarity_search().store
    report = await asyncio.to_thread(store.health)
    return VectorStoreHealthResponse(**report)


@app.get("/health/embedding", response_model=EmbeddingHealthResponse)
async def embedding_health() -> EmbeddingHealthResponse:
    """Return embedding configuration health checks."""
    report = get_embedding_config_report()
    return EmbeddingHealthResponse(**report.__dict__)


@app.post(
    "/api/chat",
    response_model=ChatResponse,
    responses={503: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def chat(
    request: ChatRequest,
    http_request: Request,
    chat_router: ChatRouter = Depends(get_chat_router),
):
    """Answer a chat message as JSON, or as a raw text stream when requested."""
    request_id = getattr(http_request.state, "request_id", None) or str(uuid.uuid4())
    logger.info(
        "chat_received",
        extra={
            "request_id": request_id,
            "stream": request.stream,
            "message_length": len(request.message),
        },
    )
    try:
        reply = await chat_router.handle(request.message, stream=request.stream)
    except ConfigMissingError as exc:
        logger.error(
            "chat_config_error",
            extra={"request_id": request_id, "subsystem": exc.subsystem},
        )
        return _config_error_response(exc)
    except Exception:
        logger.exception("chat_failed", extra={"request_id": request_id})
        return _internal_error_response()

    record_chat_route(reply.classification.value, reply.outcome)
    logger.info(
        "chat_completed",
        extra={
            "request_id": request_id,
            "classification": reply.classification.value,
            "outcome": reply.outcome,
        },
    )
    if reply.stream is not None:
        return StreamingResponse(
            reply.stream,
            media_type="text/event-stream",
            headers=STREAM_HEADERS,
        )
    return ChatResponse(response=reply.answer or "")


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.strip().lower(),
    )


if __name__ == "__main__":
    run()
