from __future__ import annotations

"""Chat completion clients with buffered and streamed output."""

from dataclasses import dataclass
import json
import logging
from typing import AsyncIterator, Protocol

import httpx

from src.rag.errors import SUBSYSTEM_COMPLETION, ConfigMissingError, UpstreamFailureError


logger = logging.getLogger(__name__)

_OPENAI_DONE = "[DONE]"


@dataclass(frozen=True)
class CompletionOptions:
    """Sampling options for a single completion request."""
    temperature: float
    max_tokens: int


class CompletionClient(Protocol):
    """Protocol for text completion providers."""

    async def complete(
        self, system_prompt: str, user_prompt: str, options: CompletionOptions
    ) -> str:
        """Return the full completion text."""
        raise NotImplementedError

    def stream(
        self, system_prompt: str, user_prompt: str, options: CompletionOptions
    ) -> AsyncIterator[str]:
        """Return completion text incrementally as it is generated."""
        raise NotImplementedError


def _build_messages(system_prompt: str, user_prompt: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


def _parse_openai_stream_line(line: str) -> str | None:
    """Return the delta text of one SSE line, or None once the stream is done."""
    text = line.strip()
    if not text.startswith("data:"):
        return ""
    data = text[len("data:"):].strip()
    if data == _OPENAI_DONE:
        return None
    try:
        event = json.loads(data)
    except json.JSONDecodeError as exc:
        raise UpstreamFailureError(SUBSYSTEM_COMPLETION, "Invalid OpenAI stream event") from exc
    if not isinstance(event, dict):
        raise UpstreamFailureError(SUBSYSTEM_COMPLETION, "Invalid OpenAI stream event")
    error = event.get("error")
    if error:
        detail = error.get("message") if isinstance(error, dict) else str(error)
        raise UpstreamFailureError(SUBSYSTEM_COMPLETION, f"OpenAI stream error: {detail}")
    choices = event.get("choices") or []
    if not choices:
        return ""
    delta = choices[0].get("delta") or {}
    content = delta.get("content")
    return content if isinstance(content, str) else ""


def _parse_ollama_stream_line(line: str) -> tuple[str, bool]:
    """Return the message text of one NDJSON line and whether it is the last."""
    text = line.strip()
    if not text:
        return "", False
    try:
        event = json.loads(text)
    except json.JSONDecodeError as exc:
        raise UpstreamFailureError(SUBSYSTEM_COMPLETION, "Invalid Ollama stream event") from exc
    if not isinstance(event, dict):
        raise UpstreamFailureError(SUBSYSTEM_COMPLETION, "Invalid Ollama stream event")
    if event.get("error"):
        raise UpstreamFailureError(SUBSYSTEM_COMPLETION, f"Ollama stream error: {event['error']}")
    message = event.get("message") or {}
    content = message.get("content")
    return (content if isinstance(content, str) else ""), bool(event.get("done"))


@dataclass(frozen=True)
class OpenAICompletionClient:
    """Completion client backed by OpenAI chat completions."""
    api_key: str | None
    base_url: str
    model: str
    timeout: float | None = None
    transport: httpx.AsyncBaseTransport | None = None

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise ConfigMissingError(
                SUBSYSTEM_COMPLETION, "OPENAI_API_KEY is required for the OpenAI completion client"
            )
        return {"Authorization": f"Bearer {self.api_key}"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), transport=self.transport)

    def _payload(
        self,
        system_prompt: str,
        user_prompt: str,
        options: CompletionOptions,
        stream: bool,
    ) -> dict[str, object]:
        payload: dict[str, object] = {
            "model": self.model,
            "messages": _build_messages(system_prompt, user_prompt),
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        if stream:
            payload["stream"] = True
        return payload

    async def complete(
        self, system_prompt: str, user_prompt: str, options: CompletionOptions
    ) -> str:
        """Return a buffered completion from OpenAI chat completions."""
        headers = self._headers()
        payload = self._payload(system_prompt, user_prompt, options, stream=False)
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            raise UpstreamFailureError(SUBSYSTEM_COMPLETION, str(exc)) from exc
        except ValueError as exc:
            raise UpstreamFailureError(SUBSYSTEM_COMPLETION, "OpenAI response is not JSON") from exc

        choices = data.get("choices") or []
        if not choices:
            raise UpstreamFailureError(SUBSYSTEM_COMPLETION, "Invalid OpenAI response")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if content is None:
            return ""
        if not isinstance(content, str):
            raise UpstreamFailureError(SUBSYSTEM_COMPLETION, "Invalid OpenAI response content")
        return content

    async def stream(
        self, system_prompt: str, user_prompt: str, options: CompletionOptions
    ) -> AsyncIterator[str]:
        """Yield completion deltas from an OpenAI server-sent event stream."""
        headers = self._headers()
        payload = self._payload(system_prompt, user_prompt, options, stream=True)
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                ) as response:
                    response.raise_for_status()
                    logger.info(
                        "completion_stream_opened",
                        extra={"provider": "openai", "model": self.model},
                    )
                    async for line in response.aiter_lines():
                        chunk = _parse_openai_stream_line(line)
                        if chunk is None:
                            break
                        if chunk:
                            yield chunk
        except httpx.HTTPError as exc:
            raise UpstreamFailureError(SUBSYSTEM_COMPLETION, str(exc)) from exc


@dataclass(frozen=True)
class OllamaCompletionClient:
    """Completion client backed by the Ollama chat API."""
    base_url: str
    model: str
    timeout: float | None = None
    transport: httpx.AsyncBaseTransport | None = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), transport=self.transport)

    def _payload(
        self,
        system_prompt: str,
        user_prompt: str,
        options: CompletionOptions,
        stream: bool,
    ) -> dict[str, object]:
        return {
            "model": self.model,
            "messages": _build_messages(system_prompt, user_prompt),
            "stream": stream,
            "options": {
                "temperature": options.temperature,
                "num_predict": options.max_tokens,
            },
        }

    async def complete(
        self, system_prompt: str, user_prompt: str, options: CompletionOptions
    ) -> str:
        """Return a buffered completion from Ollama."""
        payload = self._payload(system_prompt, user_prompt, options, stream=False)
        try:
            async with self._client() as client:
                response = await client.post(f"{self.base_url}/api/chat", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            raise UpstreamFailureError(SUBSYSTEM_COMPLETION, str(exc)) from exc
        except ValueError as exc:
            raise UpstreamFailureError(SUBSYSTEM_COMPLETION, "Ollama response is not JSON") from exc

        message = data.get("message") or {}
        content = message.get("content")
        if not isinstance(content, str):
            raise UpstreamFailureError(SUBSYSTEM_COMPLETION, "Invalid Ollama response")
        return content

    async def stream(
        self, system_prompt: str, user_prompt: str, options: CompletionOptions
    ) -> AsyncIterator[str]:
        """Yield completion text from an Ollama NDJSON stream."""
        payload = self._payload(system_prompt, user_prompt, options, stream=True)
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", f"{self.base_url}/api/chat", json=payload
                ) as response:
                    response.raise_for_status()
                    logger.info(
                        "completion_stream_opened",
                        extra={"provider": "ollama", "model": self.model},
                    )
                    async for line in response.aiter_lines():
                        chunk, done = _parse_ollama_stream_line(line)
                        if chunk:
                            yield chunk
                        if done:
                            break
        except httpx.HTTPError as exc:
            raise UpstreamFailureError(SUBSYSTEM_COMPLETION, str(exc)) from exc


def build_completion_client(
    provider: str,
    *,
    api_key_openai: str | None,
    openai_base_url: str,
    openai_model: str,
    ollama_base_url: str,
    ollama_model: str,
    timeout: float | None,
) -> OpenAICompletionClient | OllamaCompletionClient:
    """Factory for completion clients based on provider.

    A missing OpenAI key is not rejected here; the client raises
    ``ConfigMissingError`` on first use so the request layer can report it.
    """
    normalized = provider.strip().lower()
    if normalized in {"", "openai"}:
        return OpenAICompletionClient(
            api_key=api_key_openai,
            base_url=openai_base_url.rstrip("/"),
            model=openai_model,
            timeout=timeout,
        )
    return OllamaCompletionClient(
        base_url=ollama_base_url.rstrip("/"),
        model=ollama_model,
        timeout=timeout,
    )
