from __future__ import annotations

"""Answer composition strategies over a single retrieved document."""

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Protocol

from src.rag.guardrails import (
    EMERGENCY_CONTACTS,
    NO_MATCH_APOLOGY,
    NO_MATCH_SAFETY_LEAD_IN,
)
from src.rag.llm import CompletionClient, CompletionOptions

logger = logging.getLogger(__name__)

NO_INFORMATION_SENTINEL = "No specific information found in the database."
TRUNCATION_NOTICE = (
    "... (Some information may be incomplete. Please ask for more specific details.)"
)
TERMINAL_PUNCTUATION = (".", "!", "?", "\n")

EXTRACTION_PROMPT = (
    "Extract ONLY the specific portions from the provided database content that directly "
    "answer the user's safety-related query.\n"
    "Rules:\n"
    "1. ONLY use text that exists in the provided content\n"
    "2. DO NOT generate new text or explanations\n"
    "3. DO NOT modify or rephrase the content\n"
    "4. If multiple relevant portions exist, separate them with newlines\n"
    f"5. If no relevant portion exists, return \"{NO_INFORMATION_SENTINEL}\"\n"
    "6. DO NOT add any additional context or explanations\n"
    "7. NEVER cut off mid-sentence or paragraph - always include complete information\n"
    "8. Prioritize actionable safety information and emergency procedures\n"
    "9. Ensure all information is complete and not truncated"
)

FOCUSED_PROMPT = (
    "You are a women's safety assistant. Using only the provided database content, "
    "write a short, focused answer to the user's query.\n"
    "Rules:\n"
    "1. Use 3 to 6 concise bullet points\n"
    "2. Lead with the most urgent, actionable steps\n"
    "3. Do not add facts that are not supported by the content\n"
    "4. Do not include phone numbers unless they appear in the content\n"
    "5. Keep a calm, supportive tone"
)

EXTRACTION_OPTIONS = CompletionOptions(temperature=0.0, max_tokens=1000)
FOCUSED_OPTIONS = CompletionOptions(temperature=0.3, max_tokens=500)


def build_user_prompt(query: str, content: str) -> str:
    return f"Query: {query}\nContent: {content}"


def append_truncation_notice(text: str) -> str:
    """Flag answers that do not end in terminal punctuation as possibly cut off."""
    if text and not text.endswith(TERMINAL_PUNCTUATION):
        return text + TRUNCATION_NOTICE
    return text


def with_emergency_contacts(text: str) -> str:
    """Append the emergency contacts block to an answer."""
    return f"{text.rstrip()}\n\n{EMERGENCY_CONTACTS}"


class AnswerComposer(Protocol):
    """Strategy that turns a query and one document into the final answer."""
    name: str

    async def compose(self, query: str, content: str) -> str:
        raise NotImplementedError

    def stream(self, query: str, content: str) -> AsyncIterator[str]:
        raise NotImplementedError

    def no_match_response(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class ExtractionComposer:
    """Return only verbatim spans of the document that answer the query."""
    client: CompletionClient
    name: str = "extraction"

    async def compose(self, query: str, content: str) -> str:
        """Extract relevant spans and flag answers that look truncated."""
        extracted = await self.client.complete(
            EXTRACTION_PROMPT, build_user_prompt(query, content), EXTRACTION_OPTIONS
        )
        extracted = extracted or NO_INFORMATION_SENTINEL
        result = append_truncation_notice(extracted)
        if result is not extracted:
            logger.info("extraction_possibly_truncated", extra={"answer_length": len(extracted)})
        return result

    async def stream(self, query: str, content: str) -> AsyncIterator[str]:
        """Relay extracted spans chunk by chunk, without post-processing."""
        chunks = self.client.stream(
            EXTRACTION_PROMPT, build_user_prompt(query, content), EXTRACTION_OPTIONS
        )
        try:
            async for chunk in chunks:
                yield chunk
        finally:
            await chunks.aclose()

    def no_match_response(self) -> str:
        return NO_MATCH_APOLOGY


@dataclass(frozen=True)
class FocusedComposer:
    """Summarize the document into a short answer followed by emergency contacts."""
    client: CompletionClient
    name: str = "focused"

    async def compose(self, query: str, content: str) -> str:
        answer = await self.client.complete(
            FOCUSED_PROMPT, build_user_prompt(query, content), FOCUSED_OPTIONS
        )
        return with_emergency_contacts(answer.strip())

    async def stream(self, query: str, content: str) -> AsyncIterator[str]:
        """Relay the generated answer, then emit the contacts block as a last chunk."""
        chunks = self.client.stream(
            FOCUSED_PROMPT, build_user_prompt(query, content), FOCUSED_OPTIONS
        )
        try:
            async for chunk in chunks:
                yield chunk
        finally:
            await chunks.aclose()
        yield f"\n\n{EMERGENCY_CONTACTS}"

    def no_match_response(self) -> str:
        return f"{NO_MATCH_SAFETY_LEAD_IN}\n\n{EMERGENCY_CONTACTS}"


def build_composer(mode: str, client: CompletionClient) -> ExtractionComposer | FocusedComposer:
    """Factory for the deployment's answer composer."""
    normalized = mode.strip().lower()
    if normalized in {"", "extraction", "extractive", "strict"}:
        return ExtractionComposer(client=client)
    if normalized in {"focused", "generative", "summary"}:
        return FocusedComposer(client=client)
    raise ValueError(f"Unsupported composer mode: {mode}")
