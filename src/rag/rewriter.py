from __future__ import annotations

"""Query rewriting helpers for retrieval optimization."""

import logging
from dataclasses import dataclass

from src.rag.llm import CompletionClient, CompletionOptions

logger = logging.getLogger(__name__)

REWRITER_PROMPT = (
    "You are a women's safety assistant. Rewrite the user's query to be more focused "
    "on women's safety aspects while maintaining the original intent.\n"
    "Consider:\n"
    "- Personal safety concerns\n"
    "- Emergency situations\n"
    "- Legal rights and support\n"
    "- Safety resources and services\n"
    "- Prevention strategies\n"
    "Make it clear and specific for database search. "
    "Return only the rewritten query text."
)

REWRITER_OPTIONS = CompletionOptions(temperature=0.3, max_tokens=100)


class QueryRewriter:
    """Base class for query rewriters."""
    async def rewrite(self, query: str) -> str:
        """Return a rewritten query or the original if unchanged."""
        raise NotImplementedError


@dataclass(frozen=True)
class LLMQueryRewriter(QueryRewriter):
    """Rewriter backed by the configured completion client."""
    client: CompletionClient

    async def rewrite(self, query: str) -> str:
        """Refocus the query on safety terminology, keeping its intent."""
        content = await self.client.complete(REWRITER_PROMPT, query, REWRITER_OPTIONS)
        rewritten = content.strip()
        if not rewritten:
            logger.info("query_rewrite_empty")
            return query
        return rewritten
