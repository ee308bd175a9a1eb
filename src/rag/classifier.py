from __future__ import annotations

"""LLM-backed intent classification for incoming chat messages."""

import logging
from dataclasses import dataclass

from src.rag.llm import CompletionClient, CompletionOptions
from src.rag.types import Classification, QueryClassification

logger = logging.getLogger(__name__)

_TOPICS = (
    "   - Personal safety and security\n"
    "   - Harassment prevention and response\n"
    "   - Emergency situations and procedures\n"
    "   - Self-defense techniques\n"
    "   - Legal rights and support\n"
    "   - Support services and resources\n"
    "   - NGOs (Non-Governmental Organizations) and their contact numbers\n"
    "   - Safety while traveling\n"
    "   - Workplace safety\n"
    "   - Domestic violence\n"
    "   - Cybersecurity and online safety\n"
)

CLASSIFIER_PROMPT = (
    "You are a women's safety assistant. Given the user's message, determine if it is:\n\n"
    "1. A greeting or casual message (like \"hello\", \"thank you\", \"goodbye\")\n"
    "2. Related to women's safety topics:\n"
    f"{_TOPICS}"
    "3. Inappropriate or harmful content\n"
    "4. Unrelated to women's safety\n\n"
    "Respond with only one word:\n"
    "GREETING - for category 1\n"
    "RELEVANT - for category 2\n"
    "INAPPROPRIATE - for category 3\n"
    "IRRELEVANT - for category 4"
)

CLASSIFIER_PROMPT_NO_INAPPROPRIATE = (
    "You are a women's safety assistant. Given the user's message, determine if it is:\n\n"
    "1. A greeting or casual message (like \"hello\", \"thank you\", \"goodbye\")\n"
    "2. Related to women's safety topics:\n"
    f"{_TOPICS}"
    "3. Unrelated to women's safety\n\n"
    "Respond with only one word:\n"
    "GREETING - for category 1\n"
    "RELEVANT - for category 2\n"
    "IRRELEVANT - for category 3"
)

CLASSIFIER_OPTIONS = CompletionOptions(temperature=0.0, max_tokens=10)


def parse_classification(raw: str, allow_inappropriate: bool = True) -> Classification:
    """Map free-text model output onto the closed classification enum.

    Only the first line counts. Unrecognised labels, and INAPPROPRIATE when
    the deployment does not support it, become ``UNKNOWN``.
    """
    lines = raw.strip().splitlines()
    token = lines[0] if lines else ""
    token = token.strip().strip("\"'`").rstrip(".").strip().upper()
    try:
        label = QueryClassification(token)
    except ValueError:
        label = QueryClassification.UNKNOWN
    if label is QueryClassification.INAPPROPRIATE and not allow_inappropriate:
        label = QueryClassification.UNKNOWN
    return Classification(label=label, raw=raw)


@dataclass(frozen=True)
class QueryClassifier:
    """Classify a message as greeting, relevant, irrelevant or inappropriate."""
    client: CompletionClient
    allow_inappropriate: bool = True

    @property
    def system_prompt(self) -> str:
        if self.allow_inappropriate:
            return CLASSIFIER_PROMPT
        return CLASSIFIER_PROMPT_NO_INAPPROPRIATE

    async def classify(self, text: str) -> Classification:
        """Ask the completion client for a one-word label and parse it."""
        raw = await self.client.complete(self.system_prompt, text, CLASSIFIER_OPTIONS)
        classification = parse_classification(raw, allow_inappropriate=self.allow_inappropriate)
        if classification.label is QueryClassification.UNKNOWN:
            logger.warning("classification_unrecognized", extra={"raw_label": raw.strip()[:50]})
        else:
            logger.info("query_classified", extra={"label": classification.label.value})
        return classification
