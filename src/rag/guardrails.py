from __future__ import annotations

"""Canned replies for non-informational classifications and fallbacks."""

import random

from src.rag.types import QueryClassification


GREETING_RESPONSES = (
    "Hello! I'm here to help you with women's safety related questions. "
    "How can I assist you today?",
    "Hi! I'm your women's safety assistant. What can I help you with?",
    "Welcome! I'm here to provide support and information about women's safety. "
    "What would you like to know?",
)

IRRELEVANT_RESPONSES = (
    "I apologize, but I'm specifically trained to help with women's safety related questions. "
    "Could you please ask something related to women's safety, personal security, "
    "or harassment prevention?",
    "I must decline to respond as this query is not related to women's safety. "
    "Please ask a question about safety, security, or support matters.",
)

INAPPROPRIATE_RESPONSES = (
    "I apologize, but I cannot assist with harmful or inappropriate content. "
    "This service is dedicated to providing helpful safety information and support. "
    "Please ask an appropriate question about women's safety.",
    "I must decline to respond to inappropriate content. This is a safety-focused service. "
    "Please ask questions related to women's safety and support.",
)

CANNED_RESPONSES: dict[QueryClassification, tuple[str, ...]] = {
    QueryClassification.GREETING: GREETING_RESPONSES,
    QueryClassification.IRRELEVANT: IRRELEVANT_RESPONSES,
    QueryClassification.INAPPROPRIATE: INAPPROPRIATE_RESPONSES,
}

NO_MATCH_APOLOGY = (
    "I apologize, but I don't have any information about that in my database. "
    "Please try asking a different question about women's safety."
)

NO_SPECIFIC_INFORMATION_APOLOGY = (
    "I apologize, but I don't have specific information about that in my database. "
    "Please try rephrasing your question or ask about a different safety concern."
)

EMERGENCY_CONTACTS = (
    "Emergency contacts:\n"
    "- National Emergency Number: 112\n"
    "- Police: 100\n"
    "- Women Helpline: 1091\n"
    "- Women Helpline (Domestic Abuse): 181\n"
    "- National Commission for Women: 7827170170\n"
    "- Ambulance: 108"
)

NO_MATCH_SAFETY_LEAD_IN = (
    "I couldn't find specific guidance on that in my database. "
    "If you are in danger or need help right now, please reach out immediately:"
)


def pick_canned_response(
    label: QueryClassification, rng: random.Random | None = None
) -> str | None:
    """Return a random canned reply for short-circuit labels, else None."""
    options = CANNED_RESPONSES.get(label)
    if not options:
        return None
    return (rng or random).choice(options)
