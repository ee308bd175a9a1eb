from __future__ import annotations

"""Request routing: classify, short-circuit or retrieve, then compose."""

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator

from src.rag.classifier import QueryClassifier
from src.rag.composer import NO_INFORMATION_SENTINEL, AnswerComposer
from src.rag.guardrails import NO_SPECIFIC_INFORMATION_APOLOGY, pick_canned_response
from src.rag.rewriter import QueryRewriter
from src.rag.search import SimilaritySearch
from src.rag.streaming import prime_stream
from src.rag.types import QueryClassification

logger = logging.getLogger(__name__)

UNKNOWN_POLICIES = {"relevant", "irrelevant"}


class RouteState(str, Enum):
    """Lifecycle states of a single chat request."""
    RECEIVED = "received"
    CLASSIFIED = "classified"
    SHORT_CIRCUITED = "short_circuited"
    RETRIEVING = "retrieving"
    STREAMING = "streaming"
    RESPONDED = "responded"
    ERRORED = "errored"


@dataclass
class ChatReply:
    """Outcome of routing one message: a full answer or a live stream."""
    classification: QueryClassification
    outcome: str
    answer: str | None = None
    stream: AsyncIterator[str] | None = None

    @property
    def is_stream(self) -> bool:
        return self.stream is not None


@dataclass
class ChatRouter:
    """Route a message through classification, retrieval and composition.

    ``unknown_policy`` decides what happens to classifier output that is not
    one of the known labels: ``relevant`` answers it through retrieval
    (fail-open), ``irrelevant`` declines it with a canned reply (fail-closed).
    """
    classifier: QueryClassifier
    rewriter: QueryRewriter
    search: SimilaritySearch
    composer: AnswerComposer
    unknown_policy: str = "relevant"
    rng: random.Random = field(default_factory=random.Random)

    def __post_init__(self) -> None:
        self.unknown_policy = self.unknown_policy.strip().lower()
        if self.unknown_policy not in UNKNOWN_POLICIES:
            raise ValueError(f"Unsupported unknown-classification policy: {self.unknown_policy}")

    def resolve_label(self, label: QueryClassification) -> QueryClassification:
        """Apply the unknown-classification policy."""
        if label is not QueryClassification.UNKNOWN:
            return label
        if self.unknown_policy == "irrelevant":
            return QueryClassification.IRRELEVANT
        return QueryClassification.RELEVANT

    async def handle(self, message: str, stream: bool = False) -> ChatReply:
        """Produce the reply for one message."""
        _log_state(RouteState.RECEIVED, stream=stream, message_length=len(message))
        try:
            return await self._handle(message, stream)
        except Exception as exc:
            _log_state(RouteState.ERRORED, error=type(exc).__name__)
            raise

    async def _handle(self, message: str, stream: bool) -> ChatReply:
        classification = await self.classifier.classify(message)
        label = self.resolve_label(classification.label)
        _log_state(
            RouteState.CLASSIFIED,
            classification=classification.label.value,
            routed_as=label.value,
        )

        canned = pick_canned_response(label, self.rng)
        if canned is not None:
            outcome = f"canned_{label.value.lower()}"
            _log_state(RouteState.SHORT_CIRCUITED, classification=label.value)
            _log_state(RouteState.RESPONDED, outcome=outcome)
            return ChatReply(
                classification=classification.label,
                outcome=outcome,
                answer=canned,
            )

        _log_state(RouteState.RETRIEVING, composer=self.composer.name)
        rewritten = await self.rewriter.rewrite(message)
        logger.info(
            "query_rewritten",
            extra={"original_length": len(message), "rewritten_length": len(rewritten)},
        )
        result = await self.search.search(rewritten)
        if result is None:
            _log_state(RouteState.RESPONDED, outcome="no_match")
            return ChatReply(
                classification=classification.label,
                outcome="no_match",
                answer=self.composer.no_match_response(),
            )

        if stream:
            chunks = await prime_stream(
                self.composer.stream(message, result.contents), on_close=_log_stream_closed
            )
            _log_state(RouteState.STREAMING, title=result.title)
            return ChatReply(
                classification=classification.label,
                outcome="streamed",
                stream=chunks,
            )

        answer = await self.composer.compose(message, result.contents)
        if answer == NO_INFORMATION_SENTINEL:
            _log_state(RouteState.RESPONDED, outcome="no_specific_information")
            return ChatReply(
                classification=classification.label,
                outcome="no_specific_information",
                answer=NO_SPECIFIC_INFORMATION_APOLOGY,
            )
        _log_state(RouteState.RESPONDED, outcome="answered", title=result.title)
        return ChatReply(
            classification=classification.label,
            outcome="answered",
            answer=answer,
        )


def _log_state(state: RouteState, **fields: object) -> None:
    level = logging.ERROR if state is RouteState.ERRORED else logging.INFO
    logger.log(level, "chat_route_state", extra={"state": state.value, **fields})


def _log_stream_closed(chunks_relayed: int, error: BaseException | None) -> None:
    if error is not None:
        _log_state(RouteState.ERRORED, error=type(error).__name__, chunks_relayed=chunks_relayed)
    else:
        _log_state(RouteState.RESPONDED, outcome="streamed", chunks_relayed=chunks_relayed)
