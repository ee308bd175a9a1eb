from __future__ import annotations

"""Pull-based relay for streamed completion chunks."""

import logging
from typing import AsyncIterator, Callable

logger = logging.getLogger(__name__)

# Called once the relay ends with the chunk count and the failure, if any.
StreamClosedHook = Callable[[int, BaseException | None], None]


async def prime_stream(
    chunks: AsyncIterator[str], on_close: StreamClosedHook | None = None
) -> AsyncIterator[str]:
    """Pull the first chunk now and return an iterator relaying the rest.

    Failures that happen before any output (missing credentials, refused
    connections) surface to the caller here, while the HTTP status can
    still be chosen. Later failures abort the relay.
    """
    try:
        first = await chunks.__anext__()
    except StopAsyncIteration:
        await chunks.aclose()
        return _relay(None, chunks, on_close)
    except BaseException:
        await chunks.aclose()
        raise
    return _relay(first, chunks, on_close)


async def _relay(
    first: str | None, chunks: AsyncIterator[str], on_close: StreamClosedHook | None
) -> AsyncIterator[str]:
    relayed = 0
    error: BaseException | None = None
    try:
        if first is not None:
            relayed += 1
            yield first
            async for chunk in chunks:
                relayed += 1
                yield chunk
    except Exception as exc:
        error = exc
        logger.exception("stream_relay_failed", extra={"chunks_relayed": relayed})
        raise
    finally:
        await chunks.aclose()
        logger.info("stream_relay_closed", extra={"chunks_relayed": relayed})
        if on_close is not None:
            on_close(relayed, error)
