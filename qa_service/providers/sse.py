# =============================================================================
# Streaming Transport Decoder — Upstream SSE Body → Stream Fragments
# =============================================================================
#
# Vendor chat APIs stream answers as Server-Sent-Events-like bodies:
#
#   : keep-alive comment
#   data: {"choices":[{"index":0,"delta":{"content":"He"}}]}
#
#   data: {"choices":[{"index":0,"delta":{"content":"llo"}}]}
#
#   data: [DONE]
#
# Line rules:
#   - blank lines and lines starting with ":" are transport keep-alives
#   - "data:" lines carry one JSON payload (prefix and whitespace stripped)
#   - the payload "[DONE]" ends the stream, even if more bytes follow
#   - a payload that does not parse is dropped with a warning; the stream
#     goes on
#   - a read error on the body ends the stream with a TransportError
#
# `iter_fragments()` is the pure decoder (lazy, finite, not restartable).
# `pump_fragments()` drives it into a FragmentStream on the upstream task,
# honouring the bounded hand-off and the cancellation token, and closes both
# outlets exactly once whichever way it exits.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator

from pydantic import ValidationError

from qa_service.providers.chat_types import ChatCompletionStreamResponse
from qa_service.providers.stream import FragmentStream
from qa_service.services.exceptions import (
    MalformedUpstreamFrame,
    TransportError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
COMMENT_PREFIX = ":"
DONE_SENTINEL = "[DONE]"


def extract_payload(line: str | bytes) -> str | None:
    """
    Return the event payload carried by one body line, or None to skip it.

    Keep-alives (blank lines, comments) and non-data fields (event:, id:,
    retry:) are skipped.
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.rstrip("\r\n")
    if not line or line.startswith(COMMENT_PREFIX):
        return None
    if not line.startswith(DATA_PREFIX):
        logger.debug("Skipping non-data SSE line: %.80s", line)
        return None
    return line[len(DATA_PREFIX):].strip()


def parse_fragment(payload: str) -> ChatCompletionStreamResponse:
    """Parse one payload; raises MalformedUpstreamFrame on bad JSON/shape."""
    try:
        return ChatCompletionStreamResponse.model_validate_json(payload)
    except ValidationError as e:
        raise MalformedUpstreamFrame(
            f"Unparsable stream frame: {payload[:120]}",
        ) from e


async def iter_fragments(
    lines: AsyncIterable[str | bytes],
) -> AsyncIterator[ChatCompletionStreamResponse]:
    """
    Decode an async iterable of body lines into fragments, in arrival order.

    Raises:
        TransportError: Reading the next line from the body failed.
    """
    iterator = aiter(lines)
    line_count = 0
    while True:
        try:
            line = await anext(iterator)
        except StopAsyncIteration:
            logger.debug("Upstream body ended after %d lines (no [DONE])", line_count)
            return
        except UpstreamError:
            raise
        except Exception as e:
            raise TransportError(f"Failed to read stream body: {e}") from e

        line_count += 1
        payload = extract_payload(line)
        if payload is None or payload == "":
            continue
        if payload == DONE_SENTINEL:
            logger.debug("Received [DONE] after %d lines", line_count)
            return

        try:
            fragment = parse_fragment(payload)
        except MalformedUpstreamFrame as e:
            logger.warning("Dropping malformed stream frame: %s", e.message)
            continue
        yield fragment


async def pump_fragments(
    lines: AsyncIterable[str | bytes],
    stream: FragmentStream,
    cancel: asyncio.Event,
) -> None:
    """
    Feed decoded fragments into `stream` until the body ends.

    - Each fragment is sent through the bounded fragment channel, waiting
      for room; the wait is abandoned as soon as `cancel` is set.
    - A TransportError (or any UpstreamError) goes to the error channel;
      any other failure is reported there as an UpstreamError too.
    - Both channels are closed on every exit path.
    """
    delivered = 0
    fragments = iter_fragments(lines)
    try:
        async for fragment in fragments:
            if cancel.is_set() or not await stream.fragments.send(fragment, cancel):
                logger.info(
                    "Stream consumer gone after %d fragments; abandoning upstream read",
                    delivered,
                )
                return
            delivered += 1
    except UpstreamError as e:
        logger.error("Upstream stream failed after %d fragments: %s", delivered, e)
        stream.fail(e)
    except Exception as e:
        logger.exception("Stream reader failed after %d fragments", delivered)
        stream.fail(UpstreamError(f"Stream reader failed: {e}"))
    finally:
        await fragments.aclose()
        stream.close()
