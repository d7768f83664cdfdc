"""
agentrelay - Stream Aggregator

Folds the events of one streamed exchange into a single result.

Phases:
    WAITING_START -> ACCUMULATING -> COMPLETE
    EXHAUSTED is reached when the stream ends before COMPLETE; the
    fallback resolver then gets one chance to read the whole body as a
    single JSON document.

The first `stream_complete` wins. Anything after it is ignored.
"""

import json
import logging
from typing import Iterable, List, Optional, Sequence

from .errors import NoValidResponseError
from .models import (
    AggregatorPhase,
    AggregatorState,
    EventKind,
    NormalizedResult,
    ResponseMode,
    StreamEvent,
)


logger = logging.getLogger("agentrelay.aggregator")


class StreamAggregator:
    """
    State machine for one streamed exchange.

    Usage:
        aggregator = StreamAggregator()
        for event in events:
            if aggregator.feed(event):
                break
        result = aggregator.finish(raw_text=body_so_far)
    """

    def __init__(self):
        self.state = AggregatorState()

    @property
    def phase(self) -> AggregatorPhase:
        return self.state.phase

    @property
    def is_complete(self) -> bool:
        return self.state.is_complete

    def feed(self, event: StreamEvent) -> bool:
        """
        Apply one event.

        Returns:
            True once the terminal event has been captured.
        """
        state = self.state

        if state.phase is AggregatorPhase.COMPLETE:
            state.events_after_complete += 1
            logger.debug("Ignoring %s event after completion", event.kind.value)
            return True

        if state.phase is AggregatorPhase.EXHAUSTED:
            logger.debug("Ignoring %s event on exhausted stream", event.kind.value)
            return False

        state.events_seen += 1

        if event.kind is EventKind.STREAM_START:
            if not state.saw_start:
                state.saw_start = True
                state.start_message = event.message
                logger.debug("Stream started: %s", event.message or "")
            state.phase = AggregatorPhase.ACCUMULATING

        elif event.kind is EventKind.STREAM_CHUNK:
            content = event.content
            if content is not None:
                state.accumulated_content.append(content)
            state.phase = AggregatorPhase.ACCUMULATING

        elif event.kind is EventKind.STREAM_COMPLETE:
            state.terminal = event
            state.phase = AggregatorPhase.COMPLETE
            logger.debug(
                "Stream complete after %d events (agent=%s)",
                state.events_seen,
                event.agent_used,
            )
            return True

        else:
            logger.debug("Ignoring unrecognized event type %r", event.type)

        return False

    def feed_all(self, events: Iterable[StreamEvent]) -> bool:
        """Apply events in order until one completes the stream."""
        for event in events:
            if self.feed(event):
                return True
        return self.is_complete

    def result(self) -> NormalizedResult:
        """Project the terminal event into a result."""
        terminal = self.state.terminal
        if terminal is None:
            raise NoValidResponseError(
                "Stream has no terminal event",
                partial_content=self.state.accumulated_content,
            )

        return NormalizedResult.from_dict(
            terminal.data,
            mode=ResponseMode.STREAM,
            chunks=self.state.accumulated_content,
        )

    def finish(self, raw_text: Optional[str] = None) -> NormalizedResult:
        """
        Close the stream and produce the result.

        Args:
            raw_text: Everything received on the wire. Used for the fallback
                parse when no terminal event was seen.

        Raises:
            NoValidResponseError: No terminal event and the fallback failed.
        """
        if self.is_complete:
            return self.result()

        self.state.phase = AggregatorPhase.EXHAUSTED
        logger.warning(
            "Stream ended without stream_complete (%d events seen); trying fallback parse",
            self.state.events_seen,
        )
        return resolve_fallback(raw_text or "", chunks=self.state.accumulated_content)


def resolve_fallback(raw_text: str, chunks: Sequence[str] = ()) -> NormalizedResult:
    """
    Read an exhausted stream's full body as one JSON document.

    Covers servers that announce chunked framing but send a plain JSON
    body. Only an object with a non-empty string `response` qualifies.

    Raises:
        NoValidResponseError: The body is not JSON or has no response.
    """
    partial: List[str] = list(chunks)
    text = raw_text.lstrip("\ufeff").strip()

    if not text:
        raise NoValidResponseError("Stream ended with an empty body", partial_content=partial)

    try:
        data = json.loads(text)
    except (ValueError, RecursionError) as e:
        raise NoValidResponseError(
            f"Stream ended without stream_complete and body is not JSON: {e}",
            partial_content=partial,
        ) from e

    if not isinstance(data, dict):
        raise NoValidResponseError(
            "Stream ended without stream_complete and body is not a JSON object",
            partial_content=partial,
        )

    response = data.get("response")
    if not isinstance(response, str) or not response:
        raise NoValidResponseError(
            "Fallback body has no response field",
            partial_content=partial,
            request_id=data.get("requestId"),
        )

    logger.info("Recovered response from non-SSE body via fallback parse")
    return NormalizedResult.from_dict(data, mode=ResponseMode.FALLBACK, chunks=partial)
