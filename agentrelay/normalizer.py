"""
agentrelay - Response Normalizer

Routes a response to the direct JSON path or the SSE pipeline and
returns one NormalizedResult either way.

    transport bytes -> mode router -> direct JSON parse
                                   -> splitter -> parser -> aggregator
                                                              -> fallback

Ensures the same result shape regardless of server mode:
- Short answers arrive as one JSON document
- Long answers arrive as `data: ` lines ending in `stream_complete`
- Chunked responses that turn out to be plain JSON are recovered
"""

import json
import logging
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Callable,
    Generator,
    Iterable,
    List,
    Mapping,
    Optional,
    Union,
)

import httpx

from .aggregator import StreamAggregator
from .errors import (
    CancelledError,
    ConnectionError,
    MalformedResponseError,
    TimeoutError,
    TransportError,
)
from .models import (
    AggregatorPhase,
    NormalizedResult,
    Recognized,
    ResponseMode,
    StreamEvent,
)
from .sse import FrameSplitter, RawChunk, parse_record


logger = logging.getLogger("agentrelay.normalizer")

EVENT_STREAM_CONTENT_TYPE = "text/event-stream"


# ============================================================
# Mode Router
# ============================================================

def is_streaming_response(headers: Mapping[str, str]) -> bool:
    """
    Check whether the transport signals an incrementally delivered body.

    True for `Transfer-Encoding: chunked` or an event-stream content type.
    This is a hint only: a chunked body can still be a single JSON document.
    """
    lowered = {str(k).lower(): str(v).lower() for k, v in headers.items()}

    transfer_encoding = lowered.get("transfer-encoding", "")
    if "chunked" in [part.strip() for part in transfer_encoding.split(",")]:
        return True

    content_type = lowered.get("content-type", "")
    return content_type.split(";")[0].strip() == EVENT_STREAM_CONTENT_TYPE


# ============================================================
# Direct JSON Path
# ============================================================

def parse_json_body(body: Union[bytes, str]) -> NormalizedResult:
    """
    Parse a complete non-streaming body.

    Raises:
        MalformedResponseError: The body is not a JSON object.
    """
    try:
        data = json.loads(body)
    except (ValueError, RecursionError) as e:
        preview = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
        raise MalformedResponseError(
            f"Response body is not valid JSON: {e}",
            body=preview,
        ) from e

    if not isinstance(data, dict):
        raise MalformedResponseError(
            f"Response body is a JSON {type(data).__name__}, expected an object",
            body=str(data),
        )

    return NormalizedResult.from_dict(data, mode=ResponseMode.JSON)


# ============================================================
# Exchange
# ============================================================

class StreamExchange:
    """
    State for one streamed exchange.

    Owns the splitter and the aggregator. Created per request and thrown
    away afterwards; cancelling discards everything buffered so far.

    Example:
        >>> exchange = StreamExchange()
        >>> for chunk in chunks:
        ...     exchange.feed(chunk)
        >>> result = exchange.finish()
    """

    def __init__(self, encoding: str = "utf-8"):
        self.splitter = FrameSplitter(encoding)
        self.aggregator = StreamAggregator()
        self.ignored_records = 0
        self._cancelled = False
        self._finished = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def is_complete(self) -> bool:
        return self.aggregator.is_complete

    @property
    def phase(self) -> AggregatorPhase:
        return self.aggregator.phase

    def feed(self, chunk: RawChunk) -> List[StreamEvent]:
        """Add one transport chunk; return the events it completed."""
        self._check_open()
        return self._consume(self.splitter.feed(chunk))

    def finish(self) -> NormalizedResult:
        """
        End of stream: flush the tail and resolve the result.

        Raises:
            NoValidResponseError: No terminal event and fallback failed.
            CancelledError: The exchange was cancelled.
        """
        self._check_open()
        self._consume(self.splitter.flush())
        self._finished = True
        return self.aggregator.finish(raw_text=self.splitter.raw_text)

    def cancel(self) -> None:
        """Abandon the exchange and drop buffered state."""
        if self._cancelled:
            return
        self._cancelled = True
        self.splitter.reset()
        self.aggregator = StreamAggregator()
        logger.debug("Exchange cancelled; buffered state discarded")

    def _consume(self, records: Iterable[str]) -> List[StreamEvent]:
        events = []
        for record in records:
            parsed = parse_record(record)
            if not isinstance(parsed, Recognized):
                self.ignored_records += 1
                continue
            # Events after the terminal one are counted but not surfaced.
            was_complete = self.aggregator.is_complete
            self.aggregator.feed(parsed.event)
            if not was_complete:
                events.append(parsed.event)
        return events

    def _check_open(self) -> None:
        if self._cancelled:
            raise CancelledError()
        if self._finished:
            raise RuntimeError("Exchange already finished")


# ============================================================
# Normalizer
# ============================================================

class ResponseNormalizer:
    """
    Turns a transport response into a NormalizedResult.

    Args:
        encoding: Text encoding of the body.
        stop_on_complete: Stop reading once `stream_complete` arrives.

    Usage:
        normalizer = ResponseNormalizer()

        # From an httpx streaming response
        with client.stream("POST", "/ask", json=payload) as response:
            result = normalizer.normalize_response(response)

        # From raw pieces
        result = normalizer.normalize(chunks, streaming=True)
    """

    def __init__(self, encoding: str = "utf-8", stop_on_complete: bool = True):
        self.encoding = encoding
        self.stop_on_complete = stop_on_complete

    def normalize(
        self,
        chunks: Iterable[RawChunk],
        streaming: bool,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> NormalizedResult:
        """
        Normalize a response delivered as an iterable of chunks.

        Args:
            chunks: Body pieces in delivery order.
            streaming: The transport's framing signal.
            should_cancel: Polled between chunks; True abandons the exchange.

        Raises:
            MalformedResponseError: Non-streaming body is not JSON.
            NoValidResponseError: Stream had no usable response.
            TransportError: Reading a chunk failed.
            CancelledError: should_cancel returned True.
        """
        if not streaming:
            return parse_json_body(self._read_body(chunks, should_cancel))

        events = self.iter_events(chunks, should_cancel=should_cancel)
        while True:
            try:
                next(events)
            except StopIteration as stop:
                return stop.value

    async def anormalize(
        self,
        chunks: AsyncIterable[RawChunk],
        streaming: bool,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> NormalizedResult:
        """Async version of normalize()."""
        if not streaming:
            return parse_json_body(await self._aread_body(chunks, should_cancel))

        exchange = StreamExchange(self.encoding)
        try:
            async for chunk in _aguard(chunks):
                if should_cancel is not None and should_cancel():
                    exchange.cancel()
                exchange.feed(chunk)
                if self.stop_on_complete and exchange.is_complete:
                    break
            result = exchange.finish()
        except BaseException:
            exchange.cancel()
            raise

        self._log_result(result)
        return result

    def iter_events(
        self,
        chunks: Iterable[RawChunk],
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> Generator[StreamEvent, None, NormalizedResult]:
        """
        Run the SSE pipeline lazily.

        Yields each recognized event as it is parsed and returns the
        NormalizedResult when the generator is exhausted.
        """
        exchange = StreamExchange(self.encoding)
        try:
            for chunk in _guard(chunks):
                if should_cancel is not None and should_cancel():
                    exchange.cancel()
                yield from exchange.feed(chunk)
                if self.stop_on_complete and exchange.is_complete:
                    break
            result = exchange.finish()
        except BaseException:
            exchange.cancel()
            raise

        self._log_result(result)
        return result

    def normalize_response(
        self,
        response: httpx.Response,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> NormalizedResult:
        """Normalize an httpx response opened with `client.stream(...)`."""
        return self.normalize(
            response.iter_bytes(),
            streaming=is_streaming_response(response.headers),
            should_cancel=should_cancel,
        )

    async def anormalize_response(
        self,
        response: httpx.Response,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> NormalizedResult:
        """Normalize an httpx response opened with `async_client.stream(...)`."""
        return await self.anormalize(
            response.aiter_bytes(),
            streaming=is_streaming_response(response.headers),
            should_cancel=should_cancel,
        )

    # ============================================================
    # Private methods
    # ============================================================

    def _read_body(
        self,
        chunks: Iterable[RawChunk],
        should_cancel: Optional[Callable[[], bool]],
    ) -> bytes:
        parts = []
        for chunk in _guard(chunks):
            if should_cancel is not None and should_cancel():
                raise CancelledError()
            parts.append(_to_bytes(chunk, self.encoding))
        return b"".join(parts)

    async def _aread_body(
        self,
        chunks: AsyncIterable[RawChunk],
        should_cancel: Optional[Callable[[], bool]],
    ) -> bytes:
        parts = []
        async for chunk in _aguard(chunks):
            if should_cancel is not None and should_cancel():
                raise CancelledError()
            parts.append(_to_bytes(chunk, self.encoding))
        return b"".join(parts)

    def _log_result(self, result: NormalizedResult) -> None:
        logger.info(
            "Exchange complete (mode=%s, agent=%s, response_time=%s, chars=%d)",
            result.mode.value,
            result.agent_used or "-",
            result.response_time,
            len(result.response),
        )


# ============================================================
# Transport helpers
# ============================================================

def _to_bytes(chunk: RawChunk, encoding: str) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode(encoding)
    return bytes(chunk)


def wrap_transport_error(error: BaseException) -> TransportError:
    """Map an httpx or socket failure to a TransportError subclass."""
    if isinstance(error, httpx.TimeoutException):
        return TimeoutError(f"Timed out while reading response: {error}")
    if isinstance(error, httpx.ConnectError):
        return ConnectionError(f"Connection failed: {error}")
    return TransportError(f"Chunk delivery failed: {error}")


_TRANSPORT_FAILURES = (httpx.TransportError, httpx.StreamError, OSError)


def _guard(chunks: Iterable[RawChunk]) -> Generator[RawChunk, None, None]:
    iterator = iter(chunks)
    while True:
        try:
            chunk = next(iterator)
        except StopIteration:
            return
        except _TRANSPORT_FAILURES as e:
            raise wrap_transport_error(e) from e
        yield chunk


async def _aguard(chunks: AsyncIterable[RawChunk]) -> AsyncIterator[Any]:
    iterator = chunks.__aiter__()
    while True:
        try:
            chunk = await iterator.__anext__()
        except StopAsyncIteration:
            return
        except _TRANSPORT_FAILURES as e:
            raise wrap_transport_error(e) from e
        yield chunk
