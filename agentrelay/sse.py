"""
agentrelay - SSE Framing

Turns an arbitrarily chunked byte stream into complete lines and each
`data: ` line into a typed event.

Frame splitting keeps a persistent tail: bytes that arrived after the last
line break wait for the next chunk instead of the whole buffer being
re-split on every read.
"""

import codecs
import json
import logging
import re
from typing import List, Union

from .models import (
    EventKind,
    IgnoreReason,
    Ignored,
    ParseResult,
    Recognized,
    StreamEvent,
)


logger = logging.getLogger("agentrelay.sse")

DATA_PREFIX = "data: "

_LINE_BREAK = re.compile(r"\r\n|\r|\n")

RawChunk = Union[bytes, bytearray, str]


# ============================================================
# Frame Splitter
# ============================================================

class FrameSplitter:
    """
    Incremental line splitter for SSE bodies.

    Accepts bytes or text in delivery order and returns complete records
    (lines without their terminator). `\\n`, `\\r\\n` and a lone `\\r` all end
    a line. A `\\r` at the very end of a chunk is held back so that a `\\r\\n`
    pair split across two chunks counts as one line break.

    Example:
        >>> splitter = FrameSplitter()
        >>> splitter.feed(b'data: {"type": "stream_st')
        []
        >>> splitter.feed(b'art"}\\n\\n')
        ['data: {"type": "stream_start"}', '']
    """

    def __init__(self, encoding: str = "utf-8"):
        self._encoding = encoding
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending: List[str] = []
        self._held_cr = False
        self._received: List[str] = []
        self.records_emitted = 0

    @property
    def pending(self) -> str:
        """Text received after the last complete line."""
        return "".join(self._pending)

    @property
    def raw_text(self) -> str:
        """Every decoded character received so far, in order."""
        return "".join(self._received)

    def feed(self, chunk: RawChunk) -> List[str]:
        """
        Add a chunk and return the records it completes.

        An empty chunk returns no records and leaves the tail untouched.
        """
        text = self._decode(chunk)
        if not text:
            return []

        self._received.append(text)

        if not self._held_cr and "\n" not in text and "\r" not in text:
            self._pending.append(text)
            return []

        if self._held_cr:
            text = "".join(self._pending) + "\r" + text
        else:
            text = "".join(self._pending) + text
        self._pending = []
        self._held_cr = False

        if text.endswith("\r"):
            text = text[:-1]
            self._held_cr = True

        records = _LINE_BREAK.split(text)
        tail = records.pop()
        if tail:
            self._pending.append(tail)

        self.records_emitted += len(records)
        return records

    def flush(self) -> List[str]:
        """
        Return the leftover tail as a final record at end of stream.

        Only a non-empty leftover becomes a record. The splitter is empty
        afterwards.
        """
        remainder = self._decoder.decode(b"", final=True)
        if remainder:
            self._received.append(remainder)
            self._pending.append(remainder)

        leftover = "".join(self._pending)
        self._pending = []
        self._held_cr = False

        if not leftover:
            return []

        self.records_emitted += 1
        return [leftover]

    def reset(self) -> None:
        """Discard all buffered state."""
        self._decoder = codecs.getincrementaldecoder(self._encoding)(errors="replace")
        self._pending = []
        self._held_cr = False
        self._received = []
        self.records_emitted = 0

    def _decode(self, chunk: RawChunk) -> str:
        if isinstance(chunk, str):
            return chunk
        return self._decoder.decode(bytes(chunk))


# ============================================================
# SSE Event Parser
# ============================================================

def parse_record(record: str) -> ParseResult:
    """
    Classify one record.

    Returns Recognized for a `data: ` line holding a JSON object, and
    Ignored for everything else (blank separators, comments, other SSE
    fields, malformed JSON). Never raises.
    """
    line = record.lstrip("\ufeff").strip()
    if not line:
        return Ignored(IgnoreReason.BLANK, record)

    if line.startswith(DATA_PREFIX):
        payload = line[len(DATA_PREFIX):]
    elif line.startswith("data:"):
        payload = line[len("data:"):]
    else:
        return Ignored(IgnoreReason.NOT_DATA, record)

    try:
        parsed = json.loads(payload)
    except (ValueError, RecursionError) as e:
        logger.debug("Discarding malformed SSE data line: %s (%s)", payload[:200], e)
        return Ignored(IgnoreReason.MALFORMED_JSON, record)

    if not isinstance(parsed, dict):
        logger.debug("Discarding SSE data line that is not an object: %s", payload[:200])
        return Ignored(IgnoreReason.NOT_OBJECT, record)

    event_type = parsed.get("type")
    data = parsed.get("data")
    if not isinstance(data, dict):
        data = {k: v for k, v in parsed.items() if k not in ("type", "data")}

    return Recognized(
        StreamEvent(
            kind=EventKind.from_type(event_type),
            data=data,
            type=event_type if isinstance(event_type, str) else "",
            raw=payload,
        )
    )

