"""
agentrelay - Pytest Configuration

Configures:
- SSE wire fixtures for the scenarios the normalizer must handle
- Chunked httpx streams for client tests (no network)
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx
import pytest


# ============================================================
# SSE Helpers
# ============================================================

def sse_line(event_type: str, data: Optional[Dict[str, Any]] = None) -> bytes:
    """Encode one `data: ` line the way the server writes it."""
    payload: Dict[str, Any] = {"type": event_type}
    if data is not None:
        payload["data"] = data
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n".encode("utf-8")


@pytest.fixture
def start_line() -> bytes:
    return sse_line("stream_start", {"message": "Processing request...", "timestamp": 1700000000})


@pytest.fixture
def chunk_line() -> bytes:
    return sse_line("stream_chunk", {"content": "partial", "timestamp": 1700000001})


@pytest.fixture
def complete_line() -> bytes:
    return sse_line("stream_complete", {
        "response": "final answer",
        "agentUsed": "claude_opus",
        "responseTime": 12.3,
        "timestamp": 1700000012,
    })


@pytest.fixture
def streamed_answer(start_line, chunk_line, complete_line) -> List[bytes]:
    """Three chunks: start, progress, completion."""
    return [start_line, chunk_line, complete_line]


@pytest.fixture
def short_answer() -> Dict[str, Any]:
    """Non-streaming JSON body."""
    return {"response": "hi", "agentUsed": "gpt4", "responseTime": 1.2}


# ============================================================
# httpx Streams
# ============================================================

class ChunkedStream(httpx.SyncByteStream, httpx.AsyncByteStream):
    """Body delivered as the given pieces, optionally failing midway."""

    def __init__(self, chunks: Iterable[bytes], error: Optional[Exception] = None):
        self._chunks = list(chunks)
        self._error = error

    def __iter__(self):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error


def chunked_response(
    chunks: Iterable[bytes],
    status_code: int = 200,
    content_type: str = "text/event-stream",
    error: Optional[Exception] = None,
) -> httpx.Response:
    """A response that signals chunked framing."""
    return httpx.Response(
        status_code,
        headers={"Transfer-Encoding": "chunked", "Content-Type": content_type},
        stream=ChunkedStream(chunks, error=error),
    )


# ============================================================
# Logging Configuration
# ============================================================

@pytest.fixture(autouse=True)
def configure_test_logging():
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    yield
