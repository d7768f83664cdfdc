"""
agentrelay - Client Tests

Runs the sync and async clients against httpx.MockTransport, so both
server modes and the failure paths are covered without a network.
"""

import json
import os
from unittest.mock import patch

import httpx
import pytest

from conftest import chunked_response, sse_line

from agentrelay import AgentRelay, AsyncAgentRelay
from agentrelay.client import DEFAULT_BASE_URL, DEFAULT_TIMEOUT
from agentrelay.errors import (
    ConnectionError,
    InvalidRequestError,
    NoValidResponseError,
    ProviderError,
    TimeoutError,
    TransportError,
)
from agentrelay.models import EventKind, ResponseMode, RetryConfig


def mock_client(handler, **kwargs) -> AgentRelay:
    return AgentRelay(base_url="http://agents.test", transport=httpx.MockTransport(handler), **kwargs)


def async_mock_client(handler, **kwargs) -> AsyncAgentRelay:
    return AsyncAgentRelay(base_url="http://agents.test", transport=httpx.MockTransport(handler), **kwargs)


@pytest.fixture(autouse=True)
def no_retry_sleep():
    with patch("agentrelay.retry.time.sleep"):
        yield


class TestClientConfiguration:
    """Tests for constructor and environment settings."""

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            client = AgentRelay()

        assert client.base_url == DEFAULT_BASE_URL
        assert client.timeout == DEFAULT_TIMEOUT

    def test_env_overrides(self):
        env = {"AGENTRELAY_BASE_URL": "https://relay.example.com/", "AGENTRELAY_TIMEOUT": "45"}
        with patch.dict(os.environ, env, clear=True):
            client = AgentRelay()

        assert client.base_url == "https://relay.example.com"
        assert client.timeout == 45.0

    def test_arguments_win_over_env(self):
        env = {"AGENTRELAY_BASE_URL": "https://env.example.com", "AGENTRELAY_TIMEOUT": "45"}
        with patch.dict(os.environ, env, clear=True):
            client = AgentRelay(base_url="http://arg.example.com", timeout=5)

        assert client.base_url == "http://arg.example.com"
        assert client.timeout == 5.0

    def test_invalid_env_timeout_uses_default(self):
        with patch.dict(os.environ, {"AGENTRELAY_TIMEOUT": "soon"}, clear=True):
            client = AgentRelay()

        assert client.timeout == DEFAULT_TIMEOUT

    def test_context_manager(self):
        with AgentRelay() as client:
            assert client is not None


class TestSend:
    """Tests for AgentRelay.send()."""

    def test_short_answer(self, short_answer):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=short_answer)

        result = mock_client(handler).send("/api/ask", {"message": "hello"})

        assert result.response == "hi"
        assert result.agent_used == "gpt4"
        assert result.mode is ResponseMode.JSON
        assert json.loads(requests[0].content) == {"message": "hello"}
        assert requests[0].url.path == "/api/ask"
        assert "text/event-stream" in requests[0].headers["accept"]

    def test_long_answer(self, streamed_answer):
        def handler(request):
            return chunked_response(streamed_answer)

        result = mock_client(handler).send("/api/ask", {"message": "essay"})

        assert result.response == "final answer"
        assert result.agent_used == "claude_opus"
        assert result.mode is ResponseMode.STREAM

    def test_chunked_json_body(self):
        def handler(request):
            return chunked_response(
                [b'{"response": "plain",', b' "agentUsed": "gpt4"}'],
                content_type="application/json",
            )

        result = mock_client(handler).send("/api/ask", {"message": "hi"})

        assert result.response == "plain"
        assert result.mode is ResponseMode.FALLBACK

    def test_stream_without_answer(self, start_line, chunk_line):
        def handler(request):
            return chunked_response([start_line, chunk_line])

        with pytest.raises(NoValidResponseError):
            mock_client(handler).send("/api/ask", {"message": "hi"})

    def test_caller_headers_are_sent(self, short_answer):
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return httpx.Response(200, json=short_answer)

        client = mock_client(handler, headers={"X-Api-Key": "from-caller"})
        client.send("/api/ask", {}, headers={"X-Trace": "t1"})

        assert seen["x-api-key"] == "from-caller"
        assert seen["x-trace"] == "t1"

    def test_client_error_status(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "message is required"}})

        with pytest.raises(InvalidRequestError) as exc_info:
            mock_client(handler).send("/api/ask", {})

        assert exc_info.value.message == "message is required"
        assert exc_info.value.status_code == 400

    def test_client_error_with_null_error_field(self):
        def handler(request):
            return httpx.Response(400, json={"error": None, "message": "bad"})

        with pytest.raises(InvalidRequestError) as exc_info:
            mock_client(handler).send("/api/ask", {})

        assert exc_info.value.message == "bad"

    def test_server_error_is_retried(self, short_answer):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, text="upstream unavailable")
            return httpx.Response(200, json=short_answer)

        result = mock_client(handler, max_retries=3).send("/api/ask", {})

        assert result.response == "hi"
        assert len(calls) == 3

    def test_server_error_after_retries(self):
        def handler(request):
            return httpx.Response(500, text="boom")

        client = mock_client(handler, retry_config=RetryConfig(max_retries=1, initial_delay=0.0))
        with pytest.raises(ProviderError) as exc_info:
            client.send("/api/ask", {})

        assert exc_info.value.message == "boom"

    def test_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        with pytest.raises(ConnectionError):
            mock_client(handler, max_retries=0).send("/api/ask", {})

    def test_timeout(self):
        def handler(request):
            raise httpx.ConnectTimeout("slow")

        with pytest.raises(TimeoutError):
            mock_client(handler, max_retries=0).send("/api/ask", {})

    def test_mid_stream_failure_is_not_retried(self, start_line):
        calls = []

        def handler(request):
            calls.append(request)
            return chunked_response([start_line], error=httpx.ReadError("reset"))

        with pytest.raises(TransportError):
            mock_client(handler, max_retries=3).send("/api/ask", {})

        assert len(calls) == 1

    def test_on_retry_callback(self, short_answer):
        attempts = []
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(502, text="bad gateway")
            return httpx.Response(200, json=short_answer)

        client = mock_client(handler, on_retry=lambda attempt, error, delay: attempts.append(attempt))
        client.send("/api/ask", {})

        assert attempts == [0]


class TestSendStream:
    """Tests for AgentRelay.send_stream()."""

    def test_yields_events_and_returns_result(self, streamed_answer):
        def handler(request):
            return chunked_response(streamed_answer)

        stream = mock_client(handler).send_stream("/api/ask", {"message": "essay"})
        events = []
        with pytest.raises(StopIteration) as stop:
            while True:
                events.append(next(stream))

        assert [e.kind for e in events] == [
            EventKind.STREAM_START,
            EventKind.STREAM_CHUNK,
            EventKind.STREAM_COMPLETE,
        ]
        assert events[1].content == "partial"
        assert stop.value.value.response == "final answer"

    def test_json_answer_yields_nothing(self, short_answer):
        def handler(request):
            return httpx.Response(200, json=short_answer)

        stream = mock_client(handler).send_stream("/api/ask", {})
        with pytest.raises(StopIteration) as stop:
            next(stream)

        assert stop.value.value.response == "hi"

    def test_progress_content(self, start_line, complete_line):
        pieces = [sse_line("stream_chunk", {"content": text}) for text in ["Once ", "upon ", "a time"]]

        def handler(request):
            return chunked_response([start_line, *pieces, complete_line])

        stream = mock_client(handler).send_stream("/api/ask", {})
        text = "".join(event.content or "" for event in stream)

        assert text == "Once upon a time"


class TestAsyncClient:
    """Tests for AsyncAgentRelay."""

    @pytest.mark.asyncio
    async def test_short_answer(self, short_answer):
        def handler(request):
            return httpx.Response(200, json=short_answer)

        async with async_mock_client(handler) as client:
            result = await client.send("/api/ask", {"message": "hi"})

        assert result.response == "hi"
        assert result.mode is ResponseMode.JSON

    @pytest.mark.asyncio
    async def test_long_answer(self, streamed_answer):
        def handler(request):
            return chunked_response(streamed_answer)

        async with async_mock_client(handler) as client:
            result = await client.send("/api/ask", {"message": "essay"})

        assert result.response == "final answer"
        assert result.agent_used == "claude_opus"

    @pytest.mark.asyncio
    async def test_client_error_status(self):
        def handler(request):
            return httpx.Response(422, json={"error": {"message": "bad payload", "code": "invalid_payload"}})

        async with async_mock_client(handler) as client:
            with pytest.raises(InvalidRequestError) as exc_info:
                await client.send("/api/ask", {})

        assert exc_info.value.code == "invalid_payload"

    @pytest.mark.asyncio
    async def test_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        async with async_mock_client(handler, max_retries=0) as client:
            with pytest.raises(ConnectionError):
                await client.send("/api/ask", {})

    @pytest.mark.asyncio
    async def test_mid_stream_failure(self, start_line):
        def handler(request):
            return chunked_response([start_line], error=httpx.ReadError("reset"))

        async with async_mock_client(handler) as client:
            with pytest.raises(TransportError):
                await client.send("/api/ask", {})
