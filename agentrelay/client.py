"""
agentrelay - Synchronous Client

Thin httpx adapter around ResponseNormalizer. The caller builds the
payload and supplies any auth headers; this client posts it, checks the
status and hands the body to the normalizer.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Callable, Dict, Generator, Optional

import httpx

from .errors import (
    AgentRelayError,
    TimeoutError,
    ConnectionError,
    TransportError,
)
from .models import NormalizedResult, RetryConfig, StreamEvent
from .normalizer import ResponseNormalizer, is_streaming_response
from .retry import RetryHandler


__version__ = "1.0.0"

logger = logging.getLogger("agentrelay.client")

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 300.0
DEFAULT_HEADERS = {
    "Accept": "application/json, text/event-stream",
    "Content-Type": "application/json",
}


def resolve_base_url(base_url: Optional[str] = None) -> str:
    """Constructor argument, then AGENTRELAY_BASE_URL, then the default."""
    return (base_url or os.getenv("AGENTRELAY_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")


def resolve_timeout(timeout: Optional[float] = None) -> float:
    """Constructor argument, then AGENTRELAY_TIMEOUT, then the default."""
    if timeout is not None:
        return float(timeout)
    env_value = os.getenv("AGENTRELAY_TIMEOUT")
    if env_value:
        try:
            return float(env_value)
        except ValueError:
            logger.warning("Ignoring invalid AGENTRELAY_TIMEOUT=%r", env_value)
    return DEFAULT_TIMEOUT


def build_retry_handler(
    max_retries: int,
    retry_config: Optional[RetryConfig],
    on_retry: Optional[Callable[[int, Exception, float], None]],
) -> RetryHandler:
    if retry_config:
        return RetryHandler(
            max_retries=retry_config.max_retries,
            initial_delay=retry_config.initial_delay,
            max_delay=retry_config.max_delay,
            exponential_base=retry_config.exponential_base,
            retry_on_status=retry_config.retry_on_status,
            on_retry=on_retry,
        )
    return RetryHandler(max_retries=max_retries, on_retry=on_retry)


def error_from_status(response: httpx.Response) -> AgentRelayError:
    """Build the error for a non-2xx response whose body has been read."""
    try:
        body = response.text
    except httpx.ResponseNotRead:
        body = ""

    try:
        error_data = json.loads(body) if body else None
    except ValueError:
        error_data = None

    if isinstance(error_data, dict):
        return AgentRelayError.from_response(error_data, response.status_code)

    return AgentRelayError.from_response(
        {"error": {"message": body or f"HTTP {response.status_code}"}},
        response.status_code,
    )


class AgentRelay:
    """
    Client for an inference endpoint that answers in JSON or SSE.

    Args:
        base_url: Base URL for the API. Reads AGENTRELAY_BASE_URL if not given.
        timeout: Request timeout in seconds. Reads AGENTRELAY_TIMEOUT if not given.
        max_retries: Maximum retry attempts for failures before the body is read.
        retry_config: Advanced retry configuration.
        on_retry: Callback called before each retry.
        headers: Extra headers sent with every request (e.g. auth).
        transport: Optional httpx transport (tests, proxies).

    Example:
        >>> client = AgentRelay(base_url="http://localhost:3000")
        >>> result = client.send("/api/ask", {"message": "Hello!"})
        >>> print(result.response, result.agent_used)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: int = 3,
        retry_config: Optional[RetryConfig] = None,
        on_retry: Optional[Callable[[int, Exception, float], None]] = None,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._base_url = resolve_base_url(base_url)
        self._timeout = resolve_timeout(timeout)
        self._retry_handler = build_retry_handler(max_retries, retry_config, on_retry)
        self._normalizer = ResponseNormalizer()

        self._client = httpx.Client(
            base_url=self._base_url,
            headers={
                **DEFAULT_HEADERS,
                "User-Agent": f"agentrelay-python/{__version__}",
                **(headers or {}),
            },
            timeout=self._timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        """Base URL for API requests."""
        return self._base_url

    @property
    def timeout(self) -> float:
        return self._timeout

    def send(
        self,
        path: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> NormalizedResult:
        """
        POST a payload and return the normalized result.

        Args:
            path: Endpoint path relative to base_url.
            payload: JSON body, passed through unchanged.
            headers: Per-request headers.
            should_cancel: Polled between chunks; True abandons the exchange.

        Returns:
            NormalizedResult, whether the server answered in JSON or SSE.
        """
        response = self._open(path, payload, headers)
        try:
            return self._normalizer.normalize_response(response, should_cancel=should_cancel)
        finally:
            response.close()

    def send_stream(
        self,
        path: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> Generator[StreamEvent, None, NormalizedResult]:
        """
        POST a payload and yield stream events as they arrive.

        A JSON answer yields nothing. Either way the generator returns
        the NormalizedResult.

        Example:
            >>> stream = client.send_stream("/api/ask", {"message": "Write an essay"})
            >>> for event in stream:
            ...     if event.content:
            ...         print(event.content, end="", flush=True)
        """
        response = self._open(path, payload, headers)
        try:
            if not is_streaming_response(response.headers):
                return self._normalizer.normalize(
                    response.iter_bytes(), streaming=False, should_cancel=should_cancel
                )
            return (yield from self._normalizer.iter_events(
                response.iter_bytes(), should_cancel=should_cancel
            ))
        finally:
            response.close()

    # ============================================================
    # Private methods
    # ============================================================

    def _open(
        self,
        path: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]],
    ) -> httpx.Response:
        """Send the request with retry and return the open response."""
        request = self._client.build_request("POST", path, json=payload, headers=headers)
        return self._retry_handler.execute(lambda: self._send_request(request))

    def _send_request(self, request: httpx.Request) -> httpx.Response:
        try:
            response = self._client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise TimeoutError("Request timed out") from e
        except httpx.ConnectError as e:
            raise ConnectionError("Failed to connect to API") from e
        except httpx.RequestError as e:
            raise TransportError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            try:
                response.read()
            except httpx.HTTPError:
                logger.debug("Could not read error body for HTTP %d", response.status_code)
            finally:
                response.close()
            raise error_from_status(response)

        return response

    # ============================================================
    # Context Manager
    # ============================================================

    def close(self):
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
