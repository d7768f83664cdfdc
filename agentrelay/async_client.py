"""
agentrelay - Async Client

Async client for non-blocking exchanges. Chunk delivery is the only
await point; wrapping a call in `asyncio.wait_for` cancels it cleanly
and the half-read stream is discarded.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import httpx

from .client import (
    DEFAULT_HEADERS,
    __version__,
    build_retry_handler,
    error_from_status,
    resolve_base_url,
    resolve_timeout,
)
from .errors import (
    TimeoutError,
    ConnectionError,
    TransportError,
)
from .models import NormalizedResult, RetryConfig
from .normalizer import ResponseNormalizer


logger = logging.getLogger("agentrelay.client")


class AsyncAgentRelay:
    """
    Async client for an inference endpoint that answers in JSON or SSE.

    Args:
        base_url: Base URL for the API. Reads AGENTRELAY_BASE_URL if not given.
        timeout: Request timeout in seconds. Reads AGENTRELAY_TIMEOUT if not given.
        max_retries: Maximum retry attempts for failures before the body is read.
        retry_config: Advanced retry configuration.
        headers: Extra headers sent with every request.
        transport: Optional httpx async transport.

    Example:
        >>> async with AsyncAgentRelay() as client:
        ...     result = await asyncio.wait_for(
        ...         client.send("/api/ask", {"message": "Hello!"}), timeout=600
        ...     )
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: int = 3,
        retry_config: Optional[RetryConfig] = None,
        on_retry: Optional[Callable[[int, Exception, float], None]] = None,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = resolve_base_url(base_url)
        self.timeout = resolve_timeout(timeout)
        self._retry_handler = build_retry_handler(max_retries, retry_config, on_retry)
        self._normalizer = ResponseNormalizer()
        self._headers = {
            **DEFAULT_HEADERS,
            "User-Agent": f"agentrelay-python-async/{__version__}",
            **(headers or {}),
        }
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def send(
        self,
        path: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> NormalizedResult:
        """
        POST a payload and return the normalized result.

        Example:
            >>> result = await client.send("/api/ask", {"message": "Hi"})
            >>> print(result.response)
        """
        client = await self._get_client()
        request = client.build_request("POST", path, json=payload, headers=headers)
        response = await self._retry_handler.execute_async(
            lambda: self._send_request(client, request)
        )
        try:
            return await self._normalizer.anormalize_response(response, should_cancel=should_cancel)
        finally:
            await response.aclose()

    async def _send_request(
        self,
        client: httpx.AsyncClient,
        request: httpx.Request,
    ) -> httpx.Response:
        try:
            response = await client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise TimeoutError("Request timed out") from e
        except httpx.ConnectError as e:
            raise ConnectionError("Failed to connect to API") from e
        except httpx.RequestError as e:
            raise TransportError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            try:
                await response.aread()
            except httpx.HTTPError:
                logger.debug("Could not read error body for HTTP %d", response.status_code)
            finally:
                await response.aclose()
            raise error_from_status(response)

        return response

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()
