"""
agentrelay - Utility Functions

Convenience functions for quick usage without creating a client, plus
helpers for normalizing responses obtained elsewhere.
"""

from typing import Any, Dict, Iterable, Mapping, Optional

from .client import AgentRelay
from .models import NormalizedResult
from .normalizer import ResponseNormalizer, is_streaming_response
from .sse import RawChunk


# Default client instance (created lazily)
_default_client: Optional[AgentRelay] = None


def _get_default_client() -> AgentRelay:
    """Get or create the default client."""
    global _default_client
    if _default_client is None:
        _default_client = AgentRelay()
    return _default_client


def set_base_url(base_url: str) -> None:
    """
    Point the default client at another server.

    Example:
        >>> import agentrelay
        >>> agentrelay.set_base_url("http://localhost:3000")
        >>> result = agentrelay.send("/api/ask", {"message": "Hello!"})
    """
    global _default_client
    if _default_client is not None:
        _default_client.close()
    _default_client = AgentRelay(base_url=base_url)


def send(path: str, payload: Dict[str, Any], **kwargs: Any) -> NormalizedResult:
    """
    Quick send using the default client.

    Args:
        path: Endpoint path.
        payload: JSON body.
        **kwargs: Additional arguments passed to AgentRelay.send()
    """
    return _get_default_client().send(path, payload, **kwargs)


def normalize(headers: Mapping[str, str], chunks: Iterable[RawChunk]) -> NormalizedResult:
    """
    Normalize a response obtained from any transport.

    Args:
        headers: Response headers, used for the streaming signal.
        chunks: Body pieces in delivery order.

    Example:
        >>> result = normalize(
        ...     {"Transfer-Encoding": "chunked"},
        ...     [b'data: {"type": "stream_complete", "data": {"response": "ok"}}\\n'],
        ... )
        >>> result.response
        'ok'
    """
    return ResponseNormalizer().normalize(chunks, streaming=is_streaming_response(headers))
