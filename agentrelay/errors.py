"""
agentrelay - Error Classes

Exchange-level failures surfaced to callers. Per-record parse problems
inside an SSE stream never reach this module; they are discarded by the
parser.
"""

from typing import Optional, Dict, Any, List


class AgentRelayError(Exception):
    """
    Base exception for agentrelay.

    All library errors inherit from this class.

    Attributes:
        message: Human-readable error message
        code: Error code for programmatic handling
        status_code: HTTP status code if applicable
        request_id: Request ID for support/debugging
        retryable: Whether the request can be retried
        details: Additional error details
    """

    def __init__(
        self,
        message: str,
        code: str = "unknown",
        status_code: int = 500,
        request_id: Optional[str] = None,
        retryable: bool = False,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.request_id = request_id
        self.retryable = retryable
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"status_code={self.status_code})"
        )

    @classmethod
    def from_response(cls, response_data: Dict[str, Any], status_code: int) -> "AgentRelayError":
        """Create an error from an API error body."""
        error = response_data.get("error", {})
        if not isinstance(error, dict):
            error = {"message": error} if isinstance(error, str) else {}

        if status_code >= 500:
            error_class = ProviderError
        elif status_code >= 400:
            error_class = InvalidRequestError
        else:
            error_class = cls

        kwargs: Dict[str, Any] = {}
        if error.get("code"):
            kwargs["code"] = error["code"]

        return error_class(
            message=error.get("message") or response_data.get("message") or f"HTTP {status_code}",
            status_code=status_code,
            **kwargs,
            request_id=error.get("request_id") or response_data.get("requestId"),
            details={
                "type": error.get("type"),
                "param": error.get("param"),
            }
        )


class TransportError(AgentRelayError):
    """
    Chunk delivery failed.

    Raised when the underlying transport breaks while the body is
    being read. Fatal for the exchange; any retry is the caller's call.
    """

    def __init__(
        self,
        message: str = "Transport failed",
        **kwargs
    ):
        kwargs.pop("retryable", None)
        super().__init__(
            message=message,
            code=kwargs.pop("code", "transport_error"),
            status_code=kwargs.pop("status_code", 503),
            retryable=True,
            **kwargs
        )


class TimeoutError(TransportError):
    """Request timed out while waiting for the server."""

    def __init__(
        self,
        message: str = "Request timed out",
        **kwargs
    ):
        kwargs.pop("code", None)
        super().__init__(
            message=message,
            code="timeout",
            status_code=kwargs.pop("status_code", 408),
            **kwargs
        )


class ConnectionError(TransportError):
    """
    Failed to connect to the API.

    This error occurs when:
    - Network is unavailable
    - DNS resolution fails
    - Connection is refused
    """

    def __init__(
        self,
        message: str = "Failed to connect to API",
        **kwargs
    ):
        kwargs.pop("code", None)
        super().__init__(
            message=message,
            code="connection_error",
            **kwargs
        )


class MalformedResponseError(AgentRelayError):
    """
    A non-streaming body could not be parsed as a JSON object.

    Attributes:
        body: The offending body text (truncated)
    """

    def __init__(
        self,
        message: str = "Response body is not valid JSON",
        body: str = "",
        **kwargs
    ):
        kwargs.pop("retryable", None)
        kwargs.pop("code", None)
        super().__init__(
            message=message,
            code="malformed_response",
            status_code=kwargs.pop("status_code", 502),
            retryable=False,
            **kwargs
        )
        self.body = body[:500]


class NoValidResponseError(AgentRelayError):
    """
    The stream ended without a terminal event and the fallback parse failed.

    Attributes:
        partial_content: Chunk contents received before the stream ended
    """

    def __init__(
        self,
        message: str = "Stream ended without a valid response",
        partial_content: Optional[List[str]] = None,
        **kwargs
    ):
        kwargs.pop("retryable", None)
        kwargs.pop("code", None)
        super().__init__(
            message=message,
            code="no_valid_response",
            status_code=kwargs.pop("status_code", 502),
            retryable=False,
            **kwargs
        )
        self.partial_content = list(partial_content or [])


class CancelledError(AgentRelayError):
    """
    The caller abandoned the exchange.

    Kept separate from protocol failures so callers can tell a user
    cancellation apart from a broken stream. Never carries a partial result.
    """

    def __init__(
        self,
        message: str = "Exchange cancelled",
        **kwargs
    ):
        kwargs.pop("retryable", None)
        kwargs.pop("code", None)
        super().__init__(
            message=message,
            code="cancelled",
            status_code=kwargs.pop("status_code", 499),
            retryable=False,
            **kwargs
        )


class InvalidRequestError(AgentRelayError):
    """
    The server rejected the request (4xx).

    Attributes:
        param: The parameter that caused the error
    """

    def __init__(
        self,
        message: str,
        param: Optional[str] = None,
        **kwargs
    ):
        kwargs.pop("retryable", None)
        super().__init__(
            message=message,
            code=kwargs.pop("code", "invalid_request"),
            status_code=kwargs.pop("status_code", 400),
            retryable=False,
            **kwargs
        )
        self.param = param


class ProviderError(AgentRelayError):
    """The inference server failed (5xx)."""

    def __init__(
        self,
        message: str,
        **kwargs
    ):
        super().__init__(
            message=message,
            code=kwargs.pop("code", "provider_error"),
            status_code=kwargs.pop("status_code", 502),
            retryable=kwargs.pop("retryable", True),
            **kwargs
        )


def is_retryable_error(error: Any) -> bool:
    """
    Check if an error is retryable.

    Transport and server-side failures are retryable. Protocol failures
    (malformed body, stream without a response) and cancellation are not.

    Args:
        error: The error to check

    Returns:
        True if the error is retryable, False otherwise
    """
    if isinstance(error, AgentRelayError):
        return error.retryable

    return False
