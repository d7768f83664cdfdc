"""
agentrelay

One result shape for an inference endpoint that answers either with a
single JSON document or with a Server-Sent-Events stream.

Quick Start:
    from agentrelay import AgentRelay

    client = AgentRelay(base_url="http://localhost:3000")

    # Short or long answers look the same
    result = client.send("/api/ask", {"message": "Hello!"})
    print(result.response, result.agent_used)

    # Watch progress on long answers
    stream = client.send_stream("/api/ask", {"message": "Write an essay"})
    for event in stream:
        if event.content:
            print(event.content, end="", flush=True)

    # Bring your own transport
    from agentrelay import ResponseNormalizer
    result = ResponseNormalizer().normalize(chunks, streaming=True)
"""

from .client import AgentRelay
from .async_client import AsyncAgentRelay
from .models import (
    AggregatorPhase,
    AggregatorState,
    EventKind,
    Ignored,
    IgnoreReason,
    NormalizedResult,
    Recognized,
    ResponseMode,
    RetryConfig,
    StreamEvent,
)
from .errors import (
    AgentRelayError,
    TransportError,
    TimeoutError,
    ConnectionError,
    MalformedResponseError,
    NoValidResponseError,
    CancelledError,
    InvalidRequestError,
    ProviderError,
    is_retryable_error,
)
from .sse import FrameSplitter, parse_record
from .aggregator import StreamAggregator, resolve_fallback
from .normalizer import (
    ResponseNormalizer,
    StreamExchange,
    is_streaming_response,
    parse_json_body,
)
from .utils import send, normalize, set_base_url

__version__ = "1.0.0"
__all__ = [
    # Clients
    "AgentRelay",
    "AsyncAgentRelay",
    # Models
    "AggregatorPhase",
    "AggregatorState",
    "EventKind",
    "Ignored",
    "IgnoreReason",
    "NormalizedResult",
    "Recognized",
    "ResponseMode",
    "RetryConfig",
    "StreamEvent",
    # Errors
    "AgentRelayError",
    "TransportError",
    "TimeoutError",
    "ConnectionError",
    "MalformedResponseError",
    "NoValidResponseError",
    "CancelledError",
    "InvalidRequestError",
    "ProviderError",
    "is_retryable_error",
    # Pipeline
    "FrameSplitter",
    "parse_record",
    "StreamAggregator",
    "resolve_fallback",
    "ResponseNormalizer",
    "StreamExchange",
    "is_streaming_response",
    "parse_json_body",
    # Convenience functions
    "send",
    "normalize",
    "set_base_url",
]
