"""
agentrelay - Data Models

Dataclasses shared by the SSE parser, the stream aggregator and the
response normalizer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


# ============================================================
# Stream Events
# ============================================================

class EventKind(str, Enum):
    """Event types carried in the `type` field of an SSE data payload."""
    STREAM_START = "stream_start"
    STREAM_CHUNK = "stream_chunk"
    STREAM_COMPLETE = "stream_complete"
    UNKNOWN = "unknown"

    @classmethod
    def from_type(cls, value: Any) -> EventKind:
        """Map a wire `type` value to a kind, UNKNOWN for anything else."""
        for kind in cls:
            if kind is not cls.UNKNOWN and kind.value == value:
                return kind
        return cls.UNKNOWN


@dataclass(frozen=True)
class StreamEvent:
    """A typed event parsed from one `data: ` record."""
    kind: EventKind
    data: Dict[str, Any] = field(default_factory=dict)
    type: str = ""
    raw: str = ""

    @property
    def message(self) -> Optional[str]:
        return self.data.get("message")

    @property
    def content(self) -> Optional[str]:
        content = self.data.get("content")
        return content if isinstance(content, str) else None

    @property
    def response(self) -> Optional[str]:
        return self.data.get("response")

    @property
    def agent_used(self) -> Optional[str]:
        return self.data.get("agentUsed", self.data.get("agent_used"))

    @property
    def response_time(self) -> Optional[float]:
        return self.data.get("responseTime", self.data.get("response_time"))

    @property
    def timestamp(self) -> Optional[Union[str, float]]:
        return self.data.get("timestamp")

    @property
    def request_id(self) -> Optional[str]:
        return self.data.get("requestId", self.data.get("request_id"))


class IgnoreReason(str, Enum):
    """Why a record produced no event."""
    BLANK = "blank"
    NOT_DATA = "not_data"
    MALFORMED_JSON = "malformed_json"
    NOT_OBJECT = "not_object"


@dataclass(frozen=True)
class Recognized:
    """Parser outcome: the record carried an event."""
    event: StreamEvent


@dataclass(frozen=True)
class Ignored:
    """Parser outcome: the record is skipped."""
    reason: IgnoreReason
    record: str = ""


ParseResult = Union[Recognized, Ignored]


# ============================================================
# Aggregator State
# ============================================================

class AggregatorPhase(str, Enum):
    """Lifecycle of a streamed exchange."""
    WAITING_START = "waiting_start"
    ACCUMULATING = "accumulating"
    COMPLETE = "complete"
    EXHAUSTED = "exhausted"


@dataclass
class AggregatorState:
    """Mutable per-exchange progress. Never shared between requests."""
    phase: AggregatorPhase = AggregatorPhase.WAITING_START
    saw_start: bool = False
    start_message: Optional[str] = None
    accumulated_content: List[str] = field(default_factory=list)
    terminal: Optional[StreamEvent] = None
    events_seen: int = 0
    events_after_complete: int = 0

    @property
    def is_complete(self) -> bool:
        return self.phase is AggregatorPhase.COMPLETE

    @property
    def partial_content(self) -> str:
        """Chunk contents joined in arrival order."""
        return "".join(self.accumulated_content)


# ============================================================
# Normalized Result
# ============================================================

class ResponseMode(str, Enum):
    """Which path produced a result."""
    JSON = "json"
    STREAM = "stream"
    FALLBACK = "fallback"


@dataclass
class NormalizedResult:
    """
    Uniform result for one exchange, whatever framing the server used.

    `success` is derived: it is True iff `response` is a non-empty string.
    """
    response: str = ""
    agent_used: str = ""
    response_time: Optional[float] = None
    request_id: Optional[str] = None
    timestamp: Optional[Union[str, float]] = None
    mode: ResponseMode = ResponseMode.JSON
    raw: Dict[str, Any] = field(default_factory=dict)
    chunks: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return isinstance(self.response, str) and len(self.response) > 0

    @property
    def correlation_id(self) -> Optional[str]:
        """request_id when present, else the timestamp as a string."""
        if self.request_id:
            return str(self.request_id)
        if self.timestamp is not None:
            return str(self.timestamp)
        return None

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        mode: ResponseMode = ResponseMode.JSON,
        chunks: Optional[List[str]] = None
    ) -> NormalizedResult:
        """Create from a wire payload (camelCase or snake_case keys)."""
        response = data.get("response")
        agent_used = data.get("agentUsed", data.get("agent_used"))
        response_time = data.get("responseTime", data.get("response_time"))

        if isinstance(response_time, bool) or not isinstance(response_time, (int, float)):
            response_time = None

        return cls(
            response=response if isinstance(response, str) else "",
            agent_used=agent_used if isinstance(agent_used, str) else "",
            response_time=response_time,
            request_id=data.get("requestId", data.get("request_id")),
            timestamp=data.get("timestamp"),
            mode=mode,
            raw=dict(data),
            chunks=list(chunks or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase wire form."""
        result: Dict[str, Any] = {
            "response": self.response,
            "agentUsed": self.agent_used,
            "success": self.success,
        }
        if self.response_time is not None:
            result["responseTime"] = self.response_time
        if self.request_id is not None:
            result["requestId"] = self.request_id
        if self.timestamp is not None:
            result["timestamp"] = self.timestamp
        return result


# ============================================================
# Config Models
# ============================================================

@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    initial_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    retry_on_status: List[int] = field(default_factory=lambda: [500, 502, 503, 504])
