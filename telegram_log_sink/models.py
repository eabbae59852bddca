"""
Telegram Log Sink - Data Models.

============================================================
PURPOSE
============================================================
Typed state shared by the sink components.

- Message thread state (tagged, no sentinel ids)
- Normalized Bot API responses
- Flush results and running statistics

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from .exceptions import MalformedResponseError


# ============================================================
# MESSAGE THREAD STATE
# ============================================================

@dataclass(frozen=True)
class NoActiveMessage:
    """No live message exists; the next text flush starts one."""


@dataclass(frozen=True)
class ActiveMessage:
    """
    The live, editable remote message.

    `text` is the body currently shown (without decoration).
    It is empty only while the placeholder is displayed.
    """
    message_id: int
    text: str = ""


MessageThread = Union[NoActiveMessage, ActiveMessage]


# ============================================================
# NORMALIZED RESPONSE
# ============================================================

@dataclass
class ChannelResponse:
    """Normalized Bot API response."""
    ok: bool
    result: Dict[str, Any] = field(default_factory=dict)
    error_code: Optional[int] = None
    description: Optional[str] = None
    retry_after: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Any, method: Optional[str] = None) -> "ChannelResponse":
        """
        Build a response from decoded JSON.

        Raises MalformedResponseError when the body does not
        look like a Bot API reply.
        """
        if not isinstance(payload, dict) or not isinstance(payload.get("ok"), bool):
            raise MalformedResponseError(
                f"unexpected response schema: {str(payload)[:200]}",
                method=method,
            )

        result = payload.get("result")
        if not isinstance(result, dict):
            # getMe and friends return objects; a bare `true` is normalized away.
            result = {}

        parameters = payload.get("parameters")
        retry_after = None
        if isinstance(parameters, dict) and parameters.get("retry_after") is not None:
            try:
                retry_after = int(parameters["retry_after"])
            except (TypeError, ValueError):
                raise MalformedResponseError(
                    f"invalid retry_after: {parameters['retry_after']!r}",
                    method=method,
                )

        error_code = payload.get("error_code")
        return cls(
            ok=payload["ok"],
            result=result,
            error_code=int(error_code) if isinstance(error_code, int) else None,
            description=payload.get("description"),
            retry_after=retry_after,
        )

    @property
    def message_id(self) -> Optional[int]:
        """Message id carried in the result, if any."""
        value = self.result.get("message_id")
        if isinstance(value, int):
            return value
        return None


# ============================================================
# FLUSH RESULT
# ============================================================

class FlushOutcome(Enum):
    """What a single flush did."""

    NOOP = "noop"
    """Nothing to send."""

    EDITED = "edited"
    """The live message was extended."""

    ROLLED_OVER = "rolled_over"
    """The live message filled up and a new one was started."""

    UPLOADED = "uploaded"
    """The backlog was sent as a file attachment."""

    RATE_LIMITED = "rate_limited"
    """The remote channel asked to wait; backoff recorded."""


@dataclass
class FlushResult:
    """Result of one flush."""
    outcome: FlushOutcome
    requests: int = 0
    retry_after: Optional[int] = None


# ============================================================
# STATISTICS
# ============================================================

@dataclass
class SinkStats:
    """Running counters for operator visibility."""
    writes: int = 0
    excluded_writes: int = 0
    flushes: int = 0
    uploads: int = 0
    messages_created: int = 0
    messages_edited: int = 0
    rate_limited: int = 0
    failed_flushes: int = 0
    requeued_chars: int = 0
    last_flush_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "writes": self.writes,
            "excluded_writes": self.excluded_writes,
            "flushes": self.flushes,
            "uploads": self.uploads,
            "messages_created": self.messages_created,
            "messages_edited": self.messages_edited,
            "rate_limited": self.rate_limited,
            "failed_flushes": self.failed_flushes,
            "requeued_chars": self.requeued_chars,
            "last_flush_at": self.last_flush_at.isoformat() if self.last_flush_at else None,
            "last_error": self.last_error,
        }
