"""
Telegram Log Sink - Exceptions.

============================================================
EXCEPTION HIERARCHY
============================================================
LogSinkError (base)
├── ConfigurationError
├── AuthorizationError
├── RateLimitedError
├── RemoteChannelError
└── TransportError
    ├── MalformedResponseError
    └── SendCancelledError

============================================================
FAILURE SAFETY
============================================================
- Configuration and authorization errors are fatal at startup
- Rate limits are converted into backoff, never surfaced
- Transport and remote errors are logged, never raised to
  the producers writing log lines

============================================================
"""

from typing import Any, Dict, Optional


class LogSinkError(Exception):
    """
    Base exception for log sink errors.

    All log sink exceptions inherit from this class.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize exception.

        Args:
            message: Error message
            details: Additional error details
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(LogSinkError):
    """
    Raised when configuration is invalid.

    The sink must not be started with an invalid configuration.
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
    ) -> None:
        details = {}
        if config_key:
            details["config_key"] = config_key
        super().__init__(message=message, details=details)
        self.config_key = config_key


class AuthorizationError(LogSinkError):
    """
    Raised when the bot token is rejected.

    Fatal. Never retried.
    """

    def __init__(
        self,
        message: str = "unauthorized: invalid bot token",
        error_code: Optional[int] = None,
        description: Optional[str] = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if error_code is not None:
            details["error_code"] = error_code
        if description:
            details["description"] = description
        super().__init__(message=message, details=details)
        self.error_code = error_code
        self.description = description


class RateLimitedError(LogSinkError):
    """
    Raised when the remote channel asks the caller to wait.

    Recoverable: the flush engine turns this into backoff state.
    """

    def __init__(
        self,
        retry_after: int,
        description: Optional[str] = None,
    ) -> None:
        message = f"rate limited, retry after {retry_after}s"
        details: Dict[str, Any] = {"retry_after": retry_after}
        if description:
            details["description"] = description
        super().__init__(message=message, details=details)
        self.retry_after = retry_after
        self.description = description


class RemoteChannelError(LogSinkError):
    """
    Raised when the remote channel rejects a request.

    Covers every ok=false response that is neither an
    authorization failure nor a rate limit.
    """

    def __init__(
        self,
        error_code: Optional[int],
        description: Optional[str],
        method: Optional[str] = None,
    ) -> None:
        message = f"telegram API error: {error_code} - {description}"
        details: Dict[str, Any] = {
            "error_code": error_code,
            "description": description,
        }
        if method:
            details["method"] = method
        super().__init__(message=message, details=details)
        self.error_code = error_code
        self.description = description
        self.method = method


class TransportError(LogSinkError):
    """
    Raised when a request cannot be completed.

    Timeouts, connection failures and unreadable responses.
    """

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        original_exception: Optional[Exception] = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if method:
            details["method"] = method
        if original_exception:
            details["original_exception"] = str(original_exception)
            details["exception_type"] = type(original_exception).__name__
        super().__init__(message=message, details=details)
        self.method = method
        self.original_exception = original_exception


class MalformedResponseError(TransportError):
    """Raised when a response does not match the Bot API schema."""


class SendCancelledError(TransportError):
    """Raised when a send is aborted because the sink is shutting down."""
