"""
Telegram Log Sink.

============================================================
BATCHED LOG FORWARDING TO TELEGRAM
============================================================

Intercepts application log output and forwards it to a
Telegram chat, consolidating frequent small writes into
periodic batched updates:

- One live message is edited as lines arrive
- A full message rolls over into a new one
- A large backlog is sent as a file attachment
- Flood waits become backoff instead of errors

============================================================
USAGE
============================================================

```python
import logging
from telegram_log_sink import SinkConfig, initialize_sink, attach_to_logger

sink = initialize_sink(SinkConfig(token="123:abc", chat_id=-100123456789))
attach_to_logger(sink)

logging.getLogger("app").info("service started")
sink.close()
```

============================================================
"""

from .clock import ClockProtocol, MockClock, SystemClock
from .config import SinkConfig
from .client import ShutdownSignal, TelegramChannelClient, raise_for_response
from .engine import FlushEngine
from .exceptions import (
    AuthorizationError,
    ConfigurationError,
    LogSinkError,
    MalformedResponseError,
    RateLimitedError,
    RemoteChannelError,
    SendCancelledError,
    TransportError,
)
from .models import (
    ActiveMessage,
    ChannelResponse,
    FlushOutcome,
    FlushResult,
    NoActiveMessage,
    SinkStats,
)
from .sink import (
    TelegramLogHandler,
    TelegramLogSink,
    attach_to_logger,
    initialize_sink,
)


__all__ = [
    # Config
    "SinkConfig",
    # Clock
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    # Client
    "TelegramChannelClient",
    "ShutdownSignal",
    "raise_for_response",
    # Engine
    "FlushEngine",
    # Models
    "ActiveMessage",
    "NoActiveMessage",
    "ChannelResponse",
    "FlushOutcome",
    "FlushResult",
    "SinkStats",
    # Sink
    "TelegramLogSink",
    "TelegramLogHandler",
    "attach_to_logger",
    "initialize_sink",
    # Exceptions
    "LogSinkError",
    "ConfigurationError",
    "AuthorizationError",
    "RateLimitedError",
    "RemoteChannelError",
    "TransportError",
    "MalformedResponseError",
    "SendCancelledError",
]
