"""
Telegram Log Sink - Sink.

============================================================
RESPONSIBILITY
============================================================
The writer capability a host application routes its log
output into.

- Mirrors every raw write locally
- Filters excluded writes
- Accumulates lines and triggers flushes
- Never raises flush errors to the code that logs

============================================================
DISPATCH MODES
============================================================
Inline (default):
    record() evaluates the flush predicate and, when due, runs
    the flush engine while holding the sink lock. Concurrent
    writers wait for the outbound request.

Background (background_sender=True):
    record() only signals the flush timer thread, which runs
    the engine without holding the sink lock during I/O.

============================================================
USAGE
============================================================

```python
config = SinkConfig.from_env()
sink = initialize_sink(config)
attach_to_logger(sink)

logging.getLogger(__name__).info("hello")

sink.close()
```

============================================================
"""

import logging
import threading
from typing import Optional, Tuple, Union

from .buffer import AccumulationBuffer
from .client import ShutdownSignal, TelegramChannelClient
from .clock import ClockProtocol, SystemClock
from .config import SinkConfig
from .engine import FlushEngine
from .exceptions import AuthorizationError, LogSinkError, SendCancelledError
from .filters import ExcludedPatternFilter
from .mirror import LogMirror
from .models import FlushOutcome, FlushResult, MessageThread, SinkStats
from .scheduler import BackoffState, FlushScheduler, FlushTimer


logger = logging.getLogger(__name__)


DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Records from these loggers are never forwarded, so the sink cannot feed on itself.
MUTED_LOGGERS: Tuple[str, ...] = ("telegram_log_sink", "urllib3", "requests")

_MAX_DRAIN_FLUSHES = 10


# ============================================================
# SINK
# ============================================================

class TelegramLogSink:
    """
    Buffers log writes and forwards them to a Telegram chat.
    """

    def __init__(
        self,
        config: SinkConfig,
        client: Optional[TelegramChannelClient] = None,
        clock: Optional[ClockProtocol] = None,
        mirror: Optional[LogMirror] = None,
        shutdown: Optional[ShutdownSignal] = None,
    ):
        """
        Initialize the sink.

        Args:
            config: Validated sink configuration
            client: Remote channel client (built from config if omitted)
            clock: Clock (system clock if omitted)
            mirror: Local mirror (built from config if omitted)
            shutdown: Shutdown signal shared with the client
        """
        self._config = config
        self._clock = clock or SystemClock()
        self._shutdown = shutdown or ShutdownSignal()
        self._client = client or TelegramChannelClient.from_config(config, shutdown=self._shutdown)
        self._mirror = mirror or LogMirror(config.log_file_path, config.echo_to_console)

        self._lock = threading.RLock()
        self._filter = ExcludedPatternFilter(config.excluded_patterns)
        self._buffer = AccumulationBuffer(self._clock)
        self._backoff = BackoffState()
        self._scheduler = FlushScheduler(
            self._buffer,
            self._backoff,
            update_interval_seconds=config.update_interval_seconds,
            minimum_lines=config.minimum_lines,
        )
        self.stats = SinkStats()
        self._engine = FlushEngine(
            config,
            self._buffer,
            self._backoff,
            self._client,
            self._clock,
            self._lock,
            stats=self.stats,
        )

        self._timer: Optional[FlushTimer] = None
        if config.background_sender or config.idle_flush:
            self._timer = FlushTimer(self._on_tick, config.update_interval_seconds)

        self._forwarding = True
        self._closed = False
        self._in_flush = False

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def config(self) -> SinkConfig:
        return self._config

    @property
    def thread(self) -> MessageThread:
        """State of the live remote message."""
        return self._engine.thread

    @property
    def pending_text(self) -> str:
        with self._lock:
            return self._buffer.text

    @property
    def line_count(self) -> int:
        with self._lock:
            return self._buffer.line_count

    @property
    def backoff_seconds(self) -> float:
        with self._lock:
            return self._backoff.seconds

    @property
    def forwarding(self) -> bool:
        """False once the token was rejected or the sink closed."""
        return self._forwarding and not self._closed

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    def start(self) -> "TelegramLogSink":
        """Open the local mirror and start the flush timer."""
        self._mirror.open()
        if self._timer:
            self._timer.start()
        return self

    def close(self, drain: bool = True) -> None:
        """
        Shut the sink down.

        Flushes what it can (best effort), then cancels in-flight
        sends and releases the HTTP session and mirror file.
        Anything still buffered afterwards is discarded.
        """
        if self._closed:
            return

        if self._timer:
            self._timer.signal_stop()

        if drain and self._forwarding:
            self._drain()

        # Releases a send still blocked on the network before joining its thread.
        self._shutdown.cancel()
        if self._timer:
            self._timer.stop()

        with self._lock:
            self._closed = True
            dropped = self._buffer.clear()
        if dropped:
            logger.warning(f"Discarding {len(dropped)} chars of unsent logs at shutdown")

        self._client.close()
        self._mirror.close()

    def _drain(self) -> None:
        if self._engine.sending:
            logger.warning("A send is still in flight at shutdown, skipping the final flush")
            return

        for _ in range(_MAX_DRAIN_FLUSHES):
            with self._lock:
                if self._buffer.is_empty:
                    return
                if self._backoff.active and self._buffer.seconds_since_flush() < self._backoff.seconds:
                    logger.warning(
                        f"Rate limited for another "
                        f"{self._backoff.seconds - self._buffer.seconds_since_flush():.0f}s, "
                        f"skipping the final flush"
                    )
                    return
            result = self.force_flush()
            if result is None or result.outcome in (FlushOutcome.NOOP, FlushOutcome.RATE_LIMITED):
                return

    def __enter__(self) -> "TelegramLogSink":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # --------------------------------------------------------
    # Writer capability
    # --------------------------------------------------------

    def write(self, data: Union[bytes, bytearray, str]) -> int:
        """
        Accept one raw write from the host.

        Always reports the full length as written.
        """
        if isinstance(data, (bytes, bytearray)):
            text = bytes(data).decode("utf-8", errors="replace")
        else:
            text = data
        if self._mirror.enabled:
            self._mirror.write(text)
        self.record(text)
        return len(data)

    def flush(self) -> None:
        """Stream protocol no-op; batching decides when to send."""

    def record(self, text: str) -> bool:
        """
        Buffer one log write.

        Returns True if the text was buffered for forwarding.
        """
        if not text:
            return False

        with self._lock:
            self.stats.writes += 1
            if self._filter.is_excluded(text):
                self.stats.excluded_writes += 1
                return False
            if not self.forwarding:
                return False

            self._buffer.append(text)

            if not self._scheduler.should_flush():
                return True

            if self._config.background_sender:
                self._timer.wake()
            elif not self._in_flush:
                # A write logged from inside a flush only buffers.
                self._flush_reporting_errors()
        return True

    # --------------------------------------------------------
    # Flushing
    # --------------------------------------------------------

    def force_flush(self) -> Optional[FlushResult]:
        """
        Run one flush now, ignoring the schedule.

        Returns None if the flush failed (the error is logged).
        """
        if self._config.background_sender:
            return self._flush_reporting_errors()
        with self._lock:
            return self._flush_reporting_errors()

    def _on_tick(self) -> None:
        if self._config.background_sender:
            with self._lock:
                due = self.forwarding and self._scheduler.should_flush()
            if due:
                self._flush_reporting_errors()
            return

        with self._lock:
            if self.forwarding and self._scheduler.should_flush():
                self._flush_reporting_errors()

    def _flush_reporting_errors(self) -> Optional[FlushResult]:
        self._in_flush = True
        try:
            return self._engine.flush()
        except AuthorizationError as e:
            self._forwarding = False
            logger.critical(f"Telegram rejected the bot token, log forwarding disabled: {e.message}")
        except SendCancelledError:
            logger.warning("Flush cancelled: sink is shutting down")
        except LogSinkError as e:
            logger.error(f"Error handling logs: {e.message}")
        finally:
            self._in_flush = False
        return None


# ============================================================
# LOGGING ADAPTER
# ============================================================

class TelegramLogHandler(logging.Handler):
    """
    Logging handler that writes formatted records into a sink.

    Records from the sink itself and from the HTTP stack are
    skipped.
    """

    terminator = "\n"

    def __init__(
        self,
        sink: TelegramLogSink,
        level: int = logging.NOTSET,
        muted_loggers: Tuple[str, ...] = MUTED_LOGGERS,
    ):
        super().__init__(level)
        self.sink = sink
        self._muted = muted_loggers

    def _is_muted(self, name: str) -> bool:
        return any(name == m or name.startswith(m + ".") for m in self._muted)

    def emit(self, record: logging.LogRecord) -> None:
        if self._is_muted(record.name):
            return
        try:
            msg = self.format(record)
            self.sink.write(msg + self.terminator)
        except Exception:
            self.handleError(record)


def attach_to_logger(
    sink: TelegramLogSink,
    target: Optional[logging.Logger] = None,
    level: int = logging.INFO,
    fmt: str = DEFAULT_LOG_FORMAT,
    datefmt: str = DEFAULT_DATE_FORMAT,
) -> TelegramLogHandler:
    """
    Route a logger's records into the sink.

    Attaches to the root logger when no target is given.
    Returns the handler so the caller can detach it later.
    """
    handler = TelegramLogHandler(sink, level=level)
    handler.setFormatter(logging.Formatter(fmt, datefmt))
    (target or logging.getLogger()).addHandler(handler)
    return handler


# ============================================================
# INITIALIZATION
# ============================================================

def initialize_sink(
    config: Optional[SinkConfig] = None,
    client: Optional[TelegramChannelClient] = None,
    clock: Optional[ClockProtocol] = None,
    validate_token: bool = True,
) -> TelegramLogSink:
    """
    Build, validate and start a sink.

    Raises ConfigurationError for a missing token or chat id
    and AuthorizationError when Telegram rejects the token.
    """
    config = config or SinkConfig.from_env()
    shutdown = client.shutdown if client is not None else ShutdownSignal()
    client = client or TelegramChannelClient.from_config(config, shutdown=shutdown)

    if validate_token:
        try:
            username = client.get_me()
        except LogSinkError:
            client.close()
            raise
        logger.info(f"Using @{username} for log forwarding")

    sink = TelegramLogSink(config, client=client, clock=clock, shutdown=shutdown)
    return sink.start()
