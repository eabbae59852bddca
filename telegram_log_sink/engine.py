"""
Telegram Log Sink - Flush Engine.

============================================================
PURPOSE
============================================================
Turns a prefix of the accumulation buffer into at most a few
Bot API requests.

DECISION PROCEDURE (one flush):
1. Consume backoff, reset line counter and flush time
2. Buffer over pending_size bytes -> upload a file with the
   prefix up to the last newline at-or-before pending_size
   (the whole first line when that line alone is longer),
   and drop the live message thread
3. Otherwise take up to working_limit bytes, cut at the
   last newline, and:
   - create a placeholder message if no thread is live
   - edit the live message with current text + chunk if it fits
   - else edit with the part that fits and start a new message
     with the rest
   - an edit that would not change the rendered text is skipped

FAILURE HANDLING:
- Rate limit   -> undelivered text back to the buffer front,
                  backoff recorded, flush reports RATE_LIMITED
- Transport    -> undelivered text back to the buffer front
                  (when requeue_on_failure), error re-raised
- API rejection-> text dropped, live thread reset, re-raised
- Unauthorized -> re-raised untouched

LOCKING:
- Buffer and backoff are touched only under the sink lock
- Deliveries are serialized by the engine's send lock so
  creates and edits of one thread stay strictly ordered
- Lock order is always sink lock before send lock when a
  caller holds both (inline mode); background mode takes
  the send lock alone and the sink lock only briefly

============================================================
"""

import logging
import threading
from typing import Optional

from .buffer import AccumulationBuffer
from .client import TelegramChannelClient
from .clock import ClockProtocol
from .config import SinkConfig
from .exceptions import (
    AuthorizationError,
    RateLimitedError,
    RemoteChannelError,
    TransportError,
)
from .formatting import (
    DOCUMENT_CAPTION,
    byte_length,
    format_message,
    format_placeholder,
    split_at_newline,
)
from .models import (
    ActiveMessage,
    FlushOutcome,
    FlushResult,
    MessageThread,
    NoActiveMessage,
    SinkStats,
)
from .scheduler import BackoffState


logger = logging.getLogger(__name__)


class _Delivery:
    """Text taken from the buffer and not yet confirmed delivered."""

    def __init__(self, text: str):
        self.pending = text
        self.requests = 0


class FlushEngine:
    """
    Flush decision procedure and message thread state.
    """

    def __init__(
        self,
        config: SinkConfig,
        buffer: AccumulationBuffer,
        backoff: BackoffState,
        client: TelegramChannelClient,
        clock: ClockProtocol,
        lock: threading.RLock,
        stats: Optional[SinkStats] = None,
    ):
        """
        Initialize the engine.

        Args:
            config: Sink configuration
            buffer: Shared accumulation buffer
            backoff: Shared backoff state
            client: Remote channel client
            clock: Clock for flush timestamps
            lock: The sink lock guarding buffer and backoff
            stats: Counters to update
        """
        self._config = config
        self._buffer = buffer
        self._backoff = backoff
        self._client = client
        self._clock = clock
        self._lock = lock
        self._send_lock = threading.Lock()
        self._stats = stats or SinkStats()
        self._thread: MessageThread = NoActiveMessage()

    @property
    def thread(self) -> MessageThread:
        """Current message thread state."""
        return self._thread

    @property
    def sending(self) -> bool:
        """True while a flush is talking to the remote channel."""
        return self._send_lock.locked()

    # --------------------------------------------------------
    # Flush
    # --------------------------------------------------------

    def flush(self) -> FlushResult:
        """
        Run one flush cycle.

        Raises TransportError, RemoteChannelError or
        AuthorizationError when the delivery fails.
        """
        with self._send_lock:
            with self._lock:
                self._backoff.consume()
                self._buffer.mark_flushed()
                self._stats.flushes += 1
                self._stats.last_flush_at = self._clock.now()

                if self._buffer.is_empty:
                    return FlushResult(FlushOutcome.NOOP)

                upload = self._buffer.size > self._config.pending_size
                if upload:
                    delivery = _Delivery(
                        self._buffer.take_prefix(self._config.pending_size, whole_line=True)
                    )
                    self._thread = NoActiveMessage()
                else:
                    delivery = _Delivery(self._buffer.take_prefix(self._config.working_limit))

            if not delivery.pending:
                return FlushResult(FlushOutcome.NOOP)

            try:
                if upload:
                    outcome = self._upload(delivery)
                else:
                    outcome = self._send_text(delivery)
            except RateLimitedError as e:
                with self._lock:
                    self._requeue(delivery)
                    self._backoff.set(e.retry_after)
                    # Backoff counts from the response, not from the flush start.
                    self._buffer.mark_flushed()
                    self._stats.rate_limited += 1
                logger.warning(f"Got flood wait of {e.retry_after} seconds, deferring next flush")
                return FlushResult(FlushOutcome.RATE_LIMITED, delivery.requests, e.retry_after)
            except AuthorizationError:
                with self._lock:
                    self._stats.failed_flushes += 1
                raise
            except RemoteChannelError as e:
                with self._lock:
                    self._thread = NoActiveMessage()
                    self._stats.failed_flushes += 1
                    self._stats.last_error = e.message
                logger.error(f"Dropped {len(delivery.pending)} chars of logs: {e.message}")
                raise
            except TransportError as e:
                with self._lock:
                    if self._config.requeue_on_failure:
                        self._requeue(delivery)
                    self._stats.failed_flushes += 1
                    self._stats.last_error = e.message
                raise

            return FlushResult(outcome, delivery.requests)

    def _requeue(self, delivery: _Delivery) -> None:
        if delivery.pending:
            self._buffer.restore(delivery.pending)
            self._stats.requeued_chars += len(delivery.pending)
            delivery.pending = ""

    # --------------------------------------------------------
    # File fallback
    # --------------------------------------------------------

    def _upload(self, delivery: _Delivery) -> FlushOutcome:
        delivery.requests += 1
        self._client.upload_document(
            delivery.pending,
            self._config.document_filename,
            DOCUMENT_CAPTION,
        )
        delivery.pending = ""
        with self._lock:
            self._stats.uploads += 1
        return FlushOutcome.UPLOADED

    # --------------------------------------------------------
    # Text path
    # --------------------------------------------------------

    def _send_text(self, delivery: _Delivery) -> FlushOutcome:
        title = self._config.title
        limit = self._config.working_limit
        chunk = delivery.pending

        thread = self._thread
        if isinstance(thread, NoActiveMessage):
            message_id = self._create(format_placeholder(title), delivery)
            thread = self._thread = ActiveMessage(message_id, "")

        combined = thread.text + chunk
        if byte_length(combined) <= limit:
            if self._changes_display(thread.text, combined):
                self._edit(thread.message_id, format_message(title, combined), delivery)
            self._thread = ActiveMessage(thread.message_id, combined)
            delivery.pending = ""
            return FlushOutcome.EDITED

        # The current text always ends on a cut point, so head covers it
        # and tail is a suffix of the chunk.
        head, tail = split_at_newline(combined, limit)
        if self._changes_display(thread.text, head):
            self._edit(thread.message_id, format_message(title, head), delivery)
            self._thread = ActiveMessage(thread.message_id, head)
        delivery.pending = tail

        if not tail.rstrip("\n"):
            # Blank lines alone would render as an empty message.
            delivery.pending = ""
            return FlushOutcome.EDITED

        message_id = self._create(format_message(title, tail), delivery)
        self._thread = ActiveMessage(message_id, tail)
        delivery.pending = ""
        return FlushOutcome.ROLLED_OVER

    def _changes_display(self, current: str, new: str) -> bool:
        """
        Whether editing the live message from `current` to `new` changes
        what is shown.

        Trailing newlines are not rendered, so text that only gained
        blank lines would be rejected as "message is not modified".
        """
        if not current:
            # The placeholder is still shown.
            return bool(new)
        title = self._config.title
        return format_message(title, new) != format_message(title, current)

    def _create(self, text: str, delivery: _Delivery) -> int:
        delivery.requests += 1
        message_id = self._client.create_message(text)
        with self._lock:
            self._stats.messages_created += 1
        return message_id

    def _edit(self, message_id: int, text: str, delivery: _Delivery) -> None:
        delivery.requests += 1
        self._client.edit_message(message_id, text)
        with self._lock:
            self._stats.messages_edited += 1
