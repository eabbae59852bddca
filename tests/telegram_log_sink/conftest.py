"""
Shared fixtures for the Telegram log sink tests.
"""

import threading
from typing import Any, List, Tuple

import pytest

from telegram_log_sink.buffer import AccumulationBuffer
from telegram_log_sink.client import ShutdownSignal
from telegram_log_sink.clock import MockClock
from telegram_log_sink.config import SinkConfig
from telegram_log_sink.engine import FlushEngine
from telegram_log_sink.mirror import LogMirror
from telegram_log_sink.models import SinkStats
from telegram_log_sink.scheduler import BackoffState
from telegram_log_sink.sink import TelegramLogSink


TITLE = "T"
BODY_PREFIX = f"```\n{TITLE}\n\n"
BODY_SUFFIX = "\n```"


def unwrap(text: str) -> str:
    """Body of a decorated message ("" for the placeholder)."""
    if not text.startswith(BODY_PREFIX):
        return ""
    return text[len(BODY_PREFIX):-len(BODY_SUFFIX)]


def line(i: int, width: int = 100) -> str:
    """A numbered line exactly `width` chars long including its newline."""
    head = f"line {i:05d} "
    return head + "x" * (width - len(head) - 1) + "\n"


class RecordingChannel:
    """
    In-memory stand-in for TelegramChannelClient.

    Records every request and can be told to fail the next call
    of a given operation.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Any, str]] = []
        self.bodies = {}
        self.uploads: List[str] = []
        self.shutdown = ShutdownSignal()
        self.closed = False
        self._next_id = 100
        self._failures: List[Tuple[str, Exception]] = []
        self._lock = threading.Lock()

    def fail_next(self, method: str, exc: Exception) -> None:
        self._failures.append((method, exc))

    def _maybe_fail(self, method: str) -> None:
        for i, (name, exc) in enumerate(self._failures):
            if name == method:
                del self._failures[i]
                raise exc

    def create_message(self, text: str) -> int:
        with self._lock:
            self._maybe_fail("create_message")
            message_id = self._next_id
            self._next_id += 1
            self.calls.append(("create_message", message_id, text))
            self.bodies[message_id] = text
            return message_id

    def edit_message(self, message_id: int, text: str) -> None:
        with self._lock:
            self._maybe_fail("edit_message")
            self.calls.append(("edit_message", message_id, text))
            self.bodies[message_id] = text

    def upload_document(self, content: str, filename: str, caption: str) -> None:
        with self._lock:
            self._maybe_fail("upload_document")
            self.calls.append(("upload_document", filename, content))
            self.uploads.append(content)

    def get_me(self) -> str:
        return "test_bot"

    def close(self) -> None:
        self.closed = True

    @property
    def methods(self) -> List[str]:
        return [call[0] for call in self.calls]

    def delivered_text(self) -> str:
        """
        Everything that reached the chat, in order.

        Message bodies are taken at their final state; each body
        lost its trailing newline to the decoration, so it is put
        back here.
        """
        out = []
        for method, ref, payload in self.calls:
            if method == "upload_document":
                out.append(payload)
            elif method == "create_message":
                body = unwrap(self.bodies[ref])
                if body:
                    out.append(body + "\n")
        return "".join(out)


@pytest.fixture
def clock():
    return MockClock()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def config():
    return SinkConfig(
        token="123456:ABCDEF-test-token",
        chat_id=-100123456789,
        title=TITLE,
        update_interval_seconds=3.0,
        minimum_lines=1,
    )


@pytest.fixture
def engine_parts(config, channel, clock):
    """Engine wired to a bare buffer, for driving flushes directly."""
    lock = threading.RLock()
    buffer = AccumulationBuffer(clock)
    backoff = BackoffState()
    stats = SinkStats()
    engine = FlushEngine(config, buffer, backoff, channel, clock, lock, stats=stats)
    return engine, buffer, backoff, stats


@pytest.fixture
def make_sink(channel, clock):
    """Factory for sinks backed by the recording channel."""
    created = []

    def _make(config: SinkConfig, mirror: LogMirror = None) -> TelegramLogSink:
        sink = TelegramLogSink(
            config,
            client=channel,
            clock=clock,
            mirror=mirror or LogMirror(),
            shutdown=channel.shutdown,
        )
        created.append(sink)
        return sink

    yield _make

    for sink in created:
        sink.close(drain=False)
