"""
Tests for flush scheduling: backoff, the flush predicate and
the flush timer thread.
"""

import threading

import pytest

from telegram_log_sink.buffer import AccumulationBuffer
from telegram_log_sink.scheduler import BackoffState, FlushScheduler, FlushTimer


@pytest.fixture
def parts(clock):
    buffer = AccumulationBuffer(clock)
    backoff = BackoffState()
    scheduler = FlushScheduler(buffer, backoff, update_interval_seconds=3.0, minimum_lines=2)
    return buffer, backoff, scheduler


class TestBackoffState:

    def test_consume_resets(self):
        backoff = BackoffState()
        backoff.set(12)

        assert backoff.active
        assert backoff.consume() == 12
        assert backoff.seconds == 0
        assert not backoff.active

    def test_negative_clamped(self):
        backoff = BackoffState()
        backoff.set(-4)

        assert backoff.seconds == 0


class TestFlushScheduler:
    """Flush predicate."""

    def test_first_write_due_once_minimum_lines_reached(self, parts):
        buffer, backoff, scheduler = parts
        buffer.append("one")

        assert not scheduler.should_flush()

        buffer.append("two")

        assert scheduler.should_flush()

    def test_waits_for_interval(self, parts, clock):
        buffer, backoff, scheduler = parts
        buffer.mark_flushed()
        buffer.append("one")
        buffer.append("two")

        clock.advance(2.9)
        assert not scheduler.should_flush()

        clock.advance(0.1)
        assert scheduler.should_flush()

    def test_backoff_extends_wait(self, parts, clock):
        buffer, backoff, scheduler = parts
        buffer.mark_flushed()
        backoff.set(10)
        buffer.append("one")
        buffer.append("two")

        assert scheduler.required_wait == 10

        clock.advance(9)
        assert not scheduler.should_flush()

        clock.advance(1)
        assert scheduler.should_flush()

    def test_empty_buffer_never_due(self, parts):
        buffer, backoff, scheduler = parts
        buffer.line_count = 5

        assert not scheduler.should_flush()


class TestFlushTimer:
    """Background tick thread."""

    def test_wake_runs_tick(self):
        ticked = threading.Event()
        timer = FlushTimer(ticked.set, interval_seconds=60)
        timer.start()
        try:
            timer.wake()
            assert ticked.wait(5)
        finally:
            timer.stop()

        assert not timer.running

    def test_ticks_on_interval(self):
        count = []
        done = threading.Event()

        def tick():
            count.append(1)
            if len(count) >= 2:
                done.set()

        timer = FlushTimer(tick, interval_seconds=0.01)
        timer.start()
        try:
            assert done.wait(5)
        finally:
            timer.stop()

    def test_tick_errors_do_not_stop_thread(self):
        calls = []
        done = threading.Event()

        def tick():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            done.set()

        timer = FlushTimer(tick, interval_seconds=0.01)
        timer.start()
        try:
            assert done.wait(5)
        finally:
            timer.stop()

    def test_signal_stop_lets_current_tick_finish(self):
        entered = threading.Event()
        release = threading.Event()
        ticks = []

        def tick():
            ticks.append(1)
            entered.set()
            release.wait(5)

        timer = FlushTimer(tick, interval_seconds=60)
        timer.start()
        timer.wake()
        assert entered.wait(5)

        timer.signal_stop()
        assert timer.running

        release.set()
        timer.stop()

        assert not timer.running
        assert ticks == [1]
