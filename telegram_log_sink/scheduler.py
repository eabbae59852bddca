"""
Telegram Log Sink - Flush Scheduling.

============================================================
PURPOSE
============================================================
Decides when accumulated log text is flushed.

FLUSH PREDICATE (evaluated after every write):
- elapsed since last flush >= max(update interval, backoff)
- line counter >= minimum lines
- buffer not empty

BACKOFF:
- Set from a rate-limit response ("retry after N seconds")
- Consumed (reset to zero) when the next flush starts,
  not decayed by a timer

FLUSH TIMER:
- Optional daemon thread that re-evaluates the predicate
  every update interval, or when signalled
- Used for idle flushing and as the dedicated sender in
  background mode

============================================================
"""

import logging
import threading
from typing import Callable, Optional

from .buffer import AccumulationBuffer


logger = logging.getLogger(__name__)


# ============================================================
# BACKOFF STATE
# ============================================================

class BackoffState:
    """Server-requested wait before the next send."""

    def __init__(self) -> None:
        self._seconds = 0.0

    @property
    def seconds(self) -> float:
        return self._seconds

    @property
    def active(self) -> bool:
        return self._seconds > 0

    def set(self, seconds: float) -> None:
        self._seconds = max(0.0, float(seconds))

    def consume(self) -> float:
        """Reset to zero, returning the value that was pending."""
        seconds, self._seconds = self._seconds, 0.0
        return seconds


# ============================================================
# FLUSH SCHEDULER
# ============================================================

class FlushScheduler:
    """
    Flush predicate over the buffer and backoff state.

    Callers must hold the sink lock while evaluating it.
    """

    def __init__(
        self,
        buffer: AccumulationBuffer,
        backoff: BackoffState,
        update_interval_seconds: float,
        minimum_lines: int,
    ):
        self._buffer = buffer
        self._backoff = backoff
        self._update_interval = update_interval_seconds
        self._minimum_lines = minimum_lines

    @property
    def required_wait(self) -> float:
        """Seconds that must pass between flushes right now."""
        return max(self._update_interval, self._backoff.seconds)

    def should_flush(self) -> bool:
        return (
            self._buffer.seconds_since_flush() >= self.required_wait
            and self._buffer.line_count >= self._minimum_lines
            and not self._buffer.is_empty
        )


# ============================================================
# FLUSH TIMER
# ============================================================

class FlushTimer:
    """
    Daemon thread that calls `tick` periodically or on demand.

    `tick` is expected to handle its own errors; anything that
    escapes is logged and the loop keeps running.
    """

    def __init__(
        self,
        tick: Callable[[], None],
        interval_seconds: float,
        name: str = "tglog-flush",
    ):
        self._tick = tick
        self._interval = interval_seconds
        self._name = name
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the timer thread."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name=self._name)
        self._thread.start()
        logger.debug(f"Flush timer started (interval={self._interval}s)")

    def wake(self) -> None:
        """Run the next tick now instead of waiting for the interval."""
        self._wake.set()

    def signal_stop(self) -> None:
        """Ask the thread to exit after its current tick, without waiting."""
        self._stop.set()
        self._wake.set()

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        """Signal the thread to exit and wait for it."""
        self.signal_stop()
        thread = self._thread
        if thread and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning(f"Flush timer did not stop within {timeout}s")
                return
        self._thread = None

    def _run(self) -> None:
        while not self._stop.is_set():
            self._wake.wait(self._interval)
            self._wake.clear()
            if self._stop.is_set():
                break
            try:
                self._tick()
            except Exception as e:
                logger.error(f"Flush timer tick failed: {e}")
