"""
Telegram Log Sink - Accumulation Buffer.

============================================================
PURPOSE
============================================================
Append-only text buffer with a line counter and the time of
the last flush.

INVARIANTS:
- Appended text is never reordered
- Every take_* call removes a prefix of the buffer
- Undelivered text is restored to the front, ahead of newer writes

The buffer itself is not locked. The owning sink serializes
every access.

============================================================
"""

from typing import Optional

from .clock import ClockProtocol
from .formatting import byte_length, find_cut


class AccumulationBuffer:
    """Pending log text waiting to be flushed."""

    def __init__(self, clock: ClockProtocol):
        self._clock = clock
        self._text = ""
        self._size = 0
        self.line_count = 0
        self.last_flush: Optional[float] = None

    def __len__(self) -> int:
        return len(self._text)

    @property
    def size(self) -> int:
        """Pending text in UTF-8 bytes."""
        return self._size

    @property
    def is_empty(self) -> bool:
        return not self._text

    @property
    def text(self) -> str:
        return self._text

    def append(self, text: str) -> None:
        """Append one write, terminating it with a newline if needed."""
        if not text.endswith("\n"):
            text += "\n"
        self._text += text
        self._size += byte_length(text)
        self.line_count += 1

    def take_prefix(self, limit: int, whole_line: bool = False) -> str:
        """
        Remove and return the longest prefix within `limit` UTF-8 bytes
        that ends on a line boundary.

        When the first `limit` bytes hold no newline, as many whole
        characters as fit are returned and the line continues in
        the remainder, unless `whole_line` is set, in which case
        the entire first line is returned regardless of its length.
        """
        cut = find_cut(self._text, limit)
        if whole_line and cut > 0 and not self._text[:cut].endswith("\n"):
            end = self._text.find("\n", cut)
            cut = len(self._text) if end == -1 else end + 1
        prefix = self._text[:cut]
        self._text = self._text[cut:]
        self._size -= byte_length(prefix)
        return prefix

    def restore(self, text: str) -> None:
        """Put undelivered text back at the front of the buffer."""
        if text:
            self._text = text + self._text
            self._size += byte_length(text)

    def mark_flushed(self) -> None:
        """Reset the line counter and stamp the flush time."""
        self.line_count = 0
        self.last_flush = self._clock.monotonic()

    def seconds_since_flush(self) -> float:
        return self._clock.elapsed_since(self.last_flush)

    def clear(self) -> str:
        """Drop everything pending and return what was dropped."""
        dropped, self._text = self._text, ""
        self._size = 0
        return dropped
