"""
Telegram Log Sink - Excluded-Pattern Filter.

Drops writes that contain any configured substring before they
reach the accumulation buffer.
"""

from typing import Iterable, List


class ExcludedPatternFilter:
    """Plain substring matching against a fixed pattern list."""

    def __init__(self, patterns: Iterable[str] = ()):
        self._patterns: List[str] = [p for p in patterns if p]

    @property
    def patterns(self) -> List[str]:
        return list(self._patterns)

    def is_excluded(self, text: str) -> bool:
        """True if text contains any excluded substring."""
        return any(pattern in text for pattern in self._patterns)
