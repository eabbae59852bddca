"""
Telegram Log Sink - Local Mirror.

Copies every raw write to a local log file and/or the console,
whether or not it is later excluded from forwarding.
"""

import logging
import os
import sys
import threading
from typing import IO, Optional


logger = logging.getLogger(__name__)


class LogMirror:
    """
    Local copy of everything written to the sink.

    The log file is truncated when the mirror opens it.
    """

    def __init__(
        self,
        log_file_path: Optional[str] = None,
        echo_to_console: bool = False,
        console: Optional[IO[str]] = None,
    ):
        self._path = log_file_path
        self._echo = echo_to_console
        self._console = console
        self._file: Optional[IO[str]] = None
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self._path) or self._echo

    def open(self) -> None:
        """Open (and truncate) the mirror file."""
        if not self._path or self._file is not None:
            return
        directory = os.path.dirname(self._path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._file = open(self._path, "w", encoding="utf-8")

    def write(self, text: str) -> None:
        with self._lock:
            if self._file is not None:
                self._file.write(text)
                self._file.flush()
            if self._echo:
                console = self._console or sys.stdout
                console.write(text)
                console.flush()

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                try:
                    self._file.close()
                except OSError as e:
                    logger.warning(f"Failed to close mirror file {self._path}: {e}")
                self._file = None
