"""
Telegram Log Sink - Message Formatting.

============================================================
PURPOSE
============================================================
Decorates outgoing message bodies and finds newline-safe
cut points in log text.

Every message body is rendered as a Markdown pre block:

    ```
    <title>

    <body>
    ```

The decoration consumes part of the per-message budget, so
the working limit must leave room for it.

All sizes are UTF-8 byte counts. A character never takes
more UTF-16 units than UTF-8 bytes, so a text within N bytes
is also within Telegram's N-unit message length.

============================================================
"""

from typing import Tuple


WORKING_LIMIT = 4000
"""Maximum body size of a single message before decoration, in UTF-8 bytes."""

PARSE_MODE = "Markdown"

DOCUMENT_CAPTION = "Too many logs for a text message! This file contains the logs."

_FENCE = "```"


def format_message(title: str, body: str) -> str:
    """Wrap a log body with the title and a preformatted block."""
    body = body.rstrip("\n")
    return f"{_FENCE}\n{title}\n\n{body}\n{_FENCE}"


def format_placeholder(title: str) -> str:
    """Text shown while a new message thread is being set up."""
    return f"{_FENCE}\nInitializing {title}\n{_FENCE}"


def _encode(text: str) -> bytes:
    # Lone surrogates count as one replacement byte each.
    return text.encode("utf-8", errors="replace")


def byte_length(text: str) -> int:
    """Size of text as sent on the wire (UTF-8 bytes)."""
    return len(_encode(text))


def decoration_overhead(title: str) -> int:
    """Number of bytes format_message adds around a body."""
    return byte_length(format_message(title, ""))


def find_cut(text: str, limit: int) -> int:
    """
    Find where to cut text so the prefix fits in `limit` bytes.

    Returns a character index just past the last newline within
    the first `limit` UTF-8 bytes, so the prefix keeps its trailing
    newline. When that window holds no newline, the cut falls on
    the last character boundary at-or-before the limit (or the end
    of the text if shorter). A cut never lands inside a multi-byte
    character; if even the first character is wider than the limit,
    that one character is returned.
    """
    data = _encode(text)
    if len(data) <= limit:
        window = data
    else:
        window = data[:limit]

    last_newline = window.rfind(b"\n")
    if last_newline != -1:
        cut = last_newline + 1
    else:
        cut = len(window)
        # Back off continuation bytes (10xxxxxx) to a character boundary.
        while 0 < cut < len(data) and data[cut] & 0xC0 == 0x80:
            cut -= 1
        if cut == 0 and data:
            return 1

    return len(data[:cut].decode("utf-8"))


def split_at_newline(text: str, limit: int) -> Tuple[str, str]:
    """Split text into a head that fits in `limit` bytes and the remaining tail."""
    cut = find_cut(text, limit)
    return text[:cut], text[cut:]
