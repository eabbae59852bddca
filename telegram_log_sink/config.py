"""
Telegram Log Sink - Configuration.

============================================================
CONFIGURABLE SINK BEHAVIOR
============================================================

All batching parameters are configurable:
- Update interval and minimum lines per flush
- Pending buffer size before falling back to a file (bytes)
- Maximum message size (bytes)
- Excluded substrings

Configuration can be loaded from:
- Explicit values
- Environment variables (a .env file is honored)

Token and chat id are mandatory. Everything else is
defaulted when missing or non-positive.

============================================================
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .formatting import WORKING_LIMIT, decoration_overhead


logger = logging.getLogger(__name__)


DEFAULT_TITLE = "TGLogger"
DEFAULT_UPDATE_INTERVAL_SECONDS = 3.0
DEFAULT_MINIMUM_LINES = 1
DEFAULT_PENDING_SIZE = 20000
DEFAULT_MAX_MESSAGE_SIZE = 4096
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0
DEFAULT_DOCUMENT_FILENAME = "logs.txt"
DEFAULT_API_BASE_URL = "https://api.telegram.org"


# =============================================================
# MAIN CONFIGURATION
# =============================================================


@dataclass
class SinkConfig:
    """
    Configuration for the Telegram log sink.

    Validated on construction.
    """
    # Credentials and target
    token: str = ""
    chat_id: int = 0
    topic_id: int = 0

    # Presentation
    title: str = DEFAULT_TITLE

    # Filtering
    excluded_patterns: List[str] = field(default_factory=list)

    # Batching
    update_interval_seconds: float = DEFAULT_UPDATE_INTERVAL_SECONDS
    minimum_lines: int = DEFAULT_MINIMUM_LINES
    pending_size: int = DEFAULT_PENDING_SIZE
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE

    # Transport
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    api_base_url: str = DEFAULT_API_BASE_URL

    # Failure handling
    requeue_on_failure: bool = True

    # Dispatch
    background_sender: bool = False
    idle_flush: bool = False

    # Local mirroring
    log_file_path: Optional[str] = None
    echo_to_console: bool = False
    document_filename: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate mandatory fields and default the rest."""
        if not self.chat_id:
            raise ConfigurationError("please provide chat_id", config_key="chat_id")
        if not self.token:
            raise ConfigurationError("please provide token", config_key="token")

        self.chat_id = int(self.chat_id)
        self.topic_id = int(self.topic_id or 0)
        if self.topic_id < 0:
            logger.warning(f"Negative topic_id {self.topic_id}, ignoring it")
            self.topic_id = 0

        if not self.title:
            self.title = DEFAULT_TITLE

        self.excluded_patterns = [p for p in self.excluded_patterns if p]

        for name, default in (
            ("update_interval_seconds", DEFAULT_UPDATE_INTERVAL_SECONDS),
            ("minimum_lines", DEFAULT_MINIMUM_LINES),
            ("pending_size", DEFAULT_PENDING_SIZE),
            ("max_message_size", DEFAULT_MAX_MESSAGE_SIZE),
            ("request_timeout_seconds", DEFAULT_REQUEST_TIMEOUT_SECONDS),
        ):
            if getattr(self, name) <= 0:
                logger.warning(f"Invalid {name} {getattr(self, name)}, using default {default}")
                setattr(self, name, default)

        if self.working_limit <= 0:
            raise ConfigurationError(
                f"max_message_size {self.max_message_size} leaves no room "
                f"for a message body with title {self.title!r}",
                config_key="max_message_size",
            )

        if not self.document_filename:
            if self.log_file_path:
                self.document_filename = os.path.basename(self.log_file_path)
            else:
                self.document_filename = DEFAULT_DOCUMENT_FILENAME

    @property
    def working_limit(self) -> int:
        """Largest message body, in UTF-8 bytes, that still fits once decorated."""
        return min(WORKING_LIMIT, self.max_message_size - decoration_overhead(self.title))

    @classmethod
    def from_env(cls, **overrides: Any) -> "SinkConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - TELEGRAM_BOT_TOKEN
        - TELEGRAM_CHAT_ID
        - TELEGRAM_TOPIC_ID
        - TGLOG_TITLE
        - TGLOG_EXCLUDED_PATTERNS (comma separated)
        - TGLOG_UPDATE_INTERVAL
        - TGLOG_MINIMUM_LINES
        - TGLOG_PENDING_SIZE
        - TGLOG_MAX_MESSAGE_SIZE
        - TGLOG_REQUEST_TIMEOUT
        - TGLOG_LOG_FILE
        - TGLOG_ECHO
        - TGLOG_BACKGROUND_SENDER
        - TGLOG_IDLE_FLUSH

        Keyword overrides win over the environment.
        """
        load_dotenv()

        values: Dict[str, Any] = {
            "token": os.getenv("TELEGRAM_BOT_TOKEN", ""),
            "chat_id": _env_int("TELEGRAM_CHAT_ID", 0),
            "topic_id": _env_int("TELEGRAM_TOPIC_ID", 0),
            "title": os.getenv("TGLOG_TITLE", DEFAULT_TITLE),
            "excluded_patterns": _env_list("TGLOG_EXCLUDED_PATTERNS"),
            "update_interval_seconds": _env_float(
                "TGLOG_UPDATE_INTERVAL", DEFAULT_UPDATE_INTERVAL_SECONDS
            ),
            "minimum_lines": _env_int("TGLOG_MINIMUM_LINES", DEFAULT_MINIMUM_LINES),
            "pending_size": _env_int("TGLOG_PENDING_SIZE", DEFAULT_PENDING_SIZE),
            "max_message_size": _env_int("TGLOG_MAX_MESSAGE_SIZE", DEFAULT_MAX_MESSAGE_SIZE),
            "request_timeout_seconds": _env_float(
                "TGLOG_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT_SECONDS
            ),
            "log_file_path": os.getenv("TGLOG_LOG_FILE") or None,
            "echo_to_console": _env_bool("TGLOG_ECHO", False),
            "background_sender": _env_bool("TGLOG_BACKGROUND_SENDER", False),
            "idle_flush": _env_bool("TGLOG_IDLE_FLUSH", False),
        }
        values.update(overrides)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, with the token masked."""
        return {
            "token": _mask(self.token),
            "chat_id": self.chat_id,
            "topic_id": self.topic_id,
            "title": self.title,
            "excluded_patterns": list(self.excluded_patterns),
            "update_interval_seconds": self.update_interval_seconds,
            "minimum_lines": self.minimum_lines,
            "pending_size": self.pending_size,
            "max_message_size": self.max_message_size,
            "working_limit": self.working_limit,
            "request_timeout_seconds": self.request_timeout_seconds,
            "requeue_on_failure": self.requeue_on_failure,
            "background_sender": self.background_sender,
            "idle_flush": self.idle_flush,
            "log_file_path": self.log_file_path,
            "echo_to_console": self.echo_to_console,
            "document_filename": self.document_filename,
        }


# =============================================================
# ENVIRONMENT HELPERS
# =============================================================


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}", config_key=key)


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}", config_key=key)


def _env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(key: str) -> List[str]:
    raw = os.getenv(key)
    if raw is None:
        return []
    return [v.strip() for v in raw.split(",") if v.strip()]


def _mask(secret: str) -> str:
    if len(secret) <= 8:
        return "***"
    return f"{secret[:4]}...{secret[-4:]}"
