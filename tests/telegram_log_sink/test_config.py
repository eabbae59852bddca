"""
Tests for sink configuration.
"""

from unittest.mock import patch

import pytest

from telegram_log_sink.config import (
    DEFAULT_MINIMUM_LINES,
    DEFAULT_PENDING_SIZE,
    DEFAULT_TITLE,
    DEFAULT_UPDATE_INTERVAL_SECONDS,
    SinkConfig,
)
from telegram_log_sink.exceptions import ConfigurationError


ENV_KEYS = [
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
    "TELEGRAM_TOPIC_ID",
    "TGLOG_TITLE",
    "TGLOG_EXCLUDED_PATTERNS",
    "TGLOG_UPDATE_INTERVAL",
    "TGLOG_MINIMUM_LINES",
    "TGLOG_PENDING_SIZE",
    "TGLOG_MAX_MESSAGE_SIZE",
    "TGLOG_REQUEST_TIMEOUT",
    "TGLOG_LOG_FILE",
    "TGLOG_ECHO",
    "TGLOG_BACKGROUND_SENDER",
    "TGLOG_IDLE_FLUSH",
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    with patch("telegram_log_sink.config.load_dotenv"):
        yield monkeypatch


class TestValidation:
    """Constructor validation and defaults."""

    def test_chat_id_required(self):
        with pytest.raises(ConfigurationError) as exc_info:
            SinkConfig(token="abc")

        assert exc_info.value.config_key == "chat_id"
        assert exc_info.value.message == "please provide chat_id"

    def test_token_required(self):
        with pytest.raises(ConfigurationError) as exc_info:
            SinkConfig(chat_id=42)

        assert exc_info.value.config_key == "token"

    def test_chat_id_checked_first(self):
        with pytest.raises(ConfigurationError) as exc_info:
            SinkConfig()

        assert exc_info.value.config_key == "chat_id"

    def test_non_positive_values_defaulted(self):
        config = SinkConfig(
            token="abc",
            chat_id=42,
            title="",
            update_interval_seconds=0,
            minimum_lines=-1,
            pending_size=0,
        )

        assert config.title == DEFAULT_TITLE
        assert config.update_interval_seconds == DEFAULT_UPDATE_INTERVAL_SECONDS
        assert config.minimum_lines == DEFAULT_MINIMUM_LINES
        assert config.pending_size == DEFAULT_PENDING_SIZE

    def test_negative_topic_ignored(self):
        assert SinkConfig(token="abc", chat_id=42, topic_id=-5).topic_id == 0

    def test_working_limit_capped(self):
        assert SinkConfig(token="abc", chat_id=42).working_limit == 4000

    def test_working_limit_leaves_room_for_decoration(self):
        config = SinkConfig(token="abc", chat_id=42, title="Bot", max_message_size=1000)

        assert config.working_limit == 1000 - len("```\nBot\n\n\n```")

    def test_max_message_size_too_small_for_title(self):
        with pytest.raises(ConfigurationError) as exc_info:
            SinkConfig(token="abc", chat_id=42, title="x" * 50, max_message_size=20)

        assert exc_info.value.config_key == "max_message_size"

    def test_document_filename_from_log_file(self):
        config = SinkConfig(token="abc", chat_id=42, log_file_path="/var/log/app/bot.log")

        assert config.document_filename == "bot.log"

    def test_document_filename_default(self):
        assert SinkConfig(token="abc", chat_id=42).document_filename == "logs.txt"

    def test_to_dict_masks_token(self):
        data = SinkConfig(token="123456789:ABCDEFGH", chat_id=42).to_dict()

        assert data["token"] == "1234...EFGH"
        assert data["working_limit"] == 4000


class TestFromEnv:
    """Environment loading."""

    def test_reads_environment(self, clean_env):
        clean_env.setenv("TELEGRAM_BOT_TOKEN", "env-token")
        clean_env.setenv("TELEGRAM_CHAT_ID", "-100200")
        clean_env.setenv("TELEGRAM_TOPIC_ID", "7")
        clean_env.setenv("TGLOG_TITLE", "Prod")
        clean_env.setenv("TGLOG_EXCLUDED_PATTERNS", "DEBUG, FLOODWAIT,,")
        clean_env.setenv("TGLOG_UPDATE_INTERVAL", "1.5")
        clean_env.setenv("TGLOG_MINIMUM_LINES", "4")
        clean_env.setenv("TGLOG_BACKGROUND_SENDER", "true")

        config = SinkConfig.from_env()

        assert config.token == "env-token"
        assert config.chat_id == -100200
        assert config.topic_id == 7
        assert config.title == "Prod"
        assert config.excluded_patterns == ["DEBUG", "FLOODWAIT"]
        assert config.update_interval_seconds == 1.5
        assert config.minimum_lines == 4
        assert config.background_sender is True
        assert config.idle_flush is False

    def test_overrides_win(self, clean_env):
        clean_env.setenv("TELEGRAM_BOT_TOKEN", "env-token")
        clean_env.setenv("TELEGRAM_CHAT_ID", "1")

        config = SinkConfig.from_env(chat_id=99, excluded_patterns=["x"])

        assert config.chat_id == 99
        assert config.excluded_patterns == ["x"]

    def test_missing_token(self, clean_env):
        clean_env.setenv("TELEGRAM_CHAT_ID", "1")

        with pytest.raises(ConfigurationError):
            SinkConfig.from_env()

    def test_bad_integer(self, clean_env):
        clean_env.setenv("TELEGRAM_BOT_TOKEN", "env-token")
        clean_env.setenv("TELEGRAM_CHAT_ID", "not-a-number")

        with pytest.raises(ConfigurationError) as exc_info:
            SinkConfig.from_env()

        assert exc_info.value.config_key == "TELEGRAM_CHAT_ID"
